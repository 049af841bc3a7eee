"""
Resolver for opam packages published under the opam scope.

Patterns look like ``@opam/lwt@^4.0.0``. Candidate versions come from a
``VersionCatalog``; the chosen version is the highest one in opam ordering
that satisfies both the requested range and, when an installed toolchain
version is known, the candidate's toolchain peer constraint.

Resolved packages are identified by a reference string
``[@scope/]name@version-uid.tgz`` which the fetcher parses back.
"""

import dataclasses
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from semantic_version import NpmSpec, Version

from opamkit.catalog import VersionCatalog
from opamkit.config.parser import OpamKitConfig
from opamkit.core.exceptions import (
    ConfigError,
    ConstraintNarrowedError,
    InvariantError,
    MalformedReferenceError,
    NotFoundError,
)
from opamkit.lockfile.store import LockManifest
from opamkit.manifest import Manifest, OpamSource, ReferenceInfo, RemoteDescriptor
from opamkit.resolvers.base import ExoticResolver, ResolutionRequest
from opamkit.resolvers.versions import opam_version_key

logger = logging.getLogger(__name__)

# npm allows whitespace between a comparator and its version
_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|<|>|=|\^|~)\s+")


# =============================================================================
# Ranges
# =============================================================================


def parse_range(version_range: str) -> NpmSpec:
    """
    Parse an npm-style range.

    Raises:
        ValueError: If the range is invalid
    """
    text = _OPERATOR_SPACE_RE.sub(r"\1", version_range.strip())
    return NpmSpec(text or "*")


def is_valid_range(version_range: str) -> bool:
    try:
        parse_range(version_range)
    except ValueError:
        return False
    return True


def _range_is_prerelease(version_range: str) -> bool:
    """Check whether the range is itself a single pre-release version."""
    text = version_range.strip()
    if text.startswith("v"):
        text = text[1:]
    try:
        return bool(Version(text).prerelease)
    except ValueError:
        return False


def _parse_toolchain_version(toolchain_version: str) -> Version:
    try:
        return Version(toolchain_version)
    except ValueError:
        pass
    try:
        return Version.coerce(toolchain_version)
    except ValueError as e:
        raise ConfigError(f"Invalid toolchain version: {toolchain_version}") from e


# =============================================================================
# Constraint Solving
# =============================================================================


class SolutionType(str, Enum):
    """Outcome of solving a version constraint."""

    FOUND = "found"
    NO_VERSION_FOUND = "no-version-found"
    NO_VERSION_FOUND_FOR_TOOLCHAIN = "no-version-found-for-toolchain-constraint"


@dataclass(frozen=True)
class Solution:
    type: SolutionType
    version: Optional[str] = None


def _find_version(
    name: str, candidates: List[Manifest], version_range: str, scope: str
) -> Optional[str]:
    try:
        spec = parse_range(version_range)
    except ValueError:
        logger.debug(f"Invalid range for {name}: {version_range!r}")
        return None

    mask_prerelease = not _range_is_prerelease(version_range)

    parsed = []
    for candidate in candidates:
        try:
            version = Version(candidate.version)
        except ValueError as e:
            raise InvariantError(
                f"Invalid version: @{scope}/{name}@{candidate.version}"
            ) from e
        if mask_prerelease:
            # The raw version is still what gets reported
            version = Version(major=version.major, minor=version.minor, patch=version.patch)
        parsed.append((version, candidate))

    parsed.sort(key=lambda item: opam_version_key(item[1].ordering_version), reverse=True)

    for version, candidate in parsed:
        if spec.match(version):
            return candidate.version
    return None


def solve_version_constraint(
    name: str,
    candidates: Iterable[Manifest],
    version_range: str,
    toolchain_version: Optional[str] = None,
    toolchain_package: str = "ocaml",
    scope: str = "opam",
) -> Solution:
    """
    Pick the version of ``name`` to install.

    Candidates declaring a ``peerDependencies[toolchain_package]`` range that
    the installed toolchain does not satisfy are filtered out first. The
    remaining candidates are ordered by opam version, highest first, and the
    first one matching ``version_range`` wins.

    Args:
        name: Unscoped package name (used in diagnostics)
        candidates: Catalog entries for the package
        version_range: Requested npm-style range
        toolchain_version: Installed toolchain version, or None to skip the
            toolchain filter
        toolchain_package: Peer dependency name carrying the toolchain range
        scope: Package scope (used in diagnostics)

    Returns:
        Solution. ``NO_VERSION_FOUND_FOR_TOOLCHAIN`` means a candidate would
        have matched without the toolchain filter.

    Raises:
        InvariantError: If a candidate version is not a valid semantic version
    """
    all_candidates = list(candidates)
    eligible = all_candidates

    if toolchain_version is not None:
        installed = _parse_toolchain_version(toolchain_version)
        eligible = []
        for candidate in all_candidates:
            constraint = candidate.peer_dependencies.get(toolchain_package) or "*"
            try:
                allowed = parse_range(constraint).match(installed)
            except ValueError:
                logger.debug(
                    f"Ignoring {candidate.name}@{candidate.version}: "
                    f"invalid {toolchain_package} range {constraint!r}"
                )
                allowed = False
            if allowed:
                eligible.append(candidate)

    version = _find_version(name, eligible, version_range, scope)
    if version is not None:
        return Solution(SolutionType.FOUND, version)

    if toolchain_version is not None:
        if _find_version(name, all_candidates, version_range, scope) is not None:
            return Solution(SolutionType.NO_VERSION_FOUND_FOR_TOOLCHAIN)

    return Solution(SolutionType.NO_VERSION_FOUND)


# =============================================================================
# References
# =============================================================================


@dataclass(frozen=True)
class PackageReference:
    """Parsed form of a resolved reference string."""

    name: str
    version: str
    uid: str
    scope: Optional[str] = None

    @property
    def full_name(self) -> str:
        if self.scope is not None:
            return f"@{self.scope}/{self.name}"
        return self.name


def format_reference(reference: PackageReference) -> str:
    """
    Format a reference as ``[@scope/]name@version-uid.tgz``.

    Example:
        >>> format_reference(PackageReference("lwt", "4.1.0", "4.1.0", "opam"))
        '@opam/lwt@4.1.0-4.1.0.tgz'

    Raises:
        InvariantError: If the string would not parse back to ``reference``
            (a custom uid containing ``-``)
    """
    formatted = f"{reference.full_name}@{reference.version}-{reference.uid}.tgz"
    if parse_reference(formatted) != reference:
        raise InvariantError(f"Ambiguous opam package reference: {formatted}")
    return formatted


def parse_reference(resolution: str) -> PackageReference:
    """
    Parse a ``[@scope/]name@version-uid.tgz`` reference.

    When the part before ``.tgz`` reads ``X-X`` (the default uid equals the
    version, pre-releases included) it splits at the middle ``-``. Otherwise
    the uid is the last ``-`` delimited segment and the version is everything
    before it.

    Raises:
        MalformedReferenceError: If the string does not have this shape
    """
    value = resolution
    scope = None

    if value.startswith("@"):
        idx = value.find("/")
        if idx == -1:
            raise MalformedReferenceError(resolution, value)
        scope = value[1:idx]
        value = value[idx + 1 :]

    idx = value.find("@")
    if idx == -1:
        raise MalformedReferenceError(resolution, value)
    name = value[:idx]
    value = value[idx + 1 :]

    idx = value.find(".tgz")
    if idx == -1 or "-" not in value[:idx]:
        raise MalformedReferenceError(resolution, value)
    version, uid = _split_version_uid(value[:idx])

    return PackageReference(name=name, version=version, uid=uid, scope=scope)


def _split_version_uid(value: str) -> Tuple[str, str]:
    # uid defaults to the version, which may itself contain '-'
    half = len(value) // 2
    if len(value) % 2 == 1 and value[half] == "-" and value[:half] == value[half + 1 :]:
        return value[:half], value[half + 1 :]
    version, _, uid = value.rpartition("-")
    return version, uid


def is_valid_reference(resolution: Optional[str]) -> bool:
    if resolution is None:
        return False
    try:
        parse_reference(resolution)
    except MalformedReferenceError:
        return False
    return True


# =============================================================================
# Patterns
# =============================================================================


def is_version(pattern: str, scope: str = "opam") -> bool:
    """
    Check whether a pattern requests an opam package.

    The pattern must start with ``@<scope>/``; a range, when present, must be
    a valid npm range.
    """
    if not pattern.startswith(f"@{scope}/"):
        return False
    parts = pattern[1:].split("@")
    return len(parts) == 1 or is_valid_range(parts[1])


def parse_fragment(fragment: str, scope: str = "opam") -> Tuple[str, str]:
    """
    Split ``@<scope>/name@range`` into ``(name, range)``.

    A missing range, an empty one and ``latest`` all mean ``*``.
    """
    prefix = f"@{scope}/"
    if fragment.startswith(prefix):
        fragment = fragment[len(prefix) :]
    name, _, version_range = fragment.partition("@")
    if version_range in ("", "latest"):
        version_range = "*"
    return name, version_range


def lookup_manifest(
    catalog: VersionCatalog, name: str, version: str
) -> Optional[Manifest]:
    """Catalog entry for an exact version of ``name``, or None."""
    return catalog.get_manifest(name, version)


def dependency_not_found_message(reason: str, request: ResolutionRequest) -> str:
    return f"{request.path}: {reason}"


# =============================================================================
# Resolver
# =============================================================================


class OpamResolver(ExoticResolver):
    """
    Exotic resolver for ``@opam/*`` patterns.

    Attributes:
        catalog: Source of candidate versions
        config: opamkit configuration (scope, registry, toolchain version)

    Example:
        >>> resolver = OpamResolver(DirectoryCatalog(Path('opam-repo')))
        >>> manifest = resolver.resolve(ResolutionRequest('@opam/lwt@^4.0.0'))
        >>> manifest.remote.resolved
        '@opam/lwt@4.1.0-4.1.0.tgz'
    """

    remote_type = "opam"

    def __init__(self, catalog: VersionCatalog, config: Optional[OpamKitConfig] = None):
        self.catalog = catalog
        self.config = config or OpamKitConfig.default()

    @property
    def scope(self) -> str:
        return self.config.opam_scope

    @property
    def toolchain_version(self) -> Optional[str]:
        return self.config.toolchain_version

    def is_applicable(self, pattern: str) -> bool:
        return is_version(pattern, self.scope)

    def resolve(self, request: ResolutionRequest) -> Manifest:
        """
        Resolve an opam request.

        A locked entry that still satisfies the request is returned without
        consulting the catalog. Outdated entries are forgotten.

        Raises:
            NotFoundError: If no candidate satisfies the range
            ConstraintNarrowedError: If only the toolchain filter rules out
                every matching candidate
        """
        name, version_range = parse_fragment(request.pattern, self.scope)

        locked = request.get_locked(self.remote_type)
        if locked is not None:
            entry = request.get_locked_entry()
            if not self.is_lock_entry_outdated(entry, version_range, self.toolchain_version):
                logger.debug(f"Using locked {locked.name}@{locked.version} for {request.pattern}")
                return locked
            logger.warning(
                f"Lock entry for {request.pattern} ({locked.version}) is outdated, "
                "resolving again"
            )
            request.lockfile.forget(request.pattern)

        manifest = self.resolve_manifest(name, version_range, request)

        resolved = format_reference(
            PackageReference(
                name=name, version=manifest.version, uid=manifest.uid, scope=self.scope
            )
        )
        logger.info(f"Resolved {request.pattern} to {manifest.version}")

        return dataclasses.replace(
            manifest,
            remote=RemoteDescriptor(
                type=self.remote_type,
                registry=self.config.registry,
                hash=manifest.opam.checksum if manifest.opam else None,
                reference=resolved,
                resolved=resolved,
            ),
            reference=ReferenceInfo(),
        )

    def resolve_manifest(
        self, name: str, version_range: str, request: ResolutionRequest
    ) -> Manifest:
        """Pick the catalog entry satisfying ``version_range``."""
        candidates = self.catalog.get_candidates(name)

        solution = solve_version_constraint(
            name,
            candidates,
            version_range,
            toolchain_version=self.toolchain_version,
            toolchain_package=self.config.toolchain_package,
            scope=self.scope,
        )

        if solution.type == SolutionType.FOUND:
            for candidate in candidates:
                if candidate.version == solution.version:
                    return candidate

        if solution.type == SolutionType.NO_VERSION_FOUND_FOR_TOOLCHAIN:
            raise ConstraintNarrowedError(
                request.path, self.config.toolchain_package, self.toolchain_version
            )

        raise NotFoundError(request.path)

    def is_lock_entry_outdated(
        self,
        entry: LockManifest,
        version_range: str,
        toolchain_version: Optional[str] = None,
    ) -> bool:
        if not is_valid_reference(entry.get("resolved")):
            logger.debug(f"Lock entry has an unparseable reference: {entry.get('resolved')}")
            return True

        try:
            candidate = Manifest(
                name=entry["name"],
                version=entry["version"],
                peer_dependencies=dict(entry.get("peerDependencies") or {}),
                opam=OpamSource(version=entry["version"]),
            )
            solution = solve_version_constraint(
                entry["name"],
                [candidate],
                version_range,
                toolchain_version=toolchain_version,
                toolchain_package=self.config.toolchain_package,
                scope=self.scope,
            )
        except (KeyError, ValueError, InvariantError) as e:
            logger.debug(f"Lock entry cannot be checked: {e}")
            return True

        return solution.type != SolutionType.FOUND
