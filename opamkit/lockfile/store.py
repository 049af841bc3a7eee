"""
Lockfile store: pattern-keyed lock entries and their canonical snapshot.

Lock entries are plain mappings using the serialized field names::

    name, version, uid, resolved, registry, permissions,
    dependencies, optionalDependencies, peerDependencies

An entry exists in two representations. The *exploded* form has every field
populated. The *imploded* form omits every field equal to the default that can
be recomputed from the owning pattern, which keeps the serialized lockfile
compact and stable.

Example:
    >>> from pathlib import Path
    >>> from opamkit.lockfile import Lockfile
    >>>
    >>> lockfile = Lockfile.from_directory(Path('/path/to/project'))
    >>> entry = lockfile.get_locked('@opam/lwt@^4.0.0')
    >>> snapshot = lockfile.get_lockfile(resolved_packages)
    >>> lockfile.save(Path('/path/to/project/opamkit.lock'), snapshot)
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from opamkit.config.parser import DEFAULT_REGISTRY, LOCKFILE_FILENAME
from opamkit.core.exceptions import (
    MissingReferenceError,
    MissingRemoteError,
    StructuralError,
)
from opamkit.core.filesystem import atomic_write
from opamkit.lockfile.parse import ParseOutcome, parse
from opamkit.lockfile.stringify import stringify
from opamkit.manifest import Manifest, RemoteDescriptor
from opamkit.patterns import get_name

logger = logging.getLogger(__name__)

LockManifest = Dict[str, Any]

MAX_ALIAS_DEPTH = 64

_DEPENDENCY_FIELDS = ("dependencies", "optionalDependencies", "peerDependencies")


# ============================================================================
# Entry conversion
# ============================================================================


def _blank_to_none(obj: Optional[Mapping]) -> Optional[dict]:
    return dict(obj) if obj else None


def key_for_remote(remote: RemoteDescriptor) -> Optional[str]:
    """
    Remote identity key used to detect patterns resolving to the same content.

    Returns:
        ``resolved`` when set, else ``reference#hash`` when both are set,
        else None (never deduplicated)
    """
    if remote.resolved:
        return remote.resolved
    if remote.reference and remote.hash:
        return f"{remote.reference}#{remote.hash}"
    return None


def implode_entry(
    pattern: str, obj: Mapping[str, Any], default_registry: str = DEFAULT_REGISTRY
) -> LockManifest:
    """
    Build the minimal form of an entry.

    Fields equal to their computable default are left out: ``name`` when it
    matches the name inferred from pattern, ``uid`` when it equals
    ``version``, ``registry`` when it is the primary registry, and empty maps.
    """
    inferred_name = get_name(pattern)
    minimal = {
        "name": None if obj.get("name") == inferred_name else obj.get("name"),
        "version": obj.get("version"),
        "uid": None if obj.get("uid") == obj.get("version") else obj.get("uid"),
        "resolved": obj.get("resolved"),
        "registry": None
        if obj.get("registry") == default_registry
        else obj.get("registry"),
        "dependencies": _blank_to_none(obj.get("dependencies")),
        "optionalDependencies": _blank_to_none(obj.get("optionalDependencies")),
        "peerDependencies": _blank_to_none(obj.get("peerDependencies")),
        "permissions": _blank_to_none(obj.get("permissions")),
    }
    return {k: v for k, v in minimal.items() if v is not None}


def explode_entry(
    pattern: str, obj: LockManifest, default_registry: str = DEFAULT_REGISTRY
) -> LockManifest:
    """
    Fill every defaulted field of ``obj`` in place and return it.
    """
    for field_name in _DEPENDENCY_FIELDS:
        obj[field_name] = obj.get(field_name) or {}
    obj["uid"] = obj.get("uid") or obj.get("version")
    obj["permissions"] = obj.get("permissions") or {}
    obj["registry"] = obj.get("registry") or default_registry
    obj["name"] = obj.get("name") or get_name(pattern)
    obj.setdefault("resolved", None)
    return obj


def load(
    source: str, filename: Optional[str] = None
) -> Tuple[Dict[str, Any], ParseOutcome]:
    """
    Parse persisted lockfile text.

    Returns:
        (pattern-keyed entries, parse outcome)

    Raises:
        LockfileParseError: If the text is structurally invalid
    """
    result = parse(source, filename)
    return result.object, result.outcome


# ============================================================================
# Canonical snapshot
# ============================================================================


class LockfileObject(Mapping):
    """
    Canonical pattern -> entry mapping produced by ``Lockfile.get_lockfile``.

    Entries are allocated once per remote identity in an internal arena;
    patterns store an index into it. Every pattern sharing an identity
    therefore reads the very same entry object.
    """

    def __init__(self):
        self._entries: List[LockManifest] = []
        self._index: Dict[str, int] = {}

    def add(self, pattern: str, entry: LockManifest) -> int:
        """Allocate ``entry`` for ``pattern`` and return its arena id."""
        self._entries.append(entry)
        entry_id = len(self._entries) - 1
        self._index[pattern] = entry_id
        return entry_id

    def alias(self, pattern: str, entry_id: int) -> None:
        """Bind ``pattern`` to an already allocated entry."""
        if not 0 <= entry_id < len(self._entries):
            raise IndexError(f"No lock entry with id {entry_id}")
        self._index[pattern] = entry_id

    def entry(self, entry_id: int) -> LockManifest:
        return self._entries[entry_id]

    def entry_id(self, pattern: str) -> int:
        return self._index[pattern]

    def patterns_for(self, entry_id: int) -> List[str]:
        """All patterns bound to an entry, sorted."""
        return sorted(p for p, i in self._index.items() if i == entry_id)

    def __getitem__(self, pattern: str) -> LockManifest:
        return self._entries[self._index[pattern]]

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"LockfileObject({len(self._index)} patterns, {len(self._entries)} entries)"


# ============================================================================
# Store
# ============================================================================


class Lockfile:
    """
    Pattern-keyed store of previously locked entries.

    Attributes:
        cache: Parsed mapping (pattern -> entry mapping or alias string),
            or None when no lockfile was found
        source: Raw text the cache was parsed from
        parse_result_type: Outcome of parsing source, if it was parsed
        registry: Primary registry name used as the registry default
    """

    def __init__(
        self,
        cache: Optional[Dict[str, Any]] = None,
        source: str = "",
        parse_result_type: Optional[ParseOutcome] = None,
        registry: str = DEFAULT_REGISTRY,
    ):
        self.cache = cache
        self.source = source
        self.parse_result_type = parse_result_type
        self.registry = registry

    @classmethod
    def from_text(
        cls,
        source: str,
        filename: Optional[str] = None,
        registry: str = DEFAULT_REGISTRY,
    ) -> "Lockfile":
        """Create a store from lockfile text."""
        cache, outcome = load(source, filename)
        return cls(cache=cache, source=source, parse_result_type=outcome, registry=registry)

    @classmethod
    def from_directory(
        cls, directory: Path, registry: str = DEFAULT_REGISTRY
    ) -> "Lockfile":
        """
        Read ``opamkit.lock`` from a directory.

        A missing lockfile yields an empty store.

        Raises:
            LockfileParseError: If the lockfile exists but is malformed
        """
        lockfile_path = Path(directory) / LOCKFILE_FILENAME

        if not lockfile_path.exists():
            logger.info(f"No lockfile found in {directory}")
            return cls(registry=registry)

        source = lockfile_path.read_text(encoding="utf-8")
        lockfile = cls.from_text(source, str(lockfile_path), registry=registry)

        if lockfile.parse_result_type == ParseOutcome.MERGED:
            logger.info(f"Merge conflict detected in {lockfile_path} and successfully merged")
        elif lockfile.parse_result_type == ParseOutcome.CONFLICTED:
            logger.warning(
                f"Unresolved merge conflict in {lockfile_path}; "
                "using the part that could be parsed"
            )
        else:
            logger.debug(f"Loaded lockfile: {lockfile_path}")

        return lockfile

    def get_locked(self, pattern: str) -> Optional[LockManifest]:
        """
        Look up the entry locked for ``pattern``, following alias chains.

        On a hit, the entry is exploded in place so later reads see every
        field populated.

        Raises:
            StructuralError: If the alias chain loops or a value is neither a
                mapping nor an alias string
        """
        cache = self.cache
        if not cache:
            return None

        current = pattern
        visited = {current}

        for _ in range(MAX_ALIAS_DEPTH):
            shrunk = cache.get(current)
            if shrunk is None:
                return None

            if isinstance(shrunk, str):
                if shrunk in visited:
                    raise StructuralError(
                        f"Lockfile alias chain for {pattern} loops at {shrunk}"
                    )
                logger.debug(f"Lockfile alias {current} -> {shrunk}")
                visited.add(shrunk)
                current = shrunk
                continue

            if not isinstance(shrunk, dict):
                raise StructuralError(
                    f"Lockfile value for {current} must be a block or an alias, "
                    f"got {type(shrunk).__name__}"
                )

            return explode_entry(current, shrunk, self.registry)

        raise StructuralError(
            f"Lockfile alias chain for {pattern} exceeds {MAX_ALIAS_DEPTH} links"
        )

    def remove_pattern(self, pattern: str) -> None:
        """Forget the binding of ``pattern``."""
        if not self.cache:
            return
        self.cache.pop(pattern, None)

    forget = remove_pattern

    def get_lockfile(self, patterns: Mapping[str, Manifest]) -> LockfileObject:
        """
        Fold resolved packages into one canonical, deduplicated snapshot.

        Patterns are processed in sorted order. Among patterns sharing a
        remote identity, the first one owns the entry and the others alias it,
        which makes the result independent of resolution order.

        Args:
            patterns: Mapping of request pattern -> resolved package record

        Returns:
            LockfileObject with imploded entries

        Raises:
            MissingReferenceError: If a record has no install reference
            MissingRemoteError: If a record has no remote descriptor
        """
        lockfile = LockfileObject()
        seen: Dict[str, int] = {}

        for pattern in sorted(patterns):
            pkg = patterns[pattern]
            if pkg.reference is None:
                raise MissingReferenceError(pattern)
            if pkg.remote is None:
                raise MissingRemoteError(pattern)

            remote_key = key_for_remote(pkg.remote)
            if remote_key is not None and remote_key in seen:
                entry_id = seen[remote_key]
                lockfile.alias(pattern, entry_id)

                # The entry relies on an inferred name; pin it when this
                # pattern would infer a different one
                entry = lockfile.entry(entry_id)
                if not entry.get("name") and get_name(pattern) != pkg.name:
                    entry["name"] = pkg.name
                continue

            entry = implode_entry(
                pattern,
                {
                    "name": pkg.name,
                    "version": pkg.version,
                    "uid": pkg.uid,
                    "resolved": pkg.remote.resolved,
                    "registry": pkg.remote.registry,
                    "dependencies": pkg.dependencies,
                    "peerDependencies": pkg.peer_dependencies,
                    "optionalDependencies": pkg.optional_dependencies,
                    "permissions": pkg.reference.permissions,
                },
                self.registry,
            )
            entry_id = lockfile.add(pattern, entry)
            if remote_key is not None:
                seen[remote_key] = entry_id

        logger.debug(f"Built {lockfile!r}")
        return lockfile

    build = get_lockfile

    def save(self, path: Path, lockfile: Mapping[str, Any]) -> None:
        """Serialize ``lockfile`` and write it atomically to ``path``."""
        atomic_write(path, stringify(lockfile))
        logger.info(f"Lockfile saved: {path}")
