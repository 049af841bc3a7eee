"""
Exotic resolver protocol.

Exotic resolvers handle package sources outside the primary registry. Each
one recognizes its own patterns, turns a request into a resolved manifest
and decides whether a previously locked entry still satisfies a request.

Classes:
    ResolutionRequest: A pattern being resolved, with its lockfile and parents
    ExoticResolver: Abstract base class for resolver implementations
    ResolverRegistry: Ordered set of resolvers, picks one per pattern
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from opamkit.lockfile.store import Lockfile, LockManifest
from opamkit.manifest import Manifest, ReferenceInfo, RemoteDescriptor

logger = logging.getLogger(__name__)


# =============================================================================
# Resolution Request
# =============================================================================


@dataclass
class ResolutionRequest:
    """
    A single pattern being resolved.

    Attributes:
        pattern: Request pattern (e.g., '@opam/lwt@^4.0.0')
        lockfile: Store of previously locked entries
        parent_names: Patterns of the packages that led to this request,
            outermost first
    """

    pattern: str
    lockfile: Lockfile = field(default_factory=Lockfile)
    parent_names: List[str] = field(default_factory=list)

    @property
    def path(self) -> str:
        """Chain of requesting packages, ending with this pattern."""
        return " > ".join(self.parent_names + [self.pattern])

    def get_locked_entry(self) -> Optional[LockManifest]:
        """Exploded lock entry for this pattern, or None."""
        return self.lockfile.get_locked(self.pattern)

    def get_locked(self, remote_type: str) -> Optional[Manifest]:
        """
        Rebuild a resolved manifest from the lock entry of this pattern.

        Entries without a ``resolved`` field are ignored.

        Args:
            remote_type: Remote type to record, unless the entry points at a
                local ``file:`` location

        Returns:
            Manifest with remote and reference set, or None
        """
        shrunk = self.get_locked_entry()
        if not shrunk or not shrunk.get("resolved"):
            return None

        resolved = shrunk["resolved"]
        url, _, hash_ = resolved.partition("#")
        preferred_type = "file" if url.startswith("file:") else remote_type

        return Manifest(
            name=shrunk["name"],
            version=shrunk["version"],
            uid=shrunk["uid"],
            dependencies=dict(shrunk["dependencies"]),
            peer_dependencies=dict(shrunk["peerDependencies"]),
            optional_dependencies=dict(shrunk["optionalDependencies"]),
            remote=RemoteDescriptor(
                type=preferred_type,
                registry=shrunk["registry"],
                hash=hash_ or None,
                reference=url,
                resolved=resolved,
            ),
            reference=ReferenceInfo(permissions=dict(shrunk["permissions"])),
        )


# =============================================================================
# Abstract Resolver
# =============================================================================


class ExoticResolver(ABC):
    """
    Abstract base class for exotic resolvers.

    Attributes:
        remote_type: Type recorded in the remote descriptors this resolver
            produces (e.g., 'opam')

    Example:
        class TarballResolver(ExoticResolver):
            remote_type = 'tarball'

            def is_applicable(self, pattern: str) -> bool:
                return pattern.endswith('.tgz')
            ...
    """

    remote_type: str = ""

    @abstractmethod
    def is_applicable(self, pattern: str) -> bool:
        """
        Check whether this resolver handles a pattern.

        Returns:
            True if the pattern belongs to this resolver's source type
        """
        pass

    @abstractmethod
    def resolve(self, request: ResolutionRequest) -> Manifest:
        """
        Resolve a request to a manifest with remote and reference set.

        Raises:
            ResolutionError: If no version satisfies the request
        """
        pass

    @abstractmethod
    def is_lock_entry_outdated(
        self,
        entry: LockManifest,
        version_range: str,
        toolchain_version: Optional[str] = None,
    ) -> bool:
        """
        Check whether a locked entry no longer satisfies a request.

        Args:
            entry: Exploded lock entry
            version_range: Range requested by the pattern
            toolchain_version: Installed toolchain version, if known

        Returns:
            True if the entry must be discarded and resolved again
        """
        pass


# =============================================================================
# Resolver Registry
# =============================================================================


class ResolverRegistry:
    """
    Ordered collection of exotic resolvers.

    Resolvers are consulted in registration order; the first applicable one
    handles the pattern.

    Example:
        registry = ResolverRegistry()
        registry.register(OpamResolver(catalog))
        resolver = registry.find('@opam/lwt@^4.0.0')
    """

    def __init__(self):
        self._resolvers: List[ExoticResolver] = []

    def register(self, resolver: ExoticResolver) -> None:
        """
        Register a resolver.

        Raises:
            TypeError: If resolver is not an ExoticResolver
        """
        if not isinstance(resolver, ExoticResolver):
            raise TypeError(
                f"resolver must be ExoticResolver, got {type(resolver)}"
            )
        self._resolvers.append(resolver)
        logger.debug(f"Registered resolver: {type(resolver).__name__}")

    def find(self, pattern: str) -> Optional[ExoticResolver]:
        """First registered resolver applicable to ``pattern``, or None."""
        for resolver in self._resolvers:
            if resolver.is_applicable(pattern):
                return resolver
        return None

    def get_registered_resolvers(self) -> List[ExoticResolver]:
        return self._resolvers.copy()

    def clear(self) -> None:
        self._resolvers.clear()
