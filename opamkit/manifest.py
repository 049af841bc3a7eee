"""
Package records shared by resolvers, fetchers and the lockfile store.

A ``Manifest`` plays two roles: catalog entries handed out by a
``VersionCatalog`` and resolved package records folded into the lockfile.
Resolved records additionally carry a ``RemoteDescriptor`` (where the content
comes from) and a ``ReferenceInfo`` (install-time metadata).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

Dependencies = Dict[str, str]


@dataclass(frozen=True)
class RemoteDescriptor:
    """
    Where a resolved package's content comes from.

    Attributes:
        type: Resolver type that produced the descriptor (e.g., 'opam')
        registry: Registry name the package belongs to
        hash: Content hash declared by the source, if any
        reference: Reference handed to the fetcher
        resolved: Canonical resolved identifier written to the lockfile
    """

    type: str
    registry: str
    hash: Optional[str] = None
    reference: Optional[str] = None
    resolved: Optional[str] = None


@dataclass
class ReferenceInfo:
    """Install-time metadata attached to a resolved package."""

    permissions: Dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class OpamFile:
    """A file (or patch) embedded in opam metadata as a name/content pair."""

    name: str
    content: str

    @staticmethod
    def from_dict(data: dict) -> "OpamFile":
        return OpamFile(name=data["name"], content=data["content"])

    def to_dict(self) -> dict:
        return {"name": self.name, "content": self.content}


@dataclass
class OpamSource:
    """
    Source information for an opam package version.

    Attributes:
        version: Version as spelled by opam (used for ecosystem ordering)
        url: Download URL of the source archive, if any
        checksum: Expected digest of the archive
        files: Override files written verbatim into the package
        patches: Patches applied after extraction, in order
    """

    version: str
    url: Optional[str] = None
    checksum: Optional[str] = None
    files: List[OpamFile] = field(default_factory=list)
    patches: List[OpamFile] = field(default_factory=list)

    @staticmethod
    def from_dict(data: dict) -> "OpamSource":
        return OpamSource(
            version=str(data["version"]),
            url=data.get("url"),
            checksum=data.get("checksum"),
            files=[OpamFile.from_dict(f) for f in data.get("files", [])],
            patches=[OpamFile.from_dict(p) for p in data.get("patches", [])],
        )

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "url": self.url,
            "checksum": self.checksum,
            "files": [f.to_dict() for f in self.files],
            "patches": [p.to_dict() for p in self.patches],
        }


# Manifest keys with a dedicated attribute; everything else lands in ``extra``
_KNOWN_KEYS = {
    "name",
    "version",
    "_uid",
    "uid",
    "dependencies",
    "peerDependencies",
    "optionalDependencies",
    "opam",
}


@dataclass
class Manifest:
    """
    A package version: catalog entry or resolved record.

    Attributes:
        name: Full package name, including scope (e.g., '@opam/lwt')
        version: Semantic version of the package
        uid: Unique id within the version; defaults to version
        dependencies: Runtime dependencies (name -> range)
        peer_dependencies: Peer constraints, including the toolchain one
        optional_dependencies: Optional dependencies
        opam: Opam source information (None for non-opam records)
        remote: Remote descriptor, set once the package is resolved
        reference: Install reference, set once the package is resolved
        extra: Any additional manifest fields, preserved verbatim
    """

    name: str
    version: str
    uid: Optional[str] = None
    dependencies: Dependencies = field(default_factory=dict)
    peer_dependencies: Dependencies = field(default_factory=dict)
    optional_dependencies: Dependencies = field(default_factory=dict)
    opam: Optional[OpamSource] = None
    remote: Optional[RemoteDescriptor] = None
    reference: Optional[ReferenceInfo] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Manifest name cannot be empty")
        if not self.version:
            raise ValueError(f"Manifest version cannot be empty: {self.name}")
        if self.uid is None:
            self.uid = self.version

    @staticmethod
    def from_dict(data: dict) -> "Manifest":
        """Create from a catalog/package.json style dictionary."""
        opam_data = data.get("opam")
        return Manifest(
            name=data["name"],
            version=str(data["version"]),
            uid=data.get("_uid") or data.get("uid"),
            dependencies=dict(data.get("dependencies") or {}),
            peer_dependencies=dict(data.get("peerDependencies") or {}),
            optional_dependencies=dict(data.get("optionalDependencies") or {}),
            opam=OpamSource.from_dict(opam_data) if opam_data else None,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict:
        """Convert to a package.json style dictionary."""
        data: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "_uid": self.uid,
        }
        if self.dependencies:
            data["dependencies"] = dict(self.dependencies)
        if self.peer_dependencies:
            data["peerDependencies"] = dict(self.peer_dependencies)
        if self.optional_dependencies:
            data["optionalDependencies"] = dict(self.optional_dependencies)
        data.update(self.extra)
        if self.opam is not None:
            data["opam"] = self.opam.to_dict()
        return data

    @property
    def ordering_version(self) -> str:
        """Version used for ecosystem ordering: the opam spelling when known."""
        if self.opam is not None:
            return self.opam.version
        return self.version
