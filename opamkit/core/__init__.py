"""
Core functionality for opamkit.

This package contains the foundational modules that resolvers, fetchers and
the lockfile store depend on.
"""

from .download import (
    HttpClient,
    StreamingHasher,
    DownloadProgress,
    download_file,
)

from .filesystem import (
    detect_archive_format,
    extract_archive,
    atomic_write,
)

from .locking import (
    LockManager,
    LockTimeout,
)

from .exceptions import (
    OpamKitError,
    StructuralError,
    LockfileParseError,
    MalformedReferenceError,
    ResolutionError,
    NotFoundError,
    ConstraintNarrowedError,
    IntegrityError,
    DownloadError,
    ArchiveExtractionError,
    InsecureArchiveError,
    PatchApplyError,
    CatalogError,
    InvariantError,
    MissingReferenceError,
    MissingRemoteError,
    ConfigError,
)

__all__ = [
    "HttpClient",
    "StreamingHasher",
    "DownloadProgress",
    "download_file",
    "detect_archive_format",
    "extract_archive",
    "atomic_write",
    "LockManager",
    "LockTimeout",
    "OpamKitError",
    "StructuralError",
    "LockfileParseError",
    "MalformedReferenceError",
    "ResolutionError",
    "NotFoundError",
    "ConstraintNarrowedError",
    "IntegrityError",
    "DownloadError",
    "ArchiveExtractionError",
    "InsecureArchiveError",
    "PatchApplyError",
    "CatalogError",
    "InvariantError",
    "MissingReferenceError",
    "MissingRemoteError",
    "ConfigError",
]
