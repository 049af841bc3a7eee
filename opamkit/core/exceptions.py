"""
Centralized exception hierarchy for opamkit.

This module defines all custom exceptions used across the codebase
so that callers can tell user-facing conditions (nothing satisfies a range,
a checksum did not match) apart from internal consistency failures.
"""

from typing import Optional

from filelock import Timeout as LockTimeout


# ============================================================================
# Base Exceptions
# ============================================================================


class OpamKitError(Exception):
    """Base exception for all opamkit errors."""

    pass


# ============================================================================
# Structural Exceptions
# ============================================================================


class StructuralError(OpamKitError):
    """Base exception for malformed persisted or encoded data."""

    pass


class LockfileParseError(StructuralError):
    """Raised when lockfile text cannot be parsed."""

    def __init__(self, message: str, line: int = 0, filename: Optional[str] = None):
        self.line = line
        self.filename = filename
        location = filename or "lockfile"
        if line:
            location = f"{location}:{line}"
        super().__init__(f"{message} ({location})")


class MalformedReferenceError(StructuralError):
    """Raised when a resolved reference string cannot be parsed."""

    def __init__(self, resolution: str, remainder: str):
        self.resolution = resolution
        self.remainder = remainder
        super().__init__(
            f'Malformed opam package resolution: {resolution} (at "{remainder}")'
        )


# ============================================================================
# Resolution Exceptions
# ============================================================================


class ResolutionError(OpamKitError):
    """Base exception for user-facing resolution failures."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class NotFoundError(ResolutionError):
    """No candidate version satisfies the requested range."""

    def __init__(self, path: str, reason: str = "no version found"):
        super().__init__(path, reason)


class ConstraintNarrowedError(ResolutionError):
    """A candidate satisfies the range only when the toolchain filter is lifted."""

    def __init__(self, path: str, toolchain: str, toolchain_version: str):
        self.toolchain = toolchain
        self.toolchain_version = toolchain_version
        reason = (
            f"no version found for the current {toolchain} version "
            f"{toolchain_version}.\n"
            f"Consider relaxing the {toolchain} version constraint of your package,\n"
            f"or list the available {toolchain} versions and pick a compatible one."
        )
        super().__init__(path, reason)


# ============================================================================
# Fetch Exceptions
# ============================================================================


class IntegrityError(OpamKitError):
    """Raised when downloaded content does not match its declared checksum."""

    def __init__(self, name: str, expected: str, actual: str, algorithm: str = "md5"):
        self.expected = expected
        self.actual = actual
        self.algorithm = algorithm
        super().__init__(
            f"Checksum mismatch for {name}: "
            f"expected {algorithm} {expected}, got {actual}"
        )


class DownloadError(OpamKitError):
    """Raised when a download fails for transport reasons."""

    pass


class FilesystemError(OpamKitError):
    """Base exception for filesystem operations."""

    pass


class ArchiveExtractionError(FilesystemError):
    """Failed to extract an archive."""

    pass


class InsecureArchiveError(ArchiveExtractionError):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


class PatchApplyError(OpamKitError):
    """Raised when an embedded patch fails to apply."""

    pass


class CatalogError(OpamKitError):
    """Raised when version catalog data cannot be loaded."""

    pass


# ============================================================================
# Internal Consistency Exceptions
# ============================================================================


class InvariantError(OpamKitError):
    """Raised when internal package records are inconsistent."""

    pass


class MissingReferenceError(InvariantError):
    """Package record has no install reference."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        super().__init__(f"Package is missing a reference: {pattern}")


class MissingRemoteError(InvariantError):
    """Package record has no remote descriptor."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        super().__init__(f"Package is missing a remote: {pattern}")


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigError(OpamKitError):
    """Configuration parsing or validation error."""

    pass


__all__ = [
    "OpamKitError",
    "StructuralError",
    "LockfileParseError",
    "MalformedReferenceError",
    "ResolutionError",
    "NotFoundError",
    "ConstraintNarrowedError",
    "IntegrityError",
    "DownloadError",
    "FilesystemError",
    "ArchiveExtractionError",
    "InsecureArchiveError",
    "PatchApplyError",
    "CatalogError",
    "InvariantError",
    "MissingReferenceError",
    "MissingRemoteError",
    "ConfigError",
    "LockTimeout",
]
