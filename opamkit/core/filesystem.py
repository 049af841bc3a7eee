"""
File system utilities for opamkit.

This module provides the on-disk side of the fetch pipeline:
- Archive format detection from a source filename
- Archive extraction (tar.gz, tar.bz2, tar.xz, zip) with leading path
  components stripped
- Safe file operations (atomic writes, safe deletion)

Every extracted member is validated against the destination directory so an
archive can never write outside of it.
"""

import logging
import os
import shutil
import sys
import tarfile
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Literal, Optional, Union

from opamkit.core.exceptions import ArchiveExtractionError, InsecureArchiveError

logger = logging.getLogger(__name__)

ArchiveFormat = Literal["gzip", "bzip", "zip", "xz"]

_TAR_MODES = {
    "gzip": "r:gz",
    "bzip": "r:bz2",
    "xz": "r:xz",
}


# ============================================================================
# Format Detection
# ============================================================================


def detect_archive_format(filename: str) -> ArchiveFormat:
    """
    Detect archive format from a filename or URL suffix.

    Unrecognized suffixes fall back to gzip, so a non-gzip payload behind such
    a name only fails later, at extraction.

    Args:
        filename: File name or URL of the archive

    Returns:
        One of 'gzip', 'bzip', 'zip', 'xz'

    Example:
        >>> detect_archive_format("https://example.com/pkg-1.0.tbz")
        'bzip'
    """
    name = filename.lower()

    if name.endswith((".tgz", ".tar.gz")):
        return "gzip"
    if name.endswith((".tar.bz", ".tar.bz2", ".tbz")):
        return "bzip"
    if name.endswith(".zip"):
        return "zip"
    if name.endswith(".xz"):
        return "xz"

    logger.warning(f"Unrecognized archive suffix, assuming gzip: {filename}")
    return "gzip"


# ============================================================================
# Archive Extraction
# ============================================================================


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not member_path.is_relative_to(destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


def _strip_path(name: str, strip_components: int) -> Optional[str]:
    """
    Drop the first ``strip_components`` path segments from a member name.

    Returns:
        Remaining relative path, or None when nothing is left
    """
    parts = [p for p in PurePosixPath(name).parts if p not in ("", ".")]
    if len(parts) <= strip_components:
        return None
    return str(PurePosixPath(*parts[strip_components:]))


def extract_archive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    archive_format: Optional[ArchiveFormat] = None,
    strip_components: int = 0,
) -> None:
    """
    Extract an archive to a destination directory.

    Args:
        archive_path: Path to the archive file
        destination: Directory to extract to (created when missing)
        archive_format: Explicit format; detected from archive_path when None
        strip_components: Number of leading path segments to drop per member

    Raises:
        ArchiveExtractionError: If extraction fails
        InsecureArchiveError: If archive contains malicious paths

    Example:
        >>> extract_archive('/tmp/tarball', '/tmp/pkg', 'gzip', strip_components=1)
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ArchiveExtractionError(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)

    if archive_format is None:
        archive_format = detect_archive_format(archive_path.name)

    logger.debug(
        f"Extracting {archive_path} ({archive_format}) into {destination}, "
        f"stripping {strip_components} component(s)"
    )

    try:
        if archive_format == "zip":
            _extract_zip(archive_path, destination, strip_components)
        else:
            _extract_tar(
                archive_path, destination, _TAR_MODES[archive_format], strip_components
            )
    except InsecureArchiveError:
        raise
    except Exception as e:
        raise ArchiveExtractionError(f"Failed to extract {archive_path}: {e}") from e


def _extract_zip(archive_path: Path, destination: Path, strip_components: int) -> None:
    """Extract a ZIP archive."""
    with zipfile.ZipFile(archive_path, "r") as zf:
        members = []
        for info in zf.infolist():
            target = _strip_path(info.filename, strip_components)
            if target is None:
                continue
            _validate_archive_path(target, destination)
            members.append((info, target))

        for info, target in members:
            target_path = destination / target
            if info.is_dir():
                target_path.mkdir(parents=True, exist_ok=True)
                continue
            target_path.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as src, open(target_path, "wb") as dst:
                shutil.copyfileobj(src, dst)
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                os.chmod(target_path, mode)


def _extract_tar(
    archive_path: Path, destination: Path, mode: str, strip_components: int
) -> None:
    """Extract a tar archive with specified compression."""
    with tarfile.open(archive_path, mode) as tar:
        members = []
        for member in tar.getmembers():
            target = _strip_path(member.name, strip_components)
            if target is None:
                continue
            _validate_archive_path(target, destination)
            if member.islnk():
                # Hard link targets are archive paths and need the same strip
                link_target = _strip_path(member.linkname, strip_components)
                if link_target is None:
                    continue
                member.linkname = link_target
            member.name = target
            members.append(member)

        # Extract with filter for security (Python 3.12+)
        # For older Python, paths have been validated above
        if sys.version_info >= (3, 12):
            tar.extractall(destination, members=members, filter="data")
        else:
            tar.extractall(destination, members=members)


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    The file is never observed in a partially-written state.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding used when content is a string
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            if isinstance(content, str):
                content = content.encode(encoding)
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, file_path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def write_text_file(
    root: Union[str, Path], relative_name: str, content: str
) -> Path:
    """
    Write ``content`` to ``root/relative_name``, creating parent directories.

    Raises:
        InsecureArchiveError: If relative_name escapes root
    """
    root = Path(root)
    _validate_archive_path(relative_name, root)
    target = root / relative_name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return target


def safe_rmtree(path: Union[str, Path]) -> None:
    """
    Remove a directory tree, tolerating paths that are already gone.

    Read-only files are made writable before retrying their removal.
    """
    path = Path(path)
    if not path.exists():
        return

    def _on_error(func, failing_path, exc_info):
        os.chmod(failing_path, 0o700)
        func(failing_path)

    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_on_error)
    else:
        shutil.rmtree(path, onerror=_on_error)


def clear_directory(path: Union[str, Path]) -> None:
    """Remove every entry inside ``path`` while keeping the directory itself."""
    path = Path(path)
    if not path.is_dir():
        return
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            safe_rmtree(entry)
        else:
            entry.unlink()


__all__ = [
    "ArchiveFormat",
    "detect_archive_format",
    "extract_archive",
    "atomic_write",
    "write_text_file",
    "safe_rmtree",
    "clear_directory",
]
