"""
Concurrent access control for opamkit.

Fetches for different packages run in parallel, but a destination directory
must only ever have a single writer. This module provides file-based locks
keyed by destination so the invariant also holds across processes.

Usage:
    from opamkit.core.locking import LockManager

    lock_manager = LockManager()
    with lock_manager.destination_lock(dest, timeout=300):
        # This process owns dest until the block exits
        pass
"""

import hashlib
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout as LockTimeout

logger = logging.getLogger(__name__)


def get_global_cache_dir() -> Path:
    """
    Get the global cache directory for lock files.

    Returns:
        Path to global cache directory
    """
    return Path.home() / ".opamkit"


class LockManager:
    """
    Manages destination locks for fetches.

    Uses file-based locking with the `filelock` library for cross-platform
    compatibility and automatic cleanup on process death.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Optional[Path] = None):
        """
        Initialize lock manager.

        Args:
            lock_dir: Directory for lock files (default: global cache/lock/)
        """
        if lock_dir is None:
            lock_dir = get_global_cache_dir() / "lock"

        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def lock_path_for(self, destination: Path) -> Path:
        """Lock file path guarding ``destination``."""
        key = hashlib.sha256(str(Path(destination).resolve()).encode("utf-8"))
        return self.lock_dir / f"dest-{key.hexdigest()[:16]}.lock"

    @contextmanager
    def destination_lock(self, destination: Path, timeout: int = 300):
        """
        Acquire the single-writer lock for a fetch destination.

        Args:
            destination: Directory a fetch will write into
            timeout: Maximum wait time in seconds (default: 300 for long downloads)

        Yields:
            None

        Raises:
            LockTimeout: If lock can't be acquired within timeout

        Example:
            >>> lock_manager = LockManager()
            >>> with lock_manager.destination_lock(Path('/cache/pkg'), timeout=60):
            ...     fetch_into(Path('/cache/pkg'))
        """
        lock_path = self.lock_path_for(destination)
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired destination lock for {destination}: {lock_path}")
                yield
                logger.debug(f"Released destination lock for {destination}")
        except LockTimeout as e:
            logger.error(
                f"Could not acquire destination lock for {destination} after {timeout}s. "
                "Another process may be fetching into this directory."
            )
            raise LockTimeout(str(lock_path)) from e


__all__ = [
    "LockManager",
    "LockTimeout",
    "get_global_cache_dir",
]
