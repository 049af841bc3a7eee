"""
Fetcher base class.

A fetcher turns a resolved reference into package content inside a
destination directory. Each destination has a single writer at a time,
enforced with a file lock, and is emptied before a fetch starts so content
left behind by an interrupted fetch is never reused.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from opamkit.core.filesystem import clear_directory
from opamkit.core.locking import LockManager

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of a fetch."""

    hash: str
    """Digest of the downloaded content (empty when nothing was downloaded)"""

    resolved: Optional[str] = None
    """Location to record in the lockfile, when the fetch changes it"""


@dataclass(frozen=True)
class FetchJob:
    """One fetch to run as part of ``BaseFetcher.fetch_all``."""

    reference: str
    dest: Path
    expected_hash: Optional[str] = None


class BaseFetcher(ABC):
    """
    Abstract base class for fetchers.

    Subclasses implement ``_fetch``, which runs with the destination lock
    held on an empty destination directory.

    Attributes:
        lock_manager: Provides per-destination locks
        lock_timeout: Seconds to wait for a destination lock
    """

    def __init__(
        self, lock_manager: Optional[LockManager] = None, lock_timeout: int = 300
    ):
        self.lock_manager = lock_manager or LockManager()
        self.lock_timeout = lock_timeout

    def fetch(
        self, reference: str, expected_hash: Optional[str], dest: Path
    ) -> FetchResult:
        """
        Fetch ``reference`` into ``dest``.

        Args:
            reference: Resolved reference string
            expected_hash: Checksum the content must match, if known
            dest: Destination directory (created when missing)

        Returns:
            FetchResult

        Raises:
            LockTimeout: If another writer holds the destination too long
        """
        dest = Path(dest)
        with self.lock_manager.destination_lock(dest, timeout=self.lock_timeout):
            dest.mkdir(parents=True, exist_ok=True)
            clear_directory(dest)
            logger.debug(f"Fetching {reference} into {dest}")
            return self._fetch(reference, expected_hash, dest)

    @abstractmethod
    def _fetch(
        self, reference: str, expected_hash: Optional[str], dest: Path
    ) -> FetchResult:
        pass

    def fetch_all(
        self, jobs: Sequence[FetchJob], max_workers: int = 4
    ) -> List[FetchResult]:
        """
        Run independent fetches in parallel.

        Args:
            jobs: Fetches to run; destinations must be distinct
            max_workers: Maximum number of concurrent fetches

        Returns:
            Results in the order of ``jobs``

        Raises:
            ValueError: If two jobs share a destination
            Exception: The first failure among the jobs, in job order
        """
        destinations = [Path(job.dest).resolve() for job in jobs]
        if len(set(destinations)) != len(destinations):
            raise ValueError("Fetch jobs must have distinct destinations")

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(self.fetch, job.reference, job.expected_hash, job.dest)
                for job in jobs
            ]
            return [future.result() for future in futures]
