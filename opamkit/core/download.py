"""
Network download with streaming checksum computation.

This module provides the HTTP side of the fetch pipeline:
- HTTP/HTTPS downloads with TLS verification
- Resume partial downloads (using Range headers)
- Progress reporting (bytes, percentage, speed, ETA)
- Retry logic with exponential backoff for transport failures and 5xx answers
- Checksum computation while bytes are streamed to disk

Checksum mismatches are never retried.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

import requests
from requests.exceptions import RequestException, Timeout, ConnectionError, HTTPError

from opamkit.core.exceptions import DownloadError, IntegrityError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192

DEFAULT_HEADERS = {
    "Accept-Encoding": "gzip",
    "Accept": "application/octet-stream",
}


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining


class StreamingHasher:
    """Compute hash incrementally for streaming downloads."""

    SUPPORTED = ("md5", "sha1", "sha256", "sha512")

    def __init__(self, algorithm: str = "md5"):
        """
        Initialize streaming hasher.

        Args:
            algorithm: Hash algorithm ('md5', 'sha1', 'sha256', 'sha512')

        Raises:
            ValueError: If algorithm is not supported
        """
        self.algorithm = algorithm.lower()

        if self.algorithm not in self.SUPPORTED:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")

        self.hasher = hashlib.new(self.algorithm)

    def update(self, data: bytes):
        """Add data to hash computation."""
        self.hasher.update(data)

    def finalize(self) -> str:
        """Get final hash value as hex string."""
        return self.hasher.hexdigest()

    def verify(self, expected_hash: str) -> bool:
        """
        Check if computed hash matches expected value.

        Args:
            expected_hash: Expected hash value (hex string)

        Returns:
            True if hashes match, False otherwise
        """
        return self.finalize().lower() == expected_hash.lower()


class HttpClient:
    """
    Thin registry client used by fetchers to stream remote content.

    Attributes:
        timeout: Request timeout in seconds
        session: requests session reused across downloads
    """

    def __init__(self, timeout: int = 30, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def stream_download(
        self, url: str, headers: Optional[Dict[str, str]] = None
    ) -> requests.Response:
        """
        Open a streaming GET request.

        Args:
            url: URL to download from
            headers: Extra request headers

        Returns:
            Response whose body has not been consumed yet

        Raises:
            HTTPError: If the server answers with a 4xx/5xx status
        """
        merged = dict(DEFAULT_HEADERS)
        if headers:
            merged.update(headers)

        response = self.session.get(
            url,
            headers=merged,
            stream=True,
            timeout=self.timeout,
            allow_redirects=True,
        )
        response.raise_for_status()
        return response


def download_file(
    url: str,
    destination: Path,
    expected_checksum: Optional[str] = None,
    algorithm: str = "md5",
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    resume: bool = False,
    max_retries: int = 3,
    client: Optional[HttpClient] = None,
    headers: Optional[Dict[str, str]] = None,
) -> str:
    """
    Download file from URL to destination, computing its digest on the fly.

    Args:
        url: URL to download from
        destination: Local path to save file
        expected_checksum: Expected digest; verified once the stream ends
        algorithm: Digest algorithm for both computation and verification
        progress_callback: Optional callback for progress updates
        resume: Whether to resume a partial download already at destination
        max_retries: Maximum number of attempts for transport failures
        client: HTTP client to use (a default one is created if omitted)
        headers: Extra request headers

    Returns:
        Hex digest of the downloaded content

    Raises:
        DownloadError: If download fails after retries
        IntegrityError: If the digest doesn't match expected_checksum
        ValueError: If URL or destination is invalid

    Example:
        >>> digest = download_file(
        ...     "https://example.com/pkg-1.0.tar.gz",
        ...     Path("/tmp/pkg.tar.gz"),
        ...     expected_checksum="5d41402abc4b2a76b9719d911017c592",
        ... )
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    client = client or HttpClient()

    resume_from = 0
    if resume and destination.exists():
        resume_from = destination.stat().st_size
        logger.info(f"Resuming download from byte {resume_from}")

    for attempt in range(max_retries):
        try:
            return _download_with_progress(
                url=url,
                destination=destination,
                resume_from=resume_from,
                expected_checksum=expected_checksum,
                algorithm=algorithm,
                progress_callback=progress_callback,
                client=client,
                headers=headers,
            )
        except RequestException as e:
            if not _is_retryable(e):
                logger.error(f"Download of {url} failed: {e}")
                raise DownloadError(f"Download of {url} failed: {e}") from e

            if attempt == max_retries - 1:
                logger.error(f"Download of {url} failed: {e}")
                raise DownloadError(
                    f"Download failed after {max_retries} attempts: {e}"
                ) from e

            backoff_seconds = 2**attempt
            logger.warning(
                f"Download attempt {attempt + 1} failed: {e}. "
                f"Retrying in {backoff_seconds}s..."
            )
            time.sleep(backoff_seconds)

    raise DownloadError("Download failed for unknown reason")


def _is_retryable(error: RequestException) -> bool:
    """Transport failures and 5xx answers are retried; any other status is final."""
    if isinstance(error, HTTPError):
        response = error.response
        return response is None or response.status_code >= 500
    return isinstance(error, (Timeout, ConnectionError))


def _download_with_progress(
    url: str,
    destination: Path,
    resume_from: int,
    expected_checksum: Optional[str],
    algorithm: str,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    client: HttpClient,
    headers: Optional[Dict[str, str]],
) -> str:
    """
    Perform one download attempt with streaming and progress updates.

    Returns:
        Hex digest of the full file content

    Raises:
        IntegrityError: If checksum doesn't match (file is removed)
        RequestException: If HTTP request fails
    """
    request_headers = dict(headers or {})
    if resume_from > 0:
        request_headers["Range"] = f"bytes={resume_from}-"

    logger.info(f"Downloading from {url}")

    response = client.stream_download(url, request_headers)

    content_length = response.headers.get("content-length")
    if content_length:
        total_size = int(content_length) + resume_from
    else:
        total_size = 0

    mode = "ab" if resume_from > 0 else "wb"
    hasher = StreamingHasher(algorithm)

    # Resumed downloads must hash the bytes already on disk
    if resume_from > 0:
        logger.debug(f"Re-computing hash for first {resume_from} bytes")
        with open(destination, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                hasher.update(chunk)

    downloaded = resume_from
    start_time = time.time()
    last_progress_time = start_time

    try:
        with open(destination, mode) as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                f.write(chunk)
                hasher.update(chunk)
                downloaded += len(chunk)

                current_time = time.time()
                if progress_callback and (
                    current_time - last_progress_time >= 0.5
                    or downloaded == total_size
                ):
                    elapsed = current_time - start_time
                    speed = (downloaded - resume_from) / elapsed if elapsed > 0 else 0
                    remaining = total_size - downloaded if total_size > 0 else 0
                    eta = remaining / speed if speed > 0 else 0

                    progress_callback(
                        DownloadProgress(
                            bytes_downloaded=downloaded,
                            total_bytes=total_size if total_size > 0 else downloaded,
                            percentage=(downloaded / total_size * 100)
                            if total_size > 0
                            else 0,
                            speed_bps=speed,
                            eta_seconds=eta,
                        )
                    )
                    last_progress_time = current_time
    except Exception as e:
        logger.error(f"Error during download: {e}")
        raise
    finally:
        response.close()

    actual = hasher.finalize()
    if expected_checksum is not None:
        if not hasher.verify(expected_checksum):
            destination.unlink()
            raise IntegrityError(destination.name, expected_checksum, actual, algorithm)
        logger.info("Checksum verified successfully")

    logger.info(f"Download complete: {destination}")
    return actual

