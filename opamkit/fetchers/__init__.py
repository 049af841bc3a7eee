"""
Fetchers materialize resolved packages on disk.

Example:
    >>> from opamkit.fetchers import FetchJob, OpamFetcher
    >>> fetcher = OpamFetcher(catalog)
    >>> fetcher.fetch_all([FetchJob('@opam/lwt@4.1.0-4.1.0.tgz', Path('out/lwt'))])
"""

from opamkit.fetchers.base import BaseFetcher, FetchJob, FetchResult
from opamkit.fetchers.opam import OpamFetcher, read_fetched_manifest

__all__ = [
    "BaseFetcher",
    "FetchJob",
    "FetchResult",
    "OpamFetcher",
    "read_fetched_manifest",
]
