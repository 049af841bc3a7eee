"""
Lockfile reading, canonicalization and writing.

Example:
    >>> from pathlib import Path
    >>> from opamkit.lockfile import Lockfile
    >>> lockfile = Lockfile.from_directory(Path('.'))
    >>> lockfile.get_locked('@opam/lwt@^4.0.0')
"""

from opamkit.lockfile.parse import (
    ParseOutcome,
    ParseResult,
    parse,
    has_merge_conflicts,
    extract_conflict_variants,
)
from opamkit.lockfile.stringify import stringify
from opamkit.lockfile.store import (
    Lockfile,
    LockfileObject,
    LockManifest,
    explode_entry,
    implode_entry,
    key_for_remote,
    load,
)

__all__ = [
    "ParseOutcome",
    "ParseResult",
    "parse",
    "has_merge_conflicts",
    "extract_conflict_variants",
    "stringify",
    "Lockfile",
    "LockfileObject",
    "LockManifest",
    "explode_entry",
    "implode_entry",
    "key_for_remote",
    "load",
]
