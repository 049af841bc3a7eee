"""
Opam version ordering.

Opam orders versions the way Debian does: the string is split into
alternating non-digit and digit runs. Non-digit runs compare character by
character with ``~`` before the end of the string, the end before letters,
and letters before any other character. Digit runs compare numerically.

    1.0~beta < 1.0 < 1.0a < 1.0+fix < 1.0.1
"""

import functools
from typing import Iterable, List


def _char_order(c: str) -> int:
    if c == "~":
        return -1
    if c.isalpha():
        return ord(c)
    return ord(c) + 256


def _compare_non_digit(a: str, b: str) -> int:
    for i in range(max(len(a), len(b))):
        ca = _char_order(a[i]) if i < len(a) else 0
        cb = _char_order(b[i]) if i < len(b) else 0
        if ca != cb:
            return -1 if ca < cb else 1
    return 0


def _split_runs(version: str) -> List[str]:
    """Split into alternating runs, always starting with a (maybe empty) non-digit run."""
    runs: List[str] = []
    current = ""
    want_digit = False
    for c in version:
        if c.isdigit() != want_digit:
            runs.append(current)
            current = ""
            want_digit = not want_digit
        current += c
    runs.append(current)
    return runs


def opam_version_compare(a: str, b: str) -> int:
    """
    Compare two opam versions.

    Returns:
        Negative if a < b, zero if equal, positive if a > b
    """
    runs_a = _split_runs(a)
    runs_b = _split_runs(b)

    for i in range(max(len(runs_a), len(runs_b))):
        run_a = runs_a[i] if i < len(runs_a) else ""
        run_b = runs_b[i] if i < len(runs_b) else ""

        if i % 2 == 0:
            result = _compare_non_digit(run_a, run_b)
        else:
            num_a = int(run_a) if run_a else 0
            num_b = int(run_b) if run_b else 0
            result = (num_a > num_b) - (num_a < num_b)

        if result:
            return result

    return 0


opam_version_key = functools.cmp_to_key(opam_version_compare)


def sort_versions_descending(versions: Iterable[str]) -> List[str]:
    """Sort opam versions from highest to lowest."""
    return sorted(versions, key=opam_version_key, reverse=True)
