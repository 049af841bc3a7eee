"""
Request pattern helpers.

A pattern is ``name@range`` where ``name`` may carry a scope
(``@scope/name@range``). A pattern without a range requests ``latest``.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class NormalizedPattern:
    """A request pattern split into its name and range."""

    name: str
    range: str
    has_version: bool


def normalize_pattern(pattern: str) -> NormalizedPattern:
    """
    Split a pattern into name and range.

    Example:
        >>> normalize_pattern("@opam/lwt@^4.0.0")
        NormalizedPattern(name='@opam/lwt', range='^4.0.0', has_version=True)
        >>> normalize_pattern("lwt")
        NormalizedPattern(name='lwt', range='latest', has_version=False)
    """
    name = pattern
    version_range = "latest"
    has_version = False

    scoped = name.startswith("@")
    if scoped:
        name = name[1:]

    parts = name.split("@")
    if len(parts) > 1:
        name = parts[0]
        version_range = "@".join(parts[1:])
        if version_range:
            has_version = True
        else:
            version_range = "*"

    if scoped:
        name = f"@{name}"

    return NormalizedPattern(name=name, range=version_range, has_version=has_version)


def get_name(pattern: str) -> str:
    """Package name a pattern requests."""
    return normalize_pattern(pattern).name
