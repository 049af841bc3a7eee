"""
Parser for the persisted lockfile text format.

The format is newline-delimited and indentation-structured (two spaces per
level)::

    # opamkit lockfile v1


    "@opam/lwt@^4.0.0", "@opam/lwt@^4.1.0":
      version "4.1.0"
      resolved "@opam/lwt@4.1.0-4.1.0.tgz"
      dependencies:
        "@opam/result" "*"

    "@opam/lwt@~4.1.0" "@opam/lwt@^4.0.0"

A top-level key is a request pattern. Its value is either a nested block of
fields or a bare string naming another pattern (an alias). Several patterns
may share one block by listing them on the same key line.

Text containing version-control merge markers is split into its two sides.
When both sides parse, they are merged (the incoming side wins); otherwise the
first side that parses on its own is returned and the outcome is reported as
conflicted.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from opamkit.core.exceptions import LockfileParseError

logger = logging.getLogger(__name__)

INDENT = "  "

_DECODER = json.JSONDecoder()
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_UNQUOTED_DELIMITERS = " \t,:"

MARKER_OURS = "<<<<<<<"
MARKER_BASE = "|||||||"
MARKER_SEPARATOR = "======="
MARKER_THEIRS = ">>>>>>>"


class ParseOutcome(str, Enum):
    """How the lockfile text was interpreted."""

    CLEAN = "clean"
    MERGED = "merged"
    CONFLICTED = "conflicted"


@dataclass
class ParseResult:
    """Parsed lockfile mapping and the outcome that produced it."""

    outcome: ParseOutcome
    object: Dict[str, Any] = field(default_factory=dict)


def parse(text: str, filename: Optional[str] = None) -> ParseResult:
    """
    Parse lockfile text.

    Args:
        text: Lockfile content
        filename: Optional file name used in error messages

    Returns:
        ParseResult with the pattern-keyed mapping

    Raises:
        LockfileParseError: If text without merge markers is malformed
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    if not has_merge_conflicts(text):
        return ParseResult(ParseOutcome.CLEAN, parse_text(text, filename))

    return _parse_with_conflict(text, filename)


def has_merge_conflicts(text: str) -> bool:
    """Check whether text contains any version-control merge marker line."""
    for line in text.splitlines():
        if line.startswith((MARKER_OURS, MARKER_THEIRS)) or line == MARKER_SEPARATOR:
            return True
    return False


def extract_conflict_variants(text: str) -> Tuple[str, str]:
    """
    Split conflicted text into its two sides.

    Lines outside conflict hunks belong to both sides. The common-ancestor
    section of a diff3-style hunk is dropped.
    """
    ours: List[str] = []
    theirs: List[str] = []
    lines = iter(text.splitlines())

    for line in lines:
        if not line.startswith(MARKER_OURS):
            ours.append(line)
            theirs.append(line)
            continue

        skipping = False
        for inner in lines:
            if inner == MARKER_SEPARATOR:
                break
            if skipping or inner.startswith(MARKER_BASE):
                skipping = True
                continue
            ours.append(inner)

        for inner in lines:
            if inner.startswith(MARKER_THEIRS):
                break
            theirs.append(inner)

    return "\n".join(ours), "\n".join(theirs)


def _parse_with_conflict(text: str, filename: Optional[str]) -> ParseResult:
    ours_text, theirs_text = extract_conflict_variants(text)
    parsed: List[Optional[Dict[str, Any]]] = []

    for variant in (ours_text, theirs_text):
        try:
            parsed.append(parse_text(variant, filename))
        except LockfileParseError as e:
            logger.debug(f"Conflict variant failed to parse: {e}")
            parsed.append(None)

    ours, theirs = parsed
    if ours is not None and theirs is not None:
        merged = dict(ours)
        merged.update(theirs)
        return ParseResult(ParseOutcome.MERGED, merged)

    partial = ours if ours is not None else theirs
    return ParseResult(ParseOutcome.CONFLICTED, partial or {})


# ============================================================================
# Line parser
# ============================================================================


def parse_text(text: str, filename: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse conflict-free lockfile text into a nested mapping.

    Keys listed together on one line are bound to the same mapping object.

    Raises:
        LockfileParseError: On bad indentation, quoting or line structure
    """
    root: Dict[str, Any] = {}
    # (indent of the key line that opened the block, block mapping)
    stack: List[Tuple[int, Dict[str, Any]]] = [(-len(INDENT), root)]

    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        stripped = raw_line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        content = raw_line.lstrip(" ")
        indent = len(raw_line) - len(content)
        if content.startswith("\t"):
            raise LockfileParseError("Tabs are not allowed for indentation", line_no, filename)
        content = content.rstrip()

        while stack[-1][0] >= indent:
            stack.pop()

        parent_indent, parent = stack[-1]
        if indent != parent_indent + len(INDENT):
            raise LockfileParseError(
                f"Invalid indentation of {indent} space(s)", line_no, filename
            )

        keys, value, opens_block = _parse_line(content, line_no, filename)

        if opens_block:
            block: Dict[str, Any] = {}
            for key in keys:
                parent[key] = block
            stack.append((indent, block))
        else:
            parent[keys[0]] = value

    return root


def _parse_line(
    content: str, line_no: int, filename: Optional[str]
) -> Tuple[List[str], Any, bool]:
    """
    Split one line into its keys and value.

    Returns:
        (keys, value, opens_block)
    """
    keys: List[str] = []
    pos = 0

    while True:
        key, pos, _ = _read_scalar(content, pos, line_no, filename)
        keys.append(key)
        pos = _skip_spaces(content, pos)
        if pos < len(content) and content[pos] == ",":
            pos = _skip_spaces(content, pos + 1)
            continue
        break

    has_colon = pos < len(content) and content[pos] == ":"
    if has_colon:
        pos = _skip_spaces(content, pos + 1)

    if pos >= len(content):
        if not has_colon:
            raise LockfileParseError(
                f"Expected a value or ':' after {keys[-1]!r}", line_no, filename
            )
        return keys, None, True

    if len(keys) > 1:
        raise LockfileParseError(
            "Multiple keys can only introduce a nested block", line_no, filename
        )

    value, pos, quoted = _read_scalar(content, pos, line_no, filename)
    if _skip_spaces(content, pos) != len(content):
        raise LockfileParseError(
            f"Unexpected trailing content: {content[pos:].strip()!r}", line_no, filename
        )

    if not quoted:
        value = _coerce_unquoted(value)
    return keys, value, False


def _read_scalar(
    content: str, pos: int, line_no: int, filename: Optional[str]
) -> Tuple[str, int, bool]:
    """Read a quoted or bare string starting at pos."""
    if pos >= len(content):
        raise LockfileParseError("Unexpected end of line", line_no, filename)

    if content[pos] == '"':
        try:
            value, end = _DECODER.raw_decode(content, pos)
        except json.JSONDecodeError as e:
            raise LockfileParseError(
                f"Invalid quoted string: {e.msg}", line_no, filename
            ) from e
        return value, end, True

    end = pos
    while end < len(content) and content[end] not in _UNQUOTED_DELIMITERS:
        end += 1
    if end == pos:
        raise LockfileParseError(
            f"Unexpected character {content[pos]!r}", line_no, filename
        )
    return content[pos:end], end, False


def _skip_spaces(content: str, pos: int) -> int:
    while pos < len(content) and content[pos] in " \t":
        pos += 1
    return pos


def _coerce_unquoted(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if _NUMBER_RE.match(value):
        return float(value) if "." in value else int(value)
    return value
