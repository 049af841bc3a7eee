"""
Deterministic serializer for the lockfile text format.

Output is stable for a given mapping: top-level keys are sorted, and mapping
values shared by several keys (the same object, not merely equal ones) are
written once under a combined key line.
"""

import json
import re
from typing import Any, List, Mapping

HEADER = (
    "# THIS IS AN AUTOGENERATED FILE. DO NOT EDIT THIS FILE DIRECTLY.\n"
    "# opamkit lockfile v1"
)

# Lower sorts first; unlisted fields come after these, alphabetically
FIELD_PRIORITY = {
    "name": 1,
    "version": 2,
    "uid": 3,
    "resolved": 4,
    "registry": 5,
    "dependencies": 6,
}

_NEEDS_QUOTES_RE = re.compile(r"[:\s\\\",\[\]]")


def should_quote(value: str) -> bool:
    """Check whether a bare string would not read back as the same string."""
    return (
        value.startswith(("true", "false"))
        or bool(_NEEDS_QUOTES_RE.search(value))
        or not value[:1].isalpha()
        or not value[:1].isascii()
    )


def maybe_quote(value: Any) -> str:
    """Render a scalar, quoting it when required."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return json.dumps(value)
    if should_quote(value):
        return json.dumps(value)
    return value


def _sort_key(key: str):
    return (FIELD_PRIORITY.get(key, 100), key)


def _stringify(obj: Mapping[str, Any], indent: str, top_level: bool) -> List[str]:
    lines: List[str] = []
    keys = sorted(obj.keys(), key=_sort_key)
    written = set()

    for i, key in enumerate(keys):
        value = obj[key]
        if value is None or key in written:
            continue

        group = [key]
        if isinstance(value, Mapping):
            group.extend(k for k in keys[i + 1 :] if obj[k] is value)
        written.update(group)
        key_line = ", ".join(maybe_quote(k) for k in sorted(group))

        if isinstance(value, Mapping):
            if not value:
                continue
            lines.append(f"{indent}{key_line}:")
            lines.extend(_stringify(value, indent + "  ", top_level=False))
            if top_level:
                lines.append("")
        elif isinstance(value, (str, bool, int, float)):
            lines.append(f"{indent}{key_line} {maybe_quote(value)}")
        else:
            raise TypeError(f"Cannot serialize {type(value).__name__} at {key!r}")

    return lines


def stringify(obj: Mapping[str, Any], header: bool = True) -> str:
    """
    Serialize a pattern-keyed lockfile mapping.

    Args:
        obj: Mapping of pattern -> entry mapping or alias string
        header: Whether to emit the generated-file header

    Returns:
        Lockfile text ending with a newline
    """
    body = _stringify(obj, "", top_level=True)
    while body and body[-1] == "":
        body.pop()

    parts: List[str] = []
    if header:
        parts.extend([HEADER, "", ""])
    parts.extend(body)
    return "\n".join(parts) + "\n"
