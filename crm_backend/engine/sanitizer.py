from __future__ import annotations

import re
from typing import Any

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_SQL_COMMENT = re.compile(r"--|/\*|\*/")
# literal comparisons only: OR 1=1, AND 'a'='a', OR '1'='1
_SQL_TAUTOLOGY = re.compile(
    r"""\b(?:OR|AND)\s+(?:\d+\s*=\s*\d+|'[^']*'\s*=\s*'[^']*'?|"[^"]*"\s*=\s*"[^"]*"?)""",
    re.IGNORECASE,
)

_PASSES = (_ANGLE_BRACKETS, _JS_PROTOCOL, _EVENT_HANDLER, _SQL_COMMENT, _SQL_TAUTOLOGY)


def _strip_once(value: str) -> str:
    for rx in _PASSES:
        value = rx.sub("", value)
    return value.strip()


def sanitize_input(value: str) -> str:
    """Strip markup, script URIs, handler assignments and SQL comment/tautology tokens.

    Removal can splice a new token together ("java<script:" -> "javascript:"),
    so passes repeat until nothing changes. The result is therefore stable
    under another call.
    """
    previous = None
    while value != previous:
        previous = value
        value = _strip_once(value)
    return value


def sanitize_value(value: Any) -> Any:
    """Apply ``sanitize_input`` to every string leaf of a JSON-like tree."""
    if isinstance(value, str):
        return sanitize_input(value)
    if isinstance(value, dict):
        return {k: sanitize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_value(v) for v in value]
    return value
