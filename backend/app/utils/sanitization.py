"""
Input sanitization for user-supplied strings.
Used by the request schemas before values reach the database.
"""

import re
from typing import Optional

MAX_DISPLAY_NAME_LENGTH = 100

_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_string(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = _CONTROL_CHARS.sub("", value.strip())
    return value.replace("<", "&lt;").replace(">", "&gt;")


def sanitize_display_name(value: Optional[str]) -> Optional[str]:
    """Collapse runs of whitespace and cap the length of a display name."""
    value = sanitize_string(value)
    if value is None:
        return None
    return _WHITESPACE.sub(" ", value)[:MAX_DISPLAY_NAME_LENGTH]
