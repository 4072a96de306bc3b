"""
Log sanitization helpers.

User-controlled values (paths, language tags, text previews) go through
sanitize_for_log before they reach a log line; API keys only ever appear
masked.
"""

import re
from typing import Any

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]")


def sanitize_for_log(value: Any, max_length: int = 200) -> str:
    """
    Sanitize a value for safe logging.

    Escapes newlines, carriage returns and tabs, drops other control
    characters, and truncates to ``max_length`` (with a trailing "...").
    """
    if value is None:
        return "None"

    sanitized = str(value).replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")
    sanitized = _CONTROL_CHARS.sub("", sanitized)

    if len(sanitized) > max_length:
        sanitized = sanitized[: max_length - 3] + "..."
    return sanitized


def mask_secret(value: str | None, visible: int = 4) -> str:
    """Render a key as ``sk-d…ault``-style hint; short or empty keys become ``***``."""
    if not value:
        return "<none>"
    if len(value) <= visible * 2:
        return "***"
    return f"{value[:visible]}…{value[-visible:]}"
