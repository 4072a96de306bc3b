"""
Language tag normalization.

Three vocabularies meet here: generic codes used by the public APIs
("auto", "ZH", "EN", ...), user-facing display names that clients sometimes
send instead ("中文", "英文", ...), and the display strings the upstream
dropdowns expect ("简体中文", "英语", ...).

Every lookup falls back to returning its input unchanged.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Final

__all__ = [
    "GENERIC_TAGS",
    "TO_GENERIC",
    "TO_UPSTREAM",
    "normalize",
    "to_generic",
    "to_upstream",
]

# Any accepted spelling -> generic code. Upstream display names are included
# so that normalize() is idempotent.
TO_GENERIC: Final = MappingProxyType(
    {
        "自动检测": "auto",
        "自动": "auto",
        "简体中文": "ZH",
        "中文": "ZH",
        "繁体中文": "TW",
        "英语": "EN",
        "英文": "EN",
        "auto": "auto",
        "ZH": "ZH",
        "TW": "TW",
        "EN": "EN",
    }
)

# Generic code -> upstream dropdown value.
TO_UPSTREAM: Final = MappingProxyType(
    {
        "auto": "自动检测",
        "ZH": "简体中文",
        "TW": "繁体中文",
        "EN": "英语",
    }
)

GENERIC_TAGS: Final[tuple[str, ...]] = tuple(TO_UPSTREAM)

_FROM_UPSTREAM: Final = MappingProxyType({v: k for k, v in TO_UPSTREAM.items()})


def to_generic(tag: str) -> str:
    """Map any accepted spelling (including upstream names) to its generic code."""
    if tag in _FROM_UPSTREAM:
        return _FROM_UPSTREAM[tag]
    return TO_GENERIC.get(tag, tag)


def to_upstream(code: str) -> str:
    """Map a generic code to the upstream display string."""
    return TO_UPSTREAM.get(code, code)


def normalize(tag: str) -> str:
    """Return the upstream display string for ``tag``; unknown tags pass through."""
    return to_upstream(TO_GENERIC.get(tag, tag))
