"""Text cleanup shared by every dish-name comparison."""

from __future__ import annotations

import re

_PUNCTUATION = re.compile(r"[.,!?;:\"()\[\]{}]")
_WHITESPACE = re.compile(r"\s+")


def normalize(value: str) -> str:
    """Lower-case, drop menu punctuation and collapse whitespace.

    >>> normalize("  Spaghetti   Carbonara! ")
    'spaghetti carbonara'
    """
    if not value:
        return ""
    cleaned = _PUNCTUATION.sub("", value.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()
