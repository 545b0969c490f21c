"""Text canonicalisation applied to every extracted document."""

from __future__ import annotations

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_NEWLINES = re.compile(r"\r\n?|[\u2028\u2029\x85]")


def canonicalize_text(text: str) -> str:
    """Return ``text`` in the canonical form used for content hashing.

    Args:
        text: Raw text produced by a format-specific extractor.

    Returns:
        str: Text with ``\\n`` line endings, control characters removed, trailing
        whitespace stripped from every line and leading/trailing blank lines
        dropped. A leading byte-order mark is discarded.
    """

    normalized = _NEWLINES.sub("\n", text.lstrip("\ufeff"))
    normalized = _CONTROL_CHARS.sub("", normalized)
    lines = [line.rstrip() for line in normalized.split("\n")]
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


__all__ = ["canonicalize_text"]
