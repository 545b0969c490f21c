"""Hashing utilities for integrity checks and deduplication."""

from __future__ import annotations

import hashlib
import re

from .models import ExtractedContent

_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")


class Hasher:
    """Compute the two digests recorded for every upload.

    ``digest`` hashes raw bytes and backs integrity verification.
    ``content_digest`` hashes canonical text and backs deduplication.
    """

    def digest(self, data: bytes) -> str:
        """Return the SHA-256 hex digest of ``data``."""
        return hashlib.sha256(data).hexdigest()

    def content_digest(self, content: ExtractedContent | str) -> str:
        """Return the SHA-256 hex digest of canonical text encoded as UTF-8."""
        text = content.text if isinstance(content, ExtractedContent) else content
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def fingerprint(self, content: ExtractedContent, data: bytes) -> str:
        """Return the deduplication key for an upload.

        Documents without extractable text fall back to the raw-byte digest so
        that unrelated text-less files are not grouped together.
        """
        if content.is_empty:
            return self.digest(data)
        return self.content_digest(content)

    @staticmethod
    def is_valid_sha256(value: str | None) -> bool:
        return bool(value) and _SHA256_HEX.match(value or "") is not None


__all__ = ["Hasher"]
