"""Content extraction for the supported document formats."""

from __future__ import annotations

import io
import logging
from typing import Callable, Dict

from docx import Document
from pypdf import PdfReader

from dupkeep.errors import CorruptInputError, UnsupportedFormatError

from .models import ExtractedContent
from .text import canonicalize_text

LOGGER = logging.getLogger(__name__)


def _extract_txt(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CorruptInputError(f"Text upload is not valid UTF-8: {exc}") from exc


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data), strict=True)
    if reader.is_encrypted:
        raise CorruptInputError("Encrypted PDF documents cannot be extracted")
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx(data: bytes) -> str:
    document = Document(io.BytesIO(data))
    parts = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            parts.extend(cell.text for cell in row.cells)
    return "\n".join(parts)


class ContentExtractor:
    """Turn uploaded bytes into canonical text.

    Extraction is all-or-nothing: a document that cannot be fully parsed raises
    ``CorruptInputError`` rather than yielding partial text.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, Callable[[bytes], str]] = {
            "txt": _extract_txt,
            "pdf": _extract_pdf,
            "docx": _extract_docx,
        }

    def extract(self, data: bytes, declared_format: str) -> ExtractedContent:
        """Extract canonical text from ``data``.

        Args:
            data: Raw upload bytes.
            declared_format: Format the caller declared (``txt``, ``pdf`` or ``docx``).

        Returns:
            ExtractedContent: Canonical text with the normalised format.

        Raises:
            UnsupportedFormatError: If ``declared_format`` is not supported.
            CorruptInputError: If the bytes cannot be parsed as that format.
        """
        fmt = (declared_format or "").lower().lstrip(".")
        handler = self._handlers.get(fmt)
        if handler is None:
            raise UnsupportedFormatError(f"Unsupported format: {declared_format!r}")

        try:
            raw = handler(data)
        except CorruptInputError:
            raise
        except Exception as exc:
            LOGGER.debug("Failed to parse %s payload of %d bytes", fmt, len(data), exc_info=True)
            raise CorruptInputError(f"Unable to extract {fmt} content: {exc}") from exc

        return ExtractedContent(text=canonicalize_text(raw), format=fmt)


__all__ = ["ContentExtractor"]
