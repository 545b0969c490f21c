"""Upload validation performed before any side effect."""

from __future__ import annotations

from pathlib import PurePath
from typing import Dict, FrozenSet

from dupkeep.config.models import IngestionSettings
from dupkeep.errors import InvalidInputError, UnsupportedFormatError

from .models import ValidatedUpload

FORMAT_MIME_TYPES: Dict[str, str] = {
    "txt": "text/plain",
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

_ALLOWED_MIME_TYPES: Dict[str, FrozenSet[str]] = {
    "txt": frozenset({"text/plain"}),
    "pdf": frozenset({"application/pdf"}),
    "docx": frozenset({FORMAT_MIME_TYPES["docx"]}),
}

_FORBIDDEN_NAME_PARTS = ("..", "/", "\\", "\x00")


class UploadValidator:
    """Check uploads against the configured ingestion limits."""

    def __init__(self, settings: IngestionSettings) -> None:
        self.settings = settings

    @property
    def max_size_bytes(self) -> int:
        return self.settings.max_file_size_mb * 1024 * 1024

    def validate(
        self,
        data: bytes,
        name: str,
        declared_format: str | None = None,
        mime_type: str | None = None,
    ) -> ValidatedUpload:
        """Validate an upload and return its normalised attributes.

        Args:
            data: Raw upload bytes.
            name: Display name supplied by the uploader.
            declared_format: Declared format; derived from ``name`` when omitted.
            mime_type: Declared MIME type, if the transport supplied one.

        Returns:
            ValidatedUpload: Normalised name, format, MIME type and size.

        Raises:
            InvalidInputError: If the payload or name is unacceptable.
            UnsupportedFormatError: If the format is not accepted.
        """
        if not data:
            raise InvalidInputError("Upload is empty")
        if len(data) > self.max_size_bytes:
            raise InvalidInputError(
                f"Upload of {len(data)} bytes exceeds the {self.settings.max_file_size_mb} MB limit"
            )

        self.validate_name(name)

        suffix = PurePath(name).suffix.lower().lstrip(".")
        fmt = (declared_format or suffix).lower().lstrip(".")
        if not fmt:
            raise UnsupportedFormatError(f"Cannot determine the format of {name!r}")
        if fmt not in self.settings.allowed_formats or fmt not in FORMAT_MIME_TYPES:
            raise UnsupportedFormatError(f"Unsupported format: {fmt!r}")
        if suffix != fmt:
            raise InvalidInputError(
                f"File name {name!r} does not match the declared format {fmt!r}"
            )

        expected_mime = FORMAT_MIME_TYPES[fmt]
        if mime_type:
            base_mime = mime_type.split(";", 1)[0].strip().lower()
            if base_mime not in _ALLOWED_MIME_TYPES[fmt]:
                raise InvalidInputError(
                    f"MIME type {mime_type!r} is not allowed for {fmt} uploads"
                )
            expected_mime = base_mime

        return ValidatedUpload(name=name, format=fmt, mime_type=expected_mime, size=len(data))

    def validate_name(self, name: str) -> None:
        """Reject empty, oversized or path-like display names."""
        if not name or not name.strip():
            raise InvalidInputError("File name must not be empty")
        if len(name) > self.settings.max_name_length:
            raise InvalidInputError(
                f"File name exceeds {self.settings.max_name_length} characters"
            )
        if any(part in name for part in _FORBIDDEN_NAME_PARTS):
            raise InvalidInputError(f"Invalid file name: {name!r}")


__all__ = ["UploadValidator", "FORMAT_MIME_TYPES"]
