"""Ingestion pipeline package."""

from .detectors import Hasher
from .discovery import DirectoryScanner
from .extractors import ContentExtractor
from .models import (
    ExtractedContent,
    IngestionResult,
    IngestionStage,
    PendingFile,
    Upload,
    ValidatedUpload,
)
from .pipeline import SYSTEM_SCAN_UPLOADER, IngestionPipeline
from .text import canonicalize_text
from .validation import FORMAT_MIME_TYPES, UploadValidator

__all__ = [
    "ContentExtractor",
    "DirectoryScanner",
    "ExtractedContent",
    "FORMAT_MIME_TYPES",
    "Hasher",
    "IngestionPipeline",
    "IngestionResult",
    "IngestionStage",
    "PendingFile",
    "SYSTEM_SCAN_UPLOADER",
    "Upload",
    "UploadValidator",
    "ValidatedUpload",
    "canonicalize_text",
]
