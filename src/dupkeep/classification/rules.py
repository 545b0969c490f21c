"""Category rule table.

The table has three tiers evaluated in a fixed order: an extension map, an
ordered list of MIME rules, and size thresholds. It is loaded once at startup
from built-in defaults optionally overlaid by a YAML (or JSON) file shaped as::

    categories:
      Images:
        extensions: [jpg, png]
    mime_rules:
      - pattern: image/
        match: prefix
        category: Images
    size:
      large_bytes: 104857600
      small_bytes: 1024

Runtime amendments go through the update methods, which take a lock so that
classification never observes a half-applied change.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from dupkeep.errors import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Other"
LARGE_FILES = "Large Files"
SMALL_FILES = "Small Files"

_DEFAULT_EXTENSIONS: Dict[str, List[str]] = {
    "Images": ["jpg", "jpeg", "png", "gif", "bmp", "tiff", "svg", "webp"],
    "Videos": ["mp4", "avi", "mkv", "mov", "wmv", "flv", "webm", "m4v"],
    "Audio": ["mp3", "wav", "flac", "aac", "ogg", "wma", "m4a"],
    "Documents": ["pdf", "doc", "docx", "txt", "rtf", "odt", "xls", "xlsx", "ppt", "pptx"],
    "Archives": ["zip", "rar", "7z", "tar", "gz", "bz2", "xz"],
    "Code": ["java", "js", "ts", "py", "cpp", "c", "h", "css", "html", "xml", "json"],
}


class MimeRule(BaseModel):
    """Map MIME types matching ``pattern`` to ``category``."""

    pattern: str
    match: Literal["prefix", "contains"] = "prefix"
    category: str

    def matches(self, mime_type: str) -> bool:
        if self.match == "prefix":
            return mime_type.startswith(self.pattern)
        return self.pattern in mime_type


class SizeThresholds(BaseModel):
    """Size buckets used when no extension or MIME rule applies."""

    large_bytes: int = 100 * 1024 * 1024
    small_bytes: int = 1024


def _default_mime_rules() -> List[MimeRule]:
    return [
        MimeRule(pattern="image/", category="Images"),
        MimeRule(pattern="video/", category="Videos"),
        MimeRule(pattern="audio/", category="Audio"),
        MimeRule(pattern="text/", category="Documents"),
        MimeRule(pattern="document", match="contains", category="Documents"),
        MimeRule(pattern="application/zip", match="contains", category="Archives"),
        MimeRule(pattern="compressed", match="contains", category="Archives"),
    ]


class _RulesFile(BaseModel):
    categories: Dict[str, Dict[str, List[str]]] = Field(default_factory=dict)
    mime_rules: Optional[List[MimeRule]] = None
    size: Optional[SizeThresholds] = None


def normalize_extension(extension: str | None) -> str:
    """Return ``extension`` lowercased without a leading dot."""
    return (extension or "").strip().lower().lstrip(".")


class CategoryRules:
    """Process-scoped rule table with explicit update and reload operations."""

    def __init__(
        self,
        extensions: Dict[str, str] | None = None,
        mime_rules: List[MimeRule] | None = None,
        size: SizeThresholds | None = None,
        *,
        source: Path | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._extensions: Dict[str, str] = {}
        if extensions is None:
            for category, items in _DEFAULT_EXTENSIONS.items():
                for item in items:
                    self._extensions[item] = category
        else:
            self._extensions = {normalize_extension(k): v for k, v in extensions.items()}
        self._mime_rules = list(mime_rules) if mime_rules is not None else _default_mime_rules()
        self._size = size or SizeThresholds()
        self._source = source

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        *,
        large_bytes: int | None = None,
        small_bytes: int | None = None,
    ) -> "CategoryRules":
        """Build the table from defaults, overlaying ``path`` when it exists.

        Args:
            path: Optional rules file.
            large_bytes: Threshold override for "Large Files".
            small_bytes: Threshold override for "Small Files".

        Raises:
            ConfigError: If the rules file cannot be parsed.
        """
        size = SizeThresholds()
        if large_bytes is not None:
            size.large_bytes = large_bytes
        if small_bytes is not None:
            size.small_bytes = small_bytes
        rules = cls(size=size, source=path)
        if path is not None and path.expanduser().exists():
            rules._apply_file(path.expanduser())
        return rules

    @property
    def source(self) -> Path | None:
        """Return the rules file the table was loaded from, if any."""
        return self._source

    def category_for_extension(self, extension: str | None) -> str | None:
        with self._lock:
            return self._extensions.get(normalize_extension(extension))

    def category_for_mime(self, mime_type: str | None) -> str | None:
        if not mime_type:
            return None
        lowered = mime_type.lower()
        with self._lock:
            for rule in self._mime_rules:
                if rule.matches(lowered):
                    return rule.category
        return None

    def category_for_size(self, size: int | None) -> str | None:
        if size is None:
            return None
        with self._lock:
            if size > self._size.large_bytes:
                return LARGE_FILES
            if size < self._size.small_bytes:
                return SMALL_FILES
        return None

    def update_extension(self, extension: str, category: str) -> None:
        """Map ``extension`` to ``category`` for all later classifications."""
        key = normalize_extension(extension)
        if not key or not category.strip():
            raise ValueError("extension and category must not be empty")
        with self._lock:
            self._extensions[key] = category.strip()
        LOGGER.info("Category rule updated: .%s -> %s", key, category)

    def remove_extension(self, extension: str) -> bool:
        """Drop the mapping for ``extension``; returns whether one existed."""
        with self._lock:
            return self._extensions.pop(normalize_extension(extension), None) is not None

    def reload(self) -> None:
        """Re-read the rules file the table was loaded from."""
        if self._source is None:
            return
        with self._lock:
            size = self._size.model_copy()
        fresh = CategoryRules.load(
            self._source, large_bytes=size.large_bytes, small_bytes=size.small_bytes
        )
        with self._lock:
            self._extensions = fresh._extensions
            self._mime_rules = fresh._mime_rules
            self._size = fresh._size

    def snapshot(self) -> Dict[str, str]:
        """Return a copy of the extension table."""
        with self._lock:
            return dict(sorted(self._extensions.items()))

    def save(self, path: Path | None = None) -> Path:
        """Persist the table in the rules file format."""
        target = path or self._source
        if target is None:
            raise ConfigError("No rules file path configured.")
        target = target.expanduser()
        with self._lock:
            categories: Dict[str, Dict[str, List[str]]] = {}
            for extension, category in sorted(self._extensions.items()):
                categories.setdefault(category, {"extensions": []})["extensions"].append(extension)
            payload = {
                "categories": categories,
                "mime_rules": [rule.model_dump() for rule in self._mime_rules],
                "size": self._size.model_dump(),
            }
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return target

    def _apply_file(self, path: Path) -> None:
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            parsed = _RulesFile.model_validate(raw)
        except (OSError, yaml.YAMLError, ValidationError) as exc:
            raise ConfigError(f"Invalid category rules file {path}: {exc}") from exc

        for category, body in parsed.categories.items():
            for extension in body.get("extensions", []):
                self._extensions[normalize_extension(extension)] = category
        if parsed.mime_rules is not None:
            self._mime_rules = parsed.mime_rules
        if parsed.size is not None:
            self._size = parsed.size
        LOGGER.info("Loaded %d extension mappings from %s", len(self._extensions), path)


__all__ = [
    "CategoryRules",
    "MimeRule",
    "SizeThresholds",
    "DEFAULT_CATEGORY",
    "LARGE_FILES",
    "SMALL_FILES",
    "normalize_extension",
]
