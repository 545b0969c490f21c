"""Rule-based file categorization."""

from __future__ import annotations

import logging

from .rules import DEFAULT_CATEGORY, CategoryRules

LOGGER = logging.getLogger(__name__)


class CategoryClassifier:
    """Map a file's extension, MIME type and size to a category label.

    Evaluation order is fixed: extension table, then MIME rules, then size
    buckets, then ``"Other"``. The classifier never fails.
    """

    def __init__(self, rules: CategoryRules | None = None) -> None:
        self.rules = rules or CategoryRules()

    def classify(self, extension: str | None, mime_type: str | None, size: int | None) -> str:
        """Return the first applicable category for the given attributes."""
        category = (
            self.rules.category_for_extension(extension)
            or self.rules.category_for_mime(mime_type)
            or self.rules.category_for_size(size)
            or DEFAULT_CATEGORY
        )
        LOGGER.debug(
            "Classified extension=%s mime=%s size=%s as %s", extension, mime_type, size, category
        )
        return category


__all__ = ["CategoryClassifier"]
