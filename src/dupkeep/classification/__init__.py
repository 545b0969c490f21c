"""File categorization package."""

from .engine import CategoryClassifier
from .rules import DEFAULT_CATEGORY, CategoryRules, MimeRule, SizeThresholds

__all__ = [
    "CategoryClassifier",
    "CategoryRules",
    "MimeRule",
    "SizeThresholds",
    "DEFAULT_CATEGORY",
]
