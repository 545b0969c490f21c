"""Integrity verification package."""

from .service import VerificationReport, VerificationResult, VerificationService

__all__ = ["VerificationService", "VerificationResult", "VerificationReport"]
