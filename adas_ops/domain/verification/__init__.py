"""Verification domain - estimate vs report reconciliation"""

from .engine import classify, discrepancy_reason

__all__ = ["classify", "discrepancy_reason"]
