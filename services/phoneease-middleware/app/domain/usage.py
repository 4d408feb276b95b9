"""Quota checks run before any quota-consuming action."""

from __future__ import annotations

from .account import AccountRecord
from .errors import QuotaExceededError


def has_exceeded_training_limit(record: AccountRecord) -> bool:
    return record.training_used >= record.training_limit


def check_training_quota(record: AccountRecord) -> None:
    """Raise ``QuotaExceededError`` when the account has no training interactions left."""
    if has_exceeded_training_limit(record):
        raise QuotaExceededError(
            "Training limit exceeded",
            used=record.training_used,
            limit=record.training_limit,
        )
