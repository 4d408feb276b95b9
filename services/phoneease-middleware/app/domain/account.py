from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from schemas import AccountStatus

FREE_CALL_COUNTERS = ("filtered_calls", "spam_calls", "silent_calls", "test_calls")
COUNTER_FIELDS = frozenset(
    ("billable_calls_used", "total_calls", "training_used", *FREE_CALL_COUNTERS)
)


@dataclass(slots=True)
class AccountRecord:
    """Aggregate root for a registered customer and its provisioned line."""

    account_token: str
    display_name: str
    contact_phone: str | None
    site_identifier: str | None
    provisioned_number: str
    telephony_subaccount_id: str
    telephony_subaccount_secret: str
    billing_period_start: datetime
    billing_period_end: datetime
    created_at: datetime
    updated_at: datetime
    status: AccountStatus = AccountStatus.active

    # billable calls consume quota; filtered calls are free and only tracked
    calls_limit: int = 100
    billable_calls_used: int = 0
    filtered_calls: int = 0
    spam_calls: int = 0
    silent_calls: int = 0
    test_calls: int = 0
    total_calls: int = 0

    training_limit: int = 100
    training_used: int = 0
