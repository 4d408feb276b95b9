from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from app.domain.account import COUNTER_FIELDS, AccountRecord
from app.domain.service import RegistrationService
from app.repository import SiteAlreadyRegisteredError, StoreError
from app.telephony import NoNumbersAvailableError, ProvisionedNumber, Subaccount

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeAccountStore:
    """In-memory store mimicking the Postgres repository, including the site constraint."""

    def __init__(self) -> None:
        self.records: dict[str, AccountRecord] = {}
        self.insert_error: Exception | None = None
        self.lookup_error: Exception | None = None
        self.inserts = 0

    def find_by_token(self, token: str) -> AccountRecord | None:
        if self.lookup_error:
            raise self.lookup_error
        return self.records.get(token)

    def find_by_site_identifier(self, site_identifier: str) -> AccountRecord | None:
        if self.lookup_error:
            raise self.lookup_error
        for record in self.records.values():
            if record.site_identifier == site_identifier:
                return record
        return None

    def insert(self, token: str, record: AccountRecord) -> None:
        self.inserts += 1
        if self.insert_error:
            raise self.insert_error
        if any(r.site_identifier == record.site_identifier for r in self.records.values()):
            raise SiteAlreadyRegisteredError(record.site_identifier)
        self.records[token] = record

    def increment_counter(self, token: str, field: str) -> None:
        if field not in COUNTER_FIELDS:
            raise ValueError(field)
        record = self.records.get(token)
        if record is None:
            raise StoreError(f"account {token} not found")
        setattr(record, field, getattr(record, field) + 1)

    def seed(self, **overrides) -> AccountRecord:
        record = AccountRecord(
            account_token=overrides.pop("account_token", "tok-existing"),
            display_name="Existing Biz",
            contact_phone=None,
            site_identifier="https://existing.biz",
            provisioned_number="+13055550100",
            telephony_subaccount_id="AC-existing",
            telephony_subaccount_secret="secret",
            billing_period_start=FIXED_NOW,
            billing_period_end=FIXED_NOW,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
        )
        record = replace(record, **overrides)
        self.records[record.account_token] = record
        return record


class FakeTelephony:
    """Telephony double with per-locality inventory and call recording."""

    def __init__(self, inventory: dict[str | None, list[str]] | None = None) -> None:
        self.inventory = inventory if inventory is not None else {"786": ["+17865550100"]}
        self.created: list[str] = []
        self.provision_calls: list[tuple[str, str | None, str | None]] = []
        self.closed: list[str] = []
        self.create_error: Exception | None = None
        self.provision_error: Exception | None = None
        self.close_error: Exception | None = None
        self.close_result = True

    def create_subaccount(self, name: str) -> Subaccount:
        if self.create_error:
            raise self.create_error
        sid = f"AC{len(self.created) + 1:04d}"
        self.created.append(sid)
        return Subaccount(id=sid, secret=f"secret-{sid}")

    def provision_number(
        self, subaccount_id: str, site_identifier: str | None, locality: str | None = None
    ) -> ProvisionedNumber:
        self.provision_calls.append((subaccount_id, site_identifier, locality))
        if self.provision_error:
            raise self.provision_error
        numbers = self.inventory.get(locality or "786") or self.inventory.get(None) or []
        if not numbers:
            raise NoNumbersAvailableError(locality)
        return ProvisionedNumber(number=numbers[0], number_id=f"PN-{subaccount_id}")

    def close_subaccount(self, subaccount_id: str) -> bool:
        self.closed.append(subaccount_id)
        if self.close_error:
            raise self.close_error
        return self.close_result


@pytest.fixture
def store() -> FakeAccountStore:
    return FakeAccountStore()


@pytest.fixture
def telephony() -> FakeTelephony:
    return FakeTelephony(
        {"786": ["+17865550100"], "305": ["+13056930001", "+13056930002"], None: ["+12125550100"]}
    )


@pytest.fixture
def registration_service(store: FakeAccountStore, telephony: FakeTelephony) -> RegistrationService:
    return RegistrationService(store, telephony, clock=lambda: FIXED_NOW)
