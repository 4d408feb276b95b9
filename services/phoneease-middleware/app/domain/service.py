"""Registration workflow: sub-account, phone number and account record, with rollback."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from schemas import AccountStatus

from . import errors
from .account import AccountRecord
from .contracts import RegisterAccountInput, RegistrationResult
from .locality import extract_locality
from ..metrics import COMPENSATIONS, REGISTRATIONS
from ..repository import SiteAlreadyRegisteredError, StoreError
from ..telephony import NoNumbersAvailableError, ProvisionedNumber, Subaccount, TelephonyError

logger = logging.getLogger(__name__)

SITE_SCHEMES = ("http://", "https://")


class AccountStore(Protocol):
    def find_by_token(self, token: str) -> AccountRecord | None: ...

    def find_by_site_identifier(self, site_identifier: str) -> AccountRecord | None: ...

    def insert(self, token: str, record: AccountRecord) -> None: ...

    def increment_counter(self, token: str, field: str) -> None: ...


class TelephonyProvisioner(Protocol):
    def create_subaccount(self, name: str) -> Subaccount: ...

    def provision_number(
        self, subaccount_id: str, site_identifier: str | None, locality: str | None = None
    ) -> ProvisionedNumber: ...

    def close_subaccount(self, subaccount_id: str) -> bool: ...


@dataclass(slots=True, frozen=True)
class CompensationOutcome:
    """Result of the best-effort sub-account rollback; logged, never raised."""

    subaccount_id: str
    closed: bool
    error: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistrationService:
    """Customer registration backed by the account store and the telephony provider.

    Every failure after the sub-account exists triggers :meth:`compensate`
    before the original error propagates.
    """

    def __init__(
        self,
        store: AccountStore,
        telephony: TelephonyProvisioner,
        *,
        billing_period_days: int = 30,
        calls_limit: int = 100,
        training_limit: int = 100,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Store the injected collaborators and the defaults applied to new accounts."""
        self._store = store
        self._telephony = telephony
        self._billing_period = timedelta(days=billing_period_days)
        self._calls_limit = calls_limit
        self._training_limit = training_limit
        self._clock = clock

    def register(self, payload: RegisterAccountInput) -> RegistrationResult:
        """Register a customer and return its token, number and sub-account id.

        Raises
        ------
        errors.ValidationError
            Missing business name or site identifier; nothing was called.
        errors.ConflictError
            The site already has a provisioned account.
        errors.ProviderUnavailableError
            Sub-account creation or number provisioning failed.
        errors.PersistenceError
            The account store could not be read or written.
        errors.InternalError
            Any unclassified failure after the sub-account was created.
        """
        try:
            result = self._register(payload)
        except errors.DomainError as exc:
            REGISTRATIONS.labels(outcome=type(exc).__name__).inc()
            raise
        REGISTRATIONS.labels(outcome="success").inc()
        return result

    def compensate(self, subaccount_id: str) -> CompensationOutcome:
        """Close ``subaccount_id`` after a failed step; never raises."""
        logger.warning("rolling back: closing sub-account %s", subaccount_id)
        try:
            closed = self._telephony.close_subaccount(subaccount_id)
            outcome = CompensationOutcome(subaccount_id=subaccount_id, closed=bool(closed))
        except Exception as exc:  # noqa: BLE001
            outcome = CompensationOutcome(subaccount_id=subaccount_id, closed=False, error=str(exc))

        COMPENSATIONS.labels(result="closed" if outcome.closed else "failed").inc()
        if outcome.closed:
            logger.info("rollback closed sub-account %s", subaccount_id)
        else:
            logger.error(
                "rollback could not close sub-account %s (%s); manual cleanup required",
                subaccount_id,
                outcome.error or "provider refused",
            )
        return outcome

    def _register(self, payload: RegisterAccountInput) -> RegistrationResult:
        display_name, site_identifier, contact_phone = self._validate(payload)
        self._ensure_site_available(site_identifier)

        account_token = str(uuid.uuid4())
        locality = extract_locality(contact_phone)
        if locality:
            logger.info("using locality %s from contact phone", locality)

        subaccount = self._create_subaccount(display_name)
        try:
            number = self._provision_number(subaccount.id, site_identifier, locality)
            record = self._build_record(
                account_token=account_token,
                display_name=display_name,
                contact_phone=contact_phone,
                site_identifier=site_identifier,
                subaccount=subaccount,
                number=number,
            )
            self._persist(record)
        except errors.DomainError:
            self.compensate(subaccount.id)
            raise
        except Exception as exc:
            logger.exception("unexpected failure registering %s", display_name)
            self.compensate(subaccount.id)
            raise errors.InternalError(
                "Internal server error during registration", cause=str(exc)
            ) from exc

        logger.info(
            "registered %s: token=%s number=%s", display_name, account_token, number.number
        )
        return RegistrationResult(
            account_token=account_token,
            provisioned_number=number.number,
            subaccount_id=subaccount.id,
        )

    def _validate(self, payload: RegisterAccountInput) -> tuple[str, str, str | None]:
        display_name = payload.display_name.strip() if isinstance(payload.display_name, str) else ""
        if not display_name:
            raise errors.ValidationError("display_name is required and must be a non-empty string")

        site_identifier = (
            payload.site_identifier.strip() if isinstance(payload.site_identifier, str) else ""
        )
        if not site_identifier.lower().startswith(SITE_SCHEMES):
            raise errors.ValidationError(
                "site_identifier is required and must be an http(s) URL"
            )

        contact_phone = payload.contact_phone or None
        return display_name, site_identifier, contact_phone

    def _ensure_site_available(self, site_identifier: str) -> None:
        try:
            existing = self._store.find_by_site_identifier(site_identifier)
        except StoreError as exc:
            raise errors.PersistenceError(
                "Database error",
                details="Failed to look up existing registrations. Please try again later.",
                cause=str(exc),
            ) from exc
        if existing is not None and existing.provisioned_number:
            logger.info("site %s already registered as %s", site_identifier, existing.account_token)
            raise self._conflict(existing)

    def _create_subaccount(self, display_name: str) -> Subaccount:
        try:
            return self._telephony.create_subaccount(display_name)
        except TelephonyError as exc:
            raise errors.ProviderUnavailableError(
                "Telephony service unavailable",
                details="Failed to create sub-account. Please try again later.",
                cause=str(exc),
            ) from exc

    def _provision_number(
        self, subaccount_id: str, site_identifier: str, locality: str | None
    ) -> ProvisionedNumber:
        try:
            return self._telephony.provision_number(subaccount_id, site_identifier, locality)
        except NoNumbersAvailableError as exc:
            details = "No phone numbers available"
            if locality:
                details = f"{details} in area code {locality}"
            raise errors.ProviderUnavailableError(
                "Phone number provisioning failed",
                details=details,
                cause=str(exc),
                no_inventory=True,
            ) from exc
        except TelephonyError as exc:
            raise errors.ProviderUnavailableError(
                "Phone number provisioning failed",
                details="Failed to provision phone number. Please try again later.",
                cause=str(exc),
            ) from exc

    def _build_record(
        self,
        *,
        account_token: str,
        display_name: str,
        contact_phone: str | None,
        site_identifier: str,
        subaccount: Subaccount,
        number: ProvisionedNumber,
    ) -> AccountRecord:
        now = self._clock()
        return AccountRecord(
            account_token=account_token,
            display_name=display_name,
            contact_phone=contact_phone,
            site_identifier=site_identifier,
            provisioned_number=number.number,
            telephony_subaccount_id=subaccount.id,
            telephony_subaccount_secret=subaccount.secret,
            billing_period_start=now,
            billing_period_end=now + self._billing_period,
            created_at=now,
            updated_at=now,
            status=AccountStatus.active,
            calls_limit=self._calls_limit,
            training_limit=self._training_limit,
        )

    def _persist(self, record: AccountRecord) -> None:
        try:
            self._store.insert(record.account_token, record)
        except SiteAlreadyRegisteredError as exc:
            # lost the race against a concurrent registration for the same site
            winner = self._lookup_quietly(record.site_identifier)
            if winner is None:
                raise errors.PersistenceError(
                    "Database error",
                    details="Failed to store customer data. Please try again later.",
                    cause=str(exc),
                ) from exc
            raise self._conflict(winner) from exc
        except StoreError as exc:
            raise errors.PersistenceError(
                "Database error",
                details="Failed to store customer data. Please try again later.",
                cause=str(exc),
            ) from exc

    def _lookup_quietly(self, site_identifier: str | None) -> AccountRecord | None:
        if not site_identifier:
            return None
        try:
            return self._store.find_by_site_identifier(site_identifier)
        except StoreError:
            logger.warning("could not read the registration that won site %s", site_identifier)
            return None

    @staticmethod
    def _conflict(existing: AccountRecord) -> errors.ConflictError:
        return errors.ConflictError(
            "Site already registered",
            account_token=existing.account_token,
            provisioned_number=existing.provisioned_number,
        )
