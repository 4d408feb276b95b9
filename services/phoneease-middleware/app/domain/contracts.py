"""Domain-level request/response contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class RegisterAccountInput:
    """Raw registration inputs; validated by the registration service."""

    display_name: str | None
    site_identifier: str | None
    contact_phone: str | None = None


@dataclass(slots=True)
class RegistrationResult:
    """Identifiers handed back to the caller after a successful registration."""

    account_token: str
    provisioned_number: str
    subaccount_id: str
