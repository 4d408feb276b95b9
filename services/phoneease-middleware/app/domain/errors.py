"""Failure taxonomy raised by domain workflows and mapped to HTTP by the API layer."""

from __future__ import annotations


class DomainError(Exception):
    """Base class for classified workflow failures.

    ``error`` is the client-safe summary; ``details`` holds the safe explanation
    and ``cause`` the raw text that is only exposed in development mode.
    """

    status_code = 500

    def __init__(self, error: str, *, details: str | None = None, cause: str | None = None) -> None:
        super().__init__(error)
        self.error = error
        self.details = details
        self.cause = cause


class ValidationError(DomainError):
    """Bad input; no side effects were attempted."""

    status_code = 400


class ConflictError(DomainError):
    """The site identifier already owns a provisioned account."""

    status_code = 409

    def __init__(self, error: str, *, account_token: str, provisioned_number: str | None) -> None:
        super().__init__(error)
        self.account_token = account_token
        self.provisioned_number = provisioned_number


class ProviderUnavailableError(DomainError):
    status_code = 503

    def __init__(
        self,
        error: str,
        *,
        details: str | None = None,
        cause: str | None = None,
        no_inventory: bool = False,
    ) -> None:
        super().__init__(error, details=details, cause=cause)
        self.no_inventory = no_inventory


class PersistenceError(DomainError):
    status_code = 500


class InternalError(DomainError):
    status_code = 500


class NotFoundError(DomainError):
    status_code = 404


class QuotaExceededError(DomainError):
    """A usage counter reached its paired limit."""

    status_code = 429

    def __init__(self, error: str, *, used: int, limit: int) -> None:
        super().__init__(error)
        self.used = used
        self.limit = limit
