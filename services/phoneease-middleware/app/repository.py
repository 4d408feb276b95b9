"""Database repository for customer account records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import psycopg
from psycopg import errors, sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from schemas import AccountStatus

from .domain.account import COUNTER_FIELDS, AccountRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "account_token",
    "display_name",
    "contact_phone",
    "site_identifier",
    "provisioned_number",
    "telephony_subaccount_id",
    "telephony_subaccount_secret",
    "billing_period_start",
    "billing_period_end",
    "created_at",
    "updated_at",
    "status",
    "calls_limit",
    "billable_calls_used",
    "filtered_calls",
    "spam_calls",
    "silent_calls",
    "test_calls",
    "total_calls",
    "training_limit",
    "training_used",
)

SITE_IDENTIFIER_CONSTRAINT = "accounts_site_identifier_key"

_SELECT_SQL = "SELECT {} FROM accounts".format(", ".join(_COLUMNS))


class StoreError(Exception):
    """Raised when the account store cannot complete an operation."""


class SiteAlreadyRegisteredError(StoreError):
    """Raised when an insert collides with the unique site identifier constraint."""

    def __init__(self, site_identifier: str | None) -> None:
        super().__init__(f"site {site_identifier!r} is already registered")
        self.site_identifier = site_identifier


def open_pool(database_url: str, *, timeout_seconds: float) -> ConnectionPool:
    """Create the shared pool with acquisition and per-statement timeouts."""
    statement_timeout_ms = int(timeout_seconds * 1000)
    return ConnectionPool(
        database_url,
        open=False,
        timeout=timeout_seconds,
        kwargs={
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={statement_timeout_ms}",
        },
    )


class AccountRepository:
    """Postgres-backed account persistence keyed by account token."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def find_by_token(self, token: str) -> AccountRecord | None:
        """Fetch the account owning ``token`` or return ``None``."""
        return self._fetch_one(f"{_SELECT_SQL} WHERE account_token = %s", (token,))

    def find_by_site_identifier(self, site_identifier: str) -> AccountRecord | None:
        """Fetch the account registered for ``site_identifier`` or return ``None``."""
        return self._fetch_one(f"{_SELECT_SQL} WHERE site_identifier = %s", (site_identifier,))

    def insert(self, token: str, record: AccountRecord) -> None:
        """Persist a fully built account record under ``token``."""
        values = self._to_row(record)
        values[0] = token
        query = "INSERT INTO accounts ({}) VALUES ({})".format(
            ", ".join(_COLUMNS), ", ".join(["%s"] * len(_COLUMNS))
        )
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, values)
                conn.commit()
        except errors.UniqueViolation as exc:
            if exc.diag.constraint_name == SITE_IDENTIFIER_CONSTRAINT:
                raise SiteAlreadyRegisteredError(record.site_identifier) from exc
            raise StoreError(f"account {token} already exists") from exc
        except psycopg.Error as exc:
            logger.error("failed to insert account %s: %s", token, exc)
            raise StoreError(str(exc)) from exc
        logger.info("stored account %s for %s", token, record.display_name)

    def increment_counter(self, token: str, field: str) -> None:
        """Atomically add one to a usage counter and refresh ``updated_at``."""
        if field not in COUNTER_FIELDS:
            raise ValueError(f"unknown counter field: {field}")
        query = sql.SQL(
            "UPDATE accounts SET {field} = {field} + 1, updated_at = %s WHERE account_token = %s"
        ).format(field=sql.Identifier(field))
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, (datetime.now(timezone.utc), token))
                    updated = cur.rowcount
                conn.commit()
        except psycopg.Error as exc:
            logger.error("failed to increment %s for %s: %s", field, token, exc)
            raise StoreError(str(exc)) from exc
        if updated == 0:
            raise StoreError(f"account {token} not found")

    def _fetch_one(self, query: str, params: tuple) -> AccountRecord | None:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
        except psycopg.Error as exc:
            logger.error("account lookup failed: %s", exc)
            raise StoreError(str(exc)) from exc
        if not row:
            return None
        return self._map_record(row)

    def _to_row(self, record: AccountRecord) -> list:
        row = [getattr(record, column) for column in _COLUMNS]
        row[_COLUMNS.index("status")] = record.status.value
        return row

    def _map_record(self, row: tuple) -> AccountRecord:
        """Convert a raw database tuple into the domain ``AccountRecord``."""
        data = dict(zip(_COLUMNS, row))
        data["status"] = AccountStatus(data["status"])
        return AccountRecord(**data)
