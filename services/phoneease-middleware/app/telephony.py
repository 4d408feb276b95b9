"""Twilio provisioning client: sub-accounts and locality-matched phone numbers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlencode

from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 5
SEARCH_COUNTRY = "US"
_LOCALITY = re.compile(r"[0-9]{3}")


class TelephonyError(Exception):
    """Raised when the telephony provider rejects or fails a request."""


class NoNumbersAvailableError(TelephonyError):
    """Neither the requested locality nor the nationwide inventory had a number."""

    def __init__(self, locality: str | None) -> None:
        super().__init__("No phone numbers available for provisioning")
        self.locality = locality


@dataclass(slots=True, frozen=True)
class Subaccount:
    id: str
    secret: str


@dataclass(slots=True, frozen=True)
class ProvisionedNumber:
    number: str
    number_id: str


def build_twilio_client(account_sid: str, auth_token: str, *, timeout_seconds: float) -> Client:
    """Create a master-account Twilio client whose HTTP calls are bounded by ``timeout_seconds``."""
    return Client(account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout_seconds))


class TwilioProvisioningClient:
    """Provision isolated sub-accounts and numbers using master credentials.

    The client holds no per-request state, so one instance is shared by every
    in-flight registration.
    """

    def __init__(
        self,
        client: Client,
        *,
        webhook_base_url: str,
        fallback_locality: str,
    ) -> None:
        if not _LOCALITY.fullmatch(fallback_locality or ""):
            raise ValueError(f"fallback locality must be a 3-digit area code, got {fallback_locality!r}")
        self._client = client
        self._webhook_base_url = webhook_base_url.rstrip("/")
        self._fallback_locality = fallback_locality

    def create_subaccount(self, name: str) -> Subaccount:
        """Create a sub-account named after the business."""
        logger.info("creating telephony sub-account for %s", name)
        try:
            account = self._client.api.v2010.accounts.create(friendly_name=name)
        except (TwilioException, OSError) as exc:
            logger.error("sub-account creation failed for %s: %s", name, exc)
            raise TelephonyError(f"Failed to create sub-account: {exc}") from exc
        logger.info("created telephony sub-account %s", account.sid)
        return Subaccount(id=account.sid, secret=account.auth_token)

    def provision_number(
        self,
        subaccount_id: str,
        site_identifier: str | None,
        locality: str | None = None,
    ) -> ProvisionedNumber:
        """Buy the first available local number, preferring ``locality``.

        Falls back to a nationwide search when the locality has no inventory and
        raises :class:`NoNumbersAvailableError` when that is empty too.
        """
        target = locality or self._fallback_locality
        try:
            candidates = self._search(area_code=target)
            if not candidates:
                logger.info("no numbers in locality %s, searching nationwide", target)
                candidates = self._search()
            if not candidates:
                raise NoNumbersAvailableError(target)

            selected = candidates[0].phone_number
            logger.info("selected number %s for sub-account %s", selected, subaccount_id)

            purchased = self._client.api.v2010.accounts(subaccount_id).incoming_phone_numbers.create(
                phone_number=selected,
                voice_url=self._webhook_url("voice", site_identifier),
                voice_method="POST",
                sms_url=self._webhook_url("sms", site_identifier),
                sms_method="POST",
                friendly_name=f"PhoneEase - {subaccount_id}",
            )
        except NoNumbersAvailableError:
            raise
        except (TwilioException, OSError) as exc:
            logger.error("number provisioning failed for %s: %s", subaccount_id, exc)
            raise TelephonyError(f"Failed to provision phone number: {exc}") from exc

        logger.info("provisioned %s (%s)", purchased.phone_number, purchased.sid)
        return ProvisionedNumber(number=purchased.phone_number, number_id=purchased.sid)

    def close_subaccount(self, subaccount_id: str) -> bool:
        """Close a sub-account; returns ``False`` instead of raising on failure."""
        logger.info("closing telephony sub-account %s", subaccount_id)
        try:
            self._client.api.v2010.accounts(subaccount_id).update(status="closed")
        except (TwilioException, OSError) as exc:
            logger.error("failed to close sub-account %s: %s", subaccount_id, exc)
            return False
        return True

    def _search(self, area_code: str | None = None) -> list:
        params: dict = {"limit": SEARCH_PAGE_SIZE}
        if area_code:
            params["area_code"] = int(area_code)
        return self._client.available_phone_numbers(SEARCH_COUNTRY).local.list(**params)

    def _webhook_url(self, kind: str, site_identifier: str | None) -> str:
        url = f"{self._webhook_base_url}/api/v1/webhooks/twilio/{kind}"
        if site_identifier:
            url = f"{url}?{urlencode({'site': site_identifier})}"
        return url
