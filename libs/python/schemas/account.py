"""Account-related DTOs shared across services."""

from __future__ import annotations

from enum import Enum
from pydantic import BaseModel


class AccountStatus(str, Enum):
    active = "active"
    suspended = "suspended"
    cancelled = "cancelled"


class BusinessInfo(BaseModel):
    """Business profile forwarded by the site plugin with every AI request."""

    business_name: str
    business_hours: str | None = None
    business_description: str | None = None
    services: str | None = None
