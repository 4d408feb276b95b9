"""Phone-number locality (area code) extraction used to bias number search."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"[^0-9]")


def extract_locality(phone: str | None) -> str | None:
    """Return the 3-digit locality prefix of a free-form US phone string.

    Everything but ASCII digits is stripped first, so ``+17863337300``, ``(786) 333-7300``,
    ``786-333-7300`` and ``7863337300`` all yield ``"786"``. Inputs with fewer
    than ten digits yield ``None`` and callers fall back to a default locality.
    """
    if not phone:
        return None

    digits = _NON_DIGITS.sub("", phone)
    if len(digits) < 10:
        logger.debug("could not extract locality from %r", phone)
        return None

    # 11 digits led by the country code: +1 (786) 333-7300
    if len(digits) == 11 and digits[0] == "1":
        return digits[1:4]
    return digits[:3]
