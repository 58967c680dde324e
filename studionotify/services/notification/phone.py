"""Recipient phone normalization for the WhatsApp gateway."""

import re

from studionotify.common.config import settings

_NON_DIGITS = re.compile(r"\D")


class InvalidPhoneNumber(ValueError):
    def __init__(self, raw: str, normalized: str) -> None:
        super().__init__(f"invalid phone number {raw!r} (normalized {normalized!r})")
        self.raw = raw
        self.normalized = normalized


def normalize_phone(
    raw: str,
    country_prefix: str | None = None,
    min_digits: int | None = None,
    max_digits: int | None = None,
) -> str:
    """Return digits-only `raw` with the country prefix, or raise InvalidPhoneNumber."""

    country_prefix = settings.phone_country_prefix if country_prefix is None else country_prefix
    min_digits = settings.phone_min_digits if min_digits is None else min_digits
    max_digits = settings.phone_max_digits if max_digits is None else max_digits

    digits = _NON_DIGITS.sub("", raw or "")
    if not digits.startswith(country_prefix):
        digits = country_prefix + digits
    if not min_digits <= len(digits) <= max_digits:
        raise InvalidPhoneNumber(raw, digits)
    return digits
