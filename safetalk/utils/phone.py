"""
Phone number normalization - canonical "+<digits>" form.
Handles parentheses, dashes, dots, spaces and a missing country code.

Normalization never raises. Garbage in produces a best-effort canonical
string, so callers MUST check is_valid_phone() before trusting the value.
"""
import re

_DIGITS_ONLY = re.compile(r"\D")

DEFAULT_COUNTRY_CODE = "1"
MIN_DIGITS = 7
MAX_DIGITS = 15


def normalize_phone(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Normalize a phone number to canonical form.

    - (555) 123-4567 → +15551234567
    - 555.123.4567   → +15551234567
    - 5551234567     → +15551234567
    - +15551234567   → +15551234567
    - 1-555-123-4567 → +15551234567
    - +44 20 7946 0958 → +442079460958
    """
    digits = _DIGITS_ONLY.sub("", raw or "")

    if len(digits) == 10:
        return f"+{country_code}{digits}"
    return f"+{digits}"


def is_valid_phone(canonical: str) -> bool:
    """Valid when the digit count (plus sign excluded) is 7-15 inclusive."""
    if not canonical:
        return False
    digits = _DIGITS_ONLY.sub("", canonical)
    return MIN_DIGITS <= len(digits) <= MAX_DIGITS


def mask_phone(phone: str) -> str:
    """Mask phone for logging - show first 6 characters + ***."""
    if phone and len(phone) > 6:
        return phone[:6] + "***"
    return phone or ""
