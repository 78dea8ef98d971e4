"""Shared parsing utilities for aggregator payloads.

Centralises the loose-value parsing every aggregator adapter and the account
materializer need: ISO 8601 timestamps, timezone normalisation and money
amounts that may arrive as strings, numbers or nested ``{"amount": ...}``
objects.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO 8601 string (or date/datetime object) to a UTC-aware datetime.

    Handles the formats aggregators produce:
    - Z suffix ("2024-01-15T10:30:00Z")
    - +0000 no-colon offset ("2024-01-15T10:30:00+0000")
    - Standard ISO with colon offset ("2024-06-28T18:42:46.123+02:00")
    - Date-only strings ("2024-06-28")
    - datetime/date objects passed through with UTC normalisation

    Args:
        value: A string, date, datetime, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    value_str = str(value).strip()
    if not value_str:
        return None

    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"

    if (
        len(value_str) >= 5
        and value_str[-5] in ("+", "-")
        and value_str[-4:].isdigit()
    ):
        value_str = value_str[:-2] + ":" + value_str[-2:]

    try:
        return ensure_utc(datetime.fromisoformat(value_str))
    except (ValueError, TypeError):
        pass

    try:
        d = date.fromisoformat(value_str)
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return None


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC).

    Naive values (SQLite hands those back) are assumed to be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_decimal(value) -> Decimal | None:
    """Parse a money amount into a Decimal.

    Accepts ints, floats, numeric strings and Enable Banking's
    ``{"amount": "12.34", "currency": "EUR"}`` wrapper. Booleans and
    non-finite values are rejected.

    Returns:
        The parsed Decimal, or None if the value is not a usable amount.
    """
    if isinstance(value, dict):
        value = value.get("amount")
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result
