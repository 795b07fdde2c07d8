"""Shared parsing utilities for partner payloads.

Centralises the date/time and number handling that FHIR records need:
ISO 8601 strings in several shapes, timezone normalisation, and rendering
numeric quantities the way they appear in the source JSON.
"""

from datetime import date, datetime, timezone


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO 8601 string (or date/datetime object) to a UTC-aware datetime.

    Handles the shapes FHIR ``dateTime``/``instant`` values take:
    - Z suffix ("2024-01-15T10:30:00Z")
    - +0000 no-colon offset ("2024-01-15T10:30:00+0000")
    - Standard ISO with colon offset ("2024-06-28T18:42:46-07:00")
    - Date-only strings ("2024-06-28")
    - Year-month strings ("2024-06"), anchored to the first of the month
    - datetime/date objects passed through with UTC normalisation

    Args:
        value: A string, date, datetime, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return date_to_datetime(value)

    value_str = str(value).strip()

    # Handle Z suffix: "2024-01-15T10:30:00Z" -> "2024-01-15T10:30:00+00:00"
    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"

    # Handle "+0000" no-colon tz: "...+0000" -> "...+00:00"
    if (
        len(value_str) >= 5
        and "T" in value_str
        and value_str[-5] in ("+", "-")
        and value_str[-4:].isdigit()
    ):
        value_str = value_str[:-2] + ":" + value_str[-2:]

    try:
        dt = datetime.fromisoformat(value_str)
        return ensure_utc(dt).astimezone(timezone.utc)
    except (ValueError, TypeError, OverflowError):
        # OverflowError: valid ISO, but the UTC shift leaves datetime's range
        pass

    # FHIR allows partial dates: "2024" and "2024-06"
    parts = value_str.split("-")
    if len(parts) in (1, 2) and all(p.isdigit() for p in parts):
        try:
            year = int(parts[0])
            month = int(parts[1]) if len(parts) == 2 else 1
            return datetime(year, month, 1, tzinfo=timezone.utc)
        except ValueError:
            return None
    return None


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC).

    If the datetime is naive, attach UTC; otherwise return as-is.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_naive_utc(dt: datetime | None) -> datetime | None:
    """Convert to a naive UTC datetime for storage in ``DateTime`` columns."""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(timezone.utc).replace(tzinfo=None)


def date_to_datetime(d: date) -> datetime:
    """Convert a date to a midnight-UTC datetime."""
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)


def format_number(value: float | int | str) -> str:
    """Render a JSON number without a spurious ``.0`` on integral values.

    ``180`` and ``180.0`` both render as ``"180"``; ``72.5`` stays ``"72.5"``.
    Strings (e.g. ``"<5"``) are returned unchanged.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
