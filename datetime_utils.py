from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


UTC = timezone.utc
ISO_DATE_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso_date(value: Optional[date]) -> str:
    """Serialize a date for API payloads (``YYYY-MM-DD``); ``None`` becomes ``""``."""

    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(ISO_DATE_FORMAT)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(str(value).strip(), ISO_DATE_FORMAT).date()
    except ValueError:
        return None


def parse_date_input(value: str | None) -> Optional[date]:
    """Parse ``DD.MM.YYYY``, ``DD/MM/YYYY`` or ISO ``YYYY-MM-DD`` form input."""

    if not value:
        return None
    text = value.strip()
    if not text:
        return None

    for fmt in ("%d.%m.%Y", "%d/%m/%Y", ISO_DATE_FORMAT):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def calculate_age(dob: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if dob is None:
        return None
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def parse_rfc3339(s: Optional[str]) -> Optional[datetime]:
    """Parse a RFC3339 string and return a timezone-aware UTC datetime."""

    if not s:
        return None
    value = s.strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    return ensure_utc(dt)


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    value = ensure_utc(dt)
    return value.replace(microsecond=0).isoformat().replace("+00:00", "Z")


__all__ = [
    "UTC",
    "calculate_age",
    "ensure_utc",
    "parse_date_input",
    "parse_iso_date",
    "parse_rfc3339",
    "to_iso_date",
    "to_rfc3339_utc",
    "utc_now",
]
