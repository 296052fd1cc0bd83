"""Utility helpers for Rallypoint."""

from __future__ import annotations

from datetime import UTC, date, datetime, time
import re
import unicodedata

_field_name_invalid = re.compile(r"[^a-z0-9]+")


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _ascii_lower(value: str) -> str:
    return (
        unicodedata.normalize("NFKD", value or "")
        .encode("ascii", "ignore")
        .decode("ascii")
        .strip()
        .lower()
    )


def field_name_from_label(label: str) -> str:
    """Return an identifier-style name (``skill_level``) for a field label."""
    value = _ascii_lower(label)
    value = _field_name_invalid.sub("_", value)
    return value.strip("_")


def is_blank(value: str | None) -> bool:
    return not (value or "").strip()
