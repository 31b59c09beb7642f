# Overview: UTC clock and datetime normalization shared by services and serializers.

"""
All datetimes handled in Python are naive UTC. Columns are declared
DateTime(timezone=True): SQLite hands back naive values, PostgreSQL hands
back aware ones, so anything read from a row goes through as_utc_naive()
before it is compared with utcnow().
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Aware -> converted to UTC and stripped; naive is assumed UTC already."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a client-supplied ISO-8601 string into naive UTC.

    "" and None give None. A bare date means midnight UTC; an offset or a
    trailing "Z" is converted. Raises ValueError on anything else.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if len(text) == 10:
        return datetime.combine(date.fromisoformat(text), time.min)
    return as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as "YYYY-MM-DDTHH:MM:SSZ" (second precision)."""
    dt = as_utc_naive(dt)
    if dt is None:
        return None
    return dt.replace(microsecond=0).isoformat() + "Z"
