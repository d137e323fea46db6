"""Datetime utilities for timezone-aware operations."""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Return current UTC time with timezone info.

    Replacement for the deprecated ``datetime.utcnow()``; the returned
    datetime is always timezone-aware.
    """
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Return the current calendar date in UTC."""
    return utcnow().date()
