# =============================================================================
# 🕒 utils/timeutils.py
# -----------------------------------------------------------------------------
# UTC-Helfer: SQLite liefert naive datetimes zurück, wir rechnen immer aware.
# =============================================================================

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Gibt aktuelle UTC-Zeit (timezone-aware) zurück."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime) -> datetime:
    """Wochenbeginn = Montag 00:00."""
    return start_of_day(now) - timedelta(days=now.weekday())


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)
