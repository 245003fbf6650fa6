from __future__ import annotations

import math
from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MONTH_LABELS = ("Jan", "Fév", "Mar", "Avr", "Mai", "Juin", "Juil", "Août", "Sep", "Oct", "Nov", "Déc")

# Milestones further out than this keep a flat progress value.
PROGRESS_HORIZON_DAYS = 30
FAR_MILESTONE_PROGRESS = 10

# Due dates this far out or more are phrased in months rather than weeks.
MONTH_LABEL_CUTOFF_DAYS = 30


def coerce_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def normalize_datetime(dt: datetime, tz: tzinfo) -> datetime:
    """Express ``dt`` in ``tz``; naive values are UTC wall-clock times (SQLite drops the offset)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def as_local_datetime(value: Any, tz: tzinfo) -> Optional[datetime]:
    """
    Coerce a column value (datetime, date or ISO string) to an aware datetime in ``tz``.

    Timestamps without an offset are read as UTC. Plain dates, including
    date-only strings, are read as local midnight. Returns ``None`` for empty
    or unparseable values.
    """

    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value) if len(value) == 10 else datetime.fromisoformat(value)
        except ValueError:
            return None
    if isinstance(value, datetime):
        return normalize_datetime(value, tz)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=tz)
    return None


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"


def format_time_ago(moment: datetime, now: datetime) -> str:
    seconds = int((now - moment).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"Il y a {_plural(days, 'jour')}"
    if hours > 0:
        return f"Il y a {_plural(hours, 'heure')}"
    if minutes > 0:
        return f"Il y a {_plural(minutes, 'minute')}"
    return "À l'instant"


def days_between(today: date, target: date) -> int:
    return (target - today).days


def format_days_until(days: int) -> str:
    if days < 0:
        return "En retard"
    if days == 0:
        return "Aujourd'hui"
    if days == 1:
        return "Demain"
    if days < 7:
        return f"Dans {days} jours"
    if days < MONTH_LABEL_CUTOFF_DAYS:
        return f"Dans {_plural(math.ceil(days / 7), 'semaine')}"
    return f"Dans {math.ceil(days / 30)} mois"


def milestone_progress(days_until: int) -> int:
    """
    Synthetic completion shown next to an upcoming milestone.

    100 once due, a linear ramp over the last 30 days, and a flat 10 before
    that.
    """

    if days_until <= 0:
        return 100
    if days_until > PROGRESS_HORIZON_DAYS:
        return FAR_MILESTONE_PROGRESS
    return 100 - round(days_until / PROGRESS_HORIZON_DAYS * 100)
