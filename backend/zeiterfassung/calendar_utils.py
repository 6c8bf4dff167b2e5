from __future__ import annotations

import datetime as dt
from typing import Any, Optional, Tuple

UTC = dt.timezone.utc


def to_date(value: Any) -> dt.date:
    """Coerce a date, datetime, ISO string or epoch milliseconds to a UTC calendar day.

    Naive datetimes are taken as UTC. Strings longer than a date (timestamps)
    are cut to their first ten characters. Unparseable input raises
    ``ValueError``.
    """
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, (int, float)):
        return dt.datetime.fromtimestamp(value / 1000, tz=UTC).date()
    text = str(value).strip()
    if len(text) > 10 and ("T" in text or " " in text):
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
        return to_date(parsed)
    return dt.date.fromisoformat(text[:10])


def day_key(value: Any) -> str:
    return to_date(value).isoformat()


def iso_week(value: Any) -> Tuple[int, int]:
    """Return ``(year, week)`` of the ISO-8601 week containing the day.

    The year is the year of the week's Thursday, so 2024-12-31 belongs to
    week 1 of 2025 and 2021-01-01 to week 53 of 2020.
    """
    year, week, _ = to_date(value).isocalendar()
    return year, week


def week_label(value: Any) -> str:
    year, week = iso_week(value)
    return f"KW {week:02d}/{year}"


def minutes_to_hhmm(minutes: int) -> str:
    hours, rest = divmod(int(minutes), 60)
    return f"{hours:02d}:{rest:02d}"


def format_date_de(value: Any) -> str:
    return to_date(value).strftime("%d.%m.%Y")


def period_label(start: Optional[Any], end: Optional[Any]) -> Optional[str]:
    if start is None and end is None:
        return None
    if start is None or end is None:
        return format_date_de(start if start is not None else end)
    return f"{format_date_de(start)} – {format_date_de(end)}"
