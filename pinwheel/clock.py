"""
Draw window calculation
The one place the 20:00 UTC boundary is applied
"""

from datetime import date, datetime, time, timedelta, timezone

from .config import DRAW_HOUR_UTC


class Clock:
    """Source of the current time. Swap for a fixed clock in tests."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        # Naive timestamps are treated as UTC
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def window_for_timestamp(ts: datetime) -> date:
    """
    Get the draw date an entry made at `ts` counts toward

    Before 20:00 UTC: today's draw
    At or after 20:00 UTC: tomorrow's draw
    """
    ts = _as_utc(ts)
    if ts.hour >= DRAW_HOUR_UTC:
        return (ts + timedelta(days=1)).date()
    return ts.date()


def next_draw_time(ts: datetime) -> datetime:
    """20:00 UTC on the date of the window that is open at `ts`"""
    window = window_for_timestamp(ts)
    return datetime.combine(window, time(hour=DRAW_HOUR_UTC), tzinfo=timezone.utc)


def ms_until_next_draw(ts: datetime) -> int:
    delta = next_draw_time(ts) - _as_utc(ts)
    return max(0, int(delta.total_seconds() * 1000))


def draw_window_for(ts: datetime) -> date:
    """
    Get the window a draw triggered at `ts` closes

    The scheduled draw fires at 20:00 UTC, the moment entries roll over to
    tomorrow, so the window being drawn is the trigger's own UTC date.
    """
    return _as_utc(ts).date()


def parse_window(value) -> date:
    """Accept a date, datetime, or ISO 'YYYY-MM-DD' string"""
    if isinstance(value, datetime):
        return _as_utc(value).date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid draw window: {value!r} (expected YYYY-MM-DD)")
