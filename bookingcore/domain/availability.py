"""
Resolve a tenant's effective opening window for a calendar date.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

from .models import CalendarConfig, TimeRange, weekday_of

SOURCE_EXCEPTION = "exception"
SOURCE_WEEKLY = "weekly"


@dataclass(frozen=True)
class ResolvedDay:
    """
    Effective opening hours for one date.

    ``source`` tells whether a date exception or the weekly default decided
    the outcome; ``reason`` carries the exception's reason text, if any.
    """
    day: date
    is_open: bool
    source: str
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    reason: Optional[str] = None

    def window(self) -> TimeRange | None:
        """
        Get the opening window as datetimes on ``day``.
        Returns None if the day is closed.
        """
        if not self.is_open:
            return None
        return TimeRange(
            start=datetime.combine(self.day, self.open_time),
            end=datetime.combine(self.day, self.close_time),
        )


def resolve_day(config: CalendarConfig, day: date) -> ResolvedDay:
    """
    Determine whether the tenant is open on ``day`` and during which hours.

    A date exception wins entirely, including when it closes a weekday that
    is normally open. Without one, the weekly entry for ``weekday_of(day)``
    (0=Sunday) applies. No entry at all means closed.
    """
    if isinstance(day, datetime):
        day = day.date()

    exception = config.exceptions.get(day)
    if exception is not None:
        if not exception.is_open:
            return ResolvedDay(day=day, is_open=False, source=SOURCE_EXCEPTION, reason=exception.reason)
        return ResolvedDay(
            day=day,
            is_open=True,
            source=SOURCE_EXCEPTION,
            open_time=exception.open_time,
            close_time=exception.close_time,
            reason=exception.reason,
        )

    weekly = config.weekly_hours.get(weekday_of(day))
    if weekly is None or not weekly.is_open:
        return ResolvedDay(day=day, is_open=False, source=SOURCE_WEEKLY)

    return ResolvedDay(
        day=day,
        is_open=True,
        source=SOURCE_WEEKLY,
        open_time=weekly.open_time,
        close_time=weekly.close_time,
    )
