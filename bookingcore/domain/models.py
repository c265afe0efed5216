"""
Domain models for tenant calendars, appointments and slots.

All datetimes are naive local time; time-of-day values are ``datetime.time``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional
import uuid

from .exceptions import ConfigNotFoundError, MalformedInputError
from .overlap import overlaps


DURATION_MIN_MINUTES = 15
DURATION_MAX_MINUTES = 480
BUFFER_MAX_MINUTES = 60
MAX_ADVANCE_DAYS_LIMIT = 365
MIN_ADVANCE_HOURS_LIMIT = 168
NOTES_MAX_LENGTH = 500

# Weekday numbering: 0=Sunday, 1=Monday ... 6=Saturday
DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


def day_name(weekday: int) -> str:
    """Return the English name for a weekday number (0=Sunday)."""
    _check_weekday(weekday)
    return DAY_NAMES[weekday]


def weekday_of(day: date) -> int:
    """Weekday number of a date, counting from Sunday=0."""
    return (day.weekday() + 1) % 7


def _check_weekday(weekday: int) -> None:
    if not 0 <= weekday <= 6:
        raise MalformedInputError(f"Weekday must be between 0 and 6, got {weekday}")


def _check_open_window(is_open: bool, open_time: Optional[time], close_time: Optional[time], label: str) -> None:
    if not is_open:
        return
    if open_time is None or close_time is None:
        raise MalformedInputError(f"{label}: open days need both an opening and a closing time")
    if open_time >= close_time:
        raise MalformedInputError(
            f"{label}: opening time {open_time:%H:%M} must be before closing time {close_time:%H:%M}"
        )


class AppointmentStatus(str, Enum):
    """Lifecycle states of a booked appointment."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


INACTIVE_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW})


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise MalformedInputError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return overlaps(self.start, self.end, other.start, other.end)

    def __str__(self) -> str:
        return f"{self.start:%d.%m.%Y %H:%M} - {self.end:%H:%M}"


@dataclass(frozen=True)
class WeeklyHours:
    """Default opening hours for one weekday."""
    weekday: int
    is_open: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None

    def __post_init__(self):
        _check_weekday(self.weekday)
        _check_open_window(self.is_open, self.open_time, self.close_time, day_name(self.weekday))

    @classmethod
    def closed(cls, weekday: int) -> "WeeklyHours":
        return cls(weekday=weekday, is_open=False)


@dataclass(frozen=True)
class DateException:
    """One-off override ("special hours") for a calendar date."""
    date: date
    is_open: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    reason: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        _check_open_window(self.is_open, self.open_time, self.close_time, self.date.isoformat())


@dataclass(frozen=True)
class BookingPolicy:
    """Per-tenant booking rules."""
    default_duration_minutes: int = 30
    buffer_minutes: int = 5
    max_advance_booking_days: int = 30
    min_advance_booking_hours: float = 2
    allow_same_day_booking: bool = True

    def __post_init__(self):
        if not DURATION_MIN_MINUTES <= self.default_duration_minutes <= DURATION_MAX_MINUTES:
            raise MalformedInputError(
                f"default_duration_minutes must be between {DURATION_MIN_MINUTES} and "
                f"{DURATION_MAX_MINUTES}, got {self.default_duration_minutes}"
            )
        if not 0 <= self.buffer_minutes <= BUFFER_MAX_MINUTES:
            raise MalformedInputError(
                f"buffer_minutes must be between 0 and {BUFFER_MAX_MINUTES}, got {self.buffer_minutes}"
            )
        if not 1 <= self.max_advance_booking_days <= MAX_ADVANCE_DAYS_LIMIT:
            raise MalformedInputError(
                f"max_advance_booking_days must be between 1 and {MAX_ADVANCE_DAYS_LIMIT}, "
                f"got {self.max_advance_booking_days}"
            )
        if not 0 <= self.min_advance_booking_hours <= MIN_ADVANCE_HOURS_LIMIT:
            raise MalformedInputError(
                f"min_advance_booking_hours must be between 0 and {MIN_ADVANCE_HOURS_LIMIT}, "
                f"got {self.min_advance_booking_hours}"
            )

    @classmethod
    def defaults(cls) -> "BookingPolicy":
        """Policy seeded for a tenant that asks for the defaults."""
        return cls()


def default_weekly_hours() -> List[WeeklyHours]:
    """Monday to Friday 09:00-18:00, weekend closed."""
    hours = [
        WeeklyHours(weekday=day, is_open=True, open_time=time(9, 0), close_time=time(18, 0))
        for day in range(1, 6)
    ]
    hours.extend(WeeklyHours.closed(day) for day in (6, 0))
    return hours


@dataclass(frozen=True)
class CalendarConfig:
    """
    Snapshot of a tenant's weekly hours, date exceptions and booking policy.

    Built once per request by the caller; the engine never mutates it.
    """
    tenant_id: str
    policy: BookingPolicy
    weekly_hours: Mapping[int, WeeklyHours] = field(default_factory=dict)
    exceptions: Mapping[date, DateException] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        tenant_id: str,
        policy: Optional[BookingPolicy],
        weekly_hours: Iterable[WeeklyHours] = (),
        exceptions: Iterable[DateException] = (),
    ) -> "CalendarConfig":
        """
        Assemble a config from raw entries, enforcing uniqueness.

        Raises:
            ConfigNotFoundError: If ``policy`` is None
            MalformedInputError: On duplicate weekdays or dates
        """
        if policy is None:
            raise ConfigNotFoundError(tenant_id)

        by_weekday: Dict[int, WeeklyHours] = {}
        for entry in weekly_hours:
            if entry.weekday in by_weekday:
                raise MalformedInputError(f"Duplicate weekly hours for weekday {entry.weekday}")
            by_weekday[entry.weekday] = entry

        by_date: Dict[date, DateException] = {}
        for exception in exceptions:
            if exception.date in by_date:
                raise MalformedInputError(f"Duplicate date exception for {exception.date.isoformat()}")
            by_date[exception.date] = exception

        return cls(tenant_id=tenant_id, policy=policy, weekly_hours=by_weekday, exceptions=by_date)


@dataclass(frozen=True)
class Appointment:
    """
    A booked appointment.

    Invariant: end is after start. Status only changes through
    ``lifecycle.transition``.
    """
    id: str
    tenant_id: str
    start: datetime
    end: datetime
    duration_minutes: int
    status: AppointmentStatus = AppointmentStatus.PENDING
    client_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None

    def __post_init__(self):
        if self.end <= self.start:
            raise MalformedInputError(f"Appointment end {self.end} must be after start {self.start}")
        if self.duration_minutes <= 0:
            raise MalformedInputError(f"duration_minutes must be positive, got {self.duration_minutes}")
        if self.notes is not None and len(self.notes) > NOTES_MAX_LENGTH:
            raise MalformedInputError(f"notes cannot exceed {NOTES_MAX_LENGTH} characters")

    @classmethod
    def book(
        cls,
        tenant_id: str,
        start: datetime,
        duration_minutes: int,
        client_id: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
        appointment_id: Optional[str] = None,
    ) -> "Appointment":
        """Create a new appointment in its initial PENDING state."""
        return cls(
            id=appointment_id or uuid.uuid4().hex,
            tenant_id=tenant_id,
            start=start,
            end=start + timedelta(minutes=duration_minutes),
            duration_minutes=duration_minutes,
            status=AppointmentStatus.PENDING,
            client_id=client_id,
            notes=notes,
            created_by=created_by,
        )

    def is_active(self) -> bool:
        """Cancelled and no-show appointments do not occupy the calendar."""
        return self.status not in INACTIVE_STATUSES

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


@dataclass(frozen=True)
class Slot:
    """
    A candidate bookable interval within an open window.
    """
    start: datetime
    end: datetime
    available: bool
    reason: Optional[str] = None

    @property
    def time(self) -> str:
        """Start time formatted as HH:MM."""
        return f"{self.start:%H:%M}"

    def to_dict(self) -> dict:
        """Serializable form for API clients."""
        data = {"time": self.time, "available": self.available}
        if self.reason is not None:
            data["reason"] = self.reason
        return data


@dataclass(frozen=True)
class AppointmentPage:
    """One page of an appointment listing."""
    appointments: List[Appointment]
    total: int
    pages: int
    page: int
    limit: int
