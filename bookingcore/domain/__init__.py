"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import ResolvedDay, resolve_day
from .exceptions import (
    AppointmentNotFoundError,
    BookingConflictError,
    BookingError,
    ConfigNotFoundError,
    InvalidTransitionError,
    MalformedInputError,
)
from .lifecycle import can_transition, reschedule, transition
from .models import (
    Appointment,
    AppointmentPage,
    AppointmentStatus,
    BookingPolicy,
    CalendarConfig,
    DateException,
    Slot,
    TimeRange,
    WeeklyHours,
    day_name,
    default_weekly_hours,
    weekday_of,
)
from .overlap import overlaps
from .slot_generator import SlotGenerator, generate_slots, weekly_availability
from .validation import Accepted, BookingValidator, Rejected, RejectionReason, validate_booking

__all__ = [
    "Accepted",
    "Appointment",
    "AppointmentPage",
    "AppointmentNotFoundError",
    "AppointmentStatus",
    "BookingConflictError",
    "BookingError",
    "BookingPolicy",
    "BookingValidator",
    "CalendarConfig",
    "ConfigNotFoundError",
    "DateException",
    "InvalidTransitionError",
    "MalformedInputError",
    "Rejected",
    "RejectionReason",
    "ResolvedDay",
    "Slot",
    "SlotGenerator",
    "TimeRange",
    "WeeklyHours",
    "can_transition",
    "day_name",
    "default_weekly_hours",
    "generate_slots",
    "overlaps",
    "reschedule",
    "resolve_day",
    "transition",
    "validate_booking",
    "weekday_of",
    "weekly_availability",
]
