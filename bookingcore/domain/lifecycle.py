"""
Appointment state model and the operations allowed on a booked appointment.
"""

import dataclasses
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from .exceptions import InvalidTransitionError
from .models import Appointment, AppointmentStatus, CalendarConfig
from .validation import BookingValidator, ValidationResult

INITIAL_STATUS = AppointmentStatus.PENDING

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
    AppointmentStatus.IN_PROGRESS: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.NO_SHOW: set(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def is_terminal(status: AppointmentStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Check whether ``current -> target`` is a defined lifecycle edge."""
    return target in ALLOWED_TRANSITIONS[current]


def transition(appointment: Appointment, target: AppointmentStatus) -> Appointment:
    """
    Move an appointment to ``target``.

    Status changes never re-run booking validation.

    Raises:
        InvalidTransitionError: If the edge is not part of the lifecycle
    """
    target = AppointmentStatus(target)
    if not can_transition(appointment.status, target):
        raise InvalidTransitionError(
            f"Cannot change appointment {appointment.id} from "
            f"{appointment.status.value} to {target.value}"
        )
    return dataclasses.replace(appointment, status=target)


def edit_details(appointment: Appointment, **changes) -> Appointment:
    """
    Update notes and/or client assignment without touching the time window.

    Only ``notes`` and ``client_id`` may be changed here.
    """
    unknown = set(changes) - {"notes", "client_id"}
    if unknown:
        raise TypeError(f"edit_details() got unexpected fields: {', '.join(sorted(unknown))}")
    return dataclasses.replace(appointment, **changes)


def reschedule(
    appointment: Appointment,
    config: CalendarConfig,
    existing_appointments: Iterable[Appointment],
    now: datetime,
    new_start: Optional[datetime] = None,
    duration_minutes: Optional[int] = None,
) -> Tuple[ValidationResult, Optional[Appointment]]:
    """
    Validate and apply a new time window for an appointment.

    The appointment's own current record is excluded from the conflict
    check. Returns the validation result and, when accepted, the updated
    appointment (None otherwise).

    Raises:
        InvalidTransitionError: If the appointment is in a terminal state
    """
    if is_terminal(appointment.status):
        raise InvalidTransitionError(
            f"Appointment {appointment.id} is {appointment.status.value} and cannot be rescheduled"
        )

    start = new_start or appointment.start
    duration = duration_minutes or appointment.duration_minutes
    end = start + timedelta(minutes=duration)

    result = BookingValidator(config).validate(
        existing_appointments=existing_appointments,
        proposed_start=start,
        proposed_end=end,
        now=now,
        exclude_appointment_id=appointment.id,
    )
    if not result.ok:
        return result, None

    updated = dataclasses.replace(appointment, start=start, end=end, duration_minutes=duration)
    return result, updated
