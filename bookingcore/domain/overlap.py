"""
Interval overlap primitive shared by conflict detection and slot occupancy.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from .models import Appointment


def overlaps(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """
    Check whether two half-open intervals ``[start, end)`` intersect.

    Back-to-back intervals (one ends exactly when the other begins) do not
    overlap.
    """
    return a_start < b_end and b_start < a_end


def find_conflict(
    start: datetime,
    end: datetime,
    appointments: Iterable["Appointment"],
    exclude_appointment_id: Optional[str] = None,
) -> Optional["Appointment"]:
    """
    Return the first active appointment overlapping ``[start, end)``.

    Cancelled and no-show appointments never block, and the appointment
    with ``exclude_appointment_id`` is skipped so a reschedule does not
    collide with its own current record.
    """
    for appointment in appointments:
        if not appointment.is_active():
            continue
        if exclude_appointment_id is not None and appointment.id == exclude_appointment_id:
            continue
        if overlaps(start, end, appointment.start, appointment.end):
            return appointment
    return None
