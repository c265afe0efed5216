"""
Enumerate fixed-length booking slots inside a resolved opening window.

Pure domain logic: the caller supplies the resolved day and the existing
appointments, nothing is fetched here.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List

import pendulum

from .availability import ResolvedDay, resolve_day
from .exceptions import MalformedInputError
from .models import Appointment, CalendarConfig, Slot, day_name, weekday_of
from .overlap import overlaps

OCCUPIED = "occupied"


@dataclass
class DayAvailability:
    """Slots for one date of a multi-day summary."""
    date: date
    day_name: str
    slots: List[Slot] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "day_name": self.day_name,
            "slots": [slot.to_dict() for slot in self.slots],
        }


class SlotGenerator:
    """
    Generates candidate slots for a day.

    Algorithm:
    1. Start a cursor at the opening time
    2. While cursor + duration fits before closing, emit a slot at cursor
    3. Mark the slot unavailable if any active appointment overlaps it
    4. Advance the cursor by duration + buffer, whether or not the slot
       was available
    """

    def __init__(self, duration_minutes: int, buffer_minutes: int = 0):
        if duration_minutes <= 0:
            raise MalformedInputError(f"duration_minutes must be positive, got {duration_minutes}")
        if buffer_minutes < 0:
            raise MalformedInputError(f"buffer_minutes cannot be negative, got {buffer_minutes}")
        self.duration = timedelta(minutes=duration_minutes)
        self.step = timedelta(minutes=duration_minutes + buffer_minutes)

    def generate(self, resolved: ResolvedDay, existing_appointments: Iterable[Appointment]) -> List[Slot]:
        """
        Produce the ordered slot list for a resolved day.

        A closed day yields an empty list, never an error.
        """
        window = resolved.window()
        if window is None:
            return []

        occupied = [appointment for appointment in existing_appointments if appointment.is_active()]

        slots: List[Slot] = []
        cursor = window.start

        while cursor + self.duration <= window.end:
            slot_end = cursor + self.duration
            is_occupied = any(
                overlaps(cursor, slot_end, appointment.start, appointment.end)
                for appointment in occupied
            )
            slots.append(
                Slot(
                    start=cursor,
                    end=slot_end,
                    available=not is_occupied,
                    reason=OCCUPIED if is_occupied else None,
                )
            )
            cursor += self.step

        return slots


def generate_slots(
    resolved: ResolvedDay,
    duration_minutes: int,
    buffer_minutes: int,
    existing_appointments: Iterable[Appointment],
) -> List[Slot]:
    """Convenience wrapper around ``SlotGenerator``."""
    generator = SlotGenerator(duration_minutes=duration_minutes, buffer_minutes=buffer_minutes)
    return generator.generate(resolved, existing_appointments)


def weekly_availability(
    config: CalendarConfig,
    start_day: date,
    existing_appointments: Iterable[Appointment],
    days: int = 7,
) -> List[DayAvailability]:
    """
    Build a per-day slot summary starting at ``start_day``.

    Uses the tenant policy's default duration and buffer. Appointments of
    other tenants are ignored.
    """
    if days <= 0:
        raise MalformedInputError(f"days must be positive, got {days}")

    generator = SlotGenerator(
        duration_minutes=config.policy.default_duration_minutes,
        buffer_minutes=config.policy.buffer_minutes,
    )
    appointments = [
        appointment for appointment in existing_appointments
        if appointment.tenant_id == config.tenant_id
    ]

    first = pendulum.date(start_day.year, start_day.month, start_day.day)
    summary: List[DayAvailability] = []
    for offset in range(days):
        current = first.add(days=offset)
        resolved = resolve_day(config, current)
        summary.append(
            DayAvailability(
                date=current,
                day_name=day_name(weekday_of(current)),
                slots=generator.generate(resolved, appointments),
            )
        )
    return summary
