"""
Booking validation rule chain.

Rules run in a fixed order and the first failing rule decides the
rejection, so callers always get the same reason for the same input:

1. DAY_CLOSED
2. OUTSIDE_HOURS
3. TOO_SOON
4. TOO_FAR
5. SAME_DAY_DISALLOWED
6. CONFLICT

Rejections are returned as values, not raised.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union

from .availability import ResolvedDay, resolve_day
from .exceptions import MalformedInputError
from .models import Appointment, CalendarConfig
from .overlap import find_conflict


class RejectionReason(str, Enum):
    """Stable reason codes; callers localize the user-facing text."""

    DAY_CLOSED = "DAY_CLOSED"
    OUTSIDE_HOURS = "OUTSIDE_HOURS"
    TOO_SOON = "TOO_SOON"
    TOO_FAR = "TOO_FAR"
    SAME_DAY_DISALLOWED = "SAME_DAY_DISALLOWED"
    CONFLICT = "CONFLICT"


@dataclass(frozen=True)
class Accepted:
    """The proposed interval may be booked."""
    ok = True


@dataclass(frozen=True)
class Rejected:
    """The proposed interval violates one rule."""
    reason: RejectionReason
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    ok = False

    def to_dict(self) -> dict:
        return {"reason": self.reason.value, "message": self.message, "details": self.details}


ValidationResult = Union[Accepted, Rejected]


def validate_booking(
    config: CalendarConfig,
    existing_appointments: Iterable[Appointment],
    proposed_start: datetime,
    proposed_end: datetime,
    now: datetime,
    exclude_appointment_id: Optional[str] = None,
) -> ValidationResult:
    """Run the rule chain with the default validator."""
    return BookingValidator(config).validate(
        existing_appointments=existing_appointments,
        proposed_start=proposed_start,
        proposed_end=proposed_end,
        now=now,
        exclude_appointment_id=exclude_appointment_id,
    )


class BookingValidator:
    """
    Applies a tenant's calendar and policy to a proposed booking interval.

    Holds no state besides the config snapshot; every call is a pure
    function of its arguments.
    """

    def __init__(self, config: CalendarConfig):
        self.config = config

    def validate(
        self,
        existing_appointments: Iterable[Appointment],
        proposed_start: datetime,
        proposed_end: datetime,
        now: datetime,
        exclude_appointment_id: Optional[str] = None,
    ) -> ValidationResult:
        """
        Check a proposed interval against every booking rule.

        Args:
            existing_appointments: Appointments already committed for the tenant
            proposed_start: Start of the requested interval
            proposed_end: End of the requested interval (exclusive)
            now: Current time supplied by the caller
            exclude_appointment_id: Appointment to ignore in the conflict
                check, used when rescheduling

        Returns:
            ``Accepted`` or ``Rejected`` carrying the first failed rule

        Raises:
            MalformedInputError: If the interval is empty or inverted
        """
        if proposed_end <= proposed_start:
            raise MalformedInputError(
                f"Proposed end {proposed_end} must be after proposed start {proposed_start}"
            )

        resolved = resolve_day(self.config, proposed_start.date())

        for check in (self._check_day_open, self._check_within_hours):
            rejection = check(resolved, proposed_start, proposed_end)
            if rejection:
                return rejection

        for check in (self._check_min_advance, self._check_max_advance, self._check_same_day):
            rejection = check(proposed_start, now)
            if rejection:
                return rejection

        rejection = self._check_conflicts(
            existing_appointments, proposed_start, proposed_end, exclude_appointment_id
        )
        if rejection:
            return rejection

        return Accepted()

    def _check_day_open(self, resolved: ResolvedDay, start: datetime, end: datetime) -> Rejected | None:
        if resolved.is_open:
            return None
        message = f"Closed on {resolved.day.isoformat()}"
        if resolved.reason:
            message = f"{message}: {resolved.reason}"
        return Rejected(
            reason=RejectionReason.DAY_CLOSED,
            message=message,
            details={"date": resolved.day.isoformat(), "source": resolved.source, "exception_reason": resolved.reason},
        )

    def _check_within_hours(self, resolved: ResolvedDay, start: datetime, end: datetime) -> Rejected | None:
        window = resolved.window()
        if window.start <= start and end <= window.end:
            return None
        return Rejected(
            reason=RejectionReason.OUTSIDE_HOURS,
            message=(
                f"Appointment must be between {resolved.open_time:%H:%M} and {resolved.close_time:%H:%M}, "
                f"requested {start:%H:%M}-{end:%H:%M}"
            ),
            details={
                "open_time": f"{resolved.open_time:%H:%M}",
                "close_time": f"{resolved.close_time:%H:%M}",
                "requested_start": start.isoformat(),
                "requested_end": end.isoformat(),
            },
        )

    def _check_min_advance(self, start: datetime, now: datetime) -> Rejected | None:
        required = self.config.policy.min_advance_booking_hours
        hours_ahead = _hours_between(now, start)
        if hours_ahead >= required:
            return None
        requested = round(hours_ahead, 2)
        return Rejected(
            reason=RejectionReason.TOO_SOON,
            message=f"Requires at least {required:g} hours advance notice, requested {requested:g} hours",
            details={"min_advance_booking_hours": required, "requested_hours": requested},
        )

    def _check_max_advance(self, start: datetime, now: datetime) -> Rejected | None:
        limit = self.config.policy.max_advance_booking_days
        days_ahead = math.ceil(_hours_between(now, start) / 24)
        if days_ahead <= limit:
            return None
        return Rejected(
            reason=RejectionReason.TOO_FAR,
            message=f"Cannot book more than {limit} days in advance, requested {days_ahead} days",
            details={"max_advance_booking_days": limit, "requested_days": days_ahead},
        )

    def _check_same_day(self, start: datetime, now: datetime) -> Rejected | None:
        if self.config.policy.allow_same_day_booking or start.date() != now.date():
            return None
        return Rejected(
            reason=RejectionReason.SAME_DAY_DISALLOWED,
            message=f"Same-day bookings are not allowed ({start.date().isoformat()})",
            details={"date": start.date().isoformat()},
        )

    def _check_conflicts(
        self,
        existing_appointments: Iterable[Appointment],
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[str],
    ) -> Rejected | None:
        tenant_appointments = (
            appointment for appointment in existing_appointments
            if appointment.tenant_id == self.config.tenant_id
        )
        conflict = find_conflict(start, end, tenant_appointments, exclude_appointment_id)
        if conflict is None:
            return None
        return Rejected(
            reason=RejectionReason.CONFLICT,
            message=(
                f"An appointment is already booked from {conflict.start:%H:%M} to {conflict.end:%H:%M}"
            ),
            details={
                "conflicting_appointment_id": conflict.id,
                "conflicting_start": conflict.start.isoformat(),
                "conflicting_end": conflict.end.isoformat(),
            },
        )


def _hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600
