"""
Application service for booking, rescheduling and listing appointments.

The service fetches the tenant's calendar snapshot and existing
appointments, delegates every decision to the pure domain functions, and
persists accepted changes. The validate-then-persist section runs inside the
store's per-tenant lock, and the store itself refuses overlapping inserts,
so two concurrent requests for the same window cannot both be accepted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import ContextManager, List, Optional, Protocol

from ..domain import lifecycle
from ..domain.availability import resolve_day
from ..domain.exceptions import BookingConflictError, MalformedInputError
from ..domain.models import (
    DURATION_MAX_MINUTES,
    DURATION_MIN_MINUTES,
    Appointment,
    AppointmentPage,
    AppointmentStatus,
    BookingPolicy,
    CalendarConfig,
    Slot,
)
from ..domain.slot_generator import DayAvailability, SlotGenerator, weekly_availability
from ..domain.validation import Accepted, BookingValidator, Rejected, RejectionReason, ValidationResult

logger = logging.getLogger(__name__)

_UNSET = object()


class CalendarRepositoryProtocol(Protocol):
    """Source of per-tenant calendar configuration."""

    def get_config(self, tenant_id: str) -> CalendarConfig:
        """Return the tenant's snapshot or raise ConfigNotFoundError."""


class AppointmentStoreProtocol(Protocol):
    """Persistence needed by the service."""

    def tenant_lock(self, tenant_id: str) -> ContextManager[None]:
        """Mutual exclusion around validate-then-persist for one tenant."""

    def get(self, tenant_id: str, appointment_id: str) -> Appointment:
        """Return an appointment or raise AppointmentNotFoundError."""

    def add(self, appointment: Appointment) -> Appointment:
        """Insert, raising BookingConflictError on overlap."""

    def update(self, appointment: Appointment) -> Appointment:
        """Replace an existing appointment."""

    def for_day(self, tenant_id: str, day: date) -> List[Appointment]:
        """Appointments of any status intersecting the date."""

    def for_range(self, tenant_id: str, start: datetime, end: datetime) -> List[Appointment]:
        """Appointments of any status intersecting ``[start, end)``."""

    def query(self, tenant_id: str, **filters) -> AppointmentPage:
        """Filtered, paginated listing."""


@dataclass(frozen=True)
class BookingOutcome:
    """Validation result plus the stored appointment when accepted."""
    result: ValidationResult
    appointment: Optional[Appointment] = None

    @property
    def ok(self) -> bool:
        return self.result.ok


def resolve_duration(policy: BookingPolicy, duration_minutes: Optional[int]) -> int:
    """
    Use the policy default when no duration is requested.

    Raises:
        MalformedInputError: If the requested duration is out of bounds
    """
    if duration_minutes is None:
        return policy.default_duration_minutes
    if not DURATION_MIN_MINUTES <= duration_minutes <= DURATION_MAX_MINUTES:
        raise MalformedInputError(
            f"Duration must be between {DURATION_MIN_MINUTES} and {DURATION_MAX_MINUTES} minutes, "
            f"got {duration_minutes}"
        )
    return duration_minutes


class BookingService:
    """
    Orchestrates calendar lookup, validation and persistence.

    Depends on protocols so the in-memory adapters used by the CLI and tests
    can be swapped for a database-backed store.
    """

    def __init__(
        self,
        calendar_repository: CalendarRepositoryProtocol,
        appointment_store: AppointmentStoreProtocol,
    ) -> None:
        self._calendars = calendar_repository
        self._store = appointment_store

    def book_as_client(
        self,
        *,
        tenant_id: str,
        client_id: str,
        start: datetime,
        now: datetime,
        duration_minutes: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> BookingOutcome:
        """Book for the requesting client, who is also recorded as creator."""
        if not client_id:
            raise MalformedInputError("A client booking requires a client_id")
        return self._book(
            tenant_id=tenant_id,
            start=start,
            now=now,
            duration_minutes=duration_minutes,
            client_id=client_id,
            created_by=client_id,
            notes=notes,
        )

    def book_as_staff(
        self,
        *,
        tenant_id: str,
        staff_id: str,
        start: datetime,
        now: datetime,
        duration_minutes: Optional[int] = None,
        client_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingOutcome:
        """Book on behalf of a client, or leave the appointment unassigned."""
        return self._book(
            tenant_id=tenant_id,
            start=start,
            now=now,
            duration_minutes=duration_minutes,
            client_id=client_id,
            created_by=staff_id,
            notes=notes,
        )

    def check_booking(
        self,
        *,
        tenant_id: str,
        start: datetime,
        now: datetime,
        duration_minutes: Optional[int] = None,
    ) -> ValidationResult:
        """Validate a proposed booking without persisting anything."""
        config = self._calendars.get_config(tenant_id)
        duration = resolve_duration(config.policy, duration_minutes)
        end = start + timedelta(minutes=duration)
        existing = self._store.for_range(tenant_id, start, end)
        return BookingValidator(config).validate(existing, start, end, now)

    def reschedule(
        self,
        *,
        tenant_id: str,
        appointment_id: str,
        now: datetime,
        new_start: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
    ) -> BookingOutcome:
        """
        Move an appointment to a new window, excluding itself from conflicts.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            InvalidTransitionError: If the appointment is in a terminal state
        """
        return self.update_appointment(
            tenant_id=tenant_id,
            appointment_id=appointment_id,
            now=now,
            start=new_start,
            duration_minutes=duration_minutes,
        )

    def change_status(
        self,
        *,
        tenant_id: str,
        appointment_id: str,
        status: AppointmentStatus,
    ) -> Appointment:
        """Apply a lifecycle transition; never re-runs booking validation."""
        with self._store.tenant_lock(tenant_id):
            appointment = self._store.get(tenant_id, appointment_id)
            updated = lifecycle.transition(appointment, status)
            logger.info(
                "Appointment %s: %s -> %s", appointment_id, appointment.status.value, updated.status.value
            )
            return self._store.update(updated)

    def update_appointment(
        self,
        *,
        tenant_id: str,
        appointment_id: str,
        now: datetime,
        start: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        status: Optional[AppointmentStatus] = None,
        notes=_UNSET,
        client_id=_UNSET,
    ) -> BookingOutcome:
        """
        Apply any combination of time, status, notes and assignee changes.

        Only a change of start or duration runs the booking rule chain. A
        rejected time change leaves the appointment untouched.
        """
        with self._store.tenant_lock(tenant_id):
            appointment = self._store.get(tenant_id, appointment_id)
            result: ValidationResult

            if start is not None or duration_minutes is not None:
                config = self._calendars.get_config(tenant_id)
                if duration_minutes is not None:
                    resolve_duration(config.policy, duration_minutes)
                target_start = start or appointment.start
                existing = self._store.for_day(tenant_id, target_start.date())
                result, rescheduled = lifecycle.reschedule(
                    appointment,
                    config,
                    existing,
                    now,
                    new_start=start,
                    duration_minutes=duration_minutes,
                )
                if rescheduled is None:
                    logger.info(
                        "Reschedule of %s rejected: %s (%s)", appointment_id, result.reason.value, result.message
                    )
                    return BookingOutcome(result=result)
                appointment = rescheduled
            else:
                result = Accepted()

            if status is not None and status != appointment.status:
                appointment = lifecycle.transition(appointment, status)

            details = {}
            if notes is not _UNSET:
                details["notes"] = notes
            if client_id is not _UNSET:
                details["client_id"] = client_id
            if details:
                appointment = lifecycle.edit_details(appointment, **details)

            stored = self._store.update(appointment)
            return BookingOutcome(result=result, appointment=stored)

    def list_appointments(
        self,
        *,
        tenant_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
        client_id: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> AppointmentPage:
        """Appointments ordered by start time, filtered and paginated."""
        return self._store.query(
            tenant_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
            client_id=client_id,
            page=page,
            limit=limit,
        )

    def list_slots(
        self,
        *,
        tenant_id: str,
        day: date,
        duration_minutes: Optional[int] = None,
    ) -> List[Slot]:
        """Slots for one date; a closed day yields an empty list."""
        config = self._calendars.get_config(tenant_id)
        duration = resolve_duration(config.policy, duration_minutes)
        generator = SlotGenerator(duration_minutes=duration, buffer_minutes=config.policy.buffer_minutes)
        resolved = resolve_day(config, day)
        return generator.generate(resolved, self._store.for_day(tenant_id, day))

    def weekly_availability(
        self,
        *,
        tenant_id: str,
        start_day: date,
        days: int = 7,
    ) -> List[DayAvailability]:
        """Per-day slot summary using the policy's duration and buffer."""
        config = self._calendars.get_config(tenant_id)
        range_start = datetime.combine(start_day, datetime.min.time())
        existing = self._store.for_range(tenant_id, range_start, range_start + timedelta(days=days))
        return weekly_availability(config, start_day, existing, days=days)

    def _book(
        self,
        *,
        tenant_id: str,
        start: datetime,
        now: datetime,
        duration_minutes: Optional[int],
        client_id: Optional[str],
        created_by: Optional[str],
        notes: Optional[str],
    ) -> BookingOutcome:
        config = self._calendars.get_config(tenant_id)
        duration = resolve_duration(config.policy, duration_minutes)
        end = start + timedelta(minutes=duration)

        with self._store.tenant_lock(tenant_id):
            existing = self._store.for_day(tenant_id, start.date())
            result = BookingValidator(config).validate(existing, start, end, now)
            if not result.ok:
                logger.info("Booking for tenant %s rejected: %s (%s)", tenant_id, result.reason.value, result.message)
                return BookingOutcome(result=result)

            appointment = Appointment.book(
                tenant_id=tenant_id,
                start=start,
                duration_minutes=duration,
                client_id=client_id,
                notes=notes,
                created_by=created_by,
            )
            try:
                stored = self._store.add(appointment)
            except BookingConflictError as exc:
                logger.warning("Booking for tenant %s lost a race: %s", tenant_id, exc)
                return BookingOutcome(result=_conflict_from_store(exc))

        logger.info("Booked appointment %s for tenant %s at %s", stored.id, tenant_id, stored.start.isoformat())
        return BookingOutcome(result=result, appointment=stored)


def _conflict_from_store(exc: BookingConflictError) -> Rejected:
    return Rejected(
        reason=RejectionReason.CONFLICT,
        message=str(exc),
        details={"conflicting_appointment_id": exc.conflicting_id},
    )
