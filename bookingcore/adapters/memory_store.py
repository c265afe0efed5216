"""
In-memory persistence for calendars and appointments.

Stands in for the database layer in the CLI and in tests. The appointment
store provides the per-tenant mutual exclusion that the booking service
relies on for at-most-one booking per overlapping interval.
"""

from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, Iterator, List, Optional

from ..domain.exceptions import (
    AppointmentNotFoundError,
    BookingConflictError,
    ConfigNotFoundError,
    MalformedInputError,
)
from ..domain.models import (
    Appointment,
    AppointmentPage,
    AppointmentStatus,
    BookingPolicy,
    CalendarConfig,
    DateException,
    WeeklyHours,
    default_weekly_hours,
)
from ..domain.overlap import find_conflict

logger = logging.getLogger(__name__)


class InMemoryAppointmentStore:
    """
    Thread-safe appointment storage keyed by tenant.

    ``add`` re-checks overlap against the stored active appointments, which
    plays the role of a uniqueness constraint on (tenant, interval).
    """

    def __init__(self, appointments: Iterable[Appointment] = ()):
        self._appointments: Dict[str, Appointment] = {}
        self._tenant_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        for appointment in appointments:
            self._appointments[appointment.id] = appointment

    @contextmanager
    def tenant_lock(self, tenant_id: str) -> Iterator[None]:
        """Serialize validate-then-persist sections for one tenant."""
        with self._registry_lock:
            lock = self._tenant_locks.setdefault(tenant_id, threading.Lock())
        with lock:
            yield

    def get(self, tenant_id: str, appointment_id: str) -> Appointment:
        appointment = self._appointments.get(appointment_id)
        if appointment is None or appointment.tenant_id != tenant_id:
            raise AppointmentNotFoundError(f"Appointment {appointment_id} not found for tenant '{tenant_id}'")
        return appointment

    def add(self, appointment: Appointment) -> Appointment:
        """
        Persist a new appointment.

        Raises:
            BookingConflictError: If it overlaps an active appointment
        """
        with self._registry_lock:
            if appointment.is_active():
                conflict = find_conflict(
                    appointment.start,
                    appointment.end,
                    self._tenant_appointments(appointment.tenant_id),
                    exclude_appointment_id=appointment.id,
                )
                if conflict is not None:
                    raise BookingConflictError(
                        f"Appointment overlaps {conflict.id} ({conflict.start:%H:%M}-{conflict.end:%H:%M})",
                        conflicting_id=conflict.id,
                    )
            self._appointments[appointment.id] = appointment
        return appointment

    def update(self, appointment: Appointment) -> Appointment:
        with self._registry_lock:
            if appointment.id not in self._appointments:
                raise AppointmentNotFoundError(f"Appointment {appointment.id} not found")
            self._appointments[appointment.id] = appointment
        return appointment

    def for_range(self, tenant_id: str, start: datetime, end: datetime) -> List[Appointment]:
        """All appointments of a tenant intersecting ``[start, end)``, any status."""
        return sorted(
            (
                appointment for appointment in self._tenant_appointments(tenant_id)
                if appointment.start < end and start < appointment.end
            ),
            key=lambda a: a.start,
        )

    def for_day(self, tenant_id: str, day: date) -> List[Appointment]:
        start = datetime.combine(day, time.min)
        return self.for_range(tenant_id, start, start + timedelta(days=1))

    def query(
        self,
        tenant_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
        client_id: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> AppointmentPage:
        """
        Filter a tenant's appointments by start date, status and client.

        Dates are inclusive; results are ordered by start time.
        """
        if page < 1 or limit < 1:
            raise MalformedInputError("page and limit must be at least 1")

        matches = []
        for appointment in self._tenant_appointments(tenant_id):
            day = appointment.start.date()
            if start_date is not None and day < start_date:
                continue
            if end_date is not None and day > end_date:
                continue
            if status is not None and appointment.status != status:
                continue
            if client_id is not None and appointment.client_id != client_id:
                continue
            matches.append(appointment)

        matches.sort(key=lambda a: a.start)
        offset = (page - 1) * limit
        return AppointmentPage(
            appointments=matches[offset:offset + limit],
            total=len(matches),
            pages=math.ceil(len(matches) / limit),
            page=page,
            limit=limit,
        )

    def _tenant_appointments(self, tenant_id: str) -> List[Appointment]:
        return [a for a in list(self._appointments.values()) if a.tenant_id == tenant_id]


class InMemoryCalendarRepository:
    """
    Stores each tenant's weekly hours, date exceptions and booking policy.

    Weekly hours are seeded with defaults the first time a tenant is read;
    a missing policy is never synthesized by ``get_config``.
    """

    def __init__(self):
        self._weekly: Dict[str, Dict[int, WeeklyHours]] = {}
        self._exceptions: Dict[str, Dict[date, DateException]] = {}
        self._policies: Dict[str, BookingPolicy] = {}

    @classmethod
    def from_config(cls, config: CalendarConfig) -> "InMemoryCalendarRepository":
        repository = cls()
        repository.load(config)
        return repository

    def load(self, config: CalendarConfig) -> None:
        """Replace a tenant's stored calendar with a config snapshot."""
        self._weekly[config.tenant_id] = dict(config.weekly_hours)
        self._exceptions[config.tenant_id] = dict(config.exceptions)
        self._policies[config.tenant_id] = config.policy

    def get_config(self, tenant_id: str) -> CalendarConfig:
        """
        Build a snapshot for one request.

        Raises:
            ConfigNotFoundError: If the tenant has no booking policy
        """
        policy = self._policies.get(tenant_id)
        if policy is None:
            raise ConfigNotFoundError(tenant_id)
        return CalendarConfig(
            tenant_id=tenant_id,
            policy=policy,
            weekly_hours=dict(self._weekly_for(tenant_id)),
            exceptions=dict(self._exceptions.get(tenant_id, {})),
        )

    def get_weekly_hours(self, tenant_id: str) -> List[WeeklyHours]:
        return sorted(self._weekly_for(tenant_id).values(), key=lambda h: h.weekday)

    def update_weekly_hours(self, tenant_id: str, entries: Iterable[WeeklyHours]) -> List[WeeklyHours]:
        """Upsert per weekday; closed days drop their times."""
        entries = list(entries)
        weekdays = [entry.weekday for entry in entries]
        if len(weekdays) != len(set(weekdays)):
            raise MalformedInputError("Each weekday may appear only once per update")

        current = self._weekly_for(tenant_id)
        for entry in entries:
            current[entry.weekday] = entry if entry.is_open else WeeklyHours.closed(entry.weekday)
        return self.get_weekly_hours(tenant_id)

    def list_exceptions(
        self,
        tenant_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[DateException]:
        exceptions = self._exceptions.get(tenant_id, {}).values()
        return sorted(
            (
                exception for exception in exceptions
                if (start_date is None or exception.date >= start_date)
                and (end_date is None or exception.date <= end_date)
            ),
            key=lambda e: e.date,
        )

    def add_exception(self, tenant_id: str, exception: DateException) -> DateException:
        exceptions = self._exceptions.setdefault(tenant_id, {})
        if exception.date in exceptions:
            raise MalformedInputError(f"A date exception already exists for {exception.date.isoformat()}")
        exceptions[exception.date] = _normalize_exception(exception)
        return exceptions[exception.date]

    def update_exception(self, tenant_id: str, exception: DateException) -> DateException:
        """Replace the hours for a date, keeping the old reason/description when omitted."""
        exceptions = self._exceptions.get(tenant_id, {})
        existing = exceptions.get(exception.date)
        if existing is None:
            raise MalformedInputError(f"No date exception for {exception.date.isoformat()}")
        merged = replace(
            exception,
            reason=exception.reason or existing.reason,
            description=exception.description or existing.description,
        )
        exceptions[exception.date] = _normalize_exception(merged)
        return exceptions[exception.date]

    def remove_exception(self, tenant_id: str, day: date) -> None:
        exceptions = self._exceptions.get(tenant_id, {})
        if day not in exceptions:
            raise MalformedInputError(f"No date exception for {day.isoformat()}")
        del exceptions[day]

    def get_policy(self, tenant_id: str) -> Optional[BookingPolicy]:
        return self._policies.get(tenant_id)

    def initialize_policy(self, tenant_id: str) -> BookingPolicy:
        """Seed the default policy unless one exists."""
        if tenant_id not in self._policies:
            logger.info("Seeding default booking policy for tenant %s", tenant_id)
            self._policies[tenant_id] = BookingPolicy.defaults()
        return self._policies[tenant_id]

    def update_policy(self, tenant_id: str, policy: BookingPolicy) -> BookingPolicy:
        self._policies[tenant_id] = policy
        return policy

    def _weekly_for(self, tenant_id: str) -> Dict[int, WeeklyHours]:
        if tenant_id not in self._weekly:
            logger.info("Seeding default weekly hours for tenant %s", tenant_id)
            self._weekly[tenant_id] = {entry.weekday: entry for entry in default_weekly_hours()}
        return self._weekly[tenant_id]


def _normalize_exception(exception: DateException) -> DateException:
    if exception.is_open:
        return exception
    return replace(exception, open_time=None, close_time=None)
