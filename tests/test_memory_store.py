"""
Tests for the in-memory appointment store and calendar repository.
"""

from datetime import date, datetime, time, timedelta

import pytest

from bookingcore.adapters.memory_store import InMemoryAppointmentStore, InMemoryCalendarRepository
from bookingcore.domain.exceptions import (
    AppointmentNotFoundError,
    BookingConflictError,
    ConfigNotFoundError,
    MalformedInputError,
)
from bookingcore.domain.models import (
    Appointment,
    AppointmentPage,
    AppointmentStatus,
    BookingPolicy,
    CalendarConfig,
    DateException,
    WeeklyHours,
    default_weekly_hours,
)


def _appointment(appointment_id, start, minutes=30, tenant_id="studio", status=AppointmentStatus.CONFIRMED, client_id=None):
    return Appointment(
        id=appointment_id,
        tenant_id=tenant_id,
        start=start,
        end=start + timedelta(minutes=minutes),
        duration_minutes=minutes,
        status=status,
        client_id=client_id,
    )


class TestInMemoryAppointmentStore:
    """Tests for InMemoryAppointmentStore."""

    def test_add_and_get(self):
        """Stored appointments are found by tenant and id."""
        store = InMemoryAppointmentStore()
        appointment = store.add(_appointment("a1", datetime(2024, 8, 19, 10, 0)))

        assert store.get("studio", "a1") == appointment

    def test_get_is_tenant_scoped(self):
        """Another tenant cannot read the appointment."""
        store = InMemoryAppointmentStore([_appointment("a1", datetime(2024, 8, 19, 10, 0))])

        with pytest.raises(AppointmentNotFoundError):
            store.get("other", "a1")

    def test_add_refuses_overlap(self):
        """The store enforces at most one active appointment per interval."""
        store = InMemoryAppointmentStore([_appointment("a1", datetime(2024, 8, 19, 10, 0))])

        with pytest.raises(BookingConflictError) as excinfo:
            store.add(_appointment("a2", datetime(2024, 8, 19, 10, 15)))

        assert excinfo.value.conflicting_id == "a1"
        assert excinfo.value.code == "CONFLICT"

    def test_add_allows_overlap_with_cancelled(self):
        """Cancelled appointments do not hold their window."""
        store = InMemoryAppointmentStore(
            [_appointment("a1", datetime(2024, 8, 19, 10, 0), status=AppointmentStatus.CANCELLED)]
        )

        store.add(_appointment("a2", datetime(2024, 8, 19, 10, 0)))

        assert len(store.for_day("studio", date(2024, 8, 19))) == 2

    def test_add_allows_overlap_across_tenants(self):
        """Tenants have independent calendars."""
        store = InMemoryAppointmentStore([_appointment("a1", datetime(2024, 8, 19, 10, 0))])

        store.add(_appointment("b1", datetime(2024, 8, 19, 10, 0), tenant_id="other"))

        assert [a.id for a in store.for_day("other", date(2024, 8, 19))] == ["b1"]

    def test_update_unknown_raises(self):
        """Updating a missing appointment is an error."""
        with pytest.raises(AppointmentNotFoundError):
            InMemoryAppointmentStore().update(_appointment("a1", datetime(2024, 8, 19, 10, 0)))

    def test_for_range_returns_intersecting_sorted(self):
        """Range queries are half-open and ordered by start."""
        store = InMemoryAppointmentStore(
            [
                _appointment("late", datetime(2024, 8, 19, 15, 0)),
                _appointment("early", datetime(2024, 8, 19, 9, 0)),
                _appointment("next_day", datetime(2024, 8, 20, 9, 0)),
            ]
        )

        found = store.for_range("studio", datetime(2024, 8, 19, 9, 30), datetime(2024, 8, 20, 9, 0))

        assert [a.id for a in found] == ["late"]
        assert [a.id for a in store.for_day("studio", date(2024, 8, 19))] == ["early", "late"]

    def test_query_filters_and_paginates(self):
        """Listing filters by date, status and client, then pages."""
        store = InMemoryAppointmentStore(
            [
                _appointment(f"a{i}", datetime(2024, 8, 19, 9, 0) + timedelta(hours=i), client_id="c1")
                for i in range(5)
            ]
            + [
                _appointment("x", datetime(2024, 8, 20, 9, 0), status=AppointmentStatus.CANCELLED),
            ]
        )

        page = store.query("studio", start_date=date(2024, 8, 19), end_date=date(2024, 8, 19), page=2, limit=2)

        assert isinstance(page, AppointmentPage)
        assert page.total == 5
        assert page.pages == 3
        assert [a.id for a in page.appointments] == ["a2", "a3"]
        assert store.query("studio", status=AppointmentStatus.CANCELLED).total == 1
        assert store.query("studio", client_id="c1").total == 5

    def test_query_rejects_bad_page(self):
        """Pages start at 1."""
        with pytest.raises(MalformedInputError):
            InMemoryAppointmentStore().query("studio", page=0)


class TestInMemoryCalendarRepository:
    """Tests for InMemoryCalendarRepository."""

    def test_get_config_without_policy_raises(self):
        """A tenant without a policy is a configuration error."""
        with pytest.raises(ConfigNotFoundError):
            InMemoryCalendarRepository().get_config("studio")

    def test_weekly_hours_seeded_with_defaults(self):
        """First access seeds Monday (1) to Friday (5) 09:00-18:00."""
        hours = InMemoryCalendarRepository().get_weekly_hours("studio")

        assert [h.weekday for h in hours] == list(range(7))
        assert not hours[0].is_open
        assert hours[1].open_time == time(9, 0)
        assert not hours[6].is_open

    def test_initialize_policy_keeps_existing(self):
        """Seeding never overwrites a configured policy."""
        repository = InMemoryCalendarRepository()
        custom = BookingPolicy(buffer_minutes=10)
        repository.update_policy("studio", custom)

        assert repository.initialize_policy("studio") is custom
        assert repository.initialize_policy("fresh") == BookingPolicy.defaults()

    def test_update_weekly_hours_upserts(self):
        """Only the given weekdays change."""
        repository = InMemoryCalendarRepository()
        repository.initialize_policy("studio")

        repository.update_weekly_hours(
            "studio",
            [WeeklyHours(weekday=6, is_open=True, open_time=time(10, 0), close_time=time(14, 0))],
        )
        config = repository.get_config("studio")

        assert config.weekly_hours[6].open_time == time(10, 0)
        assert config.weekly_hours[1].close_time == time(18, 0)
        assert not config.weekly_hours[0].is_open

    def test_update_weekly_hours_rejects_duplicates(self):
        """A weekday may appear once per update."""
        with pytest.raises(MalformedInputError):
            InMemoryCalendarRepository().update_weekly_hours("studio", [WeeklyHours.closed(0), WeeklyHours.closed(0)])

    def test_exception_crud(self):
        """Exceptions can be added, merged on update, listed and removed."""
        repository = InMemoryCalendarRepository()
        christmas = date(2024, 12, 25)
        repository.add_exception("studio", DateException(date=christmas, is_open=False, reason="Christmas"))

        with pytest.raises(MalformedInputError):
            repository.add_exception("studio", DateException(date=christmas, is_open=False))

        updated = repository.update_exception(
            "studio", DateException(date=christmas, is_open=True, open_time=time(10, 0), close_time=time(12, 0))
        )
        assert updated.reason == "Christmas"
        assert updated.is_open

        assert [e.date for e in repository.list_exceptions("studio", start_date=date(2024, 12, 1))] == [christmas]
        assert repository.list_exceptions("studio", end_date=date(2024, 12, 1)) == []

        repository.remove_exception("studio", christmas)
        assert repository.list_exceptions("studio") == []
        with pytest.raises(MalformedInputError):
            repository.remove_exception("studio", christmas)

    def test_from_config_round_trip(self):
        """Loading a snapshot returns an equivalent snapshot."""
        config = CalendarConfig.build("studio", BookingPolicy(), default_weekly_hours())

        assert InMemoryCalendarRepository.from_config(config).get_config("studio") == config
