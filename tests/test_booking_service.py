"""
Tests for BookingService orchestration.
"""

import threading
from datetime import date, datetime, time, timedelta

import pytest

from bookingcore.adapters.memory_store import InMemoryAppointmentStore, InMemoryCalendarRepository
from bookingcore.domain.exceptions import (
    AppointmentNotFoundError,
    ConfigNotFoundError,
    InvalidTransitionError,
    MalformedInputError,
)
from bookingcore.domain.models import (
    AppointmentPage,
    AppointmentStatus,
    BookingPolicy,
    CalendarConfig,
    DateException,
    default_weekly_hours,
)
from bookingcore.domain.validation import RejectionReason
from bookingcore.services import booking_service
from bookingcore.services.booking_service import BookingService

NOW = datetime(2024, 8, 12, 8, 0)
MONDAY_10 = datetime(2024, 8, 19, 10, 0)


def _build_service(store=None, policy=None, exceptions=()):
    """Build a service over in-memory adapters for tenant 'studio'."""
    config = CalendarConfig.build("studio", policy or BookingPolicy(), default_weekly_hours(), exceptions)
    repository = InMemoryCalendarRepository.from_config(config)
    return BookingService(calendar_repository=repository, appointment_store=store or InMemoryAppointmentStore())


class StaleSnapshotStore(InMemoryAppointmentStore):
    """Store whose reads miss every committed appointment, like a lagging replica."""

    def for_day(self, tenant_id, day):
        return []

    def for_range(self, tenant_id, start, end):
        return []


class TestBooking:
    """Tests for client and staff bookings."""

    def test_client_booking_is_pending_and_stored(self):
        """A valid client booking is persisted in its initial state."""
        service = _build_service()

        outcome = service.book_as_client(tenant_id="studio", client_id="c1", start=MONDAY_10, now=NOW)

        assert outcome.ok
        assert outcome.appointment.status == AppointmentStatus.PENDING
        assert outcome.appointment.client_id == "c1"
        assert outcome.appointment.created_by == "c1"
        assert outcome.appointment.end == datetime(2024, 8, 19, 10, 30)

    def test_client_booking_requires_client(self):
        """Client bookings must name the client."""
        with pytest.raises(MalformedInputError):
            _build_service().book_as_client(tenant_id="studio", client_id="", start=MONDAY_10, now=NOW)

    def test_staff_booking_may_leave_client_unassigned(self):
        """Staff record themselves as creator."""
        outcome = _build_service().book_as_staff(
            tenant_id="studio", staff_id="s1", start=MONDAY_10, now=NOW, duration_minutes=60, notes="Walk-in"
        )

        assert outcome.ok
        assert outcome.appointment.client_id is None
        assert outcome.appointment.created_by == "s1"
        assert outcome.appointment.duration_minutes == 60

    def test_rejection_is_not_persisted(self):
        """Rejected bookings leave the store untouched."""
        service = _build_service()

        outcome = service.book_as_client(
            tenant_id="studio", client_id="c1", start=datetime(2024, 8, 24, 10, 0), now=NOW
        )

        assert not outcome.ok
        assert outcome.result.reason == RejectionReason.DAY_CLOSED
        assert outcome.appointment is None
        assert service.list_appointments(tenant_id="studio").total == 0

    def test_second_booking_in_same_window_conflicts(self):
        """Sequential double-booking is rejected by validation."""
        service = _build_service()
        service.book_as_client(tenant_id="studio", client_id="c1", start=MONDAY_10, now=NOW)

        outcome = service.book_as_client(
            tenant_id="studio", client_id="c2", start=datetime(2024, 8, 19, 10, 15), now=NOW
        )

        assert outcome.result.reason == RejectionReason.CONFLICT

    @pytest.mark.parametrize("duration", [10, 481])
    def test_duration_out_of_bounds(self, duration):
        """Requested durations must be within 15 and 480 minutes."""
        with pytest.raises(MalformedInputError):
            _build_service().book_as_staff(
                tenant_id="studio", staff_id="s1", start=MONDAY_10, now=NOW, duration_minutes=duration
            )

    def test_unknown_tenant(self):
        """A tenant without configuration is an error, not a rejection."""
        with pytest.raises(ConfigNotFoundError):
            _build_service().book_as_client(tenant_id="nobody", client_id="c1", start=MONDAY_10, now=NOW)

    def test_check_booking_does_not_persist(self):
        """check_booking only validates."""
        service = _build_service()

        assert service.check_booking(tenant_id="studio", start=MONDAY_10, now=NOW).ok
        assert service.list_appointments(tenant_id="studio").total == 0


class TestConcurrentBooking:
    """At most one of several racing requests for a window succeeds."""

    def _race(self, service, attempts):
        barrier = threading.Barrier(attempts)
        outcomes = []
        outcomes_lock = threading.Lock()

        def attempt(index):
            barrier.wait()
            outcome = service.book_as_client(
                tenant_id="studio", client_id=f"c{index}", start=MONDAY_10, now=NOW
            )
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return outcomes

    def test_two_concurrent_bookings_one_succeeds(self):
        """Two simultaneous requests for the same window: exactly one wins."""
        service = _build_service()

        outcomes = self._race(service, 2)

        assert sum(1 for outcome in outcomes if outcome.ok) == 1
        losers = [outcome for outcome in outcomes if not outcome.ok]
        assert losers[0].result.reason == RejectionReason.CONFLICT
        assert service.list_appointments(tenant_id="studio").total == 1

    def test_many_concurrent_bookings_one_succeeds(self):
        """The guarantee holds with more contenders."""
        service = _build_service()

        outcomes = self._race(service, 8)

        assert sum(1 for outcome in outcomes if outcome.ok) == 1
        assert service.list_appointments(tenant_id="studio").total == 1

    def test_store_constraint_catches_stale_reads(self):
        """When validation sees a stale snapshot, the store still refuses the overlap."""
        service = _build_service(store=StaleSnapshotStore())
        first = service.book_as_client(tenant_id="studio", client_id="c1", start=MONDAY_10, now=NOW)

        second = service.book_as_client(
            tenant_id="studio", client_id="c2", start=datetime(2024, 8, 19, 10, 15), now=NOW
        )

        assert first.ok
        assert second.result.reason == RejectionReason.CONFLICT
        assert second.result.details["conflicting_appointment_id"] == first.appointment.id
        assert second.appointment is None


class TestAppointmentChanges:
    """Tests for status changes, rescheduling and detail edits."""

    def _booked(self, service, start=MONDAY_10):
        return service.book_as_client(tenant_id="studio", client_id="c1", start=start, now=NOW).appointment

    def test_change_status(self):
        """Allowed transitions are persisted."""
        service = _build_service()
        appointment = self._booked(service)

        updated = service.change_status(
            tenant_id="studio", appointment_id=appointment.id, status=AppointmentStatus.CONFIRMED
        )

        assert updated.status == AppointmentStatus.CONFIRMED
        assert service.list_appointments(tenant_id="studio", status=AppointmentStatus.CONFIRMED).total == 1

    def test_invalid_status_change(self):
        """Skipping lifecycle steps raises."""
        service = _build_service()
        appointment = self._booked(service)

        with pytest.raises(InvalidTransitionError):
            service.change_status(
                tenant_id="studio", appointment_id=appointment.id, status=AppointmentStatus.COMPLETED
            )

    def test_cancelling_frees_the_window(self):
        """After cancellation the same window can be booked again."""
        service = _build_service()
        appointment = self._booked(service)
        service.change_status(tenant_id="studio", appointment_id=appointment.id, status=AppointmentStatus.CANCELLED)

        assert self._booked(service) is not None

    def test_reschedule_overlapping_itself(self):
        """Moving 10:00-10:30 to 10:15-10:45 is accepted."""
        service = _build_service()
        appointment = self._booked(service)

        outcome = service.reschedule(
            tenant_id="studio", appointment_id=appointment.id, now=NOW, new_start=datetime(2024, 8, 19, 10, 15)
        )

        assert outcome.ok
        assert outcome.appointment.start == datetime(2024, 8, 19, 10, 15)
        assert service.list_appointments(tenant_id="studio").total == 1

    def test_rejected_reschedule_leaves_appointment(self):
        """A rejected move keeps the stored window."""
        service = _build_service()
        appointment = self._booked(service)
        self._booked(service, start=datetime(2024, 8, 19, 11, 0))

        outcome = service.reschedule(
            tenant_id="studio", appointment_id=appointment.id, now=NOW, new_start=datetime(2024, 8, 19, 11, 0)
        )

        assert outcome.result.reason == RejectionReason.CONFLICT
        assert service.list_appointments(tenant_id="studio", client_id="c1").appointments[0].start == MONDAY_10

    def test_reschedule_unknown_appointment(self):
        """Unknown ids raise."""
        with pytest.raises(AppointmentNotFoundError):
            _build_service().reschedule(tenant_id="studio", appointment_id="missing", now=NOW, new_start=MONDAY_10)

    def test_update_details_without_validation(self):
        """Notes and client edits do not re-run the booking rules."""
        service = _build_service()
        appointment = self._booked(service)

        # Time rules would now reject this appointment; details still change
        outcome = service.update_appointment(
            tenant_id="studio",
            appointment_id=appointment.id,
            now=datetime(2024, 8, 19, 9, 55),
            notes="Running late",
            client_id=None,
        )

        assert outcome.ok
        assert outcome.appointment.notes == "Running late"
        assert outcome.appointment.client_id is None
        assert outcome.appointment.start == MONDAY_10

    def test_update_time_and_status_together(self):
        """A combined update validates the new time then applies the status."""
        service = _build_service()
        appointment = self._booked(service)

        outcome = service.update_appointment(
            tenant_id="studio",
            appointment_id=appointment.id,
            now=NOW,
            start=datetime(2024, 8, 19, 14, 0),
            duration_minutes=45,
            status=AppointmentStatus.CONFIRMED,
        )

        assert outcome.ok
        assert outcome.appointment.end == datetime(2024, 8, 19, 14, 45)
        assert outcome.appointment.status == AppointmentStatus.CONFIRMED


class TestAvailabilityQueries:
    """Tests for slot listing through the service."""

    def test_list_slots_marks_booked_window(self):
        """The booked 10:00-10:30 window occupies overlapping slots."""
        service = _build_service()
        service.book_as_client(tenant_id="studio", client_id="c1", start=MONDAY_10, now=NOW)

        slots = service.list_slots(tenant_id="studio", day=date(2024, 8, 19))
        unavailable = [slot.time for slot in slots if not slot.available]

        assert unavailable == ["09:35", "10:10"]

    def test_list_slots_closed_day(self):
        """A holiday exception yields no slots."""
        holiday = DateException(date=date(2024, 8, 19), is_open=False, reason="Holiday")

        assert _build_service(exceptions=[holiday]).list_slots(tenant_id="studio", day=date(2024, 8, 19)) == []

    def test_list_slots_custom_duration(self):
        """A requested duration overrides the policy default."""
        slots = _build_service(policy=BookingPolicy(buffer_minutes=0)).list_slots(
            tenant_id="studio", day=date(2024, 8, 19), duration_minutes=60
        )

        assert len(slots) == 9

    def test_weekly_availability(self):
        """The week summary reflects existing bookings."""
        service = _build_service()
        service.book_as_client(tenant_id="studio", client_id="c1", start=datetime(2024, 8, 20, 9, 0), now=NOW)

        summary = service.weekly_availability(tenant_id="studio", start_day=date(2024, 8, 19))

        assert len(summary) == 7
        assert summary[0].slots[0].available
        assert not summary[1].slots[0].available
        assert summary[6].slots == []

    def test_special_hours_open_a_closed_day(self):
        """An open exception on Saturday produces slots."""
        special = DateException(date=date(2024, 8, 24), is_open=True, open_time=time(10, 0), close_time=time(12, 0))
        service = _build_service(exceptions=[special])

        slots = service.list_slots(tenant_id="studio", day=date(2024, 8, 24))

        assert [slot.time for slot in slots] == ["10:00", "10:35", "11:10"]
        assert service.book_as_client(
            tenant_id="studio", client_id="c1", start=datetime(2024, 8, 24, 10, 35), now=NOW
        ).ok

    def test_available_slots_are_bookable(self):
        """Every slot listed as available can be booked."""
        service = _build_service()
        day = date(2024, 8, 21)

        for slot in service.list_slots(tenant_id="studio", day=day):
            assert slot.available
            outcome = service.book_as_client(tenant_id="studio", client_id="c1", start=slot.start, now=NOW)
            assert outcome.ok, outcome.result

        assert not any(slot.available for slot in service.list_slots(tenant_id="studio", day=day))
        assert service.list_appointments(tenant_id="studio", limit=100).total == 15


def test_listing_uses_domain_page_type():
    """The service returns the domain page type from any store."""
    service = _build_service()
    service.book_as_client(tenant_id="studio", client_id="c1", start=MONDAY_10, now=NOW)

    page = service.list_appointments(tenant_id="studio")

    assert isinstance(page, AppointmentPage)
    assert booking_service.AppointmentPage is AppointmentPage
    assert not hasattr(booking_service, "InMemoryAppointmentStore")
    assert (page.total, page.pages, page.page, page.limit) == (1, 1, 1, 10)
