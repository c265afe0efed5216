"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import (
    AppointmentStoreProtocol,
    BookingOutcome,
    BookingService,
    CalendarRepositoryProtocol,
)

__all__ = ["AppointmentStoreProtocol", "BookingOutcome", "BookingService", "CalendarRepositoryProtocol"]
