"""
Adapters layer - Persistence backends for calendars and appointments.
"""

from .memory_store import InMemoryAppointmentStore, InMemoryCalendarRepository

__all__ = ["InMemoryAppointmentStore", "InMemoryCalendarRepository"]
