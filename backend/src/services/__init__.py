"""
Services package for scheduling business logic.

This package contains service classes that encapsulate business logic
shared across multiple API endpoints.
"""

from .appointment_type_service import AppointmentTypeService
from .booking_ledger import BookingLedger
from .availability_service import AvailabilityService, UnconfiguredPolicy
from .conflict_detector import ConflictDetector
from .slot_generator import SlotGenerator
from .booking_coordinator import BookingCoordinator, BookingRequest
from .holiday_service import HolidayService
from .leave_service import LeaveService
from .recurring_series_service import RecurringSeriesService
from .calendar_service import CalendarService

__all__ = [
    "AppointmentTypeService",
    "BookingLedger",
    "AvailabilityService",
    "UnconfiguredPolicy",
    "ConflictDetector",
    "SlotGenerator",
    "BookingCoordinator",
    "BookingRequest",
    "HolidayService",
    "LeaveService",
    "RecurringSeriesService",
    "CalendarService",
]
