# Package initialization
# Import all models to ensure relationships are properly established
from .provider import Provider
from .patient import Patient
from .working_hours import WorkingHoursRule
from .date_exception import DateException
from .leave_period import LeavePeriod
from .break_rule import BreakRule
from .appointment_type import AppointmentType
from .provider_appointment_type_settings import ProviderAppointmentTypeSettings
from .recurring_series import RecurringSeries
from .booking import Booking
from .holiday import Holiday

__all__ = [
    "Provider",
    "Patient",
    "WorkingHoursRule",
    "DateException",
    "LeavePeriod",
    "BreakRule",
    "AppointmentType",
    "ProviderAppointmentTypeSettings",
    "RecurringSeries",
    "Booking",
    "Holiday",
]
