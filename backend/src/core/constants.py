"""Scheduling constants and limits."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_LABEL_LENGTH = 100  # Date exception labels, break titles, leave titles

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",  # Frontend dev server
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Booking statuses
BOOKING_STATUS_SCHEDULED = "scheduled"
BOOKING_STATUS_IN_PROGRESS = "in-progress"
BOOKING_STATUS_COMPLETED = "completed"
BOOKING_STATUS_CANCELLED = "cancelled"
BOOKING_STATUS_NO_SHOW = "no-show"

BOOKING_STATUSES = (
    BOOKING_STATUS_SCHEDULED,
    BOOKING_STATUS_IN_PROGRESS,
    BOOKING_STATUS_COMPLETED,
    BOOKING_STATUS_CANCELLED,
    BOOKING_STATUS_NO_SHOW,
)

# Statuses that hold their interval in the booking ledger.
# Cancelled and no-show bookings free the interval.
LEDGER_OCCUPYING_STATUSES = (
    BOOKING_STATUS_SCHEDULED,
    BOOKING_STATUS_IN_PROGRESS,
    BOOKING_STATUS_COMPLETED,
)

# Allowed booking status transitions; statuses missing as keys are terminal
BOOKING_STATUS_TRANSITIONS = {
    BOOKING_STATUS_SCHEDULED: (
        BOOKING_STATUS_IN_PROGRESS,
        BOOKING_STATUS_COMPLETED,
        BOOKING_STATUS_CANCELLED,
        BOOKING_STATUS_NO_SHOW,
    ),
    BOOKING_STATUS_IN_PROGRESS: (
        BOOKING_STATUS_COMPLETED,
        BOOKING_STATUS_CANCELLED,
    ),
}

# Leave periods
LEAVE_STATUS_PENDING = "pending"
LEAVE_STATUS_APPROVED = "approved"
LEAVE_STATUS_REJECTED = "rejected"
LEAVE_STATUS_CANCELLED = "cancelled"

LEAVE_STATUSES = (
    LEAVE_STATUS_PENDING,
    LEAVE_STATUS_APPROVED,
    LEAVE_STATUS_REJECTED,
    LEAVE_STATUS_CANCELLED,
)

LEAVE_STATUS_TRANSITIONS = {
    LEAVE_STATUS_PENDING: (
        LEAVE_STATUS_APPROVED,
        LEAVE_STATUS_REJECTED,
        LEAVE_STATUS_CANCELLED,
    ),
    LEAVE_STATUS_APPROVED: (
        LEAVE_STATUS_CANCELLED,
    ),
}

LEAVE_TYPES = ("vacation", "sick", "personal", "professional", "other")

# Appointment type limits
MIN_APPOINTMENT_DURATION_MINUTES = 5
MAX_APPOINTMENT_DURATION_MINUTES = 240  # 4 hours
MAX_BUFFER_MINUTES = 60
# Ledger range queries widen their SQL prefilter by this much so that a
# booking whose buffer spills into the range is still fetched.
LEDGER_BUFFER_SLACK_MINUTES = MAX_BUFFER_MINUTES

# Recurring series
SERIES_FREQUENCY_WEEKLY = "weekly"
SERIES_FREQUENCY_BIWEEKLY = "biweekly"
SERIES_FREQUENCY_MONTHLY_BY_DATE = "monthly_by_date"
SERIES_FREQUENCY_MONTHLY_BY_WEEKDAY = "monthly_by_weekday"
SERIES_FREQUENCY_CUSTOM = "custom"

WEEKLY_CLASS_FREQUENCIES = (
    SERIES_FREQUENCY_WEEKLY,
    SERIES_FREQUENCY_BIWEEKLY,
    SERIES_FREQUENCY_CUSTOM,
)

MAX_WEEKLY_SERIES_OCCURRENCES = 52  # One year of weekly appointments
MAX_MONTHLY_SERIES_OCCURRENCES = 100
MAX_CUSTOM_INTERVAL_DAYS = 365
DEFAULT_RESCHEDULE_WINDOW_DAYS = 3
MAX_RESCHEDULE_WINDOW_DAYS = 14

SERIES_STATUS_ACTIVE = "active"
SERIES_STATUS_COMPLETED = "completed"
SERIES_STATUS_CANCELLED = "cancelled"
SERIES_STATUS_PARTIALLY_CANCELLED = "partially_cancelled"

# Availability queries
MAX_BATCH_DATES = 31
MAX_CALENDAR_RANGE_DAYS = 62
MAX_CLINIC_CALENDAR_RANGE_DAYS = 31  # All providers at once: up to a month view
