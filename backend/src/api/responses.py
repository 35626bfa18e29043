"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class AvailableSlotResponse(BaseModel):
    """Response model for a single available time slot."""
    start_time: str  # Format: "HH:MM"
    end_time: str    # Format: "HH:MM"


class AvailableSlotsResponse(BaseModel):
    """Response model for available time slots on one date."""
    date: date
    available_slots: List[AvailableSlotResponse]


class BatchAvailableSlotsResponse(BaseModel):
    """Response model for available slots over several dates."""
    results: List[AvailableSlotsResponse]


class WorkingHoursDayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int  # 0=Monday
    is_working: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class WeeklyScheduleResponse(BaseModel):
    provider_id: int
    days: List[WorkingHoursDayResponse]


class DateExceptionResponse(BaseModel):
    id: int
    provider_id: int
    date: date
    is_working: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    label: str
    description: Optional[str] = None


class BreakRuleResponse(BaseModel):
    id: int
    provider_id: int
    title: str
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class BreakRuleListResponse(BaseModel):
    breaks: List[BreakRuleResponse]


class LeaveResponse(BaseModel):
    id: int
    provider_id: int
    title: str
    leave_type: str
    start_date: date
    end_date: date
    all_day: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: str
    rejection_reason: Optional[str] = None
    affected_bookings_processed: bool


class LeaveListResponse(BaseModel):
    leaves: List[LeaveResponse]


class BookingResponse(BaseModel):
    id: int
    provider_id: int
    patient_id: int
    appointment_type_id: int
    start_at: datetime
    end_at: datetime
    buffer_minutes: int
    status: str
    notes: Optional[str] = None
    series_id: Optional[int] = None
    series_position: Optional[int] = None
    cancellation_reason: Optional[str] = None


class ConflictCheckResponse(BaseModel):
    """Response model for a conflict check (no booking is made)."""
    has_conflict: bool
    conflict: Dict[str, Any]


class SeriesExpansionResponse(BaseModel):
    series_id: Optional[int]
    booked_count: int
    skipped_count: int
    failed_count: int
    partial_failure: bool
    outcomes: List[Dict[str, Any]]


class RecurringSeriesResponse(BaseModel):
    id: int
    provider_id: int
    patient_id: int
    appointment_type_id: int
    frequency: str
    time_of_day: str
    start_date: date
    end_date: Optional[date] = None
    occurrence_count: Optional[int] = None
    exception_dates: List[str]
    skip_holidays: bool
    auto_reschedule: bool
    reschedule_window_days: int
    status: str
    generated_booking_ids: List[int]
    notes: Optional[str] = None


class SeriesCancelResponse(BaseModel):
    series_id: int
    status: str
    cancelled_booking_ids: List[int]


class RecurringSeriesListResponse(BaseModel):
    series: List[RecurringSeriesResponse]


class SeriesUpdateResponse(BaseModel):
    series_id: int
    status: str
    updated_booking_ids: List[int]


class HolidayResponse(BaseModel):
    id: int
    date: date
    name: str
    country: str
