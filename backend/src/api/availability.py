"""
Availability API endpoints.

Slot lookup plus the configuration that feeds it: weekly working hours,
per-date exceptions and recurring breaks.
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from api.responses import (
    AvailableSlotResponse,
    AvailableSlotsResponse,
    BatchAvailableSlotsResponse,
    BreakRuleListResponse,
    BreakRuleResponse,
    DateExceptionResponse,
    WeeklyScheduleResponse,
    WorkingHoursDayResponse,
)
from core.constants import MAX_BATCH_DATES, MAX_LABEL_LENGTH
from core.database import get_db
from core.exceptions import SchedulingError
from models import BreakRule, DateException, WorkingHoursRule
from services import AvailabilityService, SlotGenerator
from shared_types.scheduling import SlotData
from utils.datetime_utils import format_wall_time

router = APIRouter()
logger = logging.getLogger(__name__)


class WorkingHoursDayRequest(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)  # 0=Monday
    is_working: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class WeeklyScheduleRequest(BaseModel):
    days: List[WorkingHoursDayRequest] = Field(..., min_length=7, max_length=7)


class DateExceptionRequest(BaseModel):
    is_working: bool
    label: str = Field(..., min_length=1, max_length=MAX_LABEL_LENGTH)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    description: Optional[str] = None


class BreakRuleRequest(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: str
    end_time: str
    title: str = Field(default="Break", max_length=MAX_LABEL_LENGTH)
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class BatchSlotsRequest(BaseModel):
    dates: List[date] = Field(..., min_length=1, max_length=MAX_BATCH_DATES)
    appointment_type_id: int


def _slots_response(target_date: date, slots: List[SlotData]) -> AvailableSlotsResponse:
    return AvailableSlotsResponse(
        date=target_date,
        available_slots=[
            AvailableSlotResponse(start_time=slot.start_time, end_time=slot.end_time) for slot in slots
        ],
    )


def _working_hours_response(rule: WorkingHoursRule) -> WorkingHoursDayResponse:
    return WorkingHoursDayResponse(
        day_of_week=rule.day_of_week,
        is_working=rule.is_working,
        start_time=format_wall_time(rule.start_time) if rule.start_time else None,
        end_time=format_wall_time(rule.end_time) if rule.end_time else None,
    )


def _date_exception_response(exception: DateException) -> DateExceptionResponse:
    return DateExceptionResponse(
        id=exception.id,
        provider_id=exception.provider_id,
        date=exception.date,
        is_working=exception.is_working,
        start_time=format_wall_time(exception.start_time) if exception.start_time else None,
        end_time=format_wall_time(exception.end_time) if exception.end_time else None,
        label=exception.label,
        description=exception.description,
    )


def _break_rule_response(rule: BreakRule) -> BreakRuleResponse:
    return BreakRuleResponse(
        id=rule.id,
        provider_id=rule.provider_id,
        title=rule.title,
        day_of_week=rule.day_of_week,
        start_time=format_wall_time(rule.start_time),
        end_time=format_wall_time(rule.end_time),
        is_active=rule.is_active,
        effective_from=rule.effective_from,
        effective_to=rule.effective_to,
    )


@router.get(
    "/providers/{provider_id}/availability/slots",
    summary="Get available slots",
    response_model=AvailableSlotsResponse
)
async def get_available_slots(
    provider_id: int,
    target_date: date = Query(..., alias="date", description="Date in YYYY-MM-DD format"),
    appointment_type_id: int = Query(...),
    db: Session = Depends(get_db)
) -> AvailableSlotsResponse:
    """
    Get the bookable slots of a provider on one date.

    Slots follow the provider's working window, skip approved leave and
    breaks, and respect each existing booking's buffer.
    """
    try:
        slots = SlotGenerator.get_available_slots(db, provider_id, target_date, appointment_type_id)
        return _slots_response(target_date, slots)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get available slots for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get available slots"
        )


@router.post(
    "/providers/{provider_id}/availability/slots/batch",
    summary="Get available slots for several dates",
    response_model=BatchAvailableSlotsResponse
)
async def get_batch_available_slots(
    provider_id: int,
    request: BatchSlotsRequest,
    db: Session = Depends(get_db)
) -> BatchAvailableSlotsResponse:
    try:
        by_date: Dict[date, List[SlotData]] = SlotGenerator.get_batch_available_slots(
            db, provider_id, request.dates, request.appointment_type_id
        )
        return BatchAvailableSlotsResponse(
            results=[_slots_response(target_date, slots) for target_date, slots in by_date.items()]
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get batch slots for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get available slots"
        )


@router.get(
    "/providers/{provider_id}/working-hours",
    summary="Get weekly working hours",
    response_model=WeeklyScheduleResponse
)
async def get_working_hours(
    provider_id: int,
    db: Session = Depends(get_db)
) -> WeeklyScheduleResponse:
    try:
        rules = AvailabilityService.get_weekly_schedule(db, provider_id)
        return WeeklyScheduleResponse(
            provider_id=provider_id,
            days=[_working_hours_response(rule) for rule in rules],
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get working hours for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get working hours"
        )


@router.put(
    "/providers/{provider_id}/working-hours",
    summary="Replace weekly working hours",
    response_model=WeeklyScheduleResponse
)
async def set_working_hours(
    provider_id: int,
    request: WeeklyScheduleRequest,
    db: Session = Depends(get_db)
) -> WeeklyScheduleResponse:
    """Replace all seven weekdays at once."""
    try:
        rules = AvailabilityService.set_weekly_schedule(
            db, provider_id, [day.model_dump() for day in request.days]
        )
        return WeeklyScheduleResponse(
            provider_id=provider_id,
            days=[_working_hours_response(rule) for rule in rules],
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to set working hours for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to set working hours"
        )


@router.put(
    "/providers/{provider_id}/date-exceptions/{exception_date}",
    summary="Set a date exception",
    response_model=DateExceptionResponse
)
async def upsert_date_exception(
    provider_id: int,
    exception_date: date,
    request: DateExceptionRequest,
    db: Session = Depends(get_db)
) -> DateExceptionResponse:
    """A date exception replaces the weekly rule for that date."""
    try:
        exception = AvailabilityService.upsert_date_exception(
            db,
            provider_id,
            exception_date,
            is_working=request.is_working,
            label=request.label,
            start_time=request.start_time,
            end_time=request.end_time,
            description=request.description,
        )
        return _date_exception_response(exception)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to set date exception for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to set date exception"
        )


@router.delete(
    "/providers/{provider_id}/date-exceptions/{exception_date}",
    summary="Remove a date exception",
    status_code=status.HTTP_204_NO_CONTENT
)
async def remove_date_exception(
    provider_id: int,
    exception_date: date,
    db: Session = Depends(get_db)
) -> None:
    try:
        AvailabilityService.remove_date_exception(db, provider_id, exception_date)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to remove date exception for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove date exception"
        )


@router.post(
    "/providers/{provider_id}/breaks",
    summary="Create a recurring break",
    response_model=BreakRuleResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_break_rule(
    provider_id: int,
    request: BreakRuleRequest,
    db: Session = Depends(get_db)
) -> BreakRuleResponse:
    try:
        rule = AvailabilityService.create_break_rule(
            db,
            provider_id,
            day_of_week=request.day_of_week,
            start_time=request.start_time,
            end_time=request.end_time,
            title=request.title,
            effective_from=request.effective_from,
            effective_to=request.effective_to,
        )
        return _break_rule_response(rule)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create break for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create break"
        )


@router.get(
    "/providers/{provider_id}/breaks",
    summary="List recurring breaks",
    response_model=BreakRuleListResponse
)
async def list_break_rules(
    provider_id: int,
    include_inactive: bool = False,
    db: Session = Depends(get_db)
) -> BreakRuleListResponse:
    try:
        rules = AvailabilityService.list_break_rules(db, provider_id, include_inactive=include_inactive)
        return BreakRuleListResponse(breaks=[_break_rule_response(rule) for rule in rules])
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list breaks for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list breaks"
        )


@router.delete(
    "/breaks/{break_rule_id}",
    summary="Deactivate a recurring break",
    response_model=BreakRuleResponse
)
async def deactivate_break_rule(
    break_rule_id: int,
    db: Session = Depends(get_db)
) -> BreakRuleResponse:
    """Breaks are deactivated rather than deleted so the history stays intact."""
    try:
        rule = AvailabilityService.deactivate_break_rule(db, break_rule_id)
        return _break_rule_response(rule)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to deactivate break {break_rule_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to deactivate break"
        )
