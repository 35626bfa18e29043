"""
Recurring series API endpoints.

Creating a series books every occurrence it can and reports the outcome of
each one; a series with some failed occurrences is still created. Endpoints
that book or cancel are plain functions, run in the threadpool, because
expansion makes one blocking attempt per occurrence.
"""

import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_recurring_series_service
from api.errors import to_http_exception
from api.responses import (
    RecurringSeriesListResponse,
    RecurringSeriesResponse,
    SeriesCancelResponse,
    SeriesExpansionResponse,
    SeriesUpdateResponse,
)
from core.constants import DEFAULT_RESCHEDULE_WINDOW_DAYS, MAX_RESCHEDULE_WINDOW_DAYS
from core.database import get_db
from core.exceptions import SchedulingError
from models import RecurringSeries
from services import RecurringSeriesService
from utils.datetime_utils import WALL_TIME_PATTERN, format_wall_time

router = APIRouter()
logger = logging.getLogger(__name__)


class RecurringSeriesCreateRequest(BaseModel):
    """Series participants plus the recurrence rule fields."""
    provider_id: int
    patient_id: int
    appointment_type_id: int
    frequency: str
    time_of_day: str = Field(..., pattern=WALL_TIME_PATTERN.pattern)
    start_date: date
    end_date: Optional[date] = None
    occurrence_count: Optional[int] = None
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    week_of_month: Optional[int] = None
    custom_interval_days: Optional[int] = None
    exception_dates: List[date] = []
    skip_holidays: bool = True
    auto_reschedule: bool = False
    reschedule_window_days: int = Field(
        default=DEFAULT_RESCHEDULE_WINDOW_DAYS, ge=0, le=MAX_RESCHEDULE_WINDOW_DAYS
    )
    notes: Optional[str] = Field(default=None, max_length=1000)
    actor: str = "system"


class SeriesCancelRequest(BaseModel):
    mode: Literal["all", "future"] = "all"
    from_date: Optional[date] = None
    reason: Optional[str] = None
    actor: str = "system"


class SeriesUpdateRequest(BaseModel):
    mode: Literal["this", "this_and_future", "all"] = "all"
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[str] = None
    occurrence_date: Optional[date] = None
    position: Optional[int] = Field(default=None, ge=0)
    from_date: Optional[date] = None
    actor: str = "system"


def _series_response(series: RecurringSeries) -> RecurringSeriesResponse:
    return RecurringSeriesResponse(
        id=series.id,
        provider_id=series.provider_id,
        patient_id=series.patient_id,
        appointment_type_id=series.appointment_type_id,
        frequency=series.frequency,
        time_of_day=format_wall_time(series.time_of_day),
        start_date=series.start_date,
        end_date=series.end_date,
        occurrence_count=series.occurrence_count,
        exception_dates=list(series.exception_dates or []),
        skip_holidays=series.skip_holidays,
        auto_reschedule=series.auto_reschedule,
        reschedule_window_days=series.reschedule_window_days,
        status=series.status,
        generated_booking_ids=series.generated_booking_ids,
        notes=series.notes,
    )


@router.post(
    "/recurring-series",
    summary="Create a recurring series",
    response_model=SeriesExpansionResponse,
    status_code=status.HTTP_201_CREATED
)
def create_recurring_series(
    request: RecurringSeriesCreateRequest,
    db: Session = Depends(get_db),
    series_service: RecurringSeriesService = Depends(get_recurring_series_service)
) -> SeriesExpansionResponse:
    """
    Create a series and book its occurrences.

    Expansion is not atomic. The response carries one outcome per candidate
    date (booked, rescheduled, skipped or failed) and ``partial_failure`` is
    true when any occurrence failed.
    """
    try:
        rule = request.model_dump(
            exclude={"provider_id", "patient_id", "appointment_type_id", "notes", "actor"}
        )
        result = series_service.create_series(
            db,
            request.provider_id,
            request.patient_id,
            request.appointment_type_id,
            rule,
            notes=request.notes,
            actor=request.actor,
        )
        return SeriesExpansionResponse(**result.to_dict())
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create recurring series for patient {request.patient_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create recurring series"
        )


@router.get(
    "/recurring-series/{series_id}",
    summary="Get a recurring series",
    response_model=RecurringSeriesResponse
)
async def get_recurring_series(
    series_id: int,
    db: Session = Depends(get_db)
) -> RecurringSeriesResponse:
    try:
        series = RecurringSeriesService.get_series(db, series_id)
        return _series_response(series)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get recurring series {series_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get recurring series"
        )


@router.post(
    "/recurring-series/{series_id}/cancel",
    summary="Cancel a recurring series",
    response_model=SeriesCancelResponse
)
def cancel_recurring_series(
    series_id: int,
    request: SeriesCancelRequest,
    db: Session = Depends(get_db),
    series_service: RecurringSeriesService = Depends(get_recurring_series_service)
) -> SeriesCancelResponse:
    """Cancel the upcoming scheduled bookings of a series (all, or from a date on)."""
    try:
        result = series_service.cancel_series(
            db,
            series_id,
            mode=request.mode,
            from_date=request.from_date,
            reason=request.reason,
            actor=request.actor,
        )
        return SeriesCancelResponse(**result)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to cancel recurring series {series_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel recurring series"
        )


@router.put(
    "/recurring-series/{series_id}",
    summary="Update a recurring series",
    response_model=SeriesUpdateResponse
)
def update_recurring_series(
    series_id: int,
    request: SeriesUpdateRequest,
    db: Session = Depends(get_db),
    series_service: RecurringSeriesService = Depends(get_recurring_series_service)
) -> SeriesUpdateResponse:
    """
    Update notes or status of one occurrence, an occurrence and the ones after it, or the whole series.

    Setting ``status`` to ``cancelled`` in ``this_and_future`` or ``all`` mode
    cancels the upcoming scheduled bookings.
    """
    try:
        result = series_service.update_series(
            db,
            series_id,
            mode=request.mode,
            notes=request.notes,
            status=request.status,
            occurrence_date=request.occurrence_date,
            position=request.position,
            from_date=request.from_date,
            actor=request.actor,
        )
        return SeriesUpdateResponse(**result)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update recurring series {series_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update recurring series"
        )


@router.get(
    "/patients/{patient_id}/recurring-series",
    summary="List a patient's recurring series",
    response_model=RecurringSeriesListResponse
)
async def list_patient_recurring_series(
    patient_id: int,
    db: Session = Depends(get_db)
) -> RecurringSeriesListResponse:
    try:
        series = RecurringSeriesService.list_series_for_patient(db, patient_id)
        return RecurringSeriesListResponse(series=[_series_response(s) for s in series])
    except Exception as e:
        logger.exception(f"Failed to list recurring series for patient {patient_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list recurring series"
        )
