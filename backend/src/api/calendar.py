"""
Calendar and holiday API endpoints.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from api.responses import HolidayResponse
from core.database import get_db
from core.exceptions import SchedulingError
from services import CalendarService, HolidayService

router = APIRouter()
logger = logging.getLogger(__name__)


class HolidayCreateRequest(BaseModel):
    date: date
    name: str = Field(..., min_length=1, max_length=255)
    country: Optional[str] = Field(default=None, min_length=2, max_length=2)


@router.get("/providers/{provider_id}/calendar", summary="Get provider calendar")
async def get_provider_calendar(
    provider_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Get a provider's calendar for up to 62 days.

    Returns working hours, day-off exceptions, approved leave, breaks,
    holidays and bookings as one ordered event list, with the free windows
    and any overlaps found between them.
    """
    try:
        calendar = CalendarService.get_provider_calendar(db, provider_id, start_date, end_date)
        return calendar.to_dict()
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get calendar for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get calendar"
        )


@router.get("/calendar", summary="Get the calendar of several providers")
async def get_clinic_calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    provider_ids: Optional[List[int]] = Query(default=None, description="Defaults to all active providers"),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Get the calendars of the selected providers side by side, for up to 31 days."""
    try:
        calendar = CalendarService.get_clinic_calendar(db, start_date, end_date, provider_ids=provider_ids)
        return calendar.to_dict()
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get clinic calendar: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get calendar"
        )


@router.post(
    "/holidays",
    summary="Add a holiday",
    response_model=HolidayResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_holiday(
    request: HolidayCreateRequest,
    db: Session = Depends(get_db)
) -> HolidayResponse:
    try:
        holiday = HolidayService.add_holiday(db, request.date, request.name, country=request.country)
        return HolidayResponse(id=holiday.id, date=holiday.date, name=holiday.name, country=holiday.country)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to add holiday {request.date}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add holiday"
        )
