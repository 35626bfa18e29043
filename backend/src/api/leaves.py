"""
Leave API endpoints.

Leave is requested as pending and moved through its lifecycle with the
status endpoint. Approving a leave reports the bookings it overlaps to the
notification sink.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_leave_service
from api.errors import to_http_exception
from api.responses import LeaveListResponse, LeaveResponse
from core.constants import LEAVE_TYPES, MAX_LABEL_LENGTH
from core.database import get_db
from core.exceptions import SchedulingError
from models import LeavePeriod
from services import LeaveService
from utils.datetime_utils import format_wall_time

router = APIRouter()
logger = logging.getLogger(__name__)


class LeaveCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=MAX_LABEL_LENGTH)
    leave_type: str = Field(default="vacation", description=f"One of {', '.join(LEAVE_TYPES)}")
    start_date: date
    end_date: date
    all_day: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class LeaveStatusRequest(BaseModel):
    status: str
    actor: str = "system"
    rejection_reason: Optional[str] = None


class AffectedBookingResponse(BaseModel):
    booking_id: int
    patient_id: int
    start_at: str
    end_at: str


class LeaveWithAffectedResponse(LeaveResponse):
    affected_bookings: List[AffectedBookingResponse] = []


def _leave_response(leave: LeavePeriod) -> LeaveResponse:
    return LeaveResponse(
        id=leave.id,
        provider_id=leave.provider_id,
        title=leave.title,
        leave_type=leave.leave_type,
        start_date=leave.start_date,
        end_date=leave.end_date,
        all_day=leave.all_day,
        start_time=format_wall_time(leave.start_time) if leave.start_time else None,
        end_time=format_wall_time(leave.end_time) if leave.end_time else None,
        status=leave.status,
        rejection_reason=leave.rejection_reason,
        affected_bookings_processed=leave.affected_bookings_processed,
    )


@router.post(
    "/providers/{provider_id}/leaves",
    summary="Request leave",
    response_model=LeaveResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_leave(
    provider_id: int,
    request: LeaveCreateRequest,
    db: Session = Depends(get_db)
) -> LeaveResponse:
    """Leave starts as pending and blocks no time until approved."""
    try:
        leave = LeaveService.create_leave(
            db,
            provider_id,
            title=request.title,
            start_date=request.start_date,
            end_date=request.end_date,
            all_day=request.all_day,
            start_time=request.start_time,
            end_time=request.end_time,
            leave_type=request.leave_type,
        )
        return _leave_response(leave)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create leave for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create leave"
        )


def _with_affected(db: Session, leave: LeavePeriod) -> LeaveWithAffectedResponse:
    affected = LeaveService.get_affected_bookings(db, leave.id)
    return LeaveWithAffectedResponse(
        **_leave_response(leave).model_dump(),
        affected_bookings=[
            AffectedBookingResponse(
                booking_id=booking.booking_id,
                patient_id=booking.patient_id,
                start_at=booking.interval.start.isoformat(),
                end_at=booking.interval.end.isoformat(),
            )
            for booking in affected
        ],
    )


@router.get(
    "/providers/{provider_id}/leaves",
    summary="List leave",
    response_model=LeaveListResponse
)
async def list_leaves(
    provider_id: int,
    leave_status: Optional[str] = Query(default=None, alias="status"),
    start_date: Optional[date] = Query(default=None, description="Only leave ending on or after this date"),
    end_date: Optional[date] = Query(default=None, description="Only leave starting on or before this date"),
    db: Session = Depends(get_db)
) -> LeaveListResponse:
    try:
        leaves = LeaveService.list_leaves(
            db, provider_id, status=leave_status, start_date=start_date, end_date=end_date
        )
        return LeaveListResponse(leaves=[_leave_response(leave) for leave in leaves])
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list leave for provider {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list leave"
        )


@router.get(
    "/leaves/{leave_id}",
    summary="Get a leave",
    response_model=LeaveWithAffectedResponse
)
async def get_leave(
    leave_id: int,
    db: Session = Depends(get_db)
) -> LeaveWithAffectedResponse:
    """Get a leave together with the bookings it overlaps."""
    try:
        return _with_affected(db, LeaveService.get_leave(db, leave_id))
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get leave {leave_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get leave"
        )


@router.post(
    "/leaves/{leave_id}/status",
    summary="Change leave status",
    response_model=LeaveWithAffectedResponse
)
async def update_leave_status(
    leave_id: int,
    request: LeaveStatusRequest,
    db: Session = Depends(get_db),
    leave_service: LeaveService = Depends(get_leave_service)
) -> LeaveWithAffectedResponse:
    """
    Approve, reject or cancel a leave.

    The response lists the bookings the leave overlaps, so the caller can
    follow up with the patients. Bookings are never cancelled automatically.
    """
    try:
        leave = leave_service.update_leave_status(
            db,
            leave_id,
            request.status,
            actor=request.actor,
            rejection_reason=request.rejection_reason,
        )
        return _with_affected(db, leave)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update status of leave {leave_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update leave status"
        )


@router.post(
    "/leaves/{leave_id}/reprocess-affected-bookings",
    summary="Retry the affected-bookings notification",
    response_model=LeaveWithAffectedResponse
)
async def reprocess_affected_bookings(
    leave_id: int,
    db: Session = Depends(get_db),
    leave_service: LeaveService = Depends(get_leave_service)
) -> LeaveWithAffectedResponse:
    """
    Hand the bookings of an approved leave to the notification sink again.

    Only needed when the notification failed at approval time, which leaves
    ``affected_bookings_processed`` false.
    """
    try:
        leave = leave_service.reprocess_affected_bookings(db, leave_id)
        return _with_affected(db, leave)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to reprocess bookings affected by leave {leave_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reprocess affected bookings"
        )
