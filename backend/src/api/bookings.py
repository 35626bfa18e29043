"""
Booking API endpoints.

Booking, rescheduling and status changes all go through the booking
coordinator, so every mutation runs its conflict check and commit as one
exclusive unit per provider. Those endpoints are plain functions so FastAPI
runs them in its threadpool while they wait for a provider lock.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_booking_coordinator
from api.errors import to_http_exception
from api.responses import BookingResponse, ConflictCheckResponse
from core.database import get_db
from core.exceptions import SchedulingError
from models import Booking
from services import BookingCoordinator, BookingRequest
from utils.datetime_utils import WALL_TIME_PATTERN

router = APIRouter()
logger = logging.getLogger(__name__)


class BookingCreateRequest(BaseModel):
    provider_id: int
    patient_id: int
    appointment_type_id: int
    date: date
    start_time: str = Field(..., pattern=WALL_TIME_PATTERN.pattern)
    end_time: Optional[str] = Field(default=None, pattern=WALL_TIME_PATTERN.pattern)
    notes: Optional[str] = Field(default=None, max_length=1000)
    actor: str = "system"

    def to_booking_request(self) -> BookingRequest:
        return BookingRequest(**self.model_dump(exclude={"actor"}))


class RescheduleRequest(BaseModel):
    date: date
    start_time: str = Field(..., pattern=WALL_TIME_PATTERN.pattern)
    end_time: Optional[str] = Field(default=None, pattern=WALL_TIME_PATTERN.pattern)
    actor: str = "system"


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    actor: str = "system"


class StatusUpdateRequest(BaseModel):
    status: str
    reason: Optional[str] = None
    actor: str = "system"


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        provider_id=booking.provider_id,
        patient_id=booking.patient_id,
        appointment_type_id=booking.appointment_type_id,
        start_at=booking.start_at,
        end_at=booking.end_at,
        buffer_minutes=booking.buffer_minutes,
        status=booking.status,
        notes=booking.notes,
        series_id=booking.series_id,
        series_position=booking.series_position,
        cancellation_reason=booking.cancellation_reason,
    )


@router.post(
    "/bookings",
    summary="Create a booking",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED
)
def create_booking(
    request: BookingCreateRequest,
    db: Session = Depends(get_db),
    coordinator: BookingCoordinator = Depends(get_booking_coordinator)
) -> BookingResponse:
    """
    Book an appointment.

    Returns 409 with the conflict kind when the interval is not free, and
    503 when the provider is busy with another booking (safe to retry).
    """
    try:
        booking = coordinator.book(db, request.to_booking_request(), actor=request.actor)
        return _booking_response(booking)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create booking for provider {request.provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking"
        )


@router.post(
    "/bookings/check-conflicts",
    summary="Check a booking for conflicts",
    response_model=ConflictCheckResponse
)
async def check_conflicts(
    request: BookingCreateRequest,
    db: Session = Depends(get_db),
    coordinator: BookingCoordinator = Depends(get_booking_coordinator)
) -> ConflictCheckResponse:
    """Run the same check a booking would, without booking anything."""
    try:
        result = coordinator.check_conflicts(db, request.to_booking_request())
        return ConflictCheckResponse(has_conflict=result.has_conflict, conflict=result.to_dict())
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to check conflicts for provider {request.provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check conflicts"
        )


@router.post(
    "/bookings/{booking_id}/reschedule",
    summary="Reschedule a booking",
    response_model=BookingResponse
)
def reschedule_booking(
    booking_id: int,
    request: RescheduleRequest,
    db: Session = Depends(get_db),
    coordinator: BookingCoordinator = Depends(get_booking_coordinator)
) -> BookingResponse:
    try:
        booking = coordinator.reschedule(
            db,
            booking_id,
            request.date,
            request.start_time,
            end_time=request.end_time,
            actor=request.actor,
        )
        return _booking_response(booking)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to reschedule booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reschedule booking"
        )


@router.post(
    "/bookings/{booking_id}/cancel",
    summary="Cancel a booking",
    response_model=BookingResponse
)
def cancel_booking(
    booking_id: int,
    request: CancelRequest,
    db: Session = Depends(get_db),
    coordinator: BookingCoordinator = Depends(get_booking_coordinator)
) -> BookingResponse:
    try:
        booking = coordinator.cancel(db, booking_id, reason=request.reason, actor=request.actor)
        return _booking_response(booking)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to cancel booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel booking"
        )


@router.post(
    "/bookings/{booking_id}/status",
    summary="Change booking status",
    response_model=BookingResponse
)
def update_booking_status(
    booking_id: int,
    request: StatusUpdateRequest,
    db: Session = Depends(get_db),
    coordinator: BookingCoordinator = Depends(get_booking_coordinator)
) -> BookingResponse:
    try:
        booking = coordinator.update_status(
            db, booking_id, request.status, actor=request.actor, reason=request.reason
        )
        return _booking_response(booking)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update status of booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update booking status"
        )
