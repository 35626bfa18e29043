"""
Leave lifecycle.

Leave is requested as pending and only takes time out of the schedule once
approved. Approving a leave hands the bookings it overlaps to the
notification collaborator so staff can contact the patients; the bookings
themselves are left untouched.
"""

import logging
from datetime import date, time
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from core.constants import (
    LEAVE_STATUS_APPROVED,
    LEAVE_STATUS_PENDING,
    LEAVE_STATUS_REJECTED,
    LEAVE_STATUS_TRANSITIONS,
    LEAVE_STATUSES,
    LEAVE_TYPES,
)
from core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from models import LeavePeriod
from services.availability_service import AvailabilityService, coerce_time, validate_time_range
from services.booking_ledger import BookingLedger
from services.collaborators import (
    AuditSink,
    NotificationSink,
    default_audit_sink,
    default_notification_sink,
)
from shared_types.scheduling import AffectedBooking, AuditEvent
from utils.datetime_utils import clinic_now, date_range
from utils.interval_utils import overlaps

logger = logging.getLogger(__name__)


class LeaveService:
    """
    Service class for leave requests.

    Args:
        notification_sink: Receives the bookings affected by an approved leave
        audit_sink: Receives an AuditEvent when a leave is approved
    """

    def __init__(
        self,
        notification_sink: Optional[NotificationSink] = None,
        audit_sink: Optional[AuditSink] = None
    ):
        self.notification_sink = notification_sink or default_notification_sink
        self.audit_sink = audit_sink or default_audit_sink

    @staticmethod
    def get_leave(db: Session, leave_id: int) -> LeavePeriod:
        leave = db.query(LeavePeriod).filter(LeavePeriod.id == leave_id).first()
        if not leave:
            raise NotFoundError(f"Leave {leave_id} not found")
        return leave

    @staticmethod
    def list_leaves(
        db: Session,
        provider_id: int,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[LeavePeriod]:
        """
        List a provider's leave, optionally filtered by status and date range.

        A leave matches the range when it covers at least one day of it.

        Args:
            db: Database session
            provider_id: Provider ID
            status: Only leave in this status
            start_date: Only leave ending on or after this date
            end_date: Only leave starting on or before this date

        Returns:
            Leave ordered by start date

        Raises:
            NotFoundError: If the provider does not exist
            ValidationError: If the status is unknown or the range is inverted
        """
        AvailabilityService.get_provider(db, provider_id)
        if status is not None and status not in LEAVE_STATUSES:
            raise ValidationError(f"Unknown leave status '{status}'")
        if start_date and end_date and end_date < start_date:
            raise ValidationError("end_date must not be before start_date")

        query = db.query(LeavePeriod).filter(LeavePeriod.provider_id == provider_id)
        if status is not None:
            query = query.filter(LeavePeriod.status == status)
        if start_date is not None:
            query = query.filter(LeavePeriod.end_date >= start_date)
        if end_date is not None:
            query = query.filter(LeavePeriod.start_date <= end_date)
        return query.order_by(LeavePeriod.start_date, LeavePeriod.id).all()

    @staticmethod
    def create_leave(
        db: Session,
        provider_id: int,
        title: str,
        start_date: date,
        end_date: date,
        all_day: bool = True,
        start_time: Optional[Union[str, time]] = None,
        end_time: Optional[Union[str, time]] = None,
        leave_type: str = "vacation"
    ) -> LeavePeriod:
        """
        Request leave for a provider. The leave starts as pending.

        Raises:
            NotFoundError: If the provider does not exist
            ValidationError: If dates, times or type are invalid
        """
        AvailabilityService.get_provider(db, provider_id)
        if not title or not title.strip():
            raise ValidationError("Leave title is required")
        if leave_type not in LEAVE_TYPES:
            raise ValidationError(f"Unknown leave type '{leave_type}'")
        if end_date < start_date:
            raise ValidationError("Leave end_date must not be before start_date")

        start: Optional[time] = None
        end: Optional[time] = None
        if not all_day:
            start, end = validate_time_range(
                coerce_time(start_time, "start_time"),
                coerce_time(end_time, "end_time"),
                "Partial-day leave",
            )

        leave = LeavePeriod(
            provider_id=provider_id,
            title=title.strip(),
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            all_day=all_day,
            start_time=start,
            end_time=end,
            status=LEAVE_STATUS_PENDING,
        )
        db.add(leave)
        db.commit()
        db.refresh(leave)
        logger.info(f"Created leave {leave.id} for provider {provider_id} ({start_date}..{end_date})")
        return leave

    @staticmethod
    def get_affected_bookings(db: Session, leave_id: int) -> List[AffectedBooking]:
        """
        Get the ledger bookings that overlap a leave on any covered date.

        Args:
            db: Database session
            leave_id: Leave ID

        Returns:
            Affected bookings in chronological order
        """
        leave = LeaveService.get_leave(db, leave_id)
        affected: List[AffectedBooking] = []
        seen: set[int] = set()
        for covered_date in date_range(leave.start_date, leave.end_date):
            blocked = AvailabilityService.leave_interval_on(leave, covered_date)
            for booking in BookingLedger.bookings_on(db, leave.provider_id, covered_date):
                if booking.id in seen or not overlaps(booking.occupied_interval, blocked):
                    continue
                seen.add(booking.id)
                affected.append(AffectedBooking(
                    booking_id=booking.id,
                    provider_id=booking.provider_id,
                    patient_id=booking.patient_id,
                    interval=booking.interval,
                ))
        return affected

    def update_leave_status(
        self,
        db: Session,
        leave_id: int,
        new_status: str,
        actor: str = "system",
        rejection_reason: Optional[str] = None
    ) -> LeavePeriod:
        """
        Move a leave through its lifecycle.

        Allowed: pending -> approved | rejected | cancelled, approved ->
        cancelled. Approval notifies the affected bookings and emits an
        audit event.

        Raises:
            NotFoundError: If the leave does not exist
            ValidationError: If the status is unknown
            InvalidTransitionError: If the lifecycle does not allow the change
        """
        if new_status not in LEAVE_STATUSES:
            raise ValidationError(f"Unknown leave status '{new_status}'")

        leave = LeaveService.get_leave(db, leave_id)
        previous_status = leave.status
        if new_status not in LEAVE_STATUS_TRANSITIONS.get(previous_status, ()):
            raise InvalidTransitionError(
                f"Leave {leave_id} cannot change from '{previous_status}' to '{new_status}'"
            )

        leave.status = new_status
        leave.status_updated_at = clinic_now()
        if new_status == LEAVE_STATUS_APPROVED:
            leave.approved_by = actor
        if new_status == LEAVE_STATUS_REJECTED:
            leave.rejection_reason = rejection_reason
        db.commit()
        logger.info(f"Leave {leave_id} status {previous_status} -> {new_status}")

        if new_status == LEAVE_STATUS_APPROVED:
            self._process_approval(db, leave, actor)
        return leave

    def reprocess_affected_bookings(self, db: Session, leave_id: int) -> LeavePeriod:
        """
        Retry the affected-bookings notification of an approved leave.

        Used when the notification sink failed at approval time. A leave whose
        bookings were already handed over is returned unchanged.

        Raises:
            NotFoundError: If the leave does not exist
            InvalidTransitionError: If the leave is not approved
        """
        leave = LeaveService.get_leave(db, leave_id)
        if leave.status != LEAVE_STATUS_APPROVED:
            raise InvalidTransitionError(
                f"Only approved leave has affected bookings to process (leave {leave_id} is {leave.status})"
            )
        if leave.affected_bookings_processed:
            return leave

        self._notify_affected(db, leave)
        return leave

    def _notify_affected(self, db: Session, leave: LeavePeriod) -> List[AffectedBooking]:
        affected = LeaveService.get_affected_bookings(db, leave.id)
        try:
            self.notification_sink.notify_affected_bookings(leave.id, affected)
            leave.affected_bookings_processed = True
            db.commit()
            logger.info(f"Notified {len(affected)} booking(s) affected by leave {leave.id}")
        except Exception as e:
            # Log but don't fail - the leave stays approved and can be reprocessed
            db.rollback()
            logger.warning(f"Failed to notify bookings affected by leave {leave.id}: {e}")
        return affected

    def _process_approval(self, db: Session, leave: LeavePeriod, actor: str) -> None:
        affected = self._notify_affected(db, leave)

        try:
            self.audit_sink.emit(AuditEvent(
                actor=actor,
                action="leave.approved",
                entity_type="leave",
                entity_id=leave.id,
                details={"affected_booking_ids": [booking.booking_id for booking in affected]},
            ))
        except Exception as e:
            logger.warning(f"Failed to emit audit event for leave {leave.id}: {e}")
