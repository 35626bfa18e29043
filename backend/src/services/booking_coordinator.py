"""
Booking coordinator: the validate/commit protocol for bookings.

Every booking goes ``REQUESTED -> VALIDATED -> COMMITTED`` or ``REQUESTED ->
REJECTED``. The conflict check and the ledger insert run as one exclusive
unit per provider: an in-process lock keyed by provider id, plus a
``SELECT ... FOR UPDATE`` on the provider row (with ``lock_timeout``) on
PostgreSQL for deployments with several worker processes. Two requests for
overlapping intervals of the same provider therefore can never both commit.

A rejected attempt leaves no trace in the ledger: the transaction is rolled
back before the rejection is returned.
"""

import logging
from contextlib import contextmanager
from datetime import date as date_type, time, timedelta
from typing import Any, Generator, Optional, Tuple

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from core.config import get_scheduling_settings
from core.constants import (
    BOOKING_STATUS_CANCELLED,
    BOOKING_STATUS_SCHEDULED,
    BOOKING_STATUS_TRANSITIONS,
    BOOKING_STATUSES,
)
from core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingTimeoutError,
    ValidationError,
)
from models import Booking, Patient, Provider
from services.appointment_type_service import AppointmentTypeService, EffectiveAppointmentSettings
from services.availability_service import AvailabilityService, coerce_time
from services.booking_ledger import BookingLedger
from services.collaborators import AuditSink, default_audit_sink
from services.conflict_detector import ConflictDetector
from shared_types.scheduling import AuditEvent, BookingAttempt, ConflictResult, Timeout
from utils.datetime_utils import clinic_now, combine, parse_wall_time
from utils.interval_utils import Interval
from utils.provider_locks import ProviderLockRegistry, provider_locks

logger = logging.getLogger(__name__)


class BookingRequest(BaseModel):
    """Inbound booking request. ``end_time`` defaults to start + effective duration."""
    provider_id: int
    patient_id: int
    appointment_type_id: int
    date: date_type
    start_time: time
    end_time: Optional[time] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_wall_times(cls, v: Any) -> Any:
        """Accept strict "HH:MM" strings in addition to time objects."""
        if isinstance(v, str):
            return parse_wall_time(v)
        return v


class BookingCoordinator:
    """
    Runs booking, rescheduling and status changes against the ledger.

    Args:
        audit_sink: Receives an AuditEvent for every committed mutation
        locks: Registry of per-provider exclusive sections
        lock_timeout: Seconds to wait for a provider's exclusive section
    """

    def __init__(
        self,
        audit_sink: Optional[AuditSink] = None,
        locks: Optional[ProviderLockRegistry] = None,
        lock_timeout: Optional[float] = None
    ):
        self.audit_sink = audit_sink or default_audit_sink
        self.locks = locks or provider_locks
        self.lock_timeout = lock_timeout if lock_timeout is not None else get_scheduling_settings().booking_lock_timeout_seconds

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def validate_participants(
        self,
        db: Session,
        provider_id: int,
        patient_id: int,
        appointment_type_id: int
    ) -> EffectiveAppointmentSettings:
        """
        Check that provider, patient and appointment type can be booked together.

        Returns:
            The provider's effective settings for the appointment type

        Raises:
            NotFoundError: If any of them does not exist
            ValidationError: If the provider is inactive or does not offer the type
        """
        provider = AvailabilityService.get_provider(db, provider_id)
        if not provider.is_active:
            raise ValidationError(f"Provider {provider_id} is not active")

        patient = db.query(Patient).filter(
            Patient.id == patient_id,
            Patient.is_deleted == False  # noqa: E712
        ).first()
        if not patient:
            raise NotFoundError(f"Patient {patient_id} not found")

        return AppointmentTypeService.get_effective_settings(db, provider_id, appointment_type_id)

    def _prepare(self, db: Session, request: BookingRequest) -> Tuple[Interval, EffectiveAppointmentSettings]:
        settings = self.validate_participants(
            db, request.provider_id, request.patient_id, request.appointment_type_id
        )
        start = combine(request.date, request.start_time)
        if request.end_time is not None:
            end = combine(request.date, request.end_time)
        else:
            end = start + timedelta(minutes=settings.duration_minutes)
        return Interval(start, end), settings

    def _lock_provider_row(self, db: Session, provider_id: int) -> None:
        """Take the storage-level lock on the provider row (no-op on SQLite)."""
        if db.get_bind().dialect.name == "postgresql":
            timeout_ms = int(self.lock_timeout * 1000)
            db.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
        db.query(Provider).filter(Provider.id == provider_id).with_for_update().first()

    @contextmanager
    def _exclusive(self, db: Session, provider_id: int) -> Generator[None, None, None]:
        with self.locks.hold(provider_id, self.lock_timeout):
            self._lock_provider_row(db, provider_id)
            yield

    def _audit(self, actor: str, action: str, booking_id: int, **details: Any) -> None:
        try:
            self.audit_sink.emit(AuditEvent(
                actor=actor,
                action=action,
                entity_type="booking",
                entity_id=booking_id,
                details=details,
            ))
        except Exception as e:
            # Log but don't fail - the booking is already committed
            logger.warning(f"Failed to emit audit event {action} for booking {booking_id}: {e}")

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def check_conflicts(self, db: Session, request: BookingRequest) -> ConflictResult:
        """Check a request without booking it (no exclusive section)."""
        interval, settings = self._prepare(db, request)
        return ConflictDetector.check(db, request.provider_id, interval, settings.buffer_minutes)

    def try_book(
        self,
        db: Session,
        request: BookingRequest,
        actor: str = "system",
        series_id: Optional[int] = None,
        series_position: Optional[int] = None
    ) -> BookingAttempt:
        """
        Attempt to book a request.

        Validation errors are raised before any lock is taken. Conflicts and
        lock timeouts are returned as a rejected attempt.

        Args:
            db: Database session
            request: The booking request
            actor: Who is booking (recorded in the audit event)
            series_id: Recurring series the booking belongs to, if any
            series_position: Occurrence position within the series

        Returns:
            BookingAttempt in state COMMITTED or REJECTED

        Raises:
            NotFoundError: If provider, patient or appointment type does not exist
            ValidationError: If the request is malformed
        """
        interval, settings = self._prepare(db, request)
        attempt = BookingAttempt(
            provider_id=request.provider_id,
            interval=interval,
            buffer_minutes=settings.buffer_minutes,
        )

        try:
            with self._exclusive(db, request.provider_id):
                result = ConflictDetector.check(
                    db, request.provider_id, interval, settings.buffer_minutes
                )
                if result.has_conflict:
                    db.rollback()
                    logger.warning(
                        f"Rejected booking for provider {request.provider_id} at "
                        f"{interval.start.isoformat()}: {result.kind}"
                    )
                    return attempt.reject(result)

                attempt.validated()
                booking = Booking(
                    provider_id=request.provider_id,
                    patient_id=request.patient_id,
                    appointment_type_id=request.appointment_type_id,
                    start_at=interval.start,
                    end_at=interval.end,
                    buffer_minutes=settings.buffer_minutes,
                    status=BOOKING_STATUS_SCHEDULED,
                    notes=request.notes,
                    series_id=series_id,
                    series_position=series_position,
                )
                BookingLedger.insert(db, booking)
                db.commit()
        except SchedulingTimeoutError:
            db.rollback()
            return attempt.reject(Timeout())
        except OperationalError as e:
            # Database lock timeout - another transaction holds the provider row
            db.rollback()
            logger.warning(f"Database lock timeout booking provider {request.provider_id}: {e}")
            return attempt.reject(Timeout())
        except Exception:
            db.rollback()
            raise

        attempt.commit(booking)
        logger.info(
            f"Committed booking {booking.id} for provider {booking.provider_id}, patient "
            f"{booking.patient_id} at {booking.start_at.isoformat()}"
        )
        self._audit(
            actor, "booking.created", booking.id,
            provider_id=booking.provider_id,
            start_at=booking.start_at.isoformat(),
            end_at=booking.end_at.isoformat(),
        )
        return attempt

    def book(self, db: Session, request: BookingRequest, actor: str = "system") -> Booking:
        """
        Book a request or raise.

        Returns:
            The committed Booking

        Raises:
            ConflictError: If the interval conflicts (``error.result`` says how)
            SchedulingTimeoutError: If the provider's exclusive section timed out
            NotFoundError, ValidationError: As in ``try_book``
        """
        attempt = self.try_book(db, request, actor=actor)
        if attempt.committed:
            return attempt.booking
        if isinstance(attempt.reason, Timeout):
            raise SchedulingTimeoutError(f"Timed out booking provider {request.provider_id}; retry later")
        raise ConflictError(attempt.reason)

    # ------------------------------------------------------------------
    # Changes to existing bookings
    # ------------------------------------------------------------------

    def reschedule(
        self,
        db: Session,
        booking_id: int,
        new_date: date_type,
        start_time: Any,
        end_time: Any = None,
        actor: str = "system"
    ) -> Booking:
        """
        Move a scheduled booking to a new interval.

        The booking's own current interval is ignored by the conflict check.
        When ``end_time`` is omitted the booking keeps its duration.

        Raises:
            NotFoundError: If the booking does not exist
            ValidationError: If the booking is not scheduled or the times are invalid
            ConflictError: If the new interval conflicts
            SchedulingTimeoutError: If the provider's exclusive section timed out
        """
        booking = BookingLedger.get_booking(db, booking_id)
        if booking.status != BOOKING_STATUS_SCHEDULED:
            raise ValidationError(f"Only scheduled bookings can be rescheduled (booking {booking_id} is {booking.status})")

        start = combine(new_date, coerce_time(start_time, "start_time"))  # type: ignore[arg-type]
        end_wall = coerce_time(end_time, "end_time")
        if end_wall is not None:
            end = combine(new_date, end_wall)
        else:
            end = start + (booking.end_at - booking.start_at)
        interval = Interval(start, end)
        provider_id = booking.provider_id
        buffer_minutes = booking.buffer_minutes or 0
        previous_start = booking.start_at

        try:
            with self._exclusive(db, provider_id):
                # A cancel may have committed while we waited for the section
                db.refresh(booking)
                if booking.status != BOOKING_STATUS_SCHEDULED:
                    raise ValidationError(
                        f"Only scheduled bookings can be rescheduled (booking {booking_id} is {booking.status})"
                    )
                result = ConflictDetector.check(
                    db, provider_id, interval, buffer_minutes, exclude_booking_id=booking_id
                )
                if result.has_conflict:
                    db.rollback()
                    logger.warning(f"Rejected reschedule of booking {booking_id}: {result.kind}")
                    raise ConflictError(result)
                BookingLedger.set_interval(db, booking, interval)
                db.commit()
        except ConflictError:
            raise
        except SchedulingTimeoutError:
            db.rollback()
            raise
        except OperationalError as e:
            db.rollback()
            logger.warning(f"Database lock timeout rescheduling booking {booking_id}: {e}")
            raise SchedulingTimeoutError(f"Timed out rescheduling booking {booking_id}; retry later") from e
        except Exception:
            db.rollback()
            raise

        logger.info(f"Rescheduled booking {booking_id} from {previous_start.isoformat()} to {interval.start.isoformat()}")
        self._audit(
            actor, "booking.rescheduled", booking_id,
            previous_start_at=previous_start.isoformat(),
            start_at=interval.start.isoformat(),
            end_at=interval.end.isoformat(),
        )
        return booking

    def update_status(
        self,
        db: Session,
        booking_id: int,
        new_status: str,
        actor: str = "system",
        reason: Optional[str] = None
    ) -> Booking:
        """
        Move a booking through its lifecycle.

        Allowed: scheduled -> in-progress | completed | cancelled | no-show,
        in-progress -> completed | cancelled. Completed, cancelled and no-show
        are terminal. Setting the current status again is a no-op.

        Raises:
            NotFoundError: If the booking does not exist
            ValidationError: If the status is unknown
            InvalidTransitionError: If the lifecycle does not allow the change
        """
        if new_status not in BOOKING_STATUSES:
            raise ValidationError(f"Unknown booking status '{new_status}'")

        booking = BookingLedger.get_booking(db, booking_id)
        previous_status = booking.status
        if previous_status == new_status:
            return booking

        # Same exclusive section as reschedule, so a move and a cancel never interleave
        try:
            with self._exclusive(db, booking.provider_id):
                db.refresh(booking)
                previous_status = booking.status
                if previous_status == new_status:
                    db.rollback()
                    return booking
                if new_status not in BOOKING_STATUS_TRANSITIONS.get(previous_status, ()):
                    raise InvalidTransitionError(
                        f"Booking {booking_id} cannot change from '{previous_status}' to '{new_status}'"
                    )
                BookingLedger.set_status(db, booking, new_status)
                if new_status == BOOKING_STATUS_CANCELLED:
                    booking.cancelled_at = clinic_now()
                    booking.cancellation_reason = reason
                db.commit()
        except (InvalidTransitionError, SchedulingTimeoutError):
            db.rollback()
            raise
        except OperationalError as e:
            db.rollback()
            logger.warning(f"Database lock timeout updating status of booking {booking_id}: {e}")
            raise SchedulingTimeoutError(f"Timed out updating booking {booking_id}; retry later") from e
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to update status of booking {booking_id}: {e}")
            raise

        logger.info(f"Booking {booking_id} status {previous_status} -> {new_status}")
        self._audit(
            actor, "booking.status_changed", booking_id,
            previous_status=previous_status,
            status=new_status,
            reason=reason,
        )
        return booking

    def cancel(self, db: Session, booking_id: int, reason: Optional[str] = None, actor: str = "system") -> Booking:
        """Cancel a booking, freeing its interval."""
        return self.update_status(db, booking_id, BOOKING_STATUS_CANCELLED, actor=actor, reason=reason)
