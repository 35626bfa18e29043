"""
Recurring series service.

Expands a recurrence rule into bookings, one occurrence at a time, through
the booking coordinator. Expansion is not atomic: every occurrence gets its
own attempt and its own outcome, and committed occurrences stay committed
even when later ones fail or the caller asks to stop.

For each candidate date, in order:

1. stop requested            -> skipped(stopped)
2. day missing from month    -> skipped(no_such_day)
3. holiday (skip_holidays)   -> skipped(holiday)
4. listed exception date     -> skipped(exception)
5. booking attempt           -> booked, or with auto-reschedule the nearest
                                slot within the window -> rescheduled,
                                otherwise failed(<conflict kind>|timeout)
"""

import logging
import threading
from datetime import date, timedelta
from typing import Any, Dict, List, Literal, Mapping, Optional, Set, Union

from sqlalchemy.orm import Session

from core.constants import (
    BOOKING_STATUS_CANCELLED,
    BOOKING_STATUS_NO_SHOW,
    BOOKING_STATUS_SCHEDULED,
    SERIES_STATUS_CANCELLED,
    SERIES_STATUS_PARTIALLY_CANCELLED,
)
from core.exceptions import NotFoundError, ValidationError
from models import Booking, RecurringSeries
from services.booking_coordinator import BookingCoordinator, BookingRequest
from services.booking_ledger import BookingLedger
from services.holiday_service import HolidayService
from services.slot_generator import SlotGenerator
from shared_types.scheduling import (
    OUTCOME_BOOKED,
    OUTCOME_FAILED,
    OUTCOME_RESCHEDULED,
    OUTCOME_SKIPPED,
    SKIP_EXCEPTION,
    SKIP_HOLIDAY,
    SKIP_NO_SUCH_DAY,
    SKIP_STOPPED,
    OccurrenceOutcome,
    SeriesExpansionResult,
    SlotData,
)
from utils.datetime_utils import clinic_now, to_clinic_naive
from utils.recurrence_utils import Occurrence, RecurrenceRule, generate_occurrences, parse_recurrence_rule

logger = logging.getLogger(__name__)

CancelMode = Literal["all", "future"]
UpdateMode = Literal["this", "this_and_future", "all"]


class RecurringSeriesService:
    """
    Service class for recurring series.

    Args:
        coordinator: Booking coordinator used for every occurrence
    """

    def __init__(self, coordinator: Optional[BookingCoordinator] = None):
        self.coordinator = coordinator or BookingCoordinator()

    # ------------------------------------------------------------------
    # Creation and expansion
    # ------------------------------------------------------------------

    def create_series(
        self,
        db: Session,
        provider_id: int,
        patient_id: int,
        appointment_type_id: int,
        rule: Union[RecurrenceRule, Mapping[str, Any]],
        notes: Optional[str] = None,
        actor: str = "system",
        stop_event: Optional[threading.Event] = None
    ) -> SeriesExpansionResult:
        """
        Store a recurring series and book its occurrences.

        Args:
            db: Database session
            provider_id: Provider ID
            patient_id: Patient ID
            appointment_type_id: Appointment type ID
            rule: Recurrence rule (model or raw fields)
            notes: Notes copied onto every booking
            actor: Who is booking (recorded in audit events)
            stop_event: When set, no further occurrences are attempted

        Returns:
            SeriesExpansionResult with one outcome per candidate occurrence

        Raises:
            NotFoundError: If provider, patient or appointment type does not exist
            ValidationError: If the rule is invalid
        """
        if not isinstance(rule, RecurrenceRule):
            rule = parse_recurrence_rule(rule)
        self.coordinator.validate_participants(db, provider_id, patient_id, appointment_type_id)

        series = RecurringSeries(
            provider_id=provider_id,
            patient_id=patient_id,
            appointment_type_id=appointment_type_id,
            frequency=rule.frequency,
            day_of_week=rule.day_of_week,
            day_of_month=rule.day_of_month,
            week_of_month=rule.week_of_month,
            custom_interval_days=rule.custom_interval_days,
            time_of_day=rule.time_of_day,
            start_date=rule.start_date,
            end_date=rule.end_date,
            occurrence_count=rule.occurrence_count,
            exception_dates=sorted({d.isoformat() for d in rule.exception_dates}),
            skip_holidays=rule.skip_holidays,
            auto_reschedule=rule.auto_reschedule,
            reschedule_window_days=rule.reschedule_window_days,
            notes=notes,
        )
        db.add(series)
        db.commit()
        db.refresh(series)
        logger.info(f"Created recurring series {series.id} ({rule.frequency}) for patient {patient_id}")

        return self.expand(db, series, rule, actor=actor, stop_event=stop_event)

    def expand(
        self,
        db: Session,
        series: RecurringSeries,
        rule: RecurrenceRule,
        actor: str = "system",
        stop_event: Optional[threading.Event] = None
    ) -> SeriesExpansionResult:
        """Book every occurrence of a rule for a stored series, sequentially."""
        occurrences = generate_occurrences(rule)
        result = SeriesExpansionResult(series_id=series.id)
        if not occurrences:
            return result

        holidays: Set[date] = set()
        if rule.skip_holidays:
            last_date = occurrences[-1].date + timedelta(days=rule.reschedule_window_days + 31)
            holidays = HolidayService.holiday_dates(db, occurrences[0].date, last_date)
        exceptions = set(rule.exception_dates)

        for occurrence in occurrences:
            if stop_event is not None and stop_event.is_set():
                result.outcomes.append(self._skipped(occurrence, SKIP_STOPPED))
                continue
            if not occurrence.exists:
                result.outcomes.append(self._skipped(occurrence, SKIP_NO_SUCH_DAY))
                continue
            if occurrence.date in holidays:
                result.outcomes.append(self._skipped(occurrence, SKIP_HOLIDAY))
                continue
            if occurrence.date in exceptions:
                result.outcomes.append(self._skipped(occurrence, SKIP_EXCEPTION))
                continue
            result.outcomes.append(
                self._book_occurrence(db, series, rule, occurrence, holidays, exceptions, actor)
            )

        if result.partial_failure:
            logger.warning(
                f"Series {series.id} expanded with {result.failed_count} failed occurrence(s) "
                f"out of {len(result.outcomes)}"
            )
        logger.info(
            f"Series {series.id}: {result.booked_count} booked, {result.skipped_count} skipped, "
            f"{result.failed_count} failed"
        )
        return result

    @staticmethod
    def _skipped(occurrence: Occurrence, reason: str) -> OccurrenceOutcome:
        return OccurrenceOutcome(
            position=occurrence.position,
            date=occurrence.date,
            status=OUTCOME_SKIPPED,
            reason=reason,
        )

    def _book_occurrence(
        self,
        db: Session,
        series: RecurringSeries,
        rule: RecurrenceRule,
        occurrence: Occurrence,
        holidays: Set[date],
        exceptions: Set[date],
        actor: str
    ) -> OccurrenceOutcome:
        request = BookingRequest(
            provider_id=series.provider_id,
            patient_id=series.patient_id,
            appointment_type_id=series.appointment_type_id,
            date=occurrence.date,
            start_time=rule.time_of_day,
            notes=series.notes,
        )
        attempt = self.coordinator.try_book(
            db, request, actor=actor, series_id=series.id, series_position=occurrence.position
        )
        if attempt.committed:
            return OccurrenceOutcome(
                position=occurrence.position,
                date=occurrence.date,
                status=OUTCOME_BOOKED,
                booking_id=attempt.booking_id,
                start=attempt.interval.start,
            )

        reason_kind = attempt.reason.kind if attempt.reason is not None else "unknown"
        if rule.auto_reschedule and reason_kind != "timeout":
            slot = self._find_reschedule_slot(db, series, rule, occurrence.date, holidays, exceptions)
            if slot is not None:
                moved = self.coordinator.try_book(
                    db,
                    request.model_copy(update={"date": slot.start.date(), "start_time": slot.start.time()}),
                    actor=actor,
                    series_id=series.id,
                    series_position=occurrence.position,
                )
                if moved.committed:
                    return OccurrenceOutcome(
                        position=occurrence.position,
                        date=occurrence.date,
                        status=OUTCOME_RESCHEDULED,
                        booking_id=moved.booking_id,
                        start=slot.start,
                    )
                if moved.reason is not None:
                    reason_kind = moved.reason.kind

        return OccurrenceOutcome(
            position=occurrence.position,
            date=occurrence.date,
            status=OUTCOME_FAILED,
            reason=reason_kind,
        )

    @staticmethod
    def _find_reschedule_slot(
        db: Session,
        series: RecurringSeries,
        rule: RecurrenceRule,
        original_date: date,
        holidays: Set[date],
        exceptions: Set[date]
    ) -> Optional[SlotData]:
        """Search the following days for the slot nearest to the series time of day."""
        for offset in range(1, rule.reschedule_window_days + 1):
            candidate_date = original_date + timedelta(days=offset)
            if candidate_date in holidays or candidate_date in exceptions:
                continue
            slot = SlotGenerator.find_nearest_slot(
                db, series.provider_id, candidate_date, series.appointment_type_id, rule.time_of_day
            )
            if slot is not None:
                return slot
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def get_series(db: Session, series_id: int) -> RecurringSeries:
        series = db.query(RecurringSeries).filter(RecurringSeries.id == series_id).first()
        if not series:
            raise NotFoundError(f"Recurring series {series_id} not found")
        return series

    @staticmethod
    def list_series_for_patient(db: Session, patient_id: int) -> List[RecurringSeries]:
        return db.query(RecurringSeries).filter(
            RecurringSeries.patient_id == patient_id
        ).order_by(RecurringSeries.start_date, RecurringSeries.id).all()

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_series(
        self,
        db: Session,
        series_id: int,
        mode: UpdateMode = "all",
        notes: Optional[str] = None,
        status: Optional[str] = None,
        occurrence_date: Optional[date] = None,
        position: Optional[int] = None,
        from_date: Optional[date] = None,
        actor: str = "system"
    ) -> Dict[str, Any]:
        """
        Update the notes or status of a series or of some of its occurrences.

        Modes:
            ``this``: one occurrence, picked by ``occurrence_date`` or
                ``position``. Its status follows the booking lifecycle.
            ``this_and_future``: upcoming scheduled bookings from ``from_date``
                (or from the occurrence at ``position``) on.
            ``all``: the series and all of its upcoming scheduled bookings.

        For ``this_and_future`` and ``all`` the only status change is
        ``cancelled``, which cancels those bookings like ``cancel_series``.

        Returns:
            Dict with the series status and the updated booking ids

        Raises:
            NotFoundError: If the series or the target occurrence does not exist
            ValidationError: If nothing is updated or the mode/status is invalid
            InvalidTransitionError: If a ``this`` status change is not allowed
        """
        if mode not in ("this", "this_and_future", "all"):
            raise ValidationError(f"Unknown update mode '{mode}'")
        if notes is None and status is None:
            raise ValidationError("Nothing to update: give notes or status")

        series = RecurringSeriesService.get_series(db, series_id)

        if mode == "this":
            booking = self._find_occurrence(db, series_id, occurrence_date, position)
            if status is not None:
                self.coordinator.update_status(db, booking.id, status, actor=actor)
            if notes is not None:
                booking.notes = notes
                db.commit()
            logger.info(f"Updated occurrence {booking.series_position} (booking {booking.id}) of series {series_id}")
            return {"series_id": series_id, "status": series.status, "updated_booking_ids": [booking.id]}

        if status is not None and status != BOOKING_STATUS_CANCELLED:
            raise ValidationError(f"A series can only be cancelled, not set to '{status}'")

        if mode == "this_and_future" and from_date is None and position is not None:
            from_date = self._find_occurrence(db, series_id, None, position).start_at.date()

        if notes is not None:
            series.notes = notes
        updated_ids: List[int] = []
        if status == BOOKING_STATUS_CANCELLED:
            db.commit()
            result = self.cancel_series(
                db,
                series_id,
                mode="all" if mode == "all" else "future",
                from_date=from_date,
                actor=actor,
            )
            updated_ids = result["cancelled_booking_ids"]
        else:
            for booking in self._upcoming_bookings(db, series_id, from_date if mode == "this_and_future" else None):
                booking.notes = notes
                updated_ids.append(booking.id)
            db.commit()

        logger.info(f"Updated {len(updated_ids)} booking(s) of series {series_id} (mode={mode})")
        return {"series_id": series_id, "status": series.status, "updated_booking_ids": updated_ids}

    @staticmethod
    def _find_occurrence(
        db: Session,
        series_id: int,
        occurrence_date: Optional[date],
        position: Optional[int]
    ) -> Booking:
        if occurrence_date is None and position is None:
            raise ValidationError("Give occurrence_date or position to pick an occurrence")
        for booking in BookingLedger.bookings_for_series(db, series_id):
            if booking.status in (BOOKING_STATUS_CANCELLED, BOOKING_STATUS_NO_SHOW):
                continue
            if occurrence_date is not None and booking.start_at.date() == occurrence_date:
                return booking
            if occurrence_date is None and booking.series_position == position:
                return booking
        raise NotFoundError(f"No active occurrence of series {series_id} matches")

    @staticmethod
    def _upcoming_bookings(db: Session, series_id: int, from_date: Optional[date]) -> List[Booking]:
        """Scheduled bookings of a series that start after now (and on or after from_date)."""
        now = to_clinic_naive(clinic_now())
        return [
            booking for booking in BookingLedger.bookings_for_series(db, series_id)
            if booking.status == BOOKING_STATUS_SCHEDULED
            and booking.start_at > now
            and (from_date is None or booking.start_at.date() >= from_date)
        ]

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_series(
        self,
        db: Session,
        series_id: int,
        mode: CancelMode = "all",
        from_date: Optional[date] = None,
        reason: Optional[str] = None,
        actor: str = "system"
    ) -> Dict[str, Any]:
        """
        Cancel the not-yet-started bookings of a series.

        Only scheduled bookings that start after now (and on or after
        ``from_date`` in ``future`` mode) are cancelled; completed and
        in-progress bookings are never touched.

        Args:
            db: Database session
            series_id: Series ID
            mode: ``all`` cancels the whole series; ``future`` cancels from
                ``from_date`` on, records the cancelled dates as exceptions and
                marks the series partially cancelled
            from_date: First date to cancel in ``future`` mode (default today)
            reason: Cancellation reason stored on each booking
            actor: Who is cancelling

        Returns:
            Dict with the series status and the cancelled booking ids

        Raises:
            NotFoundError: If the series does not exist
            ValidationError: If the mode is unknown
        """
        if mode not in ("all", "future"):
            raise ValidationError(f"Unknown cancel mode '{mode}'")

        series = RecurringSeriesService.get_series(db, series_id)
        cutoff_date = from_date or to_clinic_naive(clinic_now()).date()

        cancelled_ids: List[int] = []
        cancelled_dates: List[str] = []
        for booking in self._upcoming_bookings(db, series_id, cutoff_date if mode == "future" else None):
            self.coordinator.cancel(
                db, booking.id, reason=reason or f"Recurring series {series_id} cancelled", actor=actor
            )
            cancelled_ids.append(booking.id)
            cancelled_dates.append(booking.start_at.date().isoformat())

        if mode == "future":
            series.exception_dates = sorted(set(series.exception_dates or []) | set(cancelled_dates))
            series.status = SERIES_STATUS_PARTIALLY_CANCELLED
        else:
            series.status = SERIES_STATUS_CANCELLED
        db.commit()

        logger.info(f"Cancelled {len(cancelled_ids)} booking(s) of series {series_id} (mode={mode})")
        return {
            "series_id": series_id,
            "status": series.status,
            "cancelled_booking_ids": cancelled_ids,
        }
