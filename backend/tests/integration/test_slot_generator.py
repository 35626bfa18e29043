"""
Integration tests for slot generation against the database.
"""

import pytest
from datetime import date, time

from core.exceptions import NotFoundError, ValidationError
from models import LeavePeriod
from services import AppointmentTypeService, AvailabilityService, BookingCoordinator, BookingRequest, SlotGenerator

MONDAY = date(2030, 1, 7)


def book(db, provider, patient, appointment_type, start_time, target_date=MONDAY, lock_registry=None):
    coordinator = BookingCoordinator(locks=lock_registry)
    return coordinator.book(db, BookingRequest(
        provider_id=provider.id,
        patient_id=patient.id,
        appointment_type_id=appointment_type.id,
        date=target_date,
        start_time=start_time,
    ))


def slot_starts(slots):
    return [slot.start_time for slot in slots]


class TestAvailableSlots:
    """Test slot lookup for one date."""

    def test_existing_booking_excluded(self, db_session, provider, patient, appointment_type, lock_registry):
        """Test that a 10:00-10:30 booking removes exactly that slot from a Monday."""
        book(db_session, provider, patient, appointment_type, "10:00", lock_registry=lock_registry)

        slots = SlotGenerator.get_available_slots(
            db_session, provider.id, MONDAY, appointment_type.id, step_minutes=30
        )

        starts = slot_starts(slots)
        assert "10:00" not in starts
        assert starts[:3] == ["09:00", "09:30", "10:30"]
        assert len(starts) == 15

    def test_all_day_leave_returns_no_slots(self, db_session, provider, appointment_type):
        """Test that approved all-day leave empties the date regardless of working hours."""
        db_session.add(LeavePeriod(
            provider_id=provider.id, title="Vacation", start_date=MONDAY, end_date=MONDAY,
            all_day=True, status="approved",
        ))
        db_session.commit()

        assert SlotGenerator.get_available_slots(db_session, provider.id, MONDAY, appointment_type.id) == []

    def test_break_and_buffer(self, db_session, provider, patient, buffered_type, lock_registry):
        """Test that breaks and booking buffers are both respected."""
        AvailabilityService.create_break_rule(db_session, provider.id, 0, "12:00", "13:00")
        book(db_session, provider, patient, buffered_type, "09:00", lock_registry=lock_registry)

        starts = slot_starts(SlotGenerator.get_available_slots(
            db_session, provider.id, MONDAY, buffered_type.id, step_minutes=15
        ))

        # 09:00-09:30 plus 15 minutes of buffer occupies until 09:45
        assert starts[0] == "09:45"
        # A slot's own buffer may not run into the break
        assert "11:15" in starts
        assert "11:30" not in starts
        assert "12:00" not in starts
        assert "13:00" in starts

    def test_provider_override_duration(self, db_session, provider, appointment_type):
        """Test that a provider's duration override changes slot length."""
        AppointmentTypeService.set_provider_settings(
            db_session, provider.id, appointment_type.id, duration_minutes=60
        )
        slots = SlotGenerator.get_available_slots(
            db_session, provider.id, MONDAY, appointment_type.id, step_minutes=60
        )
        assert slots[0].to_dict() == {"start_time": "09:00", "end_time": "10:00"}
        assert len(slots) == 8

    def test_exclude_booking(self, db_session, provider, patient, appointment_type, lock_registry):
        """Test that a booking can be ignored when looking for its new time."""
        booking = book(db_session, provider, patient, appointment_type, "10:00", lock_registry=lock_registry)
        starts = slot_starts(SlotGenerator.get_available_slots(
            db_session, provider.id, MONDAY, appointment_type.id, step_minutes=30, exclude_booking_id=booking.id
        ))
        assert "10:00" in starts

    def test_unconfigured_provider_raises(self, db_session, unconfigured_provider, appointment_type):
        """Test that a provider without working hours is reported, not silently empty."""
        with pytest.raises(NotFoundError):
            SlotGenerator.get_available_slots(db_session, unconfigured_provider.id, MONDAY, appointment_type.id)

    def test_inactive_provider_offering(self, db_session, provider, appointment_type):
        """Test that a type the provider does not offer is rejected."""
        AppointmentTypeService.set_provider_settings(db_session, provider.id, appointment_type.id, is_active=False)
        with pytest.raises(ValidationError):
            SlotGenerator.get_available_slots(db_session, provider.id, MONDAY, appointment_type.id)

    def test_generated_slot_can_be_booked(self, db_session, provider, patient, buffered_type, lock_registry):
        """Test that every slot returned is accepted by the coordinator."""
        AvailabilityService.create_break_rule(db_session, provider.id, 0, "12:00", "12:45")
        slots = SlotGenerator.get_available_slots(db_session, provider.id, MONDAY, buffered_type.id)
        chosen = slots[len(slots) // 2]

        booking = book(db_session, provider, patient, buffered_type, chosen.start.time(), lock_registry=lock_registry)

        assert booking.start_at == chosen.start
        assert booking.end_at == chosen.end


class TestBatchAndNearest:
    """Test batch lookup and nearest-slot search."""

    def test_batch(self, db_session, provider, appointment_type):
        """Test that each requested date gets its own slot list."""
        results = SlotGenerator.get_batch_available_slots(
            db_session, provider.id, [date(2030, 1, 12), MONDAY], appointment_type.id
        )
        assert list(results.keys()) == [MONDAY, date(2030, 1, 12)]
        assert results[date(2030, 1, 12)] == []
        assert len(results[MONDAY]) > 0

    def test_nearest_slot_prefers_closest(self, db_session, provider, patient, appointment_type, lock_registry):
        """Test that the nearest free slot to the preferred time is returned."""
        book(db_session, provider, patient, appointment_type, "10:00", lock_registry=lock_registry)
        slot = SlotGenerator.find_nearest_slot(db_session, provider.id, MONDAY, appointment_type.id, time(10, 0))
        # 09:45 and 10:15 would overlap the booking; 09:30 and 10:30 tie, earlier wins
        assert slot.start_time == "09:30"

    def test_nearest_slot_none_on_day_off(self, db_session, provider, appointment_type):
        """Test that a day off has no nearest slot."""
        assert SlotGenerator.find_nearest_slot(
            db_session, provider.id, date(2030, 1, 12), appointment_type.id, time(10, 0)
        ) is None
