"""
Integration tests for the availability service.

Covers weekly working hours, date exceptions, break rules, approved leave
and how they combine into a schedule snapshot.
"""

import pytest
from datetime import date, datetime, time

from core.exceptions import NotFoundError, ValidationError
from models import LeavePeriod
from services import AvailabilityService, UnconfiguredPolicy
from utils.interval_utils import Interval

MONDAY = date(2030, 1, 7)
SATURDAY = date(2030, 1, 12)


def week(start: str = "09:00", end: str = "17:00", working_days=range(5)):
    return [
        {
            "day_of_week": day,
            "is_working": day in working_days,
            "start_time": start if day in working_days else None,
            "end_time": end if day in working_days else None,
        }
        for day in range(7)
    ]


def approved_leave(db, provider_id, start_date, end_date, all_day=True, start_time=None, end_time=None):
    leave = LeavePeriod(
        provider_id=provider_id,
        title="Leave",
        start_date=start_date,
        end_date=end_date,
        all_day=all_day,
        start_time=start_time,
        end_time=end_time,
        status="approved",
    )
    db.add(leave)
    db.commit()
    return leave


class TestEffectiveWindow:
    """Test working window resolution."""

    def test_weekly_rule(self, db_session, provider):
        """Test that a weekday uses its weekly rule."""
        window = AvailabilityService.effective_window(db_session, provider.id, MONDAY)
        assert window == Interval(datetime(2030, 1, 7, 9), datetime(2030, 1, 7, 17))

    def test_non_working_day(self, db_session, provider):
        """Test that a non-working weekday has no window."""
        assert AvailabilityService.effective_window(db_session, provider.id, SATURDAY) is None

    def test_working_exception_replaces_rule(self, db_session, provider):
        """Test that a working date exception overrides the weekly hours."""
        AvailabilityService.upsert_date_exception(
            db_session, provider.id, MONDAY, is_working=True, label="Short day",
            start_time="10:00", end_time="12:00",
        )
        window = AvailabilityService.effective_window(db_session, provider.id, MONDAY)
        assert window == Interval(datetime(2030, 1, 7, 10), datetime(2030, 1, 7, 12))

    def test_exception_opens_weekend(self, db_session, provider):
        """Test that an exception can make a day off a working day."""
        AvailabilityService.upsert_date_exception(
            db_session, provider.id, SATURDAY, is_working=True, label="Clinic open day",
            start_time="09:00", end_time="13:00",
        )
        snapshot = AvailabilityService.get_schedule_snapshot(db_session, provider.id, SATURDAY)
        assert snapshot.window is not None
        assert snapshot.window_from_exception

    def test_day_off_exception_and_removal(self, db_session, provider):
        """Test that removing an exception restores the weekly rule."""
        AvailabilityService.upsert_date_exception(
            db_session, provider.id, MONDAY, is_working=False, label="Conference"
        )
        assert AvailabilityService.effective_window(db_session, provider.id, MONDAY) is None

        AvailabilityService.remove_date_exception(db_session, provider.id, MONDAY)
        assert AvailabilityService.effective_window(db_session, provider.id, MONDAY) is not None

    def test_upsert_replaces_existing_exception(self, db_session, provider):
        """Test that a second exception for a date replaces the first."""
        AvailabilityService.upsert_date_exception(db_session, provider.id, MONDAY, is_working=False, label="Off")
        AvailabilityService.upsert_date_exception(
            db_session, provider.id, MONDAY, is_working=True, label="On", start_time="13:00", end_time="15:00"
        )
        exceptions = AvailabilityService.list_date_exceptions(db_session, provider.id, MONDAY, MONDAY)
        assert len(exceptions) == 1
        assert exceptions[0].label == "On"

    def test_remove_missing_exception(self, db_session, provider):
        """Test that removing a non-existent exception raises NotFoundError."""
        with pytest.raises(NotFoundError):
            AvailabilityService.remove_date_exception(db_session, provider.id, MONDAY)

    def test_working_exception_needs_window(self, db_session, provider):
        """Test that a working exception without valid times is rejected."""
        with pytest.raises(ValidationError):
            AvailabilityService.upsert_date_exception(
                db_session, provider.id, MONDAY, is_working=True, label="Bad", start_time="12:00", end_time="11:00"
            )

    def test_unconfigured_provider(self, db_session, unconfigured_provider):
        """Test the two policies for providers without working hours."""
        with pytest.raises(NotFoundError):
            AvailabilityService.effective_window(db_session, unconfigured_provider.id, MONDAY)
        assert AvailabilityService.effective_window(
            db_session, unconfigured_provider.id, MONDAY, policy=UnconfiguredPolicy.UNAVAILABLE
        ) is None

    def test_unknown_provider(self, db_session):
        """Test that an unknown provider raises NotFoundError."""
        with pytest.raises(NotFoundError):
            AvailabilityService.effective_window(db_session, 999, MONDAY)


class TestWeeklySchedule:
    """Test weekly working hours configuration."""

    def test_set_and_get(self, db_session, unconfigured_provider):
        """Test replacing the week and reading it back."""
        rules = AvailabilityService.set_weekly_schedule(
            db_session, unconfigured_provider.id, week("08:00", "12:00", working_days=(0, 2, 4))
        )
        assert [rule.day_of_week for rule in rules] == list(range(7))
        assert [rule.is_working for rule in rules] == [True, False, True, False, True, False, False]
        assert rules[0].start_time == time(8, 0)

    def test_replaces_existing_rows(self, db_session, provider):
        """Test that setting the week updates rows in place."""
        AvailabilityService.set_weekly_schedule(db_session, provider.id, week("10:00", "16:00"))
        rules = AvailabilityService.get_weekly_schedule(db_session, provider.id)
        assert len(rules) == 7
        assert rules[0].start_time == time(10, 0)

    def test_requires_seven_days(self, db_session, provider):
        """Test that an incomplete week is rejected."""
        with pytest.raises(ValidationError):
            AvailabilityService.set_weekly_schedule(db_session, provider.id, week()[:6])

    def test_rejects_duplicate_days(self, db_session, provider):
        """Test that a weekday may appear only once."""
        days = week()
        days[6] = dict(days[0])
        with pytest.raises(ValidationError):
            AvailabilityService.set_weekly_schedule(db_session, provider.id, days)

    @pytest.mark.parametrize("start, end", [("17:00", "09:00"), ("09:00", "09:00"), ("9:00", "17:00")])
    def test_rejects_bad_windows(self, db_session, provider, start, end):
        """Test that inverted, empty and malformed windows are rejected."""
        with pytest.raises(ValidationError):
            AvailabilityService.set_weekly_schedule(db_session, provider.id, week(start, end))


class TestBreakRules:
    """Test recurring breaks."""

    def test_break_applies_on_its_weekday(self, db_session, provider):
        """Test that a Monday break blocks Monday only."""
        rule = AvailabilityService.create_break_rule(db_session, provider.id, 0, "12:00", "13:00", title="Lunch")
        monday_breaks = AvailabilityService.breaks_for(db_session, provider.id, MONDAY)
        assert monday_breaks == [Interval(datetime(2030, 1, 7, 12), datetime(2030, 1, 7, 13))]
        assert AvailabilityService.breaks_for(db_session, provider.id, date(2030, 1, 8)) == []
        assert AvailabilityService.break_blocks_for(db_session, provider.id, MONDAY)[0].break_rule_id == rule.id

    def test_effective_range(self, db_session, provider):
        """Test that a break outside its effective range does not apply."""
        AvailabilityService.create_break_rule(
            db_session, provider.id, 0, "12:00", "13:00", effective_from=date(2030, 1, 14)
        )
        assert AvailabilityService.breaks_for(db_session, provider.id, MONDAY) == []
        assert len(AvailabilityService.breaks_for(db_session, provider.id, date(2030, 1, 14))) == 1

    def test_deactivate(self, db_session, provider):
        """Test that a deactivated break no longer blocks time."""
        rule = AvailabilityService.create_break_rule(db_session, provider.id, 0, "12:00", "13:00")
        AvailabilityService.deactivate_break_rule(db_session, rule.id)
        assert AvailabilityService.breaks_for(db_session, provider.id, MONDAY) == []
        assert AvailabilityService.list_break_rules(db_session, provider.id) == []
        assert len(AvailabilityService.list_break_rules(db_session, provider.id, include_inactive=True)) == 1

    def test_update_changes_only_given_fields(self, db_session, provider):
        """Test partial updates of a break rule."""
        rule = AvailabilityService.create_break_rule(db_session, provider.id, 0, "12:00", "13:00", title="Lunch")
        updated = AvailabilityService.update_break_rule(db_session, rule.id, end_time="12:30")
        assert updated.start_time == time(12, 0)
        assert updated.end_time == time(12, 30)
        assert updated.title == "Lunch"

    def test_update_rejects_inverted_times(self, db_session, provider):
        """Test that an update cannot invert the break."""
        rule = AvailabilityService.create_break_rule(db_session, provider.id, 0, "12:00", "13:00")
        with pytest.raises(ValidationError):
            AvailabilityService.update_break_rule(db_session, rule.id, start_time="14:00")

    def test_invalid_day(self, db_session, provider):
        """Test that day_of_week must be 0..6."""
        with pytest.raises(ValidationError):
            AvailabilityService.create_break_rule(db_session, provider.id, 7, "12:00", "13:00")


class TestLeave:
    """Test approved leave in the snapshot."""

    def test_pending_leave_does_not_block(self, db_session, provider):
        """Test that only approved leave is read."""
        leave = approved_leave(db_session, provider.id, MONDAY, MONDAY)
        leave.status = "pending"
        db_session.commit()
        assert AvailabilityService.leave_for(db_session, provider.id, MONDAY) == []

    def test_all_day_leave_blocks_whole_day(self, db_session, provider):
        """Test that all-day leave blocks the entire date."""
        approved_leave(db_session, provider.id, MONDAY, date(2030, 1, 9))
        snapshot = AvailabilityService.get_schedule_snapshot(db_session, provider.id, date(2030, 1, 8))
        assert snapshot.has_all_day_leave
        assert snapshot.leave_blocks[0].interval == Interval.whole_day(date(2030, 1, 8))

    def test_partial_leave_blocks_its_hours(self, db_session, provider):
        """Test that partial-day leave blocks only its own hours."""
        approved_leave(db_session, provider.id, MONDAY, MONDAY, all_day=False,
                       start_time=time(13, 0), end_time=time(15, 0))
        snapshot = AvailabilityService.get_schedule_snapshot(db_session, provider.id, MONDAY)
        assert not snapshot.has_all_day_leave
        assert snapshot.leave_blocks[0].interval == Interval(datetime(2030, 1, 7, 13), datetime(2030, 1, 7, 15))
