"""
Recurrence rules and occurrence date generation for recurring series.

Generation is pure: it turns a rule into the ordered list of candidate dates
without looking at the database. Holidays, exception dates and conflicts are
applied later by the recurring series service.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Any, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from core.constants import (
    DEFAULT_RESCHEDULE_WINDOW_DAYS,
    MAX_CUSTOM_INTERVAL_DAYS,
    MAX_MONTHLY_SERIES_OCCURRENCES,
    MAX_RESCHEDULE_WINDOW_DAYS,
    MAX_WEEKLY_SERIES_OCCURRENCES,
    SERIES_FREQUENCY_BIWEEKLY,
    SERIES_FREQUENCY_CUSTOM,
    SERIES_FREQUENCY_MONTHLY_BY_DATE,
    SERIES_FREQUENCY_MONTHLY_BY_WEEKDAY,
    WEEKLY_CLASS_FREQUENCIES,
)
from core.exceptions import ValidationError
from utils.datetime_utils import parse_wall_time

logger = logging.getLogger(__name__)

Frequency = Literal["weekly", "biweekly", "monthly_by_date", "monthly_by_weekday", "custom"]


class RecurrenceRule(BaseModel):
    """
    How a recurring series repeats.

    Either ``end_date`` or ``occurrence_count`` bounds the series. Weekly,
    biweekly and custom rules may produce at most 52 occurrences; monthly
    rules at most 100.
    """
    frequency: Frequency
    time_of_day: time
    start_date: date
    end_date: Optional[date] = None
    occurrence_count: Optional[int] = Field(default=None, ge=1)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)  # 0=Monday
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    week_of_month: Optional[int] = Field(default=None, ge=1, le=5)
    custom_interval_days: Optional[int] = Field(default=None, ge=1, le=MAX_CUSTOM_INTERVAL_DAYS)
    exception_dates: List[date] = Field(default_factory=list)
    skip_holidays: bool = True
    auto_reschedule: bool = False
    reschedule_window_days: int = Field(default=DEFAULT_RESCHEDULE_WINDOW_DAYS, ge=0, le=MAX_RESCHEDULE_WINDOW_DAYS)

    @field_validator('time_of_day', mode='before')
    @classmethod
    def parse_time_of_day(cls, v: Any) -> Any:
        """Accept strict "HH:MM" strings in addition to time objects."""
        if isinstance(v, str):
            return parse_wall_time(v)
        return v

    @model_validator(mode='after')
    def check_consistency(self) -> "RecurrenceRule":
        if self.end_date is None and self.occurrence_count is None:
            raise ValueError("Either end_date or occurrence_count is required")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")

        if self.occurrence_count is not None and self.occurrence_count > self.max_occurrences:
            raise ValueError(
                f"occurrence_count must be at most {self.max_occurrences} for {self.frequency} series"
            )

        if self.frequency == SERIES_FREQUENCY_CUSTOM and self.custom_interval_days is None:
            raise ValueError("custom_interval_days is required for custom series")
        if self.frequency == SERIES_FREQUENCY_MONTHLY_BY_DATE and self.day_of_month is None:
            raise ValueError("day_of_month is required for monthly_by_date series")
        if self.frequency == SERIES_FREQUENCY_MONTHLY_BY_WEEKDAY:
            if self.day_of_week is None or self.week_of_month is None:
                raise ValueError("day_of_week and week_of_month are required for monthly_by_weekday series")
        return self

    @property
    def max_occurrences(self) -> int:
        if self.frequency in WEEKLY_CLASS_FREQUENCIES:
            return MAX_WEEKLY_SERIES_OCCURRENCES
        return MAX_MONTHLY_SERIES_OCCURRENCES

    @property
    def is_monthly(self) -> bool:
        return self.frequency not in WEEKLY_CLASS_FREQUENCIES


def parse_recurrence_rule(data: Mapping[str, Any]) -> RecurrenceRule:
    """
    Build a RecurrenceRule from raw fields.

    Raises:
        ValidationError: If the rule is malformed or inconsistent
    """
    try:
        return RecurrenceRule.model_validate(dict(data))
    except PydanticValidationError as e:
        messages = "; ".join(str(error.get("msg")) for error in e.errors())
        raise ValidationError(f"Invalid recurrence rule: {messages}") from e


@dataclass(frozen=True)
class Occurrence:
    """
    One candidate occurrence of a rule.

    ``exists`` is False for monthly occurrences whose requested day is not in
    the month (e.g. a fifth Tuesday); ``date`` is then the first day of that
    month.
    """
    position: int
    date: date
    exists: bool = True


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> Optional[date]:
    """
    Get the n-th given weekday of a month (n starting at 1).

    Returns:
        The date, or None when the month has fewer than n such weekdays
    """
    first_weekday, days_in_month = calendar.monthrange(year, month)
    day = 1 + (weekday - first_weekday) % 7 + (n - 1) * 7
    if day > days_in_month:
        return None
    return date(year, month, day)


def day_of_month_in(year: int, month: int, day: int) -> Optional[date]:
    """Get ``day`` of the month, or None if the month is too short."""
    if day > calendar.monthrange(year, month)[1]:
        return None
    return date(year, month, day)


def _add_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def _weekly_occurrences(rule: RecurrenceRule, limit: int) -> List[Occurrence]:
    if rule.frequency == SERIES_FREQUENCY_CUSTOM:
        step = timedelta(days=rule.custom_interval_days or 1)
        current = rule.start_date
    else:
        step = timedelta(days=14 if rule.frequency == SERIES_FREQUENCY_BIWEEKLY else 7)
        weekday = rule.day_of_week if rule.day_of_week is not None else rule.start_date.weekday()
        current = rule.start_date + timedelta(days=(weekday - rule.start_date.weekday()) % 7)

    occurrences: List[Occurrence] = []
    while len(occurrences) < limit:
        if rule.end_date is not None and current > rule.end_date:
            break
        occurrences.append(Occurrence(position=len(occurrences), date=current))
        current += step
    return occurrences


def _monthly_occurrences(rule: RecurrenceRule, limit: int) -> List[Occurrence]:
    occurrences: List[Occurrence] = []
    year, month = rule.start_date.year, rule.start_date.month
    while len(occurrences) < limit:
        month_start = date(year, month, 1)
        if rule.end_date is not None and month_start > rule.end_date:
            break
        next_year, next_month = _add_month(year, month)

        if rule.frequency == SERIES_FREQUENCY_MONTHLY_BY_WEEKDAY:
            candidate = nth_weekday_of_month(year, month, rule.day_of_week or 0, rule.week_of_month or 1)
        else:
            candidate = day_of_month_in(year, month, rule.day_of_month or 1)

        if candidate is None:
            # A missing day would fall past the end of its month, so it is
            # after the start date and beyond an end date inside the month.
            if rule.end_date is not None and rule.end_date < date(next_year, next_month, 1):
                break
            occurrences.append(Occurrence(position=len(occurrences), date=month_start, exists=False))
        elif candidate >= rule.start_date:
            if rule.end_date is not None and candidate > rule.end_date:
                break
            occurrences.append(Occurrence(position=len(occurrences), date=candidate))

        year, month = next_year, next_month
    return occurrences


def generate_occurrences(rule: RecurrenceRule) -> List[Occurrence]:
    """
    Generate the candidate occurrences of a rule in date order.

    Missing monthly days are returned with ``exists=False`` rather than
    clamped to the end of the month, and they still use up one of the
    rule's ``occurrence_count``.

    Args:
        rule: Validated recurrence rule

    Returns:
        Occurrences with consecutive positions starting at 0
    """
    limit = rule.occurrence_count or rule.max_occurrences
    if rule.is_monthly:
        return _monthly_occurrences(rule, limit)
    return _weekly_occurrences(rule, limit)

