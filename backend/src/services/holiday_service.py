"""
Holiday calendar.

Recurring series skip holiday dates by default, and the calendar view shows
them alongside provider events.
"""

import logging
from datetime import date
from typing import List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import get_scheduling_settings
from core.exceptions import ValidationError
from models import Holiday

logger = logging.getLogger(__name__)


def _country_or_default(country: Optional[str]) -> str:
    code = (country or get_scheduling_settings().holiday_country).strip().upper()
    if len(code) != 2:
        raise ValidationError(f"Country must be a two-letter code, got '{country}'")
    return code


class HolidayService:
    """Service class for holiday operations."""

    @staticmethod
    def add_holiday(db: Session, holiday_date: date, name: str, country: Optional[str] = None) -> Holiday:
        """
        Add a holiday.

        Raises:
            ValidationError: If the name is empty or the date is already a holiday for the country
        """
        if not name or not name.strip():
            raise ValidationError("Holiday name is required")
        code = _country_or_default(country)

        holiday = Holiday(date=holiday_date, name=name.strip(), country=code)
        try:
            db.add(holiday)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Duplicate holiday {holiday_date} for {code}: {e}")
            raise ValidationError(f"{holiday_date} is already a holiday for {code}") from e
        db.refresh(holiday)
        logger.info(f"Added holiday {holiday_date} ({holiday.name}) for {code}")
        return holiday

    @staticmethod
    def holidays_in_range(
        db: Session,
        start_date: date,
        end_date: date,
        country: Optional[str] = None
    ) -> List[Holiday]:
        """Get holidays from start_date to end_date inclusive, ordered by date."""
        code = _country_or_default(country)
        return db.query(Holiday).filter(
            Holiday.country == code,
            Holiday.date >= start_date,
            Holiday.date <= end_date
        ).order_by(Holiday.date).all()

    @staticmethod
    def holiday_dates(
        db: Session,
        start_date: date,
        end_date: date,
        country: Optional[str] = None
    ) -> Set[date]:
        return {holiday.date for holiday in HolidayService.holidays_in_range(db, start_date, end_date, country)}

    @staticmethod
    def is_holiday(db: Session, target_date: date, country: Optional[str] = None) -> bool:
        code = _country_or_default(country)
        return db.query(Holiday.id).filter(
            Holiday.country == code,
            Holiday.date == target_date
        ).first() is not None
