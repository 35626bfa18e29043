"""
Holiday model.

Holidays are clinic-wide (per country) dates that recurring series skip by
default.
"""

from datetime import date as date_type, datetime
from typing import Optional
from sqlalchemy import Date, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base


class Holiday(Base):
    """A public holiday for one country."""

    __tablename__ = "holidays"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    date: Mapped[date_type] = mapped_column(Date)
    """The holiday date."""

    name: Mapped[str] = mapped_column(String(255))
    """Holiday name (e.g. 'Independence Day')."""

    country: Mapped[str] = mapped_column(String(2), default="US")
    """ISO 3166-1 alpha-2 country code."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('date', 'country', name='uq_holidays_date_country'),
    )

    def __repr__(self) -> str:
        return f"<Holiday(date={self.date}, name='{self.name}', country='{self.country}')>"
