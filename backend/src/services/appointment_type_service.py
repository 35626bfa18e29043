"""
Appointment type service for appointment type management and validation.

Resolves the duration and buffer a provider actually uses for an appointment
type: the provider's override when set, otherwise the type default.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from core.constants import (
    MAX_APPOINTMENT_DURATION_MINUTES,
    MAX_BUFFER_MINUTES,
    MIN_APPOINTMENT_DURATION_MINUTES,
)
from core.exceptions import NotFoundError, ValidationError
from models import AppointmentType, ProviderAppointmentTypeSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectiveAppointmentSettings:
    """Duration and buffer a provider uses for one appointment type."""
    appointment_type_id: int
    duration_minutes: int
    buffer_minutes: int


def _validate_duration(duration_minutes: Optional[int]) -> None:
    if duration_minutes is None:
        return
    if not MIN_APPOINTMENT_DURATION_MINUTES <= duration_minutes <= MAX_APPOINTMENT_DURATION_MINUTES:
        raise ValidationError(
            f"Duration must be between {MIN_APPOINTMENT_DURATION_MINUTES} and "
            f"{MAX_APPOINTMENT_DURATION_MINUTES} minutes"
        )


def _validate_buffer(buffer_minutes: Optional[int]) -> None:
    if buffer_minutes is None:
        return
    if not 0 <= buffer_minutes <= MAX_BUFFER_MINUTES:
        raise ValidationError(f"Buffer must be between 0 and {MAX_BUFFER_MINUTES} minutes")


class AppointmentTypeService:
    """
    Service class for appointment type operations.

    Contains business logic for appointment type management and validation that is shared
    across booking, slot generation and recurring series.
    """

    @staticmethod
    def create_appointment_type(
        db: Session,
        name: str,
        duration_minutes: int,
        buffer_minutes: int = 0,
        description: Optional[str] = None
    ) -> AppointmentType:
        """
        Create a new appointment type.

        Args:
            db: Database session
            name: Display name
            duration_minutes: Default duration (5..240)
            buffer_minutes: Default buffer after each appointment (0..60)
            description: Optional description

        Returns:
            Created AppointmentType

        Raises:
            ValidationError: If name is empty or duration/buffer is out of range
        """
        if not name or not name.strip():
            raise ValidationError("Appointment type name is required")
        _validate_duration(duration_minutes)
        _validate_buffer(buffer_minutes)

        appointment_type = AppointmentType(
            name=name.strip(),
            duration_minutes=duration_minutes,
            buffer_minutes=buffer_minutes,
            description=description,
        )
        db.add(appointment_type)
        db.commit()
        db.refresh(appointment_type)
        logger.info(f"Created appointment type {appointment_type.id} ({appointment_type.name})")
        return appointment_type

    @staticmethod
    def get_appointment_type_by_id(db: Session, appointment_type_id: int) -> AppointmentType:
        """
        Get an appointment type by ID.

        Note: This method only returns non-deleted appointment types.

        Raises:
            NotFoundError: If the appointment type does not exist or is deleted
        """
        appointment_type = db.query(AppointmentType).filter(
            AppointmentType.id == appointment_type_id,
            AppointmentType.is_deleted == False  # noqa: E712
        ).first()
        if not appointment_type:
            raise NotFoundError(f"Appointment type {appointment_type_id} not found")
        return appointment_type

    @staticmethod
    def list_appointment_types(db: Session) -> List[AppointmentType]:
        """List active, non-deleted appointment types ordered by name."""
        return db.query(AppointmentType).filter(
            AppointmentType.is_active == True,  # noqa: E712
            AppointmentType.is_deleted == False  # noqa: E712
        ).order_by(AppointmentType.name).all()

    @staticmethod
    def set_provider_settings(
        db: Session,
        provider_id: int,
        appointment_type_id: int,
        duration_minutes: Optional[int] = None,
        buffer_minutes: Optional[int] = None,
        is_active: bool = True
    ) -> ProviderAppointmentTypeSettings:
        """
        Create or replace a provider's override for an appointment type.

        ``None`` for duration or buffer means "use the type default".
        """
        AppointmentTypeService.get_appointment_type_by_id(db, appointment_type_id)
        _validate_duration(duration_minutes)
        _validate_buffer(buffer_minutes)

        settings = db.query(ProviderAppointmentTypeSettings).filter(
            ProviderAppointmentTypeSettings.provider_id == provider_id,
            ProviderAppointmentTypeSettings.appointment_type_id == appointment_type_id
        ).first()
        if settings is None:
            settings = ProviderAppointmentTypeSettings(
                provider_id=provider_id,
                appointment_type_id=appointment_type_id,
            )
            db.add(settings)

        settings.duration_minutes = duration_minutes
        settings.buffer_minutes = buffer_minutes
        settings.is_active = is_active
        db.commit()
        db.refresh(settings)
        logger.info(
            f"Provider {provider_id} settings for appointment type {appointment_type_id}: "
            f"duration={duration_minutes}, buffer={buffer_minutes}, active={is_active}"
        )
        return settings

    @staticmethod
    def get_effective_settings(
        db: Session,
        provider_id: int,
        appointment_type_id: int
    ) -> EffectiveAppointmentSettings:
        """
        Resolve the duration and buffer a provider uses for an appointment type.

        Args:
            db: Database session
            provider_id: Provider ID
            appointment_type_id: Appointment type ID

        Returns:
            EffectiveAppointmentSettings

        Raises:
            NotFoundError: If the appointment type does not exist
            ValidationError: If the type is inactive or the provider does not offer it
        """
        appointment_type = AppointmentTypeService.get_appointment_type_by_id(db, appointment_type_id)
        if not appointment_type.is_active:
            raise ValidationError(f"Appointment type {appointment_type_id} is not active")

        override = db.query(ProviderAppointmentTypeSettings).filter(
            ProviderAppointmentTypeSettings.provider_id == provider_id,
            ProviderAppointmentTypeSettings.appointment_type_id == appointment_type_id
        ).first()

        duration = appointment_type.duration_minutes
        buffer = appointment_type.buffer_minutes or 0
        if override is not None:
            if not override.is_active:
                raise ValidationError(
                    f"Provider {provider_id} does not offer appointment type {appointment_type_id}"
                )
            if override.duration_minutes is not None:
                duration = override.duration_minutes
            if override.buffer_minutes is not None:
                buffer = override.buffer_minutes

        return EffectiveAppointmentSettings(
            appointment_type_id=appointment_type_id,
            duration_minutes=duration,
            buffer_minutes=buffer,
        )
