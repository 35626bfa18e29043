"""
Shared type definitions for the scheduling engine.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.scheduling import (
    AffectedBooking,
    AttemptState,
    AuditEvent,
    BookingAttempt,
    ConflictResult,
    DuringBreak,
    NoConflict,
    OccurrenceOutcome,
    OnApprovedLeave,
    OutsideWorkingHours,
    OverlapsBooking,
    ScheduleSnapshot,
    SeriesExpansionResult,
    SlotData,
    Timeout,
)

__all__ = [
    "AffectedBooking",
    "AttemptState",
    "AuditEvent",
    "BookingAttempt",
    "ConflictResult",
    "DuringBreak",
    "NoConflict",
    "OccurrenceOutcome",
    "OnApprovedLeave",
    "OutsideWorkingHours",
    "OverlapsBooking",
    "ScheduleSnapshot",
    "SeriesExpansionResult",
    "SlotData",
    "Timeout",
]
