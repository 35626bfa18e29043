"""
Outbound collaborator interfaces.

Notification delivery and audit-log storage live outside the scheduling
engine. Services take a sink as a parameter; the defaults here only log the
payload so that nothing is silently dropped when no real sink is wired in.
"""

import logging
from typing import List, Protocol, Sequence

from shared_types.scheduling import AffectedBooking, AuditEvent

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify_affected_bookings(self, leave_id: int, bookings: Sequence[AffectedBooking]) -> None:
        ...


class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None:
        ...


class LoggingNotificationSink:
    """Logs bookings affected by approved leave."""

    def notify_affected_bookings(self, leave_id: int, bookings: Sequence[AffectedBooking]) -> None:
        if not bookings:
            logger.info(f"Leave {leave_id} approved with no affected bookings")
            return
        booking_ids: List[int] = [booking.booking_id for booking in bookings]
        logger.info(f"Leave {leave_id} approved; affected bookings: {booking_ids}")


class LoggingAuditSink:
    """Logs audit events."""

    def emit(self, event: AuditEvent) -> None:
        logger.info(
            f"AUDIT {event.timestamp.isoformat()} actor={event.actor} action={event.action} "
            f"{event.entity_type}={event.entity_id} details={event.details}"
        )


default_notification_sink = LoggingNotificationSink()
default_audit_sink = LoggingAuditSink()
