"""
FastAPI dependencies for the scheduling services.

Collaborator sinks are resolved through dependencies so that deployments
(and tests) can override them with ``app.dependency_overrides``.
"""

from fastapi import Depends

from services import BookingCoordinator, LeaveService, RecurringSeriesService
from services.collaborators import (
    AuditSink,
    NotificationSink,
    default_audit_sink,
    default_notification_sink,
)


def get_audit_sink() -> AuditSink:
    return default_audit_sink


def get_notification_sink() -> NotificationSink:
    return default_notification_sink


def get_booking_coordinator(audit_sink: AuditSink = Depends(get_audit_sink)) -> BookingCoordinator:
    return BookingCoordinator(audit_sink=audit_sink)


def get_leave_service(
    notification_sink: NotificationSink = Depends(get_notification_sink),
    audit_sink: AuditSink = Depends(get_audit_sink)
) -> LeaveService:
    return LeaveService(notification_sink=notification_sink, audit_sink=audit_sink)


def get_recurring_series_service(
    coordinator: BookingCoordinator = Depends(get_booking_coordinator)
) -> RecurringSeriesService:
    return RecurringSeriesService(coordinator=coordinator)
