"""
Alert sinks for critical audit events.

The audit log hands every critical event to an AlertSink when alerting is
enabled. The default sink escalates to a CRITICAL log record; hosts that
page or notify plug in their own implementation.
"""

import logging
from typing import Protocol, runtime_checkable

from warden.schema import AuditEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class AlertSink(Protocol):
    """Receives audit entries that require immediate attention."""

    def alert(self, entry: AuditEntry) -> None:
        """Deliver an alert for the entry."""
        ...


class LoggingAlertSink:
    """Escalates critical audit entries to a CRITICAL log record."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def alert(self, entry: AuditEntry) -> None:
        self._log.critical(
            "CRITICAL SECURITY EVENT",
            extra={
                "event_type": entry.type.value,
                "template_id": entry.template_id,
                "details": entry.details,
            },
        )
