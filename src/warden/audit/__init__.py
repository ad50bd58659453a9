"""Tamper-evident audit logging and alerting."""

from warden.audit.alerts import AlertSink, LoggingAlertSink
from warden.audit.log import TemplateAuditLog, generate_secret_key

__all__ = [
    "AlertSink",
    "LoggingAlertSink",
    "TemplateAuditLog",
    "generate_secret_key",
]
