"""
Tamper-Evident Audit Log for Warden.

An append-only, in-memory record of security events. Each entry carries an
HMAC-SHA256 integrity value over its content fields:

    timestamp, type, severity, template_id, template_version, user, pid, details

serialized as a canonical JSON array in that order. verify_integrity()
recomputes every value and reports the positions of entries that no longer
match, so edits made after logging (including to imported entries) are
detected. The stack trace is informational and not covered.

Rotation bounds memory use:
    - size: keep the newest max_log_size entries
    - time: drop entries older than retention_days
    - none: keep everything

Thread Safety:
    Appending and rotating happen under one lock, so concurrent writers
    never observe a half-rotated log.
"""

import getpass
import hashlib
import hmac
import json
import logging
import os
import secrets
import threading
import traceback
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import TypeAdapter, ValidationError

from warden.audit.alerts import AlertSink, LoggingAlertSink
from warden.config import AuditConfig, RotationPolicy
from warden.errors import AuditImportError
from warden.schema import (
    AuditEntry,
    AuditEventType,
    AuditSeverity,
    AuditVerificationResult,
    SecurityEvent,
)

logger = logging.getLogger(__name__)

# Details are stored in their JSON form so export and import keep the same
# values the integrity hash was computed over.
_DETAILS = TypeAdapter(dict[str, Any])


def generate_secret_key() -> bytes:
    """Return 32 random bytes suitable as an audit HMAC key."""
    return secrets.token_bytes(32)


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_timestamp(value: datetime | str) -> str:
    return value.isoformat() if isinstance(value, datetime) else value


class TemplateAuditLog:
    """
    HMAC-protected audit log of template security events.

    Usage:
        audit = TemplateAuditLog(secret_key)
        audit.log_template_load("tpl-1", user="alice")
        report = audit.verify_integrity()
        if not report.valid:
            print(report.tampered_indices)
    """

    def __init__(
        self,
        secret_key: str | bytes,
        config: AuditConfig | None = None,
        alert_sink: AlertSink | None = None,
        clock: Callable[[], datetime] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the audit log.

        Args:
            secret_key: HMAC key; text keys are UTF-8 encoded
            config: Rotation and alert settings (defaults if None)
            alert_sink: Receiver for critical events (logging sink if None)
            clock: Source of timezone-aware UTC timestamps
            log: Logger to use instead of the module logger
        """
        self._key = secret_key.encode("utf-8") if isinstance(secret_key, str) else secret_key
        self.config = config or AuditConfig()
        self._log = log or logger
        self._alert_sink = alert_sink or LoggingAlertSink(self._log)
        self._clock = clock or _utcnow
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()
        self._log.debug(
            "TemplateAuditLog initialized",
            extra={
                "max_log_size": self.config.max_log_size,
                "rotation_policy": self.config.rotation_policy.value,
                "retention_days": self.config.retention_days,
            },
        )

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        """Snapshot of the current entries, oldest first."""
        with self._lock:
            return tuple(self._entries)

    # =========================================================================
    # Writing
    # =========================================================================

    def log_event(self, event: SecurityEvent) -> AuditEntry:
        """Record an event and return the stored entry."""
        fields: dict[str, Any] = {
            "timestamp": self._clock().isoformat(),
            "type": event.type,
            "severity": event.severity,
            "template_id": event.template_id,
            "template_version": event.template_version,
            "user": event.user or _current_user(),
            "pid": os.getpid(),
            "details": _DETAILS.dump_python(event.details, mode="json"),
        }
        stack_trace = "".join(traceback.format_stack()[:-1]) if event.capture_stack else None
        entry = AuditEntry(
            **fields,
            integrity=self._sign(fields),
            stack_trace=stack_trace,
        )

        with self._lock:
            self._entries.append(entry)
            self._rotate()

        if self.config.alert_on_critical and entry.severity is AuditSeverity.CRITICAL:
            self._alert_sink.alert(entry)

        self._log.debug(
            "Security event logged",
            extra={"event_type": entry.type.value, "severity": entry.severity.value},
        )
        return entry

    def log_template_load(
        self,
        template_id: str,
        user: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> AuditEntry:
        return self.log_event(SecurityEvent(
            type=AuditEventType.TEMPLATE_LOAD,
            template_id=template_id,
            user=user,
            details=dict(details or {}),
        ))

    def log_template_execution(
        self,
        template_id: str,
        user: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> AuditEntry:
        return self.log_event(SecurityEvent(
            type=AuditEventType.TEMPLATE_EXECUTION,
            template_id=template_id,
            user=user,
            details=dict(details or {}),
        ))

    def log_security_violation(
        self,
        template_id: str,
        violation: str,
        user: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> AuditEntry:
        """Record a critical violation; alerts when alerting is on."""
        return self.log_event(SecurityEvent(
            type=AuditEventType.SECURITY_VIOLATION,
            severity=AuditSeverity.CRITICAL,
            template_id=template_id,
            user=user,
            details={"violation": violation, **(details or {})},
        ))

    def clear(self) -> None:
        self._log.info("Clearing audit log")
        with self._lock:
            self._entries.clear()

    # =========================================================================
    # Integrity
    # =========================================================================

    def calculate_integrity(self, entry: AuditEntry) -> str:
        """HMAC-SHA256 hex digest over the entry's content fields."""
        return self._sign(entry.model_dump(exclude={"integrity", "stack_trace"}))

    def verify_integrity(self) -> AuditVerificationResult:
        """Recompute every integrity value and report mismatches."""
        entries = self.entries
        tampered = [
            index
            for index, entry in enumerate(entries)
            if not hmac.compare_digest(
                entry.integrity.encode("utf-8"),
                self.calculate_integrity(entry).encode("utf-8"),
            )
        ]

        if tampered:
            self._log.warning(
                "Audit log tampering detected",
                extra={"tampered_count": len(tampered), "tampered_indices": tampered},
            )

        return AuditVerificationResult(
            valid=not tampered,
            total_entries=len(entries),
            tampered_entries=len(tampered),
            tampered_indices=tampered,
        )

    def _sign(self, fields: Mapping[str, Any]) -> str:
        canonical = json.dumps(
            [
                fields["timestamp"],
                _enum_value(fields["type"]),
                _enum_value(fields["severity"]),
                fields["template_id"],
                fields["template_version"],
                fields["user"],
                fields["pid"],
                fields["details"],
            ],
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hmac.new(self._key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()

    # =========================================================================
    # Reading
    # =========================================================================

    def query(
        self,
        start_time: datetime | str | None = None,
        end_time: datetime | str | None = None,
        template_id: str | None = None,
        event_type: AuditEventType | str | None = None,
        severity: AuditSeverity | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """
        Filter entries. Time bounds are inclusive; limit keeps the newest.

        Datetime bounds must be timezone-aware UTC to compare correctly
        with stored timestamps.

        Raises:
            ValueError: If limit is negative
        """
        results = list(self.entries)

        if start_time is not None:
            start = _as_timestamp(start_time)
            results = [e for e in results if e.timestamp >= start]
        if end_time is not None:
            end = _as_timestamp(end_time)
            results = [e for e in results if e.timestamp <= end]
        if template_id:
            results = [e for e in results if e.template_id == template_id]
        if event_type is not None:
            kind = AuditEventType(event_type)
            results = [e for e in results if e.type is kind]
        if severity is not None:
            level = AuditSeverity(severity)
            results = [e for e in results if e.severity is level]
        if limit is not None:
            if limit < 0:
                raise ValueError(f"limit must be non-negative, got {limit}")
            results = results[-limit:] if limit else []

        return results

    def get_statistics(self) -> dict[str, Any]:
        entries = self.entries
        event_types: dict[str, int] = {}
        severities: dict[str, int] = {}
        for entry in entries:
            event_types[entry.type.value] = event_types.get(entry.type.value, 0) + 1
            severities[entry.severity.value] = severities.get(entry.severity.value, 0) + 1

        return {
            "total_entries": len(entries),
            "oldest_entry": entries[0].timestamp if entries else None,
            "newest_entry": entries[-1].timestamp if entries else None,
            "event_types": event_types,
            "severities": severities,
        }

    def get_config(self) -> AuditConfig:
        return self.config

    # =========================================================================
    # Persistence
    # =========================================================================

    def export(self) -> list[dict[str, Any]]:
        """JSON-serializable copy of every entry, integrity included."""
        return [entry.model_dump(mode="json") for entry in self.entries]

    def import_entries(self, data: Iterable[Mapping[str, Any]]) -> int:
        """
        Append previously exported entries, keeping their integrity values.

        All entries are validated before any is appended.

        Raises:
            AuditImportError: If an entry does not match the entry model
        """
        imported: list[AuditEntry] = []
        for index, raw in enumerate(data):
            try:
                imported.append(AuditEntry.model_validate(raw))
            except ValidationError as e:
                raise AuditImportError(index=index, underlying_error=str(e)) from e

        with self._lock:
            self._entries.extend(imported)
            self._rotate()

        self._log.info("Audit entries imported", extra={"count": len(imported)})
        return len(imported)

    # =========================================================================
    # Rotation
    # =========================================================================

    def _rotate(self) -> None:
        # Caller holds self._lock.
        policy = self.config.rotation_policy
        if policy is RotationPolicy.SIZE and len(self._entries) > self.config.max_log_size:
            self._log.info("Rotating audit log", extra={"size": len(self._entries)})
            del self._entries[: -self.config.max_log_size]
        elif policy is RotationPolicy.TIME:
            cutoff = (self._clock() - timedelta(days=self.config.retention_days)).isoformat()
            kept = [e for e in self._entries if e.timestamp >= cutoff]
            if len(kept) != len(self._entries):
                self._log.info(
                    "Rotating audit log",
                    extra={"size": len(self._entries), "expired": len(self._entries) - len(kept)},
                )
                self._entries[:] = kept


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)
