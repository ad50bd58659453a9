"""
Unit tests for the Tamper-Evident Audit Log.

Tests cover:
- Entry construction and integrity values
- Convenience logging methods
- Critical alerts
- Size and time rotation
- Queries and statistics
- Export and import
"""

import hashlib
import hmac
import json
import logging
import os
from datetime import UTC, datetime, timedelta

import pytest

from warden.audit.alerts import AlertSink, LoggingAlertSink
from warden.audit.log import TemplateAuditLog, generate_secret_key
from warden.config import AuditConfig, RotationPolicy
from warden.errors import AuditImportError
from warden.schema import AuditEntry, AuditEventType, AuditSeverity, SecurityEvent

KEY = b"audit-unit-key"


class RecordingSink:
    """Alert sink that keeps what it receives."""

    def __init__(self) -> None:
        self.alerts: list[AuditEntry] = []

    def alert(self, entry: AuditEntry) -> None:
        self.alerts.append(entry)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def log(clock, sink: RecordingSink) -> TemplateAuditLog:
    return TemplateAuditLog(KEY, alert_sink=sink, clock=clock)


# =============================================================================
# Writing
# =============================================================================


class TestLogEvent:
    """Tests for log_event and entry construction."""

    def test_entry_fields(self, log: TemplateAuditLog, clock) -> None:
        entry = log.log_event(SecurityEvent(
            type=AuditEventType.PERMISSION_CHECK,
            severity=AuditSeverity.WARNING,
            template_id="tpl-1",
            template_version="2.0",
            user="alice",
            details={"operation": "file_write"},
        ))
        assert entry.timestamp == clock.now.isoformat()
        assert entry.type is AuditEventType.PERMISSION_CHECK
        assert entry.severity is AuditSeverity.WARNING
        assert entry.template_version == "2.0"
        assert entry.user == "alice"
        assert entry.pid == os.getpid()
        assert entry.details == {"operation": "file_write"}
        assert entry.stack_trace is None
        assert log.entries == (entry,)

    def test_integrity_matches_canonical_form(self, log: TemplateAuditLog) -> None:
        entry = log.log_template_load("tpl-1", user="bob", details={"b": 1, "a": 2})
        canonical = json.dumps(
            [
                entry.timestamp,
                "template_load",
                "info",
                "tpl-1",
                None,
                "bob",
                entry.pid,
                {"a": 2, "b": 1},
            ],
            sort_keys=True,
            separators=(",", ":"),
        )
        expected = hmac.new(KEY, canonical.encode(), hashlib.sha256).hexdigest()
        assert entry.integrity == expected
        assert log.calculate_integrity(entry) == expected

    def test_default_user(self, log: TemplateAuditLog) -> None:
        entry = log.log_template_execution("tpl-1")
        assert entry.user

    def test_stack_trace_captured_on_request(self, log: TemplateAuditLog) -> None:
        entry = log.log_event(SecurityEvent(
            type=AuditEventType.INJECTION_ATTEMPT,
            template_id="tpl-1",
            capture_stack=True,
        ))
        assert "test_stack_trace_captured_on_request" in entry.stack_trace

    def test_security_violation_is_critical(self, log: TemplateAuditLog) -> None:
        entry = log.log_security_violation("tpl-1", "tried sudo", details={"step": "s1"})
        assert entry.type is AuditEventType.SECURITY_VIOLATION
        assert entry.severity is AuditSeverity.CRITICAL
        assert entry.details == {"violation": "tried sudo", "step": "s1"}

    def test_generate_secret_key(self) -> None:
        key = generate_secret_key()
        assert isinstance(key, bytes)
        assert len(key) == 32
        assert key != generate_secret_key()


class TestAlerts:
    """Tests for critical event alerting."""

    def test_critical_event_alerts(self, log: TemplateAuditLog, sink: RecordingSink) -> None:
        entry = log.log_security_violation("tpl-1", "bad")
        assert sink.alerts == [entry]

    def test_non_critical_does_not_alert(self, log: TemplateAuditLog, sink: RecordingSink) -> None:
        log.log_template_load("tpl-1")
        assert sink.alerts == []

    def test_alerting_disabled(self, clock, sink: RecordingSink) -> None:
        log = TemplateAuditLog(KEY, AuditConfig(alert_on_critical=False), alert_sink=sink, clock=clock)
        log.log_security_violation("tpl-1", "bad")
        assert sink.alerts == []

    def test_logging_sink(self, clock, caplog: pytest.LogCaptureFixture) -> None:
        assert isinstance(LoggingAlertSink(), AlertSink)
        log = TemplateAuditLog(KEY, clock=clock)
        with caplog.at_level(logging.CRITICAL):
            log.log_security_violation("tpl-9", "bad")
        records = [r for r in caplog.records if r.levelno == logging.CRITICAL]
        assert records[0].getMessage() == "CRITICAL SECURITY EVENT"
        assert records[0].template_id == "tpl-9"


# =============================================================================
# Integrity
# =============================================================================


class TestVerifyIntegrity:
    """Tests for verify_integrity."""

    def test_clean_log(self, log: TemplateAuditLog) -> None:
        log.log_template_load("a")
        log.log_template_load("b")
        result = log.verify_integrity()
        assert result.valid is True
        assert result.total_entries == 2
        assert result.tampered_entries == 0
        assert result.tampered_indices == []

    def test_empty_log_is_valid(self, log: TemplateAuditLog) -> None:
        assert log.verify_integrity().valid is True

    def test_stack_trace_not_covered(self, log: TemplateAuditLog) -> None:
        log.log_template_load("a")
        exported = log.export()
        exported[0]["stack_trace"] = "edited"
        other = TemplateAuditLog(KEY)
        other.import_entries(exported)
        assert other.verify_integrity().valid is True


# =============================================================================
# Rotation
# =============================================================================


class TestRotation:
    """Tests for size and time rotation."""

    def test_size_rotation_keeps_newest(self, clock) -> None:
        log = TemplateAuditLog(KEY, AuditConfig(max_log_size=3), clock=clock)
        for i in range(5):
            log.log_template_load(f"tpl-{i}")
        assert [e.template_id for e in log.entries] == ["tpl-2", "tpl-3", "tpl-4"]
        assert log.verify_integrity().valid is True

    def test_time_rotation_drops_old_entries(self, clock) -> None:
        config = AuditConfig(rotation_policy=RotationPolicy.TIME, retention_days=7)
        log = TemplateAuditLog(KEY, config, clock=clock)
        log.log_template_load("old")
        clock.advance(days=8)
        log.log_template_load("new")
        assert [e.template_id for e in log.entries] == ["new"]

    def test_no_rotation(self, clock) -> None:
        config = AuditConfig(rotation_policy=RotationPolicy.NONE, max_log_size=1)
        log = TemplateAuditLog(KEY, config, clock=clock)
        log.log_template_load("a")
        log.log_template_load("b")
        assert len(log) == 2


# =============================================================================
# Reading
# =============================================================================


class TestQuery:
    """Tests for query and get_statistics."""

    @pytest.fixture
    def filled(self, log: TemplateAuditLog, clock) -> TemplateAuditLog:
        log.log_template_load("a")
        clock.advance(hours=1)
        log.log_template_execution("b")
        clock.advance(hours=1)
        log.log_security_violation("a", "x")
        return log

    def test_no_filters(self, filled: TemplateAuditLog) -> None:
        assert len(filled.query()) == 3

    def test_filters(self, filled: TemplateAuditLog) -> None:
        assert [e.type for e in filled.query(template_id="a")] == [
            AuditEventType.TEMPLATE_LOAD,
            AuditEventType.SECURITY_VIOLATION,
        ]
        assert len(filled.query(event_type="template_execution")) == 1
        assert len(filled.query(severity=AuditSeverity.CRITICAL)) == 1

    def test_time_bounds_inclusive(self, filled: TemplateAuditLog, clock) -> None:
        middle = clock.now - timedelta(hours=1)
        assert [e.template_id for e in filled.query(start_time=middle)] == ["b", "a"]
        assert [e.template_id for e in filled.query(end_time=middle)] == ["a", "b"]

    def test_limit_keeps_newest(self, filled: TemplateAuditLog) -> None:
        assert [e.type for e in filled.query(limit=1)] == [AuditEventType.SECURITY_VIOLATION]
        assert len(filled.query(limit=10)) == 3

    def test_zero_limit_returns_nothing(self, filled: TemplateAuditLog) -> None:
        assert filled.query(limit=0) == []

    def test_negative_limit_rejected(self, filled: TemplateAuditLog) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            filled.query(limit=-1)

    def test_statistics(self, filled: TemplateAuditLog) -> None:
        stats = filled.get_statistics()
        assert stats["total_entries"] == 3
        assert stats["event_types"] == {
            "template_load": 1,
            "template_execution": 1,
            "security_violation": 1,
        }
        assert stats["severities"] == {"info": 2, "critical": 1}
        assert stats["oldest_entry"] < stats["newest_entry"]

    def test_statistics_empty(self, log: TemplateAuditLog) -> None:
        stats = log.get_statistics()
        assert stats["total_entries"] == 0
        assert stats["oldest_entry"] is None

    def test_clear(self, filled: TemplateAuditLog) -> None:
        filled.clear()
        assert len(filled) == 0


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    """Tests for export and import_entries."""

    def test_export_is_json_serializable(self, log: TemplateAuditLog) -> None:
        log.log_template_load("a", details={"n": 1})
        exported = log.export()
        assert json.loads(json.dumps(exported)) == exported
        assert exported[0]["type"] == "template_load"

    def test_roundtrip_verifies(self, log: TemplateAuditLog) -> None:
        log.log_template_load("a", details={"n": 1})
        log.log_security_violation("a", "x")
        other = TemplateAuditLog(KEY)
        assert other.import_entries(log.export()) == 2
        assert other.verify_integrity().valid is True

    def test_non_json_details_survive_json_roundtrip(self, log: TemplateAuditLog) -> None:
        """Details are stored in JSON form, so a file round trip still verifies."""
        loaded_at = datetime(2026, 1, 1, tzinfo=UTC)
        entry = log.log_template_load(
            "a",
            details={"loaded_at": loaded_at, "tags": ("x", "y"), "raw": b"abc"},
        )
        assert entry.details == {"loaded_at": "2026-01-01T00:00:00Z", "tags": ["x", "y"], "raw": "abc"}

        other = TemplateAuditLog(KEY)
        other.import_entries(json.loads(json.dumps(log.export())))
        assert other.verify_integrity().valid is True
        assert other.entries[0].integrity == entry.integrity

    def test_invalid_entry_rejected(self, log: TemplateAuditLog) -> None:
        with pytest.raises(AuditImportError) as exc_info:
            log.import_entries([{"template_id": "a"}])
        assert exc_info.value.index == 0
        assert len(log) == 0
