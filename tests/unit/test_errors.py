"""
Unit tests for error hierarchy.

Tests cover:
- Base WardenError behavior
- Configuration errors with context
- Publisher and audit errors
- Error serialization
"""

import pytest

from warden.errors import (
    ERROR_AUDIT_IMPORT,
    ERROR_CONFIG_INVALID,
    ERROR_CONFIG_LOAD,
    ERROR_CONFIG_PATTERN,
    ERROR_PUBLISHER_INVALID,
    ERROR_PUBLISHER_TRUST_LEVEL,
    AuditError,
    AuditImportError,
    ConfigLoadError,
    ConfigurationError,
    InvalidTrustLevelError,
    PatternDefinitionError,
    PublisherError,
    PublisherValidationError,
    WardenError,
)


class TestWardenError:
    """Tests for base WardenError."""

    def test_basic_error(self) -> None:
        """Create a basic error with message."""
        err = WardenError(message="Something went wrong", code=9999)
        assert err.message == "Something went wrong"
        assert err.code == 9999
        assert err.suggestion is None
        assert err.context == {}

    def test_str_includes_code_and_suggestion(self) -> None:
        err = WardenError(message="Failed", code=1, suggestion="Try again")
        assert str(err) == "[E1] Failed\nSuggestion: Try again"

    def test_is_exception(self) -> None:
        with pytest.raises(WardenError):
            raise WardenError(message="boom")

    def test_to_dict(self) -> None:
        err = WardenError(message="Failed", code=7, context={"key": "value"})
        assert err.to_dict() == {
            "error_type": "WardenError",
            "message": "Failed",
            "code": 7,
            "suggestion": None,
            "context": {"key": "value"},
        }


class TestConfigurationErrors:
    """Tests for configuration errors."""

    def test_defaults(self) -> None:
        err = ConfigurationError(section="audit")
        assert err.message == "Invalid configuration"
        assert err.code == ERROR_CONFIG_INVALID
        assert err.context["section"] == "audit"

    def test_load_error(self) -> None:
        err = ConfigLoadError(path="/tmp/warden.yaml", underlying_error="bad indent")
        assert err.message == "Failed to load configuration /tmp/warden.yaml: bad indent"
        assert err.code == ERROR_CONFIG_LOAD
        assert err.suggestion
        assert err.context["path"] == "/tmp/warden.yaml"
        assert isinstance(err, ConfigurationError)

    def test_pattern_error(self) -> None:
        err = PatternDefinitionError(pattern="(", underlying_error="missing )")
        assert err.code == ERROR_CONFIG_PATTERN
        assert "'('" in err.message
        assert err.context["pattern"] == "("


class TestPublisherErrors:
    """Tests for publisher registry errors."""

    def test_validation_error(self) -> None:
        err = PublisherValidationError(field_name="name", publisher_id="acme")
        assert err.message == "Publisher name cannot be empty"
        assert err.code == ERROR_PUBLISHER_INVALID
        assert err.context == {"publisher_id": "acme", "field": "name"}
        assert isinstance(err, PublisherError)

    def test_trust_level_error(self) -> None:
        err = InvalidTrustLevelError(trust_level="admin", publisher_id="acme")
        assert err.message == "Invalid trust level: admin"
        assert err.code == ERROR_PUBLISHER_TRUST_LEVEL
        assert "official" in err.suggestion
        assert err.context["trust_level"] == "admin"

    def test_explicit_message_kept(self) -> None:
        err = InvalidTrustLevelError(message="custom", trust_level="x")
        assert err.message == "custom"


class TestAuditErrors:
    """Tests for audit errors."""

    def test_import_error(self) -> None:
        err = AuditImportError(index=3, underlying_error="missing integrity")
        assert err.message == "Invalid audit entry at index 3: missing integrity"
        assert err.code == ERROR_AUDIT_IMPORT
        assert err.context == {"index": 3, "underlying_error": "missing integrity"}
        assert isinstance(err, AuditError)
        assert isinstance(err, WardenError)

    def test_serialization(self) -> None:
        data = AuditImportError(index=0, underlying_error="x").to_dict()
        assert data["error_type"] == "AuditImportError"
        assert data["code"] == ERROR_AUDIT_IMPORT
