"""
Exception hierarchy for Warden.

All Warden exceptions inherit from WardenError, allowing callers to catch
all Warden-specific exceptions with a single except clause.

Only configuration and programmer mistakes raise. Security decisions
(permission denied, path blocked, dangerous command, injection detected,
bad signature, tampered audit entry) are never exceptions: they come back
as typed result models from warden.schema and callers branch on them.

Exception Categories:
    - ConfigurationError: Invalid configuration values or files
    - PublisherError: Invalid publisher registry input
    - AuditError: Invalid audit log import data
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Configuration errors: 1xxx
ERROR_CONFIG_INVALID = 1001
ERROR_CONFIG_LOAD = 1002
ERROR_CONFIG_PATTERN = 1003

# Publisher errors: 2xxx
ERROR_PUBLISHER_INVALID = 2001
ERROR_PUBLISHER_TRUST_LEVEL = 2002

# Audit errors: 3xxx
ERROR_AUDIT_IMPORT = 3001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class WardenError(Exception):
    """
    Base exception for all Warden errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigurationError(WardenError):
    """Raised when configuration values are invalid."""

    section: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Invalid configuration"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["section"] = self.section


@dataclass
class ConfigLoadError(ConfigurationError):
    """Raised when a configuration file cannot be read or parsed."""

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to load configuration {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_LOAD
        if not self.suggestion:
            self.suggestion = "Check the YAML syntax and field names against the documented defaults"
        super().__post_init__()
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })


@dataclass
class PatternDefinitionError(ConfigurationError):
    """Raised when a custom dangerous-command pattern cannot be compiled."""

    pattern: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid command pattern {self.pattern!r}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_PATTERN
        super().__post_init__()
        self.context.update({
            "pattern": self.pattern,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Publisher Errors
# =============================================================================


@dataclass
class PublisherError(WardenError):
    """
    Base class for publisher registry input errors.

    Attributes:
        publisher_id: ID of the offending publisher entry
    """

    publisher_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["publisher_id"] = self.publisher_id


@dataclass
class PublisherValidationError(PublisherError):
    """Raised when a publisher entry has an empty id or name."""

    field_name: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Publisher {self.field_name} cannot be empty"
        if self.code == 0:
            self.code = ERROR_PUBLISHER_INVALID
        super().__post_init__()
        self.context["field"] = self.field_name


@dataclass
class InvalidTrustLevelError(PublisherError):
    """Raised when a trust level is not one of the known levels."""

    trust_level: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid trust level: {self.trust_level}"
        if self.code == 0:
            self.code = ERROR_PUBLISHER_TRUST_LEVEL
        if not self.suggestion:
            self.suggestion = "Use one of: untrusted, community, verified, official"
        super().__post_init__()
        self.context["trust_level"] = self.trust_level


# =============================================================================
# Audit Errors
# =============================================================================


@dataclass
class AuditError(WardenError):
    """Base class for audit log errors."""


@dataclass
class AuditImportError(AuditError):
    """Raised when exported audit data cannot be imported."""

    index: int | None = None
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid audit entry at index {self.index}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_AUDIT_IMPORT
        self.context.update({
            "index": self.index,
            "underlying_error": self.underlying_error,
        })
