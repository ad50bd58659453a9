"""
Schema definitions for Warden.

This module defines the Pydantic models shared by the evaluators:
- Permission models: Operation, PermissionLevel, Restriction, PermissionSet
- Command models: CommandSeverity, DangerousCommandMatch
- Trust models: TrustLevel, PublisherInfo, PublisherEntry, TemplateSignature
- Audit models: SecurityEvent, AuditEntry
- Result models: the typed outcome of every evaluator call
- Template view: TemplateDocument, the part of a template the evaluators read

Design Decisions:
    - Policy outcomes are data: every check returns one of the result models
      below and never raises
    - Models are immutable (frozen=True); the publisher registry replaces an
      entry to change its trust level or verified flag
    - Enum values are plain strings so results serialize to JSON directly
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enums
# =============================================================================


class Operation(str, Enum):
    """Capability a template step may ask for."""

    FILE_READ = "file_read"
    FILE_WRITE = "file_write"
    PROCESS_SPAWN = "process_spawn"
    NETWORK_ACCESS = "network_access"
    ENV_ACCESS = "env_access"


class PermissionLevel(str, Enum):
    """Permission tier, ordered from least to most capable."""

    RESTRICTED = "restricted"
    STANDARD = "standard"
    ELEVATED = "elevated"
    TRUSTED = "trusted"


class CommandSeverity(str, Enum):
    """Risk attached to a dangerous command pattern."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordinal position, low=0 .. critical=3."""
        return SEVERITY_HIERARCHY.index(self)


class TrustLevel(str, Enum):
    """Publisher trust tier, ordered from least to most trusted."""

    UNTRUSTED = "untrusted"
    COMMUNITY = "community"
    VERIFIED = "verified"
    OFFICIAL = "official"


class FileOperation(str, Enum):
    """Filesystem access mode checked by the restrictor."""

    READ = "read"
    WRITE = "write"


class AuditEventType(str, Enum):
    """Kinds of events recorded in the audit log."""

    TEMPLATE_LOAD = "template_load"
    TEMPLATE_EXECUTION = "template_execution"
    SECURITY_VIOLATION = "security_violation"
    PERMISSION_CHECK = "permission_check"
    DANGEROUS_COMMAND = "dangerous_command"
    INJECTION_ATTEMPT = "injection_attempt"
    PATH_VIOLATION = "path_violation"
    SIGNATURE_VERIFICATION = "signature_verification"
    PUBLISHER_CHANGE = "publisher_change"


class AuditSeverity(str, Enum):
    """Severity of an audit event."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


PERMISSION_HIERARCHY: tuple[PermissionLevel, ...] = (
    PermissionLevel.RESTRICTED,
    PermissionLevel.STANDARD,
    PermissionLevel.ELEVATED,
    PermissionLevel.TRUSTED,
)

TRUST_HIERARCHY: tuple[TrustLevel, ...] = (
    TrustLevel.UNTRUSTED,
    TrustLevel.COMMUNITY,
    TrustLevel.VERIFIED,
    TrustLevel.OFFICIAL,
)

SEVERITY_HIERARCHY: tuple[CommandSeverity, ...] = (
    CommandSeverity.LOW,
    CommandSeverity.MEDIUM,
    CommandSeverity.HIGH,
    CommandSeverity.CRITICAL,
)


class LevelPolicy(NamedTuple):
    """Fixed capabilities of one permission level."""

    operations: frozenset[Operation]
    requires_confirmation: bool


LEVEL_POLICIES: dict[PermissionLevel, LevelPolicy] = {
    PermissionLevel.RESTRICTED: LevelPolicy(
        frozenset({Operation.FILE_READ}),
        requires_confirmation=True,
    ),
    PermissionLevel.STANDARD: LevelPolicy(
        frozenset({Operation.FILE_READ, Operation.FILE_WRITE, Operation.ENV_ACCESS}),
        requires_confirmation=False,
    ),
    PermissionLevel.ELEVATED: LevelPolicy(
        frozenset({
            Operation.FILE_READ,
            Operation.FILE_WRITE,
            Operation.PROCESS_SPAWN,
            Operation.ENV_ACCESS,
        }),
        requires_confirmation=True,
    ),
    PermissionLevel.TRUSTED: LevelPolicy(
        frozenset(Operation),
        requires_confirmation=False,
    ),
}


# =============================================================================
# Permission Models
# =============================================================================


class Restriction(BaseModel):
    """
    Path limits attached to one operation of a permission set.

    A restriction with both allowed_paths and denied_paths is accepted here;
    the permission manager reports it as a configuration problem when it is
    checked.

    Attributes:
        operation: The operation this restriction narrows
        allowed_paths: Path prefixes the operation may touch (empty = any)
        denied_paths: Path prefixes the operation may never touch
        requires_confirmation: Ask the user before each use
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    operation: Operation
    allowed_paths: frozenset[str] = Field(default_factory=frozenset)
    denied_paths: frozenset[str] = Field(default_factory=frozenset)
    requires_confirmation: bool = False

    @property
    def has_conflicting_paths(self) -> bool:
        """Whether both path lists are non-empty."""
        return bool(self.allowed_paths) and bool(self.denied_paths)


class PermissionSet(BaseModel):
    """
    The capabilities granted to a template.

    allowed_operations always equals the fixed table entry for level. It is
    filled in when omitted and rejected when it disagrees with the table.

    Attributes:
        level: Permission tier
        allowed_operations: Operations the tier grants
        restrictions: Ordered path restrictions, at most one per operation
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    level: PermissionLevel
    allowed_operations: frozenset[Operation]
    restrictions: tuple[Restriction, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def fill_allowed_operations(cls, data: Any) -> Any:
        """Derive allowed_operations from the level table when absent."""
        if isinstance(data, dict) and data.get("allowed_operations") is None and "level" in data:
            level = PermissionLevel(data["level"])
            data = {**data, "allowed_operations": LEVEL_POLICIES[level].operations}
        return data

    @model_validator(mode="after")
    def check_operations_match_level(self) -> "PermissionSet":
        """Reject operation sets that were not taken from the level table."""
        expected = LEVEL_POLICIES[self.level].operations
        if self.allowed_operations != expected:
            msg = f"allowed_operations for level '{self.level.value}' must be {sorted(o.value for o in expected)}"
            raise ValueError(msg)
        return self


class PermissionCheckResult(BaseModel):
    """
    Outcome of a permission check.

    Attributes:
        allowed: Whether the operation may proceed
        reason: Why it was denied (None when allowed)
        requires_confirmation: Whether the host must ask the user first
        restriction: Restriction the host must apply to the concrete path
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool
    reason: str | None = None
    requires_confirmation: bool = False
    restriction: Restriction | None = None

    @classmethod
    def allow(
        cls,
        requires_confirmation: bool,
        restriction: Restriction | None = None,
    ) -> "PermissionCheckResult":
        """Create an ALLOW result."""
        return cls(
            allowed=True,
            requires_confirmation=requires_confirmation,
            restriction=restriction,
        )

    @classmethod
    def deny(cls, reason: str) -> "PermissionCheckResult":
        """Create a DENY result."""
        return cls(allowed=False, reason=reason)


# =============================================================================
# Evaluator Results
# =============================================================================


class DangerousCommandMatch(BaseModel):
    """
    One dangerous pattern found in one command.

    Attributes:
        command_id: ID of the scanned command (e.g. "step-0-cmd-1")
        step_id: ID of the step the command belongs to (e.g. "step-0")
        pattern: Literal text or regex source of the matching pattern
        severity: Risk of the pattern
        reason: Human-readable explanation
        suggestion: Optional remediation hint
        category: Pattern group (destructive, network, ...)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    command_id: str
    step_id: str
    pattern: str
    severity: CommandSeverity
    reason: str
    suggestion: str | None = None
    category: str


class PathValidationResult(BaseModel):
    """Outcome of a filesystem path check."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    valid: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> "PathValidationResult":
        """Create a passing result."""
        return cls(valid=True)

    @classmethod
    def fail(cls, reason: str) -> "PathValidationResult":
        """Create a failing result."""
        return cls(valid=False, reason=reason)


class InjectionDetectionResult(BaseModel):
    """
    Outcome of injection detection on a command string.

    Attributes:
        detected: Whether any category fired
        patterns: Human-readable labels of the categories that fired
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    detected: bool
    patterns: list[str] = Field(default_factory=list)


class ProcessedCommand(BaseModel):
    """An interpolated command and the injection findings on it."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    command: str
    safe: bool
    issues: list[str] = Field(default_factory=list)


# =============================================================================
# Trust Models
# =============================================================================


class PublisherInfo(BaseModel):
    """
    Publisher block carried in a template's security metadata.

    This is what the template claims about itself; the registry decides how
    much of that claim to honor.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str | None = None
    name: str = ""
    trust_level: TrustLevel = TrustLevel.UNTRUSTED


class PublisherEntry(BaseModel):
    """
    A publisher known to the registry.

    Attributes:
        id: Unique publisher identifier
        name: Display name
        trust_level: Assigned trust tier
        public_key: Key material used for verification, if any
        verified: Set once verify_publisher succeeds
        added_at: When the publisher was registered
        metadata: Free-form host data
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    trust_level: TrustLevel
    public_key: str | None = None
    verified: bool = False
    added_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] | None = None


class TemplateSignature(BaseModel):
    """
    Signature metadata produced by the template signer.

    algorithm is a plain string so that foreign tags can be represented and
    rejected by the verifier.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    algorithm: str
    signature: str
    timestamp: str
    signer: str
    public_key_fingerprint: str | None = None


class SignatureVerificationResult(BaseModel):
    """Outcome of signature verification."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    valid: bool
    signature: TemplateSignature | None = None
    error: str | None = None


# =============================================================================
# Audit Models
# =============================================================================


class SecurityEvent(BaseModel):
    """
    An event submitted to the audit log.

    Attributes:
        type: Event kind
        severity: Event severity
        template_id: Template the event concerns
        template_version: Template version, if known
        user: Acting user (defaults to the process user)
        details: Structured event data
        capture_stack: Record the caller's stack trace on the entry
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO
    template_id: str
    template_version: str | None = None
    user: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    capture_stack: bool = False


class AuditEntry(BaseModel):
    """
    One immutable audit log record.

    integrity is an HMAC over timestamp, type, severity, template_id,
    template_version, user, pid and details. stack_trace is not covered.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: str
    type: AuditEventType
    severity: AuditSeverity
    template_id: str
    template_version: str | None = None
    user: str
    pid: int
    details: dict[str, Any] = Field(default_factory=dict)
    integrity: str
    stack_trace: str | None = None


class AuditVerificationResult(BaseModel):
    """
    Outcome of an audit log integrity sweep.

    Attributes:
        valid: True when no entry was tampered with
        total_entries: Number of entries checked
        tampered_entries: Number of entries whose hash no longer matches
        tampered_indices: Positions of those entries in the log
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    valid: bool
    total_entries: int
    tampered_entries: int
    tampered_indices: list[int] = Field(default_factory=list)


# =============================================================================
# Template View
# =============================================================================


class TemplateStep(BaseModel):
    """A template step as seen by the evaluators."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str | None = None
    commands: list[str] | None = None


class TemplateSecurity(BaseModel):
    """Security metadata block of a template."""

    model_config = ConfigDict(extra="allow")

    publisher: PublisherInfo | None = None
    signature: TemplateSignature | None = None


class TemplateDocument(BaseModel):
    """
    The part of a template the evaluators read.

    Unknown fields are kept so that a host can hand over its full template
    without stripping it first.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    version: str | None = None
    name: str | None = None
    steps: list[TemplateStep] | None = None
    security: TemplateSecurity | None = None


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_template_from_string(content: str) -> TemplateDocument:
    """
    Parse template YAML into a TemplateDocument.

    Raises:
        yaml.YAMLError: If the content is not valid YAML
        ValidationError: If the YAML doesn't match the template view
    """
    data = yaml.safe_load(content) or {}
    return TemplateDocument.model_validate(data)
