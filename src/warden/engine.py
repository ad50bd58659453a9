"""
Security Engine for Warden.

The SecurityEngine is the host-side composition layer. The evaluators
never call each other; the engine builds them from one SecurityConfig and
runs them in sequence for a template:

Assessment Flow:
    1. Signature: verify the embedded signature against the raw content
    2. Publisher: resolve the inherited trust level and whether it is trusted
    3. Commands: scan every step for dangerous patterns
    4. Permission: check process_spawn for templates that run commands
    5. Fold everything into one TemplateAssessment

Every evaluator decision is written to the audit log.

Decision Rules:
    - A failed signature denies
    - A critical dangerous command denies
    - A denied process_spawn permission denies
    - An untrusted publisher, a high-severity command, or a confirming
      permission level asks for confirmation
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from warden.audit.log import TemplateAuditLog, generate_secret_key
from warden.config import SecurityConfig
from warden.policy.commands import DangerousCommandDetector, highest_severity
from warden.policy.filesystem import FileSystemRestrictor
from warden.policy.injection import CommandInjectionPreventer
from warden.policy.permissions import PermissionManager
from warden.schema import (
    AuditEventType,
    AuditSeverity,
    CommandSeverity,
    DangerousCommandMatch,
    FileOperation,
    Operation,
    PathValidationResult,
    PermissionLevel,
    PermissionSet,
    ProcessedCommand,
    SecurityEvent,
    TemplateDocument,
    TrustLevel,
)
from warden.trust.publishers import TrustedPublisherRegistry
from warden.trust.signing import TemplateSigner, template_signing_content

logger = logging.getLogger(__name__)

UNKNOWN_TEMPLATE_ID = "unknown"

_MATCH_AUDIT_SEVERITY: dict[CommandSeverity, AuditSeverity] = {
    CommandSeverity.LOW: AuditSeverity.INFO,
    CommandSeverity.MEDIUM: AuditSeverity.WARNING,
    CommandSeverity.HIGH: AuditSeverity.ERROR,
    CommandSeverity.CRITICAL: AuditSeverity.CRITICAL,
}


@dataclass
class TemplateAssessment:
    """
    Combined outcome of all evaluators for one template.

    Attributes:
        template_id: ID of the assessed template
        allowed: Whether the template may run
        requires_confirmation: Whether the host must ask the user first
        trust_level: Trust level inherited from the publisher
        signature_valid: Signature outcome, None when no signature was checked
        matches: Dangerous command matches, in step order
        reasons: Human-readable reasons for denial or confirmation
    """

    template_id: str
    allowed: bool = True
    requires_confirmation: bool = False
    trust_level: TrustLevel = TrustLevel.UNTRUSTED
    signature_valid: bool | None = None
    matches: list[DangerousCommandMatch] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)

    @property
    def highest_severity(self) -> CommandSeverity | None:
        return highest_severity(self.matches)

    def deny(self, reason: str) -> None:
        self.allowed = False
        self.reasons.append(reason)

    def confirm(self, reason: str) -> None:
        self.requires_confirmation = True
        self.reasons.append(reason)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        severity = self.highest_severity
        return {
            "template_id": self.template_id,
            "allowed": self.allowed,
            "requires_confirmation": self.requires_confirmation,
            "trust_level": self.trust_level.value,
            "signature_valid": self.signature_valid,
            "highest_severity": severity.value if severity else None,
            "matches": [m.model_dump(mode="json") for m in self.matches],
            "reasons": list(self.reasons),
        }


class SecurityEngine:
    """
    Builds every evaluator from one config and assesses templates.

    Usage:
        engine = SecurityEngine(config, signing_key=key)
        engine.registry.add_publisher("acme", "Acme", "verified")
        assessment = engine.assess_template(template)
        if not assessment.allowed:
            print(assessment.reasons)

    Attributes:
        config: Settings the evaluators were built from
        permissions: Permission manager
        detector: Dangerous command detector
        injection: Command injection preventer
        filesystem: Filesystem restrictor
        registry: Trusted publisher registry
        signer: Template signer, None without a signing key
        audit: Audit log
    """

    def __init__(
        self,
        config: SecurityConfig | None = None,
        signing_key: str | bytes | None = None,
        audit_key: str | bytes | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            config: Evaluator settings (defaults if None)
            signing_key: HMAC key for template signatures
            audit_key: HMAC key for the audit log (random if None)
            log: Logger to use instead of the module logger
        """
        self.config = config or SecurityConfig()
        self._log = log or logger
        self.permissions = PermissionManager()
        self.detector = DangerousCommandDetector(self.config.detector)
        self.injection = CommandInjectionPreventer(self.config.injection)
        self.filesystem = FileSystemRestrictor(self.config.filesystem)
        self.registry = TrustedPublisherRegistry(self.config.registry)
        self.signer = (
            TemplateSigner(signing_key, self.config.signer) if signing_key is not None else None
        )
        self.audit = TemplateAuditLog(audit_key or generate_secret_key(), self.config.audit)

    def assess_template(
        self,
        template: TemplateDocument | Mapping[str, Any],
        permission_set: PermissionSet | None = None,
        content: str | None = None,
    ) -> TemplateAssessment:
        """
        Run every template-level evaluator and fold the results.

        Args:
            template: Parsed template
            permission_set: Permissions granted to it (elevated if None)
            content: Text the signature was made over (canonical form if None)

        Returns:
            TemplateAssessment with the combined decision
        """
        doc = template if isinstance(template, TemplateDocument) else TemplateDocument.model_validate(template)
        template_id = doc.id or UNKNOWN_TEMPLATE_ID
        assessment = TemplateAssessment(template_id=template_id)

        self._check_signature(doc, content, assessment)
        self._check_publisher(doc, assessment)
        self._check_commands(doc, assessment)
        self._check_process_permission(
            doc,
            permission_set or self.permissions.create_default_permissions(PermissionLevel.ELEVATED),
            assessment,
        )

        if assessment.allowed:
            self.audit.log_template_load(
                template_id,
                details={
                    "trust_level": assessment.trust_level.value,
                    "requires_confirmation": assessment.requires_confirmation,
                },
            )
        else:
            self.audit.log_security_violation(
                template_id,
                "; ".join(assessment.reasons),
                details={"trust_level": assessment.trust_level.value},
            )

        self._log.info(
            "Template assessed",
            extra={
                "template_id": template_id,
                "allowed": assessment.allowed,
                "requires_confirmation": assessment.requires_confirmation,
                "match_count": len(assessment.matches),
            },
        )
        return assessment

    def check_path(
        self,
        path: str,
        operation: FileOperation | str,
        template_id: str = UNKNOWN_TEMPLATE_ID,
    ) -> PathValidationResult:
        """Validate a path and audit violations."""
        result = self.filesystem.validate_path(path, operation)
        if not result.valid:
            self.audit.log_event(SecurityEvent(
                type=AuditEventType.PATH_VIOLATION,
                severity=AuditSeverity.WARNING,
                template_id=template_id,
                details={
                    "path": path,
                    "operation": FileOperation(operation).value,
                    "reason": result.reason,
                },
            ))
        return result

    def process_command(
        self,
        command: str,
        variables: dict[str, str],
        template_id: str = UNKNOWN_TEMPLATE_ID,
    ) -> ProcessedCommand:
        """Interpolate variables into a command and audit injection findings."""
        processed = self.injection.process_command(command, variables)
        if not processed.safe:
            self.audit.log_event(SecurityEvent(
                type=AuditEventType.INJECTION_ATTEMPT,
                severity=AuditSeverity.ERROR,
                template_id=template_id,
                details={"command": processed.command, "issues": processed.issues},
            ))
        return processed

    # =========================================================================
    # Assessment Steps
    # =========================================================================

    def _check_signature(
        self,
        doc: TemplateDocument,
        content: str | None,
        assessment: TemplateAssessment,
    ) -> None:
        signature = doc.security.signature if doc.security else None
        if signature is None:
            return

        if self.signer is None:
            assessment.confirm("Signature present but no signing key configured")
            return

        if content is None:
            content = template_signing_content(doc)

        result = self.signer.verify_signature(content, signature)
        assessment.signature_valid = result.valid
        self.audit.log_event(SecurityEvent(
            type=AuditEventType.SIGNATURE_VERIFICATION,
            severity=AuditSeverity.INFO if result.valid else AuditSeverity.ERROR,
            template_id=assessment.template_id,
            template_version=doc.version,
            details={"valid": result.valid, "signer": signature.signer, "error": result.error},
        ))
        if not result.valid:
            assessment.deny(f"Signature invalid: {result.error}")

    def _check_publisher(self, doc: TemplateDocument, assessment: TemplateAssessment) -> None:
        publisher = doc.security.publisher if doc.security else None
        if publisher is None or publisher.id is None:
            assessment.trust_level = self.registry.config.default_trust_level
            if not self.registry.config.allow_untrusted:
                assessment.confirm("Template has no publisher")
            return

        assessment.trust_level = self.registry.inherit_trust(publisher)
        if not self.registry.is_trusted(publisher.id):
            assessment.confirm(f"Publisher '{publisher.id}' is not trusted")

    def _check_commands(self, doc: TemplateDocument, assessment: TemplateAssessment) -> None:
        matches = self.detector.scan_template(doc)
        assessment.matches = matches
        if not matches:
            return

        severity = highest_severity(matches)
        self.audit.log_event(SecurityEvent(
            type=AuditEventType.DANGEROUS_COMMAND,
            severity=_MATCH_AUDIT_SEVERITY[severity],
            template_id=assessment.template_id,
            template_version=doc.version,
            details={
                "match_count": len(matches),
                "highest_severity": severity.value,
                "commands": sorted({m.command_id for m in matches}),
            },
        ))

        for match in matches:
            if match.severity is CommandSeverity.CRITICAL:
                assessment.deny(f"{match.reason} ({match.command_id})")
        if severity is CommandSeverity.HIGH:
            assessment.confirm("High-risk commands require confirmation")

    def _check_process_permission(
        self,
        doc: TemplateDocument,
        permission_set: PermissionSet,
        assessment: TemplateAssessment,
    ) -> None:
        if not any(step.commands for step in doc.steps or ()):
            return

        result = self.permissions.check_permission(permission_set, Operation.PROCESS_SPAWN)
        self.audit.log_event(SecurityEvent(
            type=AuditEventType.PERMISSION_CHECK,
            severity=AuditSeverity.INFO if result.allowed else AuditSeverity.WARNING,
            template_id=assessment.template_id,
            template_version=doc.version,
            details={
                "level": permission_set.level.value,
                "operation": Operation.PROCESS_SPAWN.value,
                "allowed": result.allowed,
                "reason": result.reason,
            },
        ))
        if not result.allowed:
            assessment.deny(result.reason or "Permission denied")
        elif result.requires_confirmation:
            assessment.confirm(f"Level '{permission_set.level.value}' requires confirmation")
