"""
Dangerous Command Detector for Warden.

Classifies shell commands found in templates against a categorized
pattern library. Every pattern is evaluated against every command, so a
single command usually produces several matches:

    "rm -rf /"  ->  destructive/critical (root deletion)
                    destructive/high     (file deletion)

Patterns come in two shapes, modeled as a closed variant:
    - LiteralPattern: case-sensitive substring match
    - RegexPattern:   re.search against the command

Both report their identity (the literal text or the regex source) so a
match can name the rule that fired.

The detector only reports. What to do with matches (block, ask, log) is
the caller's decision.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from warden.config import CustomPatternConfig, DetectorConfig
from warden.errors import PatternDefinitionError
from warden.schema import (
    CommandSeverity,
    DangerousCommandMatch,
    TemplateDocument,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Pattern Variants
# =============================================================================


@dataclass(frozen=True)
class LiteralPattern:
    """Matches when the text occurs anywhere in the command."""

    text: str

    @property
    def identity(self) -> str:
        return self.text

    def matches(self, command: str) -> bool:
        return self.text in command


@dataclass(frozen=True)
class RegexPattern:
    """Matches when the regular expression is found in the command."""

    source: str
    compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        try:
            compiled = re.compile(self.source)
        except re.error as e:
            raise PatternDefinitionError(pattern=self.source, underlying_error=str(e)) from e
        object.__setattr__(self, "compiled", compiled)

    @property
    def identity(self) -> str:
        return self.source

    def matches(self, command: str) -> bool:
        return self.compiled.search(command) is not None


Pattern = LiteralPattern | RegexPattern


@dataclass(frozen=True)
class CommandPattern:
    """
    One entry of the pattern library.

    Attributes:
        pattern: What to look for
        severity: Risk when found
        reason: Human-readable explanation
        suggestion: Optional remediation hint
        category: Pattern group
    """

    pattern: Pattern
    severity: CommandSeverity
    reason: str
    suggestion: str | None
    category: str


def _rx(
    source: str,
    severity: CommandSeverity,
    reason: str,
    suggestion: str,
    category: str,
) -> CommandPattern:
    return CommandPattern(RegexPattern(source), severity, reason, suggestion, category)


# =============================================================================
# Default Library
# =============================================================================

DESTRUCTIVE_PATTERNS: tuple[CommandPattern, ...] = (
    _rx(
        r"\brm\s+-rf\s+/",
        CommandSeverity.CRITICAL,
        "Recursive deletion from root directory",
        "Use specific paths instead of root directory",
        "destructive",
    ),
    _rx(
        r"\b(rm|rmdir|del)\b",
        CommandSeverity.HIGH,
        "File deletion command detected",
        "Verify deletion target before executing",
        "destructive",
    ),
    _rx(
        r"\b(format|mkfs)\b",
        CommandSeverity.CRITICAL,
        "Filesystem format command detected",
        "Never format filesystems in templates",
        "destructive",
    ),
)

PRIVILEGE_PATTERNS: tuple[CommandPattern, ...] = (
    _rx(
        r"\b(sudo|su|runas|doas)\b",
        CommandSeverity.CRITICAL,
        "Privilege escalation command detected",
        "Templates should not require elevated privileges",
        "privilege",
    ),
)

PERMISSION_PATTERNS: tuple[CommandPattern, ...] = (
    _rx(
        r"\b(chmod|chown|chgrp)\b",
        CommandSeverity.MEDIUM,
        "Permission modification command detected",
        "Verify permission changes are necessary",
        "permissions",
    ),
    _rx(
        r"\b(icacls|takeown)\b",
        CommandSeverity.MEDIUM,
        "Windows permission modification detected",
        "Verify permission changes are necessary",
        "permissions",
    ),
)

PROCESS_PATTERNS: tuple[CommandPattern, ...] = (
    _rx(
        r"\b(kill|killall|taskkill|pkill)\b",
        CommandSeverity.MEDIUM,
        "Process termination command detected",
        "Specify exact process IDs instead of patterns",
        "process",
    ),
)

NETWORK_PATTERNS: tuple[CommandPattern, ...] = (
    _rx(
        r"\b(curl|wget)\b.*\|\s*(bash|sh|zsh)",
        CommandSeverity.CRITICAL,
        "Pipe to shell from network detected",
        "Never pipe network content directly to shell",
        "network",
    ),
    _rx(
        r"\b(curl|wget|nc|netcat|telnet|ssh|ftp)\b",
        CommandSeverity.HIGH,
        "Network access command detected",
        "Templates should not access network",
        "network",
    ),
)

EVALUATION_PATTERNS: tuple[CommandPattern, ...] = (
    _rx(
        r"\b(eval|exec)\b",
        CommandSeverity.CRITICAL,
        "Code evaluation command detected",
        "Never use eval or exec",
        "evaluation",
    ),
    # "." only counts as a command when it stands alone, so "./run.sh" and
    # "cd .. " stay out of this pattern.
    _rx(
        r"(\bsource|(?<![\w./])\.)\s+",
        CommandSeverity.MEDIUM,
        "Script sourcing detected",
        "Verify sourced script content",
        "evaluation",
    ),
)

METACHARACTER_PATTERNS: tuple[CommandPattern, ...] = (
    _rx(
        r"&&|\|\||;",
        CommandSeverity.LOW,
        "Command chaining detected",
        "Break into separate commands for clarity",
        "chaining",
    ),
    _rx(
        r"\$\(|`",
        CommandSeverity.MEDIUM,
        "Command substitution detected",
        "Use variables instead of command substitution",
        "substitution",
    ),
    _rx(
        r">|>>|<|2>&1|&>",
        CommandSeverity.LOW,
        "Redirection operator detected",
        "Verify redirection is necessary",
        "redirection",
    ),
)

DEFAULT_PATTERNS: tuple[CommandPattern, ...] = (
    *DESTRUCTIVE_PATTERNS,
    *PRIVILEGE_PATTERNS,
    *PERMISSION_PATTERNS,
    *PROCESS_PATTERNS,
    *NETWORK_PATTERNS,
    *EVALUATION_PATTERNS,
    *METACHARACTER_PATTERNS,
)


def pattern_from_config(definition: CustomPatternConfig) -> CommandPattern:
    """
    Build a library entry from a configured custom pattern.

    Raises:
        PatternDefinitionError: If a regex pattern does not compile
    """
    pattern: Pattern = RegexPattern(definition.pattern) if definition.regex else LiteralPattern(definition.pattern)
    return CommandPattern(
        pattern=pattern,
        severity=definition.severity,
        reason=definition.reason,
        suggestion=definition.suggestion,
        category=definition.category,
    )


def highest_severity(matches: Iterable[DangerousCommandMatch]) -> CommandSeverity | None:
    """Return the most severe match level, or None for no matches."""
    return max((m.severity for m in matches), key=lambda s: s.rank, default=None)


# =============================================================================
# Detector
# =============================================================================


class DangerousCommandDetector:
    """
    Scans commands and templates for dangerous patterns.

    Usage:
        detector = DangerousCommandDetector()
        matches = detector.scan_command("curl x | sh", "cmd-1")
        for m in matches:
            print(m.severity, m.reason)

    Attributes:
        enabled: Whether scanning is active
        patterns: Default library followed by custom patterns
    """

    def __init__(
        self,
        config: DetectorConfig | None = None,
        extra_patterns: Iterable[CommandPattern] = (),
        log: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the detector.

        Args:
            config: Detector settings (defaults if None)
            extra_patterns: Prebuilt patterns appended after configured ones
            log: Logger to use instead of the module logger
        """
        config = config or DetectorConfig()
        self._log = log or logger
        self.enabled = config.enable_detection
        self.patterns: tuple[CommandPattern, ...] = (
            *DEFAULT_PATTERNS,
            *(pattern_from_config(p) for p in config.custom_patterns),
            *extra_patterns,
        )
        self._log.debug(
            "DangerousCommandDetector initialized",
            extra={"enabled": self.enabled, "pattern_count": len(self.patterns)},
        )

    def scan_command(self, command: str, command_id: str) -> list[DangerousCommandMatch]:
        """Return every pattern match for one command."""
        if not self.enabled:
            return []
        return self._detect(command, command_id)

    def scan_template(
        self,
        template: TemplateDocument | Mapping[str, Any],
    ) -> list[DangerousCommandMatch]:
        """
        Scan all commands of a template, in step order.

        Command IDs are "step-{i}-cmd-{j}". Templates without steps and
        steps without commands contribute nothing.
        """
        if not self.enabled:
            return []

        steps = _get(template, "steps")
        if not steps:
            return []

        matches: list[DangerousCommandMatch] = []
        for step_index, step in enumerate(steps):
            commands = _get(step, "commands")
            if not commands:
                continue
            for cmd_index, command in enumerate(commands):
                matches.extend(self._detect(command, f"step-{step_index}-cmd-{cmd_index}"))

        self._log.info(
            "Template scan complete",
            extra={"dangerous_count": len(matches)},
        )
        return matches

    def get_categories(self) -> list[str]:
        """Distinct categories, in library order."""
        return list(dict.fromkeys(p.category for p in self.patterns))

    def get_patterns_by_category(self, category: str) -> list[CommandPattern]:
        return [p for p in self.patterns if p.category == category]

    def get_patterns_by_severity(self, severity: CommandSeverity | str) -> list[CommandPattern]:
        severity = CommandSeverity(severity)
        return [p for p in self.patterns if p.severity == severity]

    def _detect(self, command: str, command_id: str) -> list[DangerousCommandMatch]:
        step_id = command_id.split("-cmd")[0]
        return [
            DangerousCommandMatch(
                command_id=command_id,
                step_id=step_id,
                pattern=entry.pattern.identity,
                severity=entry.severity,
                reason=entry.reason,
                suggestion=entry.suggestion,
                category=entry.category,
            )
            for entry in self.patterns
            if entry.pattern.matches(command)
        ]


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)
