"""
Command Injection Preventer for Warden.

Two independent capabilities, each switchable in InjectionConfig:

Sanitization:
    sanitize_variable() strips shell metacharacters from a variable value
    before it is substituted into a command. Strict mode additionally keeps
    only letters, digits, whitespace, ".", "_" and "-".

Detection:
    detect_command_chaining(), detect_redirection() and
    detect_process_substitution() flag risky syntax in a finished command.
    They never modify their input.

process_command() runs both: values are sanitized one by one during
interpolation, then the fully interpolated command is checked, so risky
syntax written into the template text itself is still reported.
"""

import logging
import re

from warden.config import InjectionConfig
from warden.schema import InjectionDetectionResult, ProcessedCommand

logger = logging.getLogger(__name__)

DANGEROUS_CHARACTERS: frozenset[str] = frozenset(
    {";", "|", "&", "$", "`", "(", ")", "{", "}", "[", "]", "<", ">", "\\", "\n", "\r"}
)
CHAINING_OPERATORS: tuple[str, ...] = ("&&", "||", ";", "|")
REDIRECTION_OPERATORS: tuple[str, ...] = (">", ">>", "<", "2>&1", "&>")
SUBSTITUTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\$\("),
    re.compile(r"`"),
    re.compile(r"\$\{"),
)

_DANGEROUS_TABLE = str.maketrans({char: None for char in DANGEROUS_CHARACTERS})
_STRICT_DISALLOWED = re.compile(r"[^a-zA-Z0-9\s._\-]")

# Preview length for command text in log records
_LOG_PREVIEW = 100


class CommandInjectionPreventer:
    """
    Sanitizes template variables and detects injection syntax.

    Usage:
        preventer = CommandInjectionPreventer()
        result = preventer.process_command("echo ${name}", {"name": user_input})
        if not result.safe:
            print(result.issues)
    """

    def __init__(
        self,
        config: InjectionConfig | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.config = config or InjectionConfig()
        self._log = log or logger
        self._log.debug(
            "CommandInjectionPreventer initialized",
            extra={
                "enable_sanitization": self.config.enable_sanitization,
                "enable_detection": self.config.enable_detection,
                "strict_mode": self.config.strict_mode,
            },
        )

    # =========================================================================
    # Sanitization
    # =========================================================================

    def sanitize_variable(self, value: str) -> str:
        """Remove shell metacharacters from a variable value."""
        if not self.config.enable_sanitization:
            return value

        sanitized = value.translate(_DANGEROUS_TABLE)
        if self.config.strict_mode:
            sanitized = _STRICT_DISALLOWED.sub("", sanitized)

        if len(sanitized) != len(value):
            self._log.debug(
                "Variable sanitized",
                extra={"removed": len(value) - len(sanitized)},
            )
        return sanitized

    def safe_interpolate(self, template: str, variables: dict[str, str]) -> str:
        """Replace each ${key} with the sanitized value of key."""
        result = template
        for key, value in variables.items():
            result = result.replace(f"${{{key}}}", self.sanitize_variable(value))
        return result

    # =========================================================================
    # Detection
    # =========================================================================

    def detect_command_chaining(self, command: str) -> bool:
        """Flag &&, ||, ; and | in a command."""
        if not self.config.enable_detection:
            return False
        return self._first_operator(command, CHAINING_OPERATORS, "Command chaining detected")

    def detect_redirection(self, command: str) -> bool:
        """Flag >, >>, <, 2>&1 and &> in a command."""
        if not self.config.enable_detection:
            return False
        return self._first_operator(command, REDIRECTION_OPERATORS, "Redirection operator detected")

    def detect_process_substitution(self, command: str) -> bool:
        """Flag $(, backticks and ${ in a command."""
        if not self.config.enable_detection:
            return False

        for pattern in SUBSTITUTION_PATTERNS:
            if pattern.search(command):
                self._log.warning(
                    "Process substitution detected",
                    extra={"pattern": pattern.pattern, "command": command[:_LOG_PREVIEW]},
                )
                return True
        return False

    def detect_injection(self, command: str) -> InjectionDetectionResult:
        """Run all three detectors and collect the labels that fired."""
        patterns: list[str] = []

        if self.detect_command_chaining(command):
            patterns.append("Command chaining")
        if self.detect_redirection(command):
            patterns.append("Redirection")
        if self.detect_process_substitution(command):
            patterns.append("Process substitution")

        return InjectionDetectionResult(detected=bool(patterns), patterns=patterns)

    def validate_command(self, command: str) -> InjectionDetectionResult:
        """detect_injection(), with an error record when something fires."""
        detection = self.detect_injection(command)
        if detection.detected:
            self._log.error(
                "Command injection attempt detected",
                extra={"patterns": detection.patterns, "command": command[:_LOG_PREVIEW]},
            )
        return detection

    def process_command(self, template: str, variables: dict[str, str]) -> ProcessedCommand:
        """Interpolate sanitized variables, then check the whole command."""
        interpolated = self.safe_interpolate(template, variables)
        detection = self.validate_command(interpolated)
        return ProcessedCommand(
            command=interpolated,
            safe=not detection.detected,
            issues=detection.patterns,
        )

    def get_config(self) -> InjectionConfig:
        return self.config

    def _first_operator(self, command: str, operators: tuple[str, ...], message: str) -> bool:
        for operator in operators:
            if operator in command:
                self._log.warning(
                    message,
                    extra={"pattern": operator, "command": command[:_LOG_PREVIEW]},
                )
                return True
        return False
