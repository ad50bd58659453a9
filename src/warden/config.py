"""
Configuration models for Warden.

Every evaluator has a frozen Pydantic config whose field defaults are the
documented defaults. SecurityConfig groups them so a host can keep one
YAML file:

    detector:
      enable_detection: true
      custom_patterns:
        - pattern: "docker system prune"
          severity: high
          reason: "Docker cleanup removes unused data"
          category: destructive
    filesystem:
      allowed_paths: ["/home/me/projects"]
    registry:
      strict_mode: true
    audit:
      max_log_size: 5000

Secret keys are not part of the model. Hosts pass them to the
signer and audit log constructors directly.
"""

from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from warden.errors import ConfigLoadError, ConfigurationError
from warden.schema import CommandSeverity, TrustLevel

DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = (
    ".md",
    ".txt",
    ".json",
    ".yaml",
    ".yml",
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".css",
    ".scss",
    ".less",
    ".html",
    ".htm",
)


class RotationPolicy(str, Enum):
    """How the audit log bounds its size."""

    SIZE = "size"
    TIME = "time"
    NONE = "none"


# =============================================================================
# Component Configs
# =============================================================================


class CustomPatternConfig(BaseModel):
    """
    A host-supplied dangerous command pattern.

    Attributes:
        pattern: Literal text, or a regular expression when regex=True
        regex: Treat pattern as a regular expression
        severity: Risk of the pattern
        reason: Human-readable explanation
        suggestion: Optional remediation hint
        category: Pattern group
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: str = Field(..., min_length=1)
    regex: bool = False
    severity: CommandSeverity
    reason: str
    suggestion: str | None = None
    category: str = "custom"


class DetectorConfig(BaseModel):
    """Dangerous command detector settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enable_detection: bool = True
    custom_patterns: tuple[CustomPatternConfig, ...] = ()


class InjectionConfig(BaseModel):
    """Command injection preventer settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enable_sanitization: bool = True
    enable_detection: bool = True
    strict_mode: bool = False


class FileSystemConfig(BaseModel):
    """
    Filesystem restrictor settings.

    Attributes:
        allowed_paths: Path prefixes that may be touched (empty = any)
        denied_paths: Path prefixes that may never be touched
        allowed_extensions: Lowercase extensions with leading dot
        allow_path_traversal: Skip the ".." check on raw paths
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed_paths: tuple[str, ...] = ()
    denied_paths: tuple[str, ...] = ()
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS
    allow_path_traversal: bool = False


class RegistryConfig(BaseModel):
    """Trusted publisher registry settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    allow_untrusted: bool = False
    default_trust_level: TrustLevel = TrustLevel.UNTRUSTED
    strict_mode: bool = True


class AuditConfig(BaseModel):
    """Audit log settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_log_size: int = Field(default=10_000, gt=0)
    rotation_policy: RotationPolicy = RotationPolicy.SIZE
    retention_days: int = Field(default=90, gt=0)
    alert_on_critical: bool = True


class SignerConfig(BaseModel):
    """Template signer settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    cache_enabled: bool = True
    cache_ttl_seconds: float = Field(default=300.0, ge=0)


class SecurityConfig(BaseModel):
    """All evaluator settings. SecurityConfig() is the full set of defaults."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    injection: InjectionConfig = Field(default_factory=InjectionConfig)
    filesystem: FileSystemConfig = Field(default_factory=FileSystemConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    signer: SignerConfig = Field(default_factory=SignerConfig)


# =============================================================================
# Merging and Loading
# =============================================================================


def _deep_merge(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_config(base: SecurityConfig, overrides: Mapping[str, Any] | None) -> SecurityConfig:
    """
    Apply a partial override to a config, field by field.

    Nested sections merge recursively, so {"audit": {"max_log_size": 10}}
    only changes that one field. Lists replace, they do not append.

    Raises:
        ConfigurationError: If the merged values are invalid
    """
    if not overrides:
        return base

    merged = _deep_merge(base.model_dump(mode="python"), overrides)
    try:
        return SecurityConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(message=f"Invalid configuration: {e}") from e


def load_security_config_from_string(content: str, source: str = "<string>") -> SecurityConfig:
    """
    Load a config from YAML text, merged over the defaults.

    Raises:
        ConfigLoadError: If the YAML is malformed or holds invalid values
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(path=source, underlying_error=str(e)) from e

    if data is None:
        return SecurityConfig()
    if not isinstance(data, dict):
        raise ConfigLoadError(path=source, underlying_error="top level must be a mapping")

    try:
        return merge_config(SecurityConfig(), data)
    except ConfigurationError as e:
        raise ConfigLoadError(path=source, underlying_error=e.message) from e


def load_security_config(path: Path | str) -> SecurityConfig:
    """
    Load a config from a YAML file.

    Raises:
        ConfigLoadError: If the file cannot be read or is invalid
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigLoadError(path=str(path), underlying_error=str(e)) from e

    return load_security_config_from_string(content, source=str(path))
