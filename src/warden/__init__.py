"""
Warden - Trust and execution-policy engine for shell templates.

Warden decides whether a template may run and records every decision.
It provides:
- Permission levels with per-operation path restrictions
- Dangerous command and command injection detection
- Filesystem path restrictions
- Publisher trust and HMAC template signatures
- A tamper-evident audit log

Example usage:
    $ warden scan template.yaml
    $ warden check-path ./notes.md --write
    $ warden assess template.yaml --json
"""

__version__ = "0.1.0"
__author__ = "Warden Contributors"

from warden.audit import TemplateAuditLog, generate_secret_key
from warden.config import SecurityConfig, load_security_config, merge_config
from warden.engine import SecurityEngine, TemplateAssessment
from warden.errors import WardenError
from warden.policy import (
    CommandInjectionPreventer,
    DangerousCommandDetector,
    FileSystemRestrictor,
    PermissionManager,
)
from warden.trust import TemplateSigner, TrustedPublisherRegistry

__all__ = [
    "__version__",
    "__author__",
    "CommandInjectionPreventer",
    "DangerousCommandDetector",
    "FileSystemRestrictor",
    "PermissionManager",
    "SecurityConfig",
    "SecurityEngine",
    "TemplateAssessment",
    "TemplateAuditLog",
    "TemplateSigner",
    "TrustedPublisherRegistry",
    "WardenError",
    "generate_secret_key",
    "load_security_config",
    "merge_config",
]
