"""
Policy evaluators for Warden.

Each evaluator answers one question about a template action and returns
a typed result; none of them raise for a policy outcome.

    PermissionManager          may this permission level perform the operation?
    DangerousCommandDetector   which risky patterns does a command contain?
    CommandInjectionPreventer  is an interpolated command free of shell syntax?
    FileSystemRestrictor       may this path be read or written?
"""

from warden.policy.commands import (
    CommandPattern,
    DangerousCommandDetector,
    LiteralPattern,
    RegexPattern,
)
from warden.policy.filesystem import FileSystemRestrictor
from warden.policy.injection import CommandInjectionPreventer
from warden.policy.permissions import PermissionManager

__all__ = [
    "CommandInjectionPreventer",
    "CommandPattern",
    "DangerousCommandDetector",
    "FileSystemRestrictor",
    "LiteralPattern",
    "PermissionManager",
    "RegexPattern",
]
