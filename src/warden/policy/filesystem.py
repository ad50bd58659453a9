"""
Filesystem Restrictor for Warden.

Validates paths a template wants to read or write. The checks run in a
fixed order and the first failure is the one reported:

    1. ".." in the raw path (before normalization)
    2. normalize to an absolute path
    3. system directories (/etc, /sys, /proc, /boot, /dev, /root, and the
       Windows system directories on Windows)
    4. configured denied paths
    5. configured allowed paths (only when the allowlist is non-empty)
    6. file extension allowlist (paths without an extension pass)
    7. write only: no hidden files

Prefix comparisons normalize and lowercase both sides, so "/ETC/passwd"
is caught by the "/etc" rule.

Security Note:
    This module only classifies. It never touches the filesystem beyond
    what os.path.abspath needs to resolve the working directory.
"""

import logging
import os
import re
import sys

from warden.config import FileSystemConfig
from warden.schema import FileOperation, PathValidationResult

logger = logging.getLogger(__name__)

UNIX_SYSTEM_PATHS: tuple[str, ...] = ("/etc", "/sys", "/proc", "/boot", "/dev", "/root")
WINDOWS_SYSTEM_PATHS: tuple[str, ...] = (
    "C:\\Windows",
    "C:\\Program Files",
    "C:\\Program Files (x86)",
)


def system_paths(platform: str | None = None) -> tuple[str, ...]:
    """System directories that are always denied on the given platform."""
    platform = platform or sys.platform
    if platform == "win32":
        return UNIX_SYSTEM_PATHS + WINDOWS_SYSTEM_PATHS
    return UNIX_SYSTEM_PATHS


class FileSystemRestrictor:
    """
    Decides whether a template may read or write a path.

    Usage:
        restrictor = FileSystemRestrictor(FileSystemConfig(allowed_paths=("/work",)))
        result = restrictor.validate_path("/work/notes.md", "write")
        if not result.valid:
            print(result.reason)

    Attributes:
        allowed_paths: Normalized allowlist prefixes
        denied_paths: Normalized denylist prefixes
        allowed_extensions: Lowercase extensions with leading dot
        allow_path_traversal: Whether ".." is tolerated in raw paths
        system_paths: Always-denied prefixes
    """

    def __init__(
        self,
        config: FileSystemConfig | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        config = config or FileSystemConfig()
        self._log = log or logger
        self.allowed_paths: list[str] = []
        self.denied_paths: list[str] = []
        self.allowed_extensions: set[str] = set()
        self.allow_path_traversal = config.allow_path_traversal
        self.system_paths = system_paths()

        for path in config.allowed_paths:
            self.add_allowed_path(path)
        for path in config.denied_paths:
            self.add_denied_path(path)
        for ext in config.allowed_extensions:
            self.add_allowed_extension(ext)

        self._log.debug(
            "FileSystemRestrictor initialized",
            extra={
                "allowed_paths_count": len(self.allowed_paths),
                "denied_paths_count": len(self.denied_paths),
                "allowed_extensions_count": len(self.allowed_extensions),
            },
        )

    def validate_path(
        self,
        path: str,
        operation: FileOperation | str,
    ) -> PathValidationResult:
        """
        Validate a path for a read or write.

        Policy violations come back as PathValidationResult(valid=False);
        this method does not raise for them.
        """
        operation = FileOperation(operation)

        if not self.allow_path_traversal and ".." in path:
            return self._fail(path, "Path traversal detected")

        normalized = self._normalize(path)

        for system_path in self.system_paths:
            if self._starts_with(normalized, system_path):
                return self._fail(path, f"System path access denied: {system_path}")

        for denied in self.denied_paths:
            if self._starts_with(normalized, denied):
                return self._fail(path, f"Access denied to path: {denied}")

        if self.allowed_paths and not any(
            self._starts_with(normalized, allowed) for allowed in self.allowed_paths
        ):
            return self._fail(path, "Path not in allowed list")

        ext = os.path.splitext(normalized)[1].lower()
        if ext and ext not in self.allowed_extensions:
            return self._fail(path, f"File extension '{ext}' not allowed")

        if operation is FileOperation.WRITE:
            filename = re.split(r"[/\\]", normalized)[-1]
            if filename.startswith("."):
                return self._fail(path, "Writing to hidden files not allowed")

        self._log.debug(
            "Path validation passed",
            extra={"path": normalized, "operation": operation.value},
        )
        return PathValidationResult.ok()

    def add_allowed_path(self, path: str) -> None:
        normalized = os.path.normpath(path)
        if normalized not in self.allowed_paths:
            self.allowed_paths.append(normalized)
        self._log.debug("Added allowed path", extra={"path": normalized})

    def add_denied_path(self, path: str) -> None:
        normalized = os.path.normpath(path)
        if normalized not in self.denied_paths:
            self.denied_paths.append(normalized)
        self._log.debug("Added denied path", extra={"path": normalized})

    def add_allowed_extension(self, ext: str) -> None:
        """Allow an extension; "md" and ".MD" both become ".md"."""
        normalized = (ext if ext.startswith(".") else f".{ext}").lower()
        self.allowed_extensions.add(normalized)
        self._log.debug("Added allowed extension", extra={"ext": normalized})

    def get_config(self) -> FileSystemConfig:
        """Current settings, including paths added after construction."""
        return FileSystemConfig(
            allowed_paths=tuple(self.allowed_paths),
            denied_paths=tuple(self.denied_paths),
            allowed_extensions=tuple(sorted(self.allowed_extensions)),
            allow_path_traversal=self.allow_path_traversal,
        )

    def _normalize(self, path: str) -> str:
        try:
            return os.path.normpath(os.path.abspath(path))
        except (OSError, ValueError) as e:
            self._log.warning(
                "Path normalization failed",
                extra={"path": path, "error": str(e)},
            )
            return path

    @staticmethod
    def _starts_with(path: str, prefix: str) -> bool:
        return os.path.normpath(path).lower().startswith(os.path.normpath(prefix).lower())

    def _fail(self, path: str, reason: str) -> PathValidationResult:
        self._log.warning("Path validation failed", extra={"path": path, "reason": reason})
        return PathValidationResult.fail(reason)
