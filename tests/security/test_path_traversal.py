"""
Security tests for path traversal prevention.

These tests verify that the filesystem restrictor and the permission
manager block the common ways a template reaches outside its sandbox.

Attack vectors tested:
- ../ and ..\\ relative traversal
- Absolute paths outside allowed directories
- System directories, including mixed case
- Executable and hidden file writes
- Null byte injection
- Restriction prefixes in the permission manager
"""

import os
from pathlib import Path

import pytest

from warden.config import FileSystemConfig
from warden.policy.filesystem import FileSystemRestrictor
from warden.policy.permissions import PermissionManager
from warden.schema import Operation, Restriction


@pytest.fixture
def restrictor(temp_dir: Path) -> FileSystemRestrictor:
    """Restrictor that only allows access to temp_dir."""
    return FileSystemRestrictor(FileSystemConfig(allowed_paths=(str(temp_dir),)))


class TestRelativePathTraversal:
    """Tests for ../ path traversal attacks."""

    @pytest.mark.parametrize(
        "suffix",
        [
            "../secret.md",
            "../../etc/passwd",
            "docs/../../escape.md",
            "..\\..\\windows\\win.ini",
            "docs/..",
            "....//....//etc/passwd",
        ],
    )
    def test_traversal_blocked(self, restrictor: FileSystemRestrictor, temp_dir: Path, suffix: str) -> None:
        result = restrictor.validate_path(f"{temp_dir}/{suffix}", "read")
        assert result.valid is False
        assert result.reason == "Path traversal detected"

    def test_traversal_blocked_for_writes(self, restrictor: FileSystemRestrictor, temp_dir: Path) -> None:
        assert restrictor.validate_path(f"{temp_dir}/../out.md", "write").valid is False

    def test_bare_relative_traversal(self, restrictor: FileSystemRestrictor) -> None:
        assert restrictor.validate_path("../../notes.md", "read").valid is False


class TestAbsolutePaths:
    """Tests for absolute paths outside the sandbox."""

    def test_outside_allowlist(self, restrictor: FileSystemRestrictor) -> None:
        result = restrictor.validate_path("/var/log/app.txt", "read")
        assert result.valid is False
        assert result.reason == "Path not in allowed list"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX system paths")
    @pytest.mark.parametrize(
        "path",
        ["/etc/shadow", "/ETC/passwd", "/proc/self/environ", "/root/.ssh/id_rsa", "/dev/sda"],
    )
    def test_system_paths_denied_even_when_allowed(self, path: str) -> None:
        restrictor = FileSystemRestrictor(FileSystemConfig(allowed_paths=("/",)))
        result = restrictor.validate_path(path, "read")
        assert result.valid is False
        assert result.reason.startswith("System path access denied")

    def test_denylist_beats_allowlist(self, temp_dir: Path) -> None:
        restrictor = FileSystemRestrictor(FileSystemConfig(
            allowed_paths=(str(temp_dir),),
            denied_paths=(str(temp_dir / "keys"),),
        ))
        assert restrictor.validate_path(str(temp_dir / "keys" / "prod.json"), "read").valid is False


class TestWriteTargets:
    """Tests for file types a template must not write."""

    @pytest.mark.parametrize("name", ["payload.sh", "tool.exe", "hook.py", "lib.so", "run.BAT"])
    def test_executable_extensions_blocked(
        self,
        restrictor: FileSystemRestrictor,
        temp_dir: Path,
        name: str,
    ) -> None:
        result = restrictor.validate_path(str(temp_dir / name), "write")
        assert result.valid is False
        assert "not allowed" in result.reason

    @pytest.mark.parametrize("name", [".bashrc", ".profile", ".env"])
    def test_hidden_file_writes_blocked(
        self,
        restrictor: FileSystemRestrictor,
        temp_dir: Path,
        name: str,
    ) -> None:
        result = restrictor.validate_path(str(temp_dir / name), "write")
        assert result.valid is False

    def test_null_byte_extension_trick(self, restrictor: FileSystemRestrictor, temp_dir: Path) -> None:
        result = restrictor.validate_path(f"{temp_dir}/notes.md\x00.sh", "write")
        assert result.valid is False


class TestRestrictionPrefixes:
    """Tests for PermissionManager.validate_path."""

    def test_denied_prefix(self) -> None:
        restriction = Restriction(operation=Operation.FILE_WRITE, denied_paths=frozenset({"/home/me/.ssh"}))
        manager = PermissionManager()
        assert manager.validate_path("/home/me/.ssh/authorized_keys", restriction) is False
        assert manager.validate_path("/home/me/project/a.md", restriction) is True

    def test_allowed_prefix(self) -> None:
        restriction = Restriction(operation=Operation.FILE_READ, allowed_paths=frozenset({"/work"}))
        manager = PermissionManager()
        assert manager.validate_path("/work/a.md", restriction) is True
        assert manager.validate_path("/etc/passwd", restriction) is False
