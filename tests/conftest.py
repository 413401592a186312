"""
Pytest configuration and fixtures for toolgate tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import tempfile
from pathlib import Path
from typing import Any, Generator, Mapping

import pytest

from toolgate.schema import ServiceSettings, ToolPolicy
from toolgate.tools.base import RiskEvaluator, Tool


class StubRiskTool(Tool, RiskEvaluator):
    """A tool whose risk evaluator returns a fixed answer and records calls."""

    def __init__(self, tool_name: str, answer: Any) -> None:
        self._name = tool_name
        self.answer = answer
        self.calls: list[tuple[ToolPolicy, Mapping[str, Any], Mapping[str, Any] | None]] = []

    @property
    def name(self) -> str:
        return self._name

    def evaluate_tool_call_policy(
        self,
        base_policy: ToolPolicy,
        raw_args: Mapping[str, Any],
        normalized_args: Mapping[str, Any] | None = None,
    ) -> ToolPolicy:
        self.calls.append((base_policy, raw_args, normalized_args))
        return self.answer


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def permissions_path(temp_dir: Path) -> Path:
    """Path of a permissions.yaml inside the temp dir (not created)."""
    return temp_dir / "permissions.yaml"


@pytest.fixture
def settings(permissions_path: Path) -> ServiceSettings:
    """Service settings with a fast poll interval."""
    return ServiceSettings(permissions_path=permissions_path, poll_interval=0.02)


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
    """Keep TOOLGATE_* defaults away from the real home directory."""
    monkeypatch.setenv("TOOLGATE_HOME", str(temp_dir / "home"))
    monkeypatch.delenv("TOOLGATE_PERMISSIONS", raising=False)
    monkeypatch.delenv("TOOLGATE_POLL_INTERVAL", raising=False)


@pytest.fixture
def sample_permissions_yaml() -> str:
    """The permissions document used in the end-to-end examples."""
    return """
exclude:
  - run_terminal_command(sudo*)
ask:
  - run_terminal_command
allow:
  - "*"
"""


@pytest.fixture
def make_risk_tool() -> type[StubRiskTool]:
    """Factory for tools with a fixed risk assessment."""
    return StubRiskTool
