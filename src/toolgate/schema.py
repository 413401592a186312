"""
Schema definitions for toolgate.

This module defines the models used throughout toolgate:
- Decision/ToolPolicy: The two decision vocabularies and their translation
- Rule/PolicySet: What the permissions file says, in evaluation order
- EvaluationResult: The result of evaluating one tool call
- PermissionsConfig: The structural shape of permissions.yaml
- ServiceSettings: How the permissions service finds and watches its file

Design Decisions:
    - Models are immutable (frozen=True); a reload builds new ones
    - Unknown fields are rejected (extra="forbid")
    - Enums are str-based so they serialize as their YAML spelling
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class Decision(str, Enum):
    """
    The permission applied to a tool call.

    ALLOW executes automatically, ASK requires user confirmation and
    EXCLUDE makes the tool unavailable. Restrictiveness is totally ordered:
    EXCLUDE > ASK > ALLOW.
    """

    ALLOW = "allow"
    ASK = "ask"
    EXCLUDE = "exclude"

    @property
    def restrictiveness(self) -> int:
        """Rank of this decision; higher is more restrictive."""
        return _RESTRICTIVENESS[self]

    def to_tool_policy(self) -> "ToolPolicy":
        """Translate into the risk-assessment vocabulary."""
        return _DECISION_TO_TOOL_POLICY[self]


_RESTRICTIVENESS = {
    Decision.ALLOW: 0,
    Decision.ASK: 1,
    Decision.EXCLUDE: 2,
}


class ToolPolicy(str, Enum):
    """
    The vocabulary tools use for their own runtime risk assessment.

    Values keep the camelCase spelling used by terminal-security evaluators.
    """

    ALLOWED_WITHOUT_PERMISSION = "allowedWithoutPermission"
    ALLOWED_WITH_PERMISSION = "allowedWithPermission"
    DISABLED = "disabled"

    def to_decision(self) -> Decision:
        """Translate back into a permission decision."""
        return _TOOL_POLICY_TO_DECISION[self]


_DECISION_TO_TOOL_POLICY = {
    Decision.ALLOW: ToolPolicy.ALLOWED_WITHOUT_PERMISSION,
    Decision.ASK: ToolPolicy.ALLOWED_WITH_PERMISSION,
    Decision.EXCLUDE: ToolPolicy.DISABLED,
}

_TOOL_POLICY_TO_DECISION = {v: k for k, v in _DECISION_TO_TOOL_POLICY.items()}


def coerce_tool_policy(value: Any) -> ToolPolicy:
    """
    Turn whatever a risk evaluator returned into a ToolPolicy.

    Unknown values land on ALLOWED_WITH_PERMISSION, the middle ground:
    an unrecognised answer must not silently allow nor hide the tool.
    """
    if isinstance(value, ToolPolicy):
        return value
    try:
        return ToolPolicy(value)
    except ValueError:
        return ToolPolicy.ALLOWED_WITH_PERMISSION


def most_restrictive(*decisions: Decision) -> Decision:
    """Return the most restrictive of the given decisions (ALLOW if none)."""
    return max(decisions, key=lambda d: d.restrictiveness, default=Decision.ALLOW)


class ReloadFailureMode(str, Enum):
    """
    What a failed reload does to the currently loaded policies.

    KEEP_LAST_GOOD keeps serving the previous PolicySet.
    DISABLE drops the store, which makes every call resolve to allow.
    """

    KEEP_LAST_GOOD = "keep_last_good"
    DISABLE = "disable"


# =============================================================================
# Policy Models
# =============================================================================


class Rule(BaseModel):
    """
    A single pattern-to-decision mapping.

    Attributes:
        pattern: Tool name, glob ("mcp__*") or terminal form ("run_terminal_command(git*)")
        decision: The decision applied when this rule matches
        argument_patterns: Optional argument name -> glob/value matchers
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: str = Field(
        ...,
        description="Tool name or glob pattern",
        min_length=1,
    )
    decision: Decision = Field(
        ...,
        description="Decision applied when this rule matches",
    )
    argument_patterns: dict[str, Any] | None = Field(
        default=None,
        description="Argument name to glob (or exact value) matchers",
    )

    def __str__(self) -> str:
        if not self.argument_patterns:
            return f"{self.decision.value}: {self.pattern}"
        args = ", ".join(f"{k}={v!r}" for k, v in self.argument_patterns.items())
        return f"{self.decision.value}: {self.pattern} [{args}]"


class PolicySet(BaseModel):
    """
    An ordered, read-only collection of rules.

    Earlier rules take precedence. Each load of the permissions file
    produces a brand-new PolicySet; instances are never mutated.

    Attributes:
        rules: Rules in evaluation order
        source: Where the rules were loaded from (if anywhere)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    rules: tuple[Rule, ...] = Field(
        default_factory=tuple,
        description="Rules in evaluation order",
    )
    source: str | None = Field(
        default=None,
        description="Path the rules were loaded from",
    )

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self) -> Iterator[Rule]:  # type: ignore[override]
        return iter(self.rules)


class EvaluationResult(BaseModel):
    """
    Result of evaluating a tool call against a PolicySet.

    Attributes:
        decision: The final decision the caller must honor
        matched_rule: The static rule that matched, if any
        static_decision: The decision from the rules alone
        dynamic_decision: The tool's own risk assessment, if it has one
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    decision: Decision = Field(..., description="Final decision")
    matched_rule: Rule | None = Field(
        default=None,
        description="Static rule that matched this call",
    )
    static_decision: Decision = Field(
        default=Decision.ALLOW,
        description="Decision from the static rules",
    )
    dynamic_decision: Decision | None = Field(
        default=None,
        description="Decision from the tool's runtime risk assessment",
    )

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    @property
    def requires_confirmation(self) -> bool:
        return self.decision is Decision.ASK

    @property
    def excluded(self) -> bool:
        return self.decision is Decision.EXCLUDE

    @classmethod
    def permissive(cls) -> "EvaluationResult":
        """The answer given when no policies are loaded."""
        return cls(decision=Decision.ALLOW)


# =============================================================================
# Configuration Models
# =============================================================================


class PermissionsConfig(BaseModel):
    """
    Structural shape of permissions.yaml.

    Attributes:
        allow: Patterns that execute without prompting
        ask: Patterns that require confirmation
        exclude: Patterns whose tools are unavailable
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allow: list[str] = Field(default_factory=list)
    ask: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)

    @field_validator("allow", "ask", "exclude", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        """'ask:' with no entries parses as null; treat it as an empty list."""
        return [] if v is None else v


def toolgate_home() -> Path:
    """Directory holding toolgate's configuration ($TOOLGATE_HOME or ~/.toolgate)."""
    home = os.environ.get("TOOLGATE_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".toolgate"


def default_permissions_path() -> Path:
    """Default location of permissions.yaml."""
    explicit = os.environ.get("TOOLGATE_PERMISSIONS")
    if explicit:
        return Path(explicit).expanduser()
    return toolgate_home() / "permissions.yaml"


class ServiceSettings(BaseModel):
    """
    Settings for ToolPermissionsService.

    Attributes:
        permissions_path: The permissions.yaml to load and watch
        poll_interval: Seconds between change checks
        watch: Whether to hot-reload on file changes
        on_reload_error: What a failed reload does to loaded policies
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    permissions_path: Path = Field(
        default_factory=default_permissions_path,
        description="Path to permissions.yaml",
    )
    poll_interval: float = Field(
        default=1.0,
        description="Seconds between change checks",
        gt=0,
    )
    watch: bool = Field(
        default=True,
        description="Hot-reload on file changes",
    )
    on_reload_error: ReloadFailureMode = Field(
        default=ReloadFailureMode.KEEP_LAST_GOOD,
        description="Behavior when a reload fails",
    )

    @classmethod
    def from_env(cls, **overrides: Any) -> "ServiceSettings":
        """Build settings from TOOLGATE_* environment variables."""
        values: dict[str, Any] = {}
        interval = os.environ.get("TOOLGATE_POLL_INTERVAL")
        if interval:
            values["poll_interval"] = float(interval)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
