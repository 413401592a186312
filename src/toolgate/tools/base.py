"""
Base classes for the tool capability interface.

toolgate never executes tools. It only needs to know what a tool is called
and, optionally, how the tool itself judges the risk of a particular call:
- Tool: Abstract base class carrying the tool's name
- RiskEvaluator: Optional capability for runtime risk assessment
- ToolSpec: A plain named tool for definitions that have no behavior here

Design Principles:
    - Tools are never mutated by the policy engine, only queried
    - Risk assessment is a capability a tool opts into by inheriting
      RiskEvaluator; the engine checks for it with isinstance()
    - A risk assessment can only tighten the configured decision

Why ABC over Protocol?
    - ABCs provide clearer inheritance semantics
    - isinstance() checks are explicit about which tools opt in
    - Protocols are better for structural typing; we want nominal typing here
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping

from toolgate.schema import ToolPolicy


class Tool(ABC):
    """
    Abstract base class for every tool the agent may call.

    Subclasses must implement:
    - name property: Returns the tool's unique identifier

    Example:
        class GrepTool(Tool):
            @property
            def name(self) -> str:
                return "grep_search"
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        The unique identifier for this tool.

        Examples: "read_file", "run_terminal_command", "mcp__github__search"

        Returns:
            The tool's unique name
        """
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        return f"Tool: {self.name}"

    def __repr__(self) -> str:
        """String representation of the tool."""
        return f"<Tool: {self.name}>"


class RiskEvaluator(ABC):
    """
    Capability for tools that assess the risk of individual calls.

    The engine passes the statically configured decision (translated into
    ToolPolicy) together with the raw and normalized arguments. Whatever the
    tool returns is combined with the static decision by taking the more
    restrictive of the two, so returning a laxer policy has no effect.

    Example:
        class ShellTool(Tool, RiskEvaluator):
            name = "run_terminal_command"

            def evaluate_tool_call_policy(self, base_policy, raw_args, normalized_args=None):
                if "sudo" in raw_args.get("command", ""):
                    return ToolPolicy.DISABLED
                return base_policy
    """

    @abstractmethod
    def evaluate_tool_call_policy(
        self,
        base_policy: ToolPolicy,
        raw_args: Mapping[str, Any],
        normalized_args: Mapping[str, Any] | None = None,
    ) -> ToolPolicy:
        """
        Assess one call.

        Args:
            base_policy: The statically configured decision
            raw_args: Arguments as the agent supplied them
            normalized_args: Arguments after preprocessing (e.g. resolved paths)

        Returns:
            The tool's view of how the call should be treated
        """
        ...


class ToolSpec(Tool):
    """A tool known only by its name and description."""

    def __init__(self, name: str, description: str = "") -> None:
        if not name:
            msg = "Tool must have a non-empty name"
            raise ValueError(msg)
        self._name = name
        self._description = description

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description or super().description
