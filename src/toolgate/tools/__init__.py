"""
Tools module for toolgate.

This module provides the capability interface the policy engine consumes.
toolgate never runs tools; it only needs their names and, for tools that
assess their own risk, a RiskEvaluator.

Architecture:
    - Tool: Abstract base class carrying a tool's name
    - RiskEvaluator: Optional capability for per-call risk assessment
    - ToolRegistry: The set of tools a session exposes
    - TerminalCommandTool / FileAccessTool: Built-in tools with risk evaluation

Policy enforcement is the caller's job, not the tools'.
"""

from toolgate.tools.base import RiskEvaluator, Tool, ToolSpec
from toolgate.tools.registry import ToolRegistry
from toolgate.tools.builtin import (
    FileAccessTool,
    TerminalCommandTool,
    create_builtin_registry,
)

__all__ = [
    "Tool",
    "RiskEvaluator",
    "ToolSpec",
    "ToolRegistry",
    "TerminalCommandTool",
    "FileAccessTool",
    "create_builtin_registry",
]
