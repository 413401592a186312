"""
Exception hierarchy for toolgate.

All toolgate exceptions inherit from ToolgateError, allowing callers to catch
all toolgate-specific exceptions with a single except clause.

Exception Categories:
    - PolicyConfigError: Permissions file missing, malformed or invalid
    - PatternSyntaxError: A single rule pattern could not be parsed
    - WatchSetupError: The permissions file cannot be observed for changes
    - ToolNotFoundError: Registry lookup for an unknown tool

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (path, pattern, tool where applicable)
    - All errors provide actionable suggestions where possible
    - None of these ever escape evaluate() or check_permission()
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Configuration errors: 1xxx
ERROR_CONFIG_INVALID = 1001
ERROR_CONFIG_PATTERN_SYNTAX = 1002
ERROR_CONFIG_YAML_SYNTAX = 1003
ERROR_CONFIG_UNREADABLE = 1004

# Watch errors: 2xxx
ERROR_WATCH_SETUP = 2001

# Tool errors: 3xxx
ERROR_TOOL_NOT_FOUND = 3001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ToolgateError(Exception):
    """
    Base exception for all toolgate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class PolicyConfigError(ToolgateError):
    """
    Raised when the permissions file cannot be turned into a PolicySet.

    The service catches these, logs them and falls back according to its
    reload failure mode. They never reach callers of check_permission().

    Attributes:
        path: The permissions file that failed to load
        reason: What was wrong with it
    """

    path: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid permissions file {self.path}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        if not self.suggestion:
            self.suggestion = "Only 'allow', 'ask' and 'exclude' lists of strings are accepted"
        self.context.update({
            "path": self.path,
            "reason": self.reason,
        })


@dataclass
class PatternSyntaxError(PolicyConfigError):
    """Raised when a rule pattern such as 'tool(args' is malformed."""

    pattern: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.reason:
            self.reason = "unbalanced or nested parentheses"
        if not self.message:
            self.message = f"Invalid tool pattern: {self.pattern}"
        if self.code == 0:
            self.code = ERROR_CONFIG_PATTERN_SYNTAX
        if not self.suggestion:
            self.suggestion = "Use 'tool_name' or 'tool_name(argument glob)'"
        super().__post_init__()
        self.context["pattern"] = self.pattern


# =============================================================================
# Watch Errors
# =============================================================================


@dataclass
class WatchSetupError(ToolgateError):
    """Raised when the permissions file cannot be watched for changes."""

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot watch {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_WATCH_SETUP
        if not self.suggestion:
            self.suggestion = "Policies stay active but will not reload until restart"
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Tool Errors
# =============================================================================


@dataclass
class ToolNotFoundError(ToolgateError):
    """Raised when a tool is not registered."""

    tool: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool not found: {self.tool}"
        if self.code == 0:
            self.code = ERROR_TOOL_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Check tool name spelling or register the tool"
        self.context["tool"] = self.tool
