"""
Pattern matching for permission rules.

A rule pattern is one of:
    - "*": matches every tool
    - An exact tool name: "read_file"
    - A glob over tool names: "mcp__*", "read_?ile"
    - The terminal form "run_terminal_command(<glob>)", which matches the
      terminal tool only, by its "command" argument

Globs support "*" (zero or more characters) and "?" (exactly one character).
Every other character matches literally, including regex metacharacters and
path separators. Matching is anchored at both ends and case-sensitive.

Security Note:
    Arguments come from an untrusted agent. They are only ever compared as
    strings against compiled globs; nothing in them is interpreted as a
    pattern.
"""

import re
from functools import lru_cache
from typing import Any, Mapping

# Tool names that identify the terminal-execution tool (current and legacy)
TERMINAL_TOOL_NAMES = frozenset({"run_terminal_command", "runTerminalCommand"})

# The argument the terminal form of a pattern matches against
TERMINAL_COMMAND_ARG = "command"

_TERMINAL_PATTERN_RE = re.compile(
    r"^(?:run_terminal_command|runTerminalCommand)\((.+)\)$",
    re.DOTALL,
)


def is_glob(value: str) -> bool:
    """Whether a pattern string uses glob wildcards."""
    return "*" in value or "?" in value


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """
    Compile a glob into a regex meant for fullmatch().

    Examples:
        "mcp__*" matches "mcp__server1"
        "a.b*"   matches "a.bc" but not "axbc"
    """
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def glob_match(value: str, pattern: str) -> bool:
    """Full-string glob match."""
    return compile_glob(pattern).fullmatch(value) is not None


def matches_pattern(
    name: str,
    pattern: str,
    arguments: Mapping[str, Any] | None = None,
) -> bool:
    """
    Check if a tool name (and possibly its arguments) matches a rule pattern.

    Args:
        name: The tool being called (e.g., "read_file")
        pattern: The rule pattern
        arguments: The call's arguments, consulted by the terminal form only

    Returns:
        True if the pattern matches
    """
    if pattern == "*" or pattern == name:
        return True

    terminal = _TERMINAL_PATTERN_RE.match(pattern)
    if terminal:
        if name not in TERMINAL_TOOL_NAMES or not arguments:
            return False
        command = arguments.get(TERMINAL_COMMAND_ARG)
        if not command:
            return False
        command_pattern = terminal.group(1)
        if is_glob(command_pattern):
            return glob_match(str(command), command_pattern)
        return command == command_pattern

    if is_glob(pattern):
        return glob_match(name, pattern)

    return False


def matches_arguments(
    arguments: Mapping[str, Any] | None,
    patterns: Mapping[str, Any] | None = None,
) -> bool:
    """
    Check if call arguments satisfy every declared argument pattern.

    Rules per declared key:
        - "*" matches anything, including a missing argument
        - A string glob matches str(value); a missing or None value is ""
        - Anything else requires exact equality with the raw value

    Args:
        arguments: The call's arguments
        patterns: Argument name -> pattern; None matches every call

    Returns:
        True if all declared keys match
    """
    if not patterns:
        return True

    arguments = arguments or {}
    for key, pattern in patterns.items():
        if pattern == "*":
            continue

        value = arguments.get(key)
        if isinstance(pattern, str) and is_glob(pattern):
            if not glob_match("" if value is None else str(value), pattern):
                return False
        elif value != pattern:
            return False

    return True
