"""
Built-in tool definitions with runtime risk evaluation.

These describe the agent's standard tools to the policy engine. The tools'
actual implementations live elsewhere; what matters here is the name and,
for the risky ones, how a single call is judged:

- run_terminal_command: disabled when the command contains a blocked token
  ("sudo", "rm -rf", ...), confirmation required when it chains or
  redirects commands
- File tools: confirmation required for hidden paths and, when a
  workspace is set, for paths that resolve outside it

A risk evaluator can only tighten the configured decision, so returning the
base policy means "no opinion".
"""

import re
from pathlib import Path
from typing import Any, Iterable, Mapping

from toolgate.policy.matcher import TERMINAL_COMMAND_ARG
from toolgate.schema import ToolPolicy
from toolgate.tools.base import RiskEvaluator, Tool, ToolSpec
from toolgate.tools.registry import ToolRegistry

DEFAULT_DENY_TOKENS = (
    "sudo",
    "su",
    "rm -rf",
    "mkfs",
    "dd",
    "> /dev",
    "chmod 777",
    "curl | sh",
    "wget | sh",
)

# Shell syntax that runs more than one thing or writes somewhere
DEFAULT_CONFIRM_OPERATORS = (";", "&&", "||", "|", "`", "$(", ">")


class TerminalCommandTool(Tool, RiskEvaluator):
    """
    The terminal-execution tool.

    Arguments:
        command (str): The shell command line

    Risk evaluation:
        - Any deny token present -> DISABLED
        - Any chaining/redirect operator present -> ALLOWED_WITH_PERMISSION
        - Otherwise the base policy is returned unchanged
    """

    def __init__(
        self,
        name: str = "run_terminal_command",
        deny_tokens: Iterable[str] = DEFAULT_DENY_TOKENS,
        confirm_operators: Iterable[str] = DEFAULT_CONFIRM_OPERATORS,
    ) -> None:
        self._name = name
        self.deny_tokens = tuple(deny_tokens)
        self.confirm_operators = tuple(confirm_operators)
        # A token matches only when not embedded in a larger word ("su" vs "sum")
        self._deny_res = [
            re.compile(r"(?<![a-zA-Z0-9])" + re.escape(t) + r"(?![a-zA-Z0-9])", re.IGNORECASE)
            for t in self.deny_tokens
        ]

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Run a command in the user's terminal"

    def blocked_token(self, command: str) -> str | None:
        """Return the first deny token found in the command, if any."""
        for token, pattern in zip(self.deny_tokens, self._deny_res):
            if pattern.search(command):
                return token
        return None

    def evaluate_tool_call_policy(
        self,
        base_policy: ToolPolicy,
        raw_args: Mapping[str, Any],
        normalized_args: Mapping[str, Any] | None = None,
    ) -> ToolPolicy:
        command = _first_present(TERMINAL_COMMAND_ARG, normalized_args, raw_args)
        if not command:
            return base_policy

        command = str(command)
        if self.blocked_token(command):
            return ToolPolicy.DISABLED
        if any(op in command for op in self.confirm_operators):
            return ToolPolicy.ALLOWED_WITH_PERMISSION
        return base_policy


class FileAccessTool(Tool, RiskEvaluator):
    """
    A tool that reads or writes one file.

    Arguments:
        file_path (str): The file to access (relative paths are taken
                         relative to the workspace)

    Risk evaluation:
        - Any hidden path component (".env", ".ssh/...") -> ALLOWED_WITH_PERMISSION
        - Outside the workspace (if one is set) -> ALLOWED_WITH_PERMISSION
        - Otherwise the base policy is returned unchanged
    """

    def __init__(
        self,
        name: str,
        writes: bool = False,
        workspace: Path | str | None = None,
        path_arg: str = "file_path",
    ) -> None:
        self._name = name
        self.writes = writes
        self.workspace = Path(workspace) if workspace is not None else None
        self.path_arg = path_arg

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        action = "Write" if self.writes else "Read"
        return f"{action} a file"

    def evaluate_tool_call_policy(
        self,
        base_policy: ToolPolicy,
        raw_args: Mapping[str, Any],
        normalized_args: Mapping[str, Any] | None = None,
    ) -> ToolPolicy:
        path_value = _first_present(self.path_arg, normalized_args, raw_args)
        if not path_value:
            return base_policy

        path = Path(str(path_value))
        if _is_hidden_path(path):
            return ToolPolicy.ALLOWED_WITH_PERMISSION
        if self.workspace is not None and not self._inside_workspace(path):
            return ToolPolicy.ALLOWED_WITH_PERMISSION
        return base_policy

    def _inside_workspace(self, path: Path) -> bool:
        workspace = self.workspace.resolve()
        if not path.is_absolute():
            path = workspace / path
        try:
            path.resolve().relative_to(workspace)
        except (ValueError, OSError):
            return False
        return True


def _first_present(
    key: str,
    *sources: Mapping[str, Any] | None,
) -> Any:
    """Value of key from the first mapping that has a non-empty one."""
    for source in sources:
        if source and source.get(key):
            return source[key]
    return None


def _is_hidden_path(path: Path) -> bool:
    """
    Check if any component of the path is hidden (starts with dot).

    Examples:
        /home/user/.ssh/id_rsa -> True (contains .ssh)
        project/.env -> True
        ../file.txt -> False
    """
    for part in path.parts:
        if part.startswith(".") and part not in (".", ".."):
            return True
    return False


def create_builtin_registry(workspace: Path | str | None = None) -> ToolRegistry:
    """
    Build a registry holding the standard agent tools.

    Args:
        workspace: Directory file tools are expected to stay inside

    Returns:
        A new ToolRegistry
    """
    registry = ToolRegistry()
    registry.register(TerminalCommandTool())
    registry.register(FileAccessTool("read_file", workspace=workspace))
    registry.register(FileAccessTool("read_file_range", workspace=workspace))
    registry.register(FileAccessTool("create_new_file", writes=True, workspace=workspace))
    registry.register(FileAccessTool("edit_existing_file", writes=True, workspace=workspace))
    registry.register(ToolSpec("grep_search", "Search file contents"))
    registry.register(ToolSpec("file_glob_search", "Find files by glob"))
    registry.register(ToolSpec("search_web", "Search the web"))
    return registry
