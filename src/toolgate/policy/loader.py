"""
Loading and normalizing permissions.yaml.

The file holds three lists of pattern strings:

    exclude:
      - run_terminal_command(sudo*)
    ask:
      - run_terminal_command
    allow:
      - "*"

They are normalized into a PolicySet in the order exclude, ask, allow, so
the most restrictive category is consulted first. Order within each list is
preserved.

A pattern "name(args)" becomes a rule on "name" whose primary argument must
match "args". Which argument is primary depends on the tool; see
TOOL_ARGUMENT_KEYS.
"""

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from toolgate.errors import (
    ERROR_CONFIG_UNREADABLE,
    ERROR_CONFIG_YAML_SYNTAX,
    PatternSyntaxError,
    PolicyConfigError,
)
from toolgate.schema import (
    Decision,
    PermissionsConfig,
    PolicySet,
    Rule,
    default_permissions_path,
)

logger = logging.getLogger(__name__)

# Primary argument of each built-in tool, used by "name(args)" patterns
TOOL_ARGUMENT_KEYS = {
    "run_terminal_command": "command",
    "runTerminalCommand": "command",
    "read_file": "file_path",
    "read_file_range": "file_path",
    "create_new_file": "file_path",
    "edit_existing_file": "file_path",
    "grep_search": "query",
    "file_glob_search": "pattern",
    "search_web": "query",
}

# Argument key for tools not listed above
FALLBACK_ARGUMENT_KEY = "pattern"

# Evaluation order of the categories
CATEGORY_ORDER = (Decision.EXCLUDE, Decision.ASK, Decision.ALLOW)

# Matched with fullmatch(); nothing may follow the closing parenthesis
_PATTERN_RE = re.compile(r"([^(]+)(?:\(([^)]*)\))?", re.DOTALL)

DEFAULT_PERMISSIONS_YAML = """\
# toolgate tool permissions

# Tools that are automatically allowed without prompting
allow: []

# Tools that require user confirmation before execution
# Format: toolName or toolName(arguments)
# Examples:
#   - run_terminal_command(npm install)
#   - run_terminal_command(git*)
#   - read_file(/etc/*)
#   - grep_search(*password*)
ask: []

# Tools that are completely excluded (won't be available)
exclude: []
"""


def argument_key_for(tool_name: str) -> str:
    """The argument a "tool_name(args)" pattern matches against."""
    return TOOL_ARGUMENT_KEYS.get(tool_name, FALLBACK_ARGUMENT_KEY)


def parse_tool_pattern(pattern: str, decision: Decision) -> Rule:
    """
    Parse one pattern string into a Rule.

    Examples:
        "read_file"                 -> Rule(pattern="read_file")
        "run_terminal_command(git*)" -> Rule(pattern="run_terminal_command",
                                            argument_patterns={"command": "git*"})
        "run_terminal_command()"     -> Rule(pattern="run_terminal_command")

    The name and the argument text are stripped, but nothing, not even
    whitespace, may follow the closing parenthesis.

    Args:
        pattern: The pattern string from the permissions file
        decision: The category the pattern was listed under

    Returns:
        The normalized Rule

    Raises:
        PatternSyntaxError: If parentheses are unbalanced or nested, or the name is empty
    """
    match = _PATTERN_RE.fullmatch(pattern)
    if not match or not match.group(1).strip():
        raise PatternSyntaxError(pattern=pattern)

    name = match.group(1).strip()
    args = (match.group(2) or "").strip()
    if not args:
        return Rule(pattern=name, decision=decision)

    return Rule(
        pattern=name,
        decision=decision,
        argument_patterns={argument_key_for(name): args},
    )


def config_to_policy_set(
    config: PermissionsConfig,
    source: str | None = None,
) -> PolicySet:
    """
    Normalize a permissions config into a PolicySet.

    All-or-nothing: the first malformed pattern aborts normalization.

    Raises:
        PatternSyntaxError: If any pattern is malformed
    """
    rules = []
    for decision in CATEGORY_ORDER:
        for pattern in getattr(config, decision.value):
            try:
                rules.append(parse_tool_pattern(pattern, decision))
            except PatternSyntaxError as e:
                if source:
                    e.path = source
                    e.context["path"] = source
                raise
    return PolicySet(rules=tuple(rules), source=source)


def parse_permissions(data: Any, path: str = "<string>") -> PermissionsConfig | None:
    """
    Validate an already-parsed YAML document.

    Returns:
        The config, or None for an empty document

    Raises:
        PolicyConfigError: If the document is not a mapping of allow/ask/exclude lists
    """
    if data is None:
        return None
    if not isinstance(data, dict):
        raise PolicyConfigError(
            path=path,
            reason=f"expected a mapping, got {type(data).__name__}",
        )
    try:
        return PermissionsConfig.model_validate(data)
    except ValidationError as e:
        raise PolicyConfigError(path=path, reason=_summarize(e)) from e


def load_permissions_file(path: Path | str) -> PermissionsConfig | None:
    """
    Load permissions.yaml.

    Args:
        path: Path to the YAML file

    Returns:
        The validated config, or None if the file is missing or empty

    Raises:
        PolicyConfigError: If the file is unreadable, not valid YAML, or has the wrong shape
    """
    path = Path(path)
    if not path.exists():
        logger.debug("Permissions file does not exist: %s", path)
        return None

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise PolicyConfigError(
            path=str(path),
            reason=str(e),
            code=ERROR_CONFIG_UNREADABLE,
            suggestion="Check the file's permissions and encoding",
        ) from e

    config = load_permissions_from_string(content, str(path))
    if config is not None:
        logger.debug(
            "Loaded permissions from %s (allow=%d, ask=%d, exclude=%d)",
            path,
            len(config.allow),
            len(config.ask),
            len(config.exclude),
        )
    return config


def load_permissions_from_string(
    content: str,
    path: str = "<string>",
) -> PermissionsConfig | None:
    """Load a permissions config from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise PolicyConfigError(
            path=path,
            reason=f"YAML syntax error: {e}",
            code=ERROR_CONFIG_YAML_SYNTAX,
            suggestion="Fix the YAML syntax; quote patterns that start with '*'",
        ) from e
    return parse_permissions(data, path)


def load_policy_set(path: Path | str) -> PolicySet | None:
    """Load and normalize permissions.yaml; None if missing or empty."""
    config = load_permissions_file(path)
    if config is None:
        return None
    return config_to_policy_set(config, source=str(path))


def load_policy_set_from_string(content: str) -> PolicySet | None:
    """Load and normalize a permissions document from a YAML string."""
    config = load_permissions_from_string(content)
    if config is None:
        return None
    return config_to_policy_set(config)


def ensure_permissions_file(path: Path | str | None = None) -> Path:
    """
    Create permissions.yaml with the default content if it doesn't exist.

    An existing file is never touched.

    Returns:
        The path of the permissions file
    """
    path = Path(path) if path is not None else default_permissions_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_text(DEFAULT_PERMISSIONS_YAML, encoding="utf-8")
        logger.info("Created default permissions file at %s", path)
    return path


def _summarize(error: ValidationError) -> str:
    """One-line summary of a pydantic validation error."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"])
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
