"""
Policy module for toolgate.

This module implements the permission model for agent tool calls.

Key concepts:
    - Rule: A pattern mapped to allow, ask or exclude
    - PolicySet: Immutable ordered rules; first match wins
    - PolicyEngine: Evaluates calls and merges in the tool's own risk assessment
    - ToolPermissionsService: Loads permissions.yaml and hot-reloads it

The engine is permissive by default: a call no rule matches is allowed.
Rules and risk evaluators can only make a call more restricted.
"""

from toolgate.policy.engine import PolicyEngine, evaluate, filter_excluded
from toolgate.policy.loader import (
    config_to_policy_set,
    ensure_permissions_file,
    load_permissions_file,
    load_policy_set,
    load_policy_set_from_string,
    parse_tool_pattern,
)
from toolgate.policy.matcher import matches_arguments, matches_pattern
from toolgate.policy.service import ServiceState, ToolPermissionsService
from toolgate.policy.watcher import ConfigWatcher

__all__ = [
    "PolicyEngine",
    "evaluate",
    "filter_excluded",
    "matches_pattern",
    "matches_arguments",
    "parse_tool_pattern",
    "config_to_policy_set",
    "load_permissions_file",
    "load_policy_set",
    "load_policy_set_from_string",
    "ensure_permissions_file",
    "ConfigWatcher",
    "ServiceState",
    "ToolPermissionsService",
]
