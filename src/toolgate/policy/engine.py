"""
Policy Engine for toolgate.

Every tool call the agent wants to make is evaluated here before the
calling layer decides whether to run it, prompt the user, or refuse it.

Design Principles:
    - Permissive by default: no matching rule means "allow"; the permissions
      file only ever narrows what the agent may do
    - First match wins: rules are scanned in order and the first one whose
      pattern and argument patterns both match decides the static outcome
    - Tighten, never loosen: a tool's runtime risk assessment is combined
      with the static outcome by taking the more restrictive of the two
    - Total: evaluation always returns a decision, it never raises

How it works:
    1. Engine receives (tool_name, args, policy_set)
    2. Scans rules in order, stops at the first match
    3. Consults the tool's RiskEvaluator capability, if it has one
    4. Returns EvaluationResult (decision + matched rule)

Security Note:
    This module is security-critical. Changes should be reviewed carefully.
"""

import logging
from typing import Any, Iterable, Mapping, TypeVar

from toolgate.policy.matcher import matches_arguments, matches_pattern
from toolgate.schema import (
    Decision,
    EvaluationResult,
    PolicySet,
    Rule,
    coerce_tool_policy,
    most_restrictive,
)
from toolgate.tools.base import RiskEvaluator, Tool

logger = logging.getLogger(__name__)

ToolT = TypeVar("ToolT", bound=Tool)


class PolicyEngine:
    """
    Evaluator bound to one PolicySet snapshot.

    Usage:
        engine = PolicyEngine(policy_set)
        result = engine.evaluate("run_terminal_command", {"command": "ls"})
        if result.decision is Decision.ASK:
            # prompt the user

    Attributes:
        policy_set: The rules being enforced
    """

    def __init__(self, policy_set: PolicySet) -> None:
        self.policy_set = policy_set

    def evaluate(
        self,
        tool_name: str,
        args: Mapping[str, Any] | None = None,
        normalized_args: Mapping[str, Any] | None = None,
        tool: Tool | None = None,
    ) -> EvaluationResult:
        """
        Evaluate a tool call against the policy set.

        Args:
            tool_name: The tool being called (e.g., "read_file")
            args: The raw arguments to the tool
            normalized_args: Preprocessed arguments, passed to the tool's risk evaluator
            tool: The tool definition, consulted for dynamic risk evaluation

        Returns:
            EvaluationResult with the final decision and the matched rule
        """
        args = args or {}
        matched = self.find_rule(tool_name, args)
        base = matched.decision if matched else Decision.ALLOW

        dynamic = None
        if isinstance(tool, RiskEvaluator):
            dynamic = self._evaluate_dynamic(tool, base, args, normalized_args)

        final = base if dynamic is None else most_restrictive(base, dynamic)
        logger.debug(
            "Evaluated %s: %s (static=%s, dynamic=%s, rule=%s)",
            tool_name,
            final.value,
            base.value,
            dynamic.value if dynamic is not None else None,
            matched,
        )
        return EvaluationResult(
            decision=final,
            matched_rule=matched,
            static_decision=base,
            dynamic_decision=dynamic,
        )

    def find_rule(self, tool_name: str, args: Mapping[str, Any]) -> Rule | None:
        """Return the first rule matching this call, or None."""
        for rule in self.policy_set.rules:
            if matches_pattern(tool_name, rule.pattern, args) and matches_arguments(
                args, rule.argument_patterns
            ):
                return rule
        return None

    def filter_excluded(self, tools: Iterable[ToolT]) -> list[ToolT]:
        """
        Drop tools that are excluded outright.

        Each tool is evaluated with empty arguments, so a rule that only
        excludes particular arguments does not hide the tool itself.
        """
        return [
            tool
            for tool in tools
            if self.evaluate(tool.name, {}, None, tool).decision is not Decision.EXCLUDE
        ]

    def _evaluate_dynamic(
        self,
        tool: RiskEvaluator,
        base: Decision,
        args: Mapping[str, Any],
        normalized_args: Mapping[str, Any] | None,
    ) -> Decision:
        """Ask the tool for its own risk assessment of this call."""
        try:
            policy = tool.evaluate_tool_call_policy(
                base.to_tool_policy(),
                args,
                normalized_args,
            )
        except Exception:
            # A broken evaluator must neither crash the gate nor loosen it
            logger.exception("Risk evaluator of %r failed; requiring confirmation", tool)
            return Decision.ASK
        return coerce_tool_policy(policy).to_decision()


def evaluate(
    tool_name: str,
    args: Mapping[str, Any] | None,
    policy_set: PolicySet,
    normalized_args: Mapping[str, Any] | None = None,
    tool: Tool | None = None,
) -> EvaluationResult:
    """Evaluate one tool call against a policy set."""
    return PolicyEngine(policy_set).evaluate(tool_name, args, normalized_args, tool)


def filter_excluded(tools: Iterable[ToolT], policy_set: PolicySet) -> list[ToolT]:
    """Return the tools that are not excluded, in their original order."""
    return PolicyEngine(policy_set).filter_excluded(tools)
