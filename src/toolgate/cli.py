"""
CLI entry point for toolgate.

This module provides the Typer-based command-line interface for toolgate,
mostly for authoring and debugging permissions.yaml.

Commands:
    init        Create the default permissions file
    show        Show the normalized rules in evaluation order
    check       Evaluate one tool call and print the decision
    filter      List which built-in tools stay visible to the agent
    validate    Check the permissions file for errors

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to the
    policy package. check and filter go through ToolPermissionsService so
    they behave exactly as an agent session would.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from toolgate import __version__
from toolgate.errors import PolicyConfigError
from toolgate.policy.loader import ensure_permissions_file, load_policy_set
from toolgate.policy.service import ToolPermissionsService
from toolgate.schema import Decision, EvaluationResult, ServiceSettings, default_permissions_path
from toolgate.tools import ToolSpec, create_builtin_registry

# Exit codes for `check`
EXIT_ALLOW = 0
EXIT_EXCLUDE = 1
EXIT_ASK = 2
EXIT_CONFIG_ERROR = 3

_DECISION_EXIT_CODES = {
    Decision.ALLOW: EXIT_ALLOW,
    Decision.ASK: EXIT_ASK,
    Decision.EXCLUDE: EXIT_EXCLUDE,
}

_DECISION_STYLES = {
    Decision.ALLOW: "green",
    Decision.ASK: "yellow",
    Decision.EXCLUDE: "red",
}

# Initialize Typer app with metadata
app = typer.Typer(
    name="toolgate",
    help="Decide which agent tool calls run, ask first, or are refused.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to permissions.yaml. Defaults to ~/.toolgate/permissions.yaml.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]toolgate[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """
    toolgate - Permission gate for agent tool calls.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@app.command()
def init(config: ConfigOption = None) -> None:
    """
    Create the default permissions file if it doesn't exist.

    Example:
        $ toolgate init
    """
    path = config or default_permissions_path()
    existed = path.exists()
    try:
        ensure_permissions_file(path)
    except OSError as e:
        console.print(f"[red]Cannot create {path}: {e}[/red]")
        raise typer.Exit(code=1)

    if existed:
        console.print(f"[dim]{path} already exists; left unchanged.[/dim]")
    else:
        console.print(f"[green]✓[/green] Created {path}")


@app.command()
def show(config: ConfigOption = None) -> None:
    """
    Show the rules in the order they are evaluated.

    Example:
        $ toolgate show -c ./permissions.yaml
    """
    path = config or default_permissions_path()
    policy_set = _load_or_exit(path)

    if policy_set is None:
        console.print(f"[yellow]No permissions loaded from {path}; every tool call is allowed.[/yellow]")
        return

    if not policy_set.rules:
        console.print("[dim]No rules; every tool call is allowed.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", style="dim", width=3)
    table.add_column("Decision", width=8)
    table.add_column("Pattern", style="cyan")
    table.add_column("Arguments")

    for i, rule in enumerate(policy_set.rules, start=1):
        style = _DECISION_STYLES[rule.decision]
        args = ", ".join(f"{k}={v}" for k, v in (rule.argument_patterns or {}).items())
        table.add_row(str(i), f"[{style}]{rule.decision.value}[/{style}]", escape(rule.pattern), escape(args))

    console.print(table)


@app.command()
def check(
    tool_name: Annotated[
        str,
        typer.Argument(help="The tool being called, e.g. run_terminal_command."),
    ],
    arg: Annotated[
        Optional[list[str]],
        typer.Option(
            "--arg",
            "-a",
            help="A tool argument as key=value. Repeatable.",
        ),
    ] = None,
    args_json: Annotated[
        Optional[str],
        typer.Option(
            "--args-json",
            help="All tool arguments as a JSON object.",
        ),
    ] = None,
    workspace: Annotated[
        Optional[Path],
        typer.Option(
            "--workspace",
            "-w",
            help="Workspace directory file tools should stay inside.",
        ),
    ] = None,
    config: ConfigOption = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the result in JSON format.",
        ),
    ] = False,
) -> None:
    """
    Evaluate one tool call against the permissions file.

    Exit code is 0 for allow, 2 for ask and 1 for exclude.

    Example:
        $ toolgate check run_terminal_command -a "command=git push"
    """
    if not tool_name.strip():
        console.print("[red]Tool name must not be empty[/red]")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        arguments = _parse_arguments(arg or [], args_json)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    service = _reload_service(config)
    registry = create_builtin_registry(workspace)
    tool = registry.get_optional(tool_name) or ToolSpec(tool_name)
    result = service.check_permission(tool, arguments)

    if json_output:
        _output_json_result(tool_name, arguments, result, service.is_enabled())
    else:
        _display_result(tool_name, result, service.is_enabled())

    raise typer.Exit(code=_DECISION_EXIT_CODES[result.decision])


@app.command("filter")
def filter_tools(
    workspace: Annotated[
        Optional[Path],
        typer.Option(
            "--workspace",
            "-w",
            help="Workspace directory file tools should stay inside.",
        ),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """
    List the built-in tools and whether the agent gets to see them.

    Example:
        $ toolgate filter
    """
    service = _reload_service(config)
    registry = create_builtin_registry(workspace)
    visible = {tool.name for tool in service.filter_tools(registry)}

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Visible", width=8)
    table.add_column("Description")
    for tool in registry:
        shown = "[green]yes[/green]" if tool.name in visible else "[red]no[/red]"
        table.add_row(tool.name, shown, tool.description)

    console.print(table)
    console.print(f"[dim]{len(visible)} of {len(registry)} tools visible[/dim]")


@app.command()
def validate(config: ConfigOption = None) -> None:
    """
    Check the permissions file for errors.

    Example:
        $ toolgate validate -c ./permissions.yaml
    """
    path = config or default_permissions_path()
    policy_set = _load_or_exit(path)
    if policy_set is None:
        console.print(f"[yellow]{path} is missing or empty; permissions checking is disabled.[/yellow]")
        return
    console.print(f"[green]✓[/green] {path} is valid ({len(policy_set)} rules)")


def _load_or_exit(path: Path):
    """Load the policy set, printing the error and exiting on failure."""
    try:
        return load_policy_set(path)
    except PolicyConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)


def _reload_service(config: Path | None) -> ToolPermissionsService:
    """A non-watching service loaded once from the given file."""
    settings = ServiceSettings.from_env(permissions_path=config, watch=False)
    service = ToolPermissionsService(settings)
    if not service.reload():
        console.print(f"[yellow]Could not load {settings.permissions_path}; see --verbose.[/yellow]")
    return service


def _parse_arguments(pairs: list[str], args_json: str | None) -> dict[str, Any]:
    """Merge --args-json and --arg key=value pairs into one dict."""
    arguments: dict[str, Any] = {}
    if args_json:
        try:
            parsed = json.loads(args_json)
        except json.JSONDecodeError as e:
            msg = f"Invalid --args-json: {e}"
            raise ValueError(msg) from e
        if not isinstance(parsed, dict):
            msg = "--args-json must be a JSON object"
            raise ValueError(msg)
        arguments.update(parsed)

    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            msg = f"Invalid --arg {pair!r}; expected key=value"
            raise ValueError(msg)
        arguments[key] = value
    return arguments


def _display_result(tool_name: str, result: EvaluationResult, enabled: bool) -> None:
    """Display an evaluation result in a formatted way."""
    style = _DECISION_STYLES[result.decision]
    console.print(f"[bold]{tool_name}[/bold]: [{style}]{result.decision.value}[/{style}]")
    if result.matched_rule is not None:
        console.print(f"[dim]  Matched rule: {escape(str(result.matched_rule))}[/dim]")
    elif enabled:
        console.print("[dim]  No rule matched[/dim]")
    else:
        console.print("[dim]  Permissions checking is disabled[/dim]")
    if result.dynamic_decision is not None and result.dynamic_decision is not result.static_decision:
        console.print(
            f"[dim]  Tool risk assessment: {result.dynamic_decision.value} "
            f"(rules said {result.static_decision.value})[/dim]"
        )


def _output_json_result(
    tool_name: str,
    arguments: dict[str, Any],
    result: EvaluationResult,
    enabled: bool,
) -> None:
    """Output an evaluation result in JSON format."""
    output = {
        "tool": tool_name,
        "args": arguments,
        "enabled": enabled,
        "decision": result.decision.value,
        "static_decision": result.static_decision.value,
        "dynamic_decision": result.dynamic_decision.value if result.dynamic_decision else None,
        "matched_rule": result.matched_rule.model_dump(mode="json") if result.matched_rule else None,
    }
    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    app()
