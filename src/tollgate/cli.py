"""
CLI entry point for Tollgate.

This module provides the Typer-based command-line interface for Tollgate.
It is a thin inspection layer over the policy engine: nothing here makes a
decision the library would not make on its own.

Commands:
    rules   List active permission rules grouped by source
    test    Dry-run a `Tool(specifier)` invocation against the rules
    check   Run a shell command through the shell policy gate (never executes it)

Exit codes:
    0   allowed (or listing succeeded)
    1   blocked, denied, or an error loading rules
    2   usage error (raised by Typer)
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table

from tollgate import __version__
from tollgate.config.loader import (
    PermissionStore,
    build_cli_config,
    load_cli_config_from_env,
    load_permission_config,
    load_rules_file,
    merge_permission_configs,
)
from tollgate.errors import TollgateError
from tollgate.policy.audit import AuditTrail
from tollgate.policy.engine import PermissionEngine, build_probe_input
from tollgate.policy.gate import ShellPolicyGate
from tollgate.policy.redaction import format_permission_reason, redact_sensitive_text
from tollgate.schema import (
    LoadedPermissions,
    PermissionAction,
    PermissionConfig,
    ShellOutcome,
    ShellSource,
)

app = typer.Typer(
    name="tollgate",
    help="Inspect and dry-run agent permission rules and shell policy.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

EXPLICIT_SOURCES = (ShellSource.BASH, ShellSource.BG_BASH)

ACTION_STYLES = {
    PermissionAction.ALLOW: "green",
    PermissionAction.DENY: "red",
    PermissionAction.ASK: "yellow",
    PermissionAction.DEFAULT: "dim",
}

OUTCOME_STYLES = {
    ShellOutcome.ALLOWED: "green",
    ShellOutcome.CONFIRMED: "green",
    ShellOutcome.BYPASSED: "yellow",
    ShellOutcome.BLOCKED: "red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]tollgate[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Log rule-loading warnings and policy decisions.",
        ),
    ] = False,
) -> None:
    """
    Tollgate - Permission rules and shell policy for agent tool calls.

    List the rules that apply to a directory, see how a single invocation
    would be judged, or run a shell command through the policy gate.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


# =============================================================================
# Shared Options
# =============================================================================

CwdOption = Annotated[
    Optional[Path],
    typer.Option(
        "--cwd",
        help="Working directory to evaluate from. Defaults to the current directory.",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
]
AllowOption = Annotated[
    Optional[list[str]],
    typer.Option("--allow", help="Extra allow rule (repeatable)."),
]
DenyOption = Annotated[
    Optional[list[str]],
    typer.Option("--deny", help="Extra deny rule (repeatable)."),
]
AskOption = Annotated[
    Optional[list[str]],
    typer.Option("--ask", help="Extra ask rule (repeatable)."),
]
RulesFileOption = Annotated[
    Optional[Path],
    typer.Option(
        "--rules",
        help="YAML file with allow/deny/ask lists, added to the CLI tier.",
        dir_okay=False,
        resolve_path=True,
    ),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output results in JSON format."),
]


def _collect_cli_config(
    allow: list[str] | None,
    deny: list[str] | None,
    ask: list[str] | None,
    rules_file: Path | None,
    warnings: list[str],
) -> PermissionConfig:
    """Combine option rules, the rules file and the environment into one CLI tier."""
    configs = [build_cli_config(allow, deny, ask, warnings)]
    if rules_file is not None:
        configs.append(load_rules_file(rules_file))
    env_config = load_cli_config_from_env(warnings=warnings)
    if env_config is not None:
        configs.append(env_config)
    return merge_permission_configs(*configs)


def _load(
    cwd: Path,
    allow: list[str] | None,
    deny: list[str] | None,
    ask: list[str] | None,
    rules_file: Path | None,
) -> tuple[LoadedPermissions, list[str]]:
    warnings: list[str] = []
    cli_config = _collect_cli_config(allow, deny, ask, rules_file, warnings)
    loaded, file_warnings = load_permission_config(str(cwd), cli_config)
    return loaded, warnings + file_warnings


def _output_json_error(error_type: str, message: str, details: dict | None = None) -> None:
    """Output an error in JSON format."""
    output = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if details:
        output["details"] = details
    print(json.dumps(output, indent=2))


def _fail(error: TollgateError, json_output: bool) -> NoReturn:
    if json_output:
        _output_json_error(error.__class__.__name__, error.message, error.to_dict())
    else:
        console.print(f"[red]{error}[/red]")
    raise typer.Exit(code=1)


def _print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


# =============================================================================
# rules
# =============================================================================


@app.command()
def rules(
    cwd: CwdOption = None,
    allow: AllowOption = None,
    deny: DenyOption = None,
    ask: AskOption = None,
    rules_file: RulesFileOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    List active permission rules grouped by source.

    Sources are shown in evaluation order: CLI rules first, then project
    settings (trusted projects only), then user settings.

    Example:
        $ tollgate rules --cwd ~/src/app --deny "Read(./.env)"
    """
    cwd = cwd or Path.cwd()
    try:
        loaded, warnings = _load(cwd, allow, deny, ask, rules_file)
    except TollgateError as e:
        _fail(e, json_output)

    if json_output:
        output = {
            "cwd": str(cwd),
            "rule_count": loaded.merged.rule_count,
            "sources": [
                {
                    "path": source.path,
                    "tier": source.tier.value,
                    "allow": [rule.raw for rule in source.config.allow],
                    "deny": [rule.raw for rule in source.config.deny],
                    "ask": [rule.raw for rule in source.config.ask],
                }
                for source in loaded.sources
            ],
            "warnings": warnings,
        }
        print(json.dumps(output, indent=2))
        return

    _print_warnings(warnings)
    if not loaded.sources:
        console.print("[dim]No permission rules configured.[/dim]")
        return

    for source in loaded.sources:
        table = Table(
            title=f"{source.path} [dim]({source.tier.value})[/dim]",
            title_justify="left",
            show_header=True,
            header_style="bold",
        )
        table.add_column("Mode", width=6)
        table.add_column("Rule", style="cyan")
        for mode, rule_list in (
            (PermissionAction.DENY, source.config.deny),
            (PermissionAction.ASK, source.config.ask),
            (PermissionAction.ALLOW, source.config.allow),
        ):
            style = ACTION_STYLES[mode]
            for rule in rule_list:
                table.add_row(f"[{style}]{mode.value}[/{style}]", rule.raw)
        console.print(table)
        console.print()

    console.print(
        f"[dim]Total rules: {loaded.merged.rule_count} | Sources: {len(loaded.sources)}[/dim]"
    )


# =============================================================================
# test
# =============================================================================


@app.command("test")
def test_rule(
    invocation: Annotated[
        str,
        typer.Argument(help='Invocation to evaluate, e.g. "Bash(git push)" or "Read(./.env)".'),
    ],
    cwd: CwdOption = None,
    allow: AllowOption = None,
    deny: DenyOption = None,
    ask: AskOption = None,
    rules_file: RulesFileOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Evaluate a synthetic invocation against the active rules.

    Only permission rules are consulted; the shell denylist and high-risk
    patterns are applied by `tollgate check`.

    Example:
        $ tollgate test "Bash(docker compose up)"
    """
    cwd = cwd or Path.cwd()
    try:
        loaded, warnings = _load(cwd, allow, deny, ask, rules_file)
    except TollgateError as e:
        _fail(e, json_output)

    tool_name, tool_input = build_probe_input(invocation)
    verdict = PermissionEngine(loaded.merged).evaluate(tool_name, tool_input, str(cwd))

    if json_output:
        output = {
            "tool": tool_name,
            "input": {key: redact_sensitive_text(str(value)) for key, value in tool_input.items()},
            "verdict": verdict.model_dump(mode="json"),
            "warnings": warnings,
        }
        print(json.dumps(output, indent=2))
    else:
        _print_warnings(warnings)
        style = ACTION_STYLES[verdict.action]
        console.print(f"Action: [{style}]{verdict.action.value}[/{style}]")
        console.print(f"Reason: {format_permission_reason(verdict, include_hints=False)}")
        if verdict.matched_rule:
            console.print(f"Rule:   [cyan]{verdict.matched_rule}[/cyan]")
        for hint in verdict.remediation_hints:
            console.print(f"[dim]Hint: {hint}[/dim]")

    if verdict.action == PermissionAction.DENY:
        raise typer.Exit(code=1)


# =============================================================================
# check
# =============================================================================


async def _prompt_confirm(message: str) -> bool:
    """Confirmation callback backed by a Rich prompt."""
    console.print(message)
    return Confirm.ask("Proceed?", console=console, default=False)


@app.command()
def check(
    command: Annotated[
        str,
        typer.Argument(help="Shell command to evaluate. It is never executed."),
    ],
    source: Annotated[
        ShellSource,
        typer.Option("--source", help="Where the command came from."),
    ] = ShellSource.BASH,
    cwd: CwdOption = None,
    interactive: Annotated[
        bool,
        typer.Option(
            "--interactive/--no-interactive",
            help="Prompt for confirmation instead of blocking.",
        ),
    ] = False,
    allow: AllowOption = None,
    deny: DenyOption = None,
    ask: AskOption = None,
    rules_file: RulesFileOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Run a shell command through the shell policy gate.

    Explicit sources (bash, bg_bash) go through the confirmation workflow;
    other sources are judged without prompting. The command itself is not
    run.

    Example:
        $ tollgate check "rm -rf build" --interactive
    """
    cwd = cwd or Path.cwd()
    warnings: list[str] = []
    try:
        cli_config = _collect_cli_config(allow, deny, ask, rules_file, warnings)
    except TollgateError as e:
        _fail(e, json_output)

    store = PermissionStore()
    store.set_cli_config(cli_config)
    audit = AuditTrail()
    gate = ShellPolicyGate(store=store, audit=audit)
    warnings += store.reload(str(cwd))

    verdict = gate.evaluate_command(command, source, str(cwd))
    if source in EXPLICIT_SOURCES:
        result = asyncio.run(
            gate.enforce_explicit(command, source, str(cwd), interactive, _prompt_confirm)
        )
    else:
        result = gate.enforce_implicit(command, source, str(cwd))

    if json_output:
        redacted_command = redact_sensitive_text(verdict.normalized_command)
        output = {
            "command": redacted_command,
            "source": source.value,
            "verdict": {
                **verdict.model_dump(mode="json"),
                "normalized_command": redacted_command,
            },
            "result": result.model_dump(mode="json"),
            "audit": [
                {**entry.model_dump(mode="json"), "command": redact_sensitive_text(entry.command)}
                for entry in audit.entries()
            ],
            "warnings": warnings,
        }
        print(json.dumps(output, indent=2))
    else:
        _print_warnings(warnings)
        style = OUTCOME_STYLES.get(result.outcome, "white")
        console.print(
            f"Outcome: [{style}]{result.outcome.value}[/{style}] "
            f"[dim]({verdict.trust_level.value}, {verdict.reason_code.value})[/dim]"
        )
        if result.reason:
            console.print(f"Reason:  {result.reason}")

        table = Table(show_header=True, header_style="bold", title="Audit", title_justify="left")
        table.add_column("Time", style="dim")
        table.add_column("Source", style="cyan")
        table.add_column("Outcome", width=10)
        table.add_column("Command")
        for entry in audit.entries():
            table.add_row(
                entry.timestamp.strftime("%H:%M:%S"),
                entry.source,
                entry.outcome.value,
                redact_sensitive_text(entry.command),
            )
        console.print(table)

    if result.blocked:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
