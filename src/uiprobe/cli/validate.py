"""uiprobe validate -- Parse and validate YAML without launching a browser.

Checks config.yaml and scenario set files and reports errors and warnings.
Use this to catch mistakes in a scenario set before a real run.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from uiprobe.cli.run import load_config, resolve_project_dir
from uiprobe.config import UIProbeConfig, UIProbeConfigError
from uiprobe.engine.errors import ScenarioDefinitionError
from uiprobe.engine.scenario import Assert, Click, Fill, Hover, Locate, Navigate, WaitFor
from uiprobe.engine.scenario_loader import ScenarioSet, _as_names, load_scenario_set, parse_scenario

console = Console(stderr=True)

# ── Severity ordering ─────────────────────────────────────────────────────

_SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}

_ROLE_FIELD_RE = re.compile(r"\{\{\s*role\.([\w-]+)\s*\}\}")


# ── Validation helpers ────────────────────────────────────────────────────


def validate_scenario_set(path: Path, config: UIProbeConfig) -> list[dict[str, Any]]:
    """Validate one scenario set file. Returns list of issue dicts."""
    issues: list[dict[str, Any]] = []
    try:
        scenario_set = load_scenario_set(path)
    except ScenarioDefinitionError as exc:
        issues.append({"severity": "error", "field": "", "message": str(exc)})
        return issues

    for name in scenario_set.viewports:
        if name not in config.viewports:
            issues.append(
                {"severity": "error", "field": "viewports", "message": f"Unknown viewport '{name}'"}
            )

    for i, raw in enumerate(scenario_set.definitions):
        issues.extend(_check_definition(scenario_set, i, raw, config))
    return issues


def _check_definition(
    scenario_set: ScenarioSet, index: int, raw: dict[str, Any], config: UIProbeConfig
) -> list[dict[str, Any]]:
    issues: list[dict[str, Any]] = []
    field = f"scenarios[{index}]"
    scenario = parse_scenario(raw, where=field)

    for name in _as_names(raw.get("viewports"), f"{field}.viewports"):
        if name not in config.viewports:
            issues.append({"severity": "error", "field": f"{field}.viewports", "message": f"Unknown viewport '{name}'"})

    # Role fields used in templates must exist on every role the scenario runs as.
    roles = _as_names(raw.get("roles"), f"{field}.roles")
    used_fields = set(_ROLE_FIELD_RE.findall(str(raw.get("steps"))))
    for role in roles:
        available = {"name", *scenario_set.roles.get(role, {})}
        for missing in sorted(used_fields - available):
            issues.append(
                {
                    "severity": "warning",
                    "field": f"{field}.roles",
                    "message": f"Role '{role}' has no '{missing}' but steps use {{{{role.{missing}}}}}",
                }
            )

    located = False
    for j, step in enumerate(scenario.steps):
        if isinstance(step, Navigate):
            located = False
        elif isinstance(step, Locate) or (isinstance(step, (Click, Fill, Hover)) and step.selectors):
            located = True
        elif isinstance(step, (Click, Fill, Hover)) and not located:
            issues.append(
                {
                    "severity": "error",
                    "field": f"{field}.steps[{j}]",
                    "message": f"'{step.kind}' has no target and no element was located before it",
                }
            )

    if not scenario.assertions and not any(isinstance(s, (WaitFor, Assert)) for s in scenario.steps):
        issues.append(
            {
                "severity": "info",
                "field": field,
                "message": f"Scenario '{scenario.name}' has no wait_for, assert or assertions; it only checks that steps run",
            }
        )
    return issues


# ── Command ───────────────────────────────────────────────────────────────


def validate(
    scenario_set: Optional[str] = typer.Argument(
        None,
        help="Scenario set to validate. Default: every set in .uiprobe/scenarios/.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Treat warnings as errors.",
    ),
) -> None:
    """Validate config.yaml and scenario sets without launching a browser."""
    project_dir = resolve_project_dir()
    if not project_dir.is_dir():
        console.print(
            Panel(
                f"[red]No .uiprobe/ directory found.[/red]\n\nLooked in: {project_dir}\n\n"
                "Run [bold]uiprobe init[/bold] to create one.",
                title="[red]Project Not Found[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)

    try:
        config = load_config(project_dir)
    except UIProbeConfigError as exc:
        console.print(Panel(f"[red]{exc}[/red]", title="[red]Config Error[/red]", border_style="red"))
        raise typer.Exit(code=2)

    if scenario_set:
        try:
            files = [config.resolve_scenario_set(scenario_set)]
        except UIProbeConfigError as exc:
            console.print(Panel(f"[red]{exc}[/red]", title="[red]Scenario Set Not Found[/red]", border_style="red"))
            raise typer.Exit(code=2)
    else:
        files = sorted([*config.scenarios_dir.glob("*.yaml"), *config.scenarios_dir.glob("*.yml")])

    if not files:
        console.print(
            Panel(
                "[yellow]No scenario sets found to validate.[/yellow]\n\n"
                f"Looked in: {config.scenarios_dir}\n\n"
                "Run [bold]uiprobe init[/bold] to scaffold a sample set.",
                title="No Files Found",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=0)

    total_errors = 0
    total_warnings = 0
    for path in files:
        issues = validate_scenario_set(path, config)
        total_errors += sum(1 for i in issues if i["severity"] == "error")
        total_warnings += sum(1 for i in issues if i["severity"] == "warning")
        _print_file_result(path, issues, project_dir)

    # ── Summary ────────────────────────────────────────────────────────
    console.print()
    if total_errors == 0 and total_warnings == 0:
        console.print(Panel("[bold green]All files valid. No errors or warnings.[/bold green]", border_style="green"))
    elif total_errors > 0:
        console.print(
            Panel(
                f"[bold red]Validation failed.[/bold red]  {total_errors} error(s), {total_warnings} warning(s)\n\n"
                "Fix the errors above before running.",
                border_style="red",
            )
        )
        raise typer.Exit(code=1)
    elif strict:
        console.print(
            Panel(
                f"[bold yellow]Validation warnings found (--strict mode).[/bold yellow]  {total_warnings} warning(s)",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=1)
    else:
        console.print(
            Panel(
                f"[yellow]Validation passed with {total_warnings} warning(s).[/yellow]  "
                "Use [bold]--strict[/bold] to fail on warnings.",
                border_style="yellow",
            )
        )


def _print_file_result(path: Path, issues: list[dict[str, Any]], project_dir: Path) -> None:
    """Print validation results for a single file."""
    try:
        display_path = path.relative_to(project_dir.parent)
    except ValueError:
        display_path = path

    errors = [i for i in issues if i["severity"] == "error"]
    warnings = [i for i in issues if i["severity"] == "warning"]

    if not errors and not warnings:
        console.print(f"  [green]✓[/green] [dim]{display_path}[/dim]  [green]OK[/green]")
    elif errors:
        status = f"[bold red]{len(errors)} error(s)[/bold red]"
        if warnings:
            status += f", [yellow]{len(warnings)} warning(s)[/yellow]"
        console.print(f"  [red]✗[/red] [bold]{display_path}[/bold]  {status}")
    else:
        console.print(f"  [yellow]![/yellow] [dim]{display_path}[/dim]  [yellow]{len(warnings)} warning(s)[/yellow]")

    for issue in sorted(issues, key=lambda i: _SEVERITY_ORDER.get(i["severity"], 99)):
        sev_label = {
            "error": "[bold red]ERROR[/bold red]",
            "warning": "[yellow]WARN[/yellow]",
            "info": "[dim]INFO[/dim]",
        }.get(issue["severity"], issue["severity"])
        field_str = f"[dim] ({issue['field']})[/dim]" if issue.get("field") else ""
        console.print(f"      {sev_label}{field_str}  {issue['message']}")
