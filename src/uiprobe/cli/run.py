"""uiprobe run -- Execute a scenario set.

This is the primary command. It resolves config, runs every scenario of the
set across the selected roles and viewports, and prints live Rich output with
per-scenario results and a summary mirroring the JSON report.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from uiprobe.config import PROJECT_DIR_NAME, UIProbeConfig, UIProbeConfigError, find_project_dir
from uiprobe.engine.errors import ScenarioDefinitionError
from uiprobe.engine.report_generator import AggregateReport
from uiprobe.engine.scenario_runner import ScenarioReport, ScenarioStatus

console = Console(stderr=True)
output_console = Console()  # stdout: JSON output and the final summary

logger = logging.getLogger("uiprobe.cli.run")


def config_error(message: object, title: str = "Config Error") -> typer.Exit:
    """Print a config error panel and return the exit to raise."""
    console.print(Panel(f"[red]{message}[/red]", title=f"[red]{title}[/red]", border_style="red"))
    return typer.Exit(code=2)


def resolve_project_dir() -> Path:
    """Find the .uiprobe/ project directory, searching upward from cwd."""
    return find_project_dir() or Path.cwd() / PROJECT_DIR_NAME


def load_config(project_dir: Path) -> UIProbeConfig:
    """Load config.yaml if present, then overlay UIPROBE_* environment variables."""
    config_path = project_dir / "config.yaml"
    if config_path.is_file():
        config = UIProbeConfig.from_file(config_path)
    else:
        config = UIProbeConfig.for_project(project_dir)
    return config.apply_env()


def _print_run_header(set_name: str, config: UIProbeConfig, roles: list[str], viewports: list[str]) -> None:
    info_lines = [
        f"[bold]Scenario set:[/bold] {set_name}",
        f"[bold]Base URL:[/bold]     {config.effective_base_url()}",
        f"[bold]Roles:[/bold]        {', '.join(roles) or 'all'}",
        f"[bold]Viewports:[/bold]    {', '.join(viewports) or 'all'}",
        f"[bold]Browser:[/bold]      {config.browser} (headless={config.headless})",
        f"[bold]On failure:[/bold]   {'continue' if config.options.continue_on_failure else 'stop'}",
    ]
    console.print()
    console.print(Panel("\n".join(info_lines), title="[bold cyan]uiprobe Run[/bold cyan]", border_style="cyan"))
    console.print()


def _print_scenario_result(report: ScenarioReport) -> None:
    """Print one finished scenario and its failed steps."""
    icon, status = {
        ScenarioStatus.SUCCEEDED: ("[bold green]✓[/bold green]", "[green]PASS[/green]"),
        ScenarioStatus.FAILED: ("[bold red]✗[/bold red]", "[red]FAIL[/red]"),
    }.get(report.status, ("[bold yellow]![/bold yellow]", "[yellow]ERROR[/yellow]"))
    ok = sum(1 for r in report.results if r.succeeded)
    console.print(
        f"  {icon} {report.label}  {status}  [dim]{ok}/{len(report.results)} steps  {report.duration_ms / 1000:.1f}s[/dim]"
    )
    if report.error:
        console.print(f"    [dim red]{report.error.type}: {report.error.message}[/dim red]")
    for step in report.failed_results():
        message = step.error.message if step.error else "failed"
        if len(message) > 120:
            message = message[:117] + "..."
        console.print(f"    [dim red]step {step.index + 1} {step.action}: {message}[/dim red]")
    for outcome in report.assertions:
        if not outcome.passed:
            console.print(f"    [dim red]assertion {outcome.condition} did not hold[/dim red]")


def _print_summary_panel(aggregate: AggregateReport, duration: float, run_dir: Path) -> None:
    s = aggregate.summary
    if aggregate.passed:
        border, verdict = "green", "[bold green]ALL SCENARIOS PASSED[/bold green]"
    else:
        border, verdict = "red", "[bold red]SCENARIOS FAILED[/bold red]"

    events = sum(len(r.events) for r in aggregate.scenario_reports)
    summary_lines = [
        verdict,
        "",
        f"  Total:     {s.total}",
        f"  Passed:    {s.passed}",
        f"  Failed:    {s.failed}",
        f"  Events:    {events}",
        f"  Duration:  {duration:.1f}s",
        f"  Run ID:    {aggregate.run_id}",
        f"  Artifacts: {run_dir}",
    ]
    output_console.print()
    output_console.print(Panel("\n".join(summary_lines), border_style=border))
    output_console.print()


def _print_events_table(aggregate: AggregateReport) -> None:
    rows = [(r.label, e) for r in aggregate.scenario_reports for e in r.events]
    if not rows:
        return
    table = Table(title="Diagnostic Events", border_style="yellow")
    table.add_column("Scenario")
    table.add_column("Kind", style="bold")
    table.add_column("Message")
    kind_style = {"pageerror": "red", "networkerror": "red", "httpStatus": "yellow", "console": "dim"}
    for label, event in rows:
        message = event.message if len(event.message) <= 80 else event.message[:77] + "..."
        table.add_row(label, Text(event.kind, style=kind_style.get(event.kind, "")), message)
    output_console.print(table)


def write_junit_xml(junit_path: Path, aggregate: AggregateReport, set_name: str) -> None:
    """Write a JUnit XML report for CI integration, one testcase per scenario."""
    import xml.etree.ElementTree as ET

    testsuite = ET.Element("testsuite")
    testsuite.set("name", f"uiprobe-{set_name}")
    testsuite.set("tests", str(aggregate.summary.total))
    testsuite.set("time", f"{sum(r.duration_ms for r in aggregate.scenario_reports) / 1000:.2f}")

    failures = errors = 0
    for report in aggregate.scenario_reports:
        testcase = ET.SubElement(testsuite, "testcase")
        testcase.set("name", report.label)
        testcase.set("classname", f"uiprobe.{set_name}")
        testcase.set("time", f"{report.duration_ms / 1000:.2f}")

        if report.status is ScenarioStatus.ERRORED:
            errors += 1
            error = ET.SubElement(testcase, "error")
            error.set("message", report.error.message if report.error else "Scenario errored")
            error.text = report.error.type if report.error else ""
        elif not report.success:
            failures += 1
            failed = report.failed_results()
            message = failed[0].error.message if failed and failed[0].error else "Scenario assertions failed"
            failure = ET.SubElement(testcase, "failure")
            failure.set("message", message)
            failure.text = "\n".join(f"step {r.index + 1} {r.action}: {r.error.message if r.error else ''}" for r in failed)

    testsuite.set("failures", str(failures))
    testsuite.set("errors", str(errors))

    tree = ET.ElementTree(testsuite)
    ET.indent(tree, space="  ")
    junit_path.parent.mkdir(parents=True, exist_ok=True)
    tree.write(str(junit_path), xml_declaration=True, encoding="unicode")


def run(
    scenario_set: str = typer.Argument(
        ...,
        help="Scenario set name (must match a .yaml in .uiprobe/scenarios/).",
    ),
    role: Optional[List[str]] = typer.Option(
        None,
        "--role",
        "-r",
        help="Only run this role. Repeatable.",
    ),
    viewport: Optional[List[str]] = typer.Option(
        None,
        "--viewport",
        help="Only run this named viewport (desktop, mobile, tablet, ...). Repeatable.",
    ),
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        help="Override the application base URL.",
    ),
    headless: Optional[bool] = typer.Option(
        None,
        "--headless/--no-headless",
        help="Run browser in headless mode or visible. Default: from config.",
    ),
    fail_fast: bool = typer.Option(
        False,
        "--fail-fast",
        help="Stop a scenario at its first failed required step.",
    ),
    junit_xml: Optional[Path] = typer.Option(
        None,
        "--junit-xml",
        help="Path to write JUnit XML report (for CI integration).",
    ),
    output_format: str = typer.Option(
        "text",
        "--output",
        "-o",
        help="Output format: text or json.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
) -> None:
    """Run a scenario set against the application.

    Each scenario runs once per selected role and viewport in its own browser
    context. Exit code is 0 when no scenario failed, 1 otherwise.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")

    if output_format not in ("text", "json"):
        raise config_error(f"Invalid output format: {output_format}\n\nValid formats: text, json")

    project_dir = resolve_project_dir()
    try:
        config = load_config(project_dir)
    except UIProbeConfigError as exc:
        raise config_error(exc)

    # CLI options override config file and environment values
    if base_url:
        config.base_url_override = base_url
    if headless is not None:
        config.headless = headless
    if fail_fast:
        config.options = dataclasses.replace(config.options, continue_on_failure=False)

    roles = list(role or [])
    viewports = list(viewport or [])
    for name in viewports:
        try:
            config.resolve_viewport(name)
        except UIProbeConfigError as exc:
            raise config_error(exc)

    if output_format == "text":
        _print_run_header(scenario_set, config, roles, viewports)

    # Import orchestrator (may fail if playwright not installed)
    try:
        from uiprobe.engine.orchestrator import SuiteOrchestrator
    except ImportError as exc:
        console.print(
            Panel(
                f"[red]Failed to import uiprobe engine:[/red] {exc}\n\n"
                "This usually means a dependency is missing.\n"
                "Try: [bold]pip install uiprobe[/bold]\n"
                "Then: [bold]playwright install chromium[/bold]",
                title="[red]Import Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=3)

    orchestrator = SuiteOrchestrator(config)
    start_time = time.monotonic()

    if output_format == "text":
        console.print("[bold]Running scenarios...[/bold]\n")

    try:
        outcome = orchestrator.run(
            scenario_set,
            roles=roles or None,
            viewports=viewports or None,
            on_report=_print_scenario_result if output_format == "text" else None,
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Run interrupted by user.[/yellow]")
        raise typer.Exit(code=1)
    except (UIProbeConfigError, ScenarioDefinitionError) as exc:
        raise config_error(exc)
    except Exception as exc:
        logger.exception("Unexpected error during run")
        console.print(
            Panel(
                f"[red]Unexpected error:[/red] {exc}\n\nRun with [bold]--verbose[/bold] for full traceback.",
                title="[red]Infrastructure Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=3)

    duration = time.monotonic() - start_time
    aggregate = outcome.aggregate

    if output_format == "json":
        output_console.print_json(json.dumps(aggregate.to_dict(), default=str))
    else:
        _print_events_table(aggregate)
        _print_summary_panel(aggregate, duration, outcome.run_dir)

    if junit_xml:
        try:
            write_junit_xml(junit_xml, aggregate, scenario_set)
            if output_format == "text":
                console.print(f"[dim]JUnit XML written to: {junit_xml}[/dim]\n")
        except OSError as exc:
            console.print(f"[yellow]Warning: Failed to write JUnit XML: {exc}[/yellow]")

    # Exit code: 0 = no failures, 1 = any failure
    if aggregate.summary.failed:
        raise typer.Exit(code=1)
