"""uiprobe report -- View and export run reports.

Lists past runs and displays individual reports as markdown or JSON.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from uiprobe.cli.run import config_error, load_config, output_console, resolve_project_dir
from uiprobe.config import UIProbeConfigError
from uiprobe.models import RUN_ID_PREFIX

console = Console(stderr=True)


def _find_runs_dir() -> Path:
    """Locate the runs directory configured for the nearest .uiprobe/ project."""
    try:
        return load_config(resolve_project_dir()).runs_dir
    except UIProbeConfigError as exc:
        raise config_error(exc)


def _run_dirs(runs_dir: Path) -> list[Path]:
    """Run directories, newest first. Run IDs sort by their timestamp."""
    if not runs_dir.is_dir():
        return []
    return sorted(
        (d for d in runs_dir.iterdir() if d.is_dir() and d.name.startswith(f"{RUN_ID_PREFIX}-")),
        reverse=True,
    )


def _read_json(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def _list_runs(runs_dir: Path) -> list[dict[str, Any]]:
    """Scan the runs directory and return metadata for every run."""
    runs: list[dict[str, Any]] = []
    for run_dir in _run_dirs(runs_dir):
        meta: dict[str, Any] = {"run_id": run_dir.name, "dir": str(run_dir)}

        status = _read_json(run_dir / "run-status.json")
        if status:
            meta["scenario_set"] = status.get("scenario_set", "?")
            meta["status"] = status.get("status", "?")
            meta["passed"] = status.get("passed")
            meta["start_time"] = status.get("start_time", "?")

        report = _read_json(run_dir / "report.json")
        if report:
            summary = report.get("summary") or {}
            meta["summary"] = f"{summary.get('passed', 0)}/{summary.get('total', 0)}"
            if meta.get("passed") is None:
                meta["passed"] = summary.get("failed", 1) == 0

        runs.append(meta)
    return runs


def _find_run_dir(runs_dir: Path, run_id: str | None) -> Path | None:
    """Find a run directory by ID or ID prefix, or return the latest run."""
    run_dirs = _run_dirs(runs_dir)
    if not run_id:
        return run_dirs[0] if run_dirs else None

    candidate = runs_dir / run_id
    if candidate.is_dir():
        return candidate

    matches = [d for d in run_dirs if d.name.startswith(run_id)]
    if len(matches) > 1:
        console.print(f"[yellow]Ambiguous run ID '{run_id}' matches {len(matches)} runs.[/yellow]")
        return None
    return matches[0] if matches else None


def report(
    run_id: str | None = typer.Argument(
        None,
        help="Run ID to display (default: latest run). Supports prefix matching.",
    ),
    list_runs: bool = typer.Option(
        False,
        "--list",
        "-l",
        help="List all recorded runs.",
    ),
    format: str = typer.Option(
        "markdown",
        "--format",
        "-f",
        help="Report format: markdown or json.",
    ),
    runs_dir: Path | None = typer.Option(
        None,
        "--runs-dir",
        help="Path to the runs directory. Default: from .uiprobe/config.yaml.",
    ),
) -> None:
    """View or export uiprobe run reports.

    Without arguments, shows the latest run report. Use --list to see
    all recorded runs, or provide a RUN_ID to view a specific run.
    """
    if format not in ("markdown", "json"):
        raise config_error(f"Invalid report format: {format}\n\nValid formats: markdown, json")

    rdir = runs_dir or _find_runs_dir()

    if not rdir.is_dir():
        console.print(
            Panel(
                f"[yellow]Runs directory not found:[/yellow] {rdir}\n\n"
                "No runs recorded yet. Run [bold]uiprobe run <scenario-set>[/bold] first.",
                title="[yellow]No Runs[/yellow]",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=0)

    # --list mode: show table of all runs
    if list_runs:
        runs = _list_runs(rdir)
        if not runs:
            console.print("[yellow]No runs found.[/yellow]")
            raise typer.Exit(code=0)

        table = Table(title="uiprobe Runs", border_style="cyan")
        table.add_column("Run ID", style="bold")
        table.add_column("Scenario Set")
        table.add_column("Result")
        table.add_column("Passed")
        table.add_column("Started")

        for r in runs:
            passed = r.get("passed")
            if passed is True:
                result_str = "[green]PASS[/green]"
            elif passed is False:
                result_str = "[red]FAIL[/red]"
            else:
                result_str = f"[dim]{r.get('status', '?')}[/dim]"

            table.add_row(
                r["run_id"],
                r.get("scenario_set", "?"),
                result_str,
                r.get("summary", "-"),
                r.get("start_time", "?"),
            )

        console.print()
        console.print(table)
        console.print()
        return

    # Single run view
    run_dir = _find_run_dir(rdir, run_id)
    if run_dir is None:
        if run_id:
            console.print(f"[red]Run not found:[/red] {run_id}")
        else:
            console.print("[yellow]No runs found. Run a scenario set first.[/yellow]")
        raise typer.Exit(code=1)

    report_json = run_dir / "report.json"
    report_md = run_dir / "report.md"

    if format == "json" or not report_md.is_file():
        data = _read_json(report_json)
        if data is None:
            console.print(f"[yellow]No report found for run {run_dir.name}[/yellow]")
            raise typer.Exit(code=1)
        output_console.print_json(json.dumps(data))
        return

    output_console.print(Markdown(report_md.read_text(encoding="utf-8")))
