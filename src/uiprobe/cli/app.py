"""uiprobe CLI -- Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import typer
from rich.console import Console

from uiprobe import __version__

# ── ASCII Banner ──────────────────────────────────────────────────────────

BANNER = r"""
██╗   ██╗██╗██████╗ ██████╗  ██████╗ ██████╗ ███████╗
██║   ██║██║██╔══██╗██╔══██╗██╔═══██╗██╔══██╗██╔════╝
██║   ██║██║██████╔╝██████╔╝██║   ██║██████╔╝█████╗
██║   ██║██║██╔═══╝ ██╔══██╗██║   ██║██╔══██╗██╔══╝
╚██████╔╝██║██║     ██║  ██║╚██████╔╝██████╔╝███████╗
 ╚═════╝ ╚═╝╚═╝     ╚═╝  ╚═╝ ╚═════╝ ╚═════╝ ╚══════╝
"""

TAGLINE = "Scripted UI scenarios that wait, retry and explain their failures."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(BANNER, style="bold cyan")
        console.print(f"  {TAGLINE}", style="dim")
        console.print(f"  v{__version__}\n", style="bold")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="uiprobe",
    help=f"{BANNER}\n{TAGLINE}",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show uiprobe version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
) -> None:
    """uiprobe -- resilient element interaction for web UI scenarios.

    YAML scenario sets. Selector fallbacks. Diagnostics on every failure.
    """
    if verbose:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────
# Each subcommand is a separate module to keep this file lean.

from uiprobe.cli.init_cmd import init  # noqa: E402
from uiprobe.cli.report import report  # noqa: E402
from uiprobe.cli.run import run  # noqa: E402
from uiprobe.cli.validate import validate  # noqa: E402

app.command(name="init", help="Initialize a .uiprobe/ project directory.")(init)
app.command(name="run", help="Run a scenario set against the application.")(run)
app.command(name="report", help="View or export run reports.")(report)
app.command(name="validate", help="Validate YAML without launching a browser.")(validate)
