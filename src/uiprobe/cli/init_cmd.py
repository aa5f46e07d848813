"""uiprobe init -- Initialize a .uiprobe/ project directory.

Creates the directory structure, a config template and a sample scenario
set that uiprobe needs to run.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

from uiprobe.config import PROJECT_DIR_NAME

console = Console()

# ── Sample file contents ──────────────────────────────────────────────────

SAMPLE_CONFIG = """\
# uiprobe project configuration

# Application under test (UIPROBE_BASE_URL or --base-url take priority)
base_url: "http://localhost:8080"

# chromium, firefox or webkit
browser: chromium
headless: true

# Extra or overridden viewports (desktop, mobile, tablet are built in)
viewports:
  desktop:
    width: 1280
    height: 720

options:
  timeout_ms: 10000            # default wait_for timeout
  interval_ms: 500             # readiness poll cadence
  cascade_budget_ms: 5000      # shared by a whole selector list
  settle_ms: 1000              # pause after a click before re-reading the URL
  scenario_timeout_ms: 60000   # hard deadline per scenario
  navigation_timeout_ms: 30000
  retries: 0                   # extra attempts for locate/click/fill/hover
  continue_on_failure: true
  screenshot_on_failure: true
"""

SAMPLE_SCENARIO_SET = """\
scenario_set:
  name: auth
  viewports: [desktop]

  roles:
    customer: {email: customer@example.com, password: customer123, home: /home}
    staff: {email: staff@example.com, password: staff123, home: /staff}
    admin: {email: admin@example.com, password: admin123, home: /admin}

  scenarios:
    - name: customer-login
      roles: [customer]
      tags: [smoke]
      steps:
        - navigate: /login/{{role.name}}
        - wait_for: {element_visible: [{placeholder: Email}, "css=input[type=email]"], timeout_ms: 10000}
        - fill: {target: [{placeholder: Email}, "css=input[type=email]"], value: "{{role.email}}"}
        - fill: {target: [{placeholder: Password}, "css=input[type=password]"], value: "{{role.password}}"}
        - click: [{role: button, name: Login}, {text: Login}, "css=button[type=submit]"]
        - wait_for: {url_contains: "{{role.home}}", timeout_ms: 8000}

    - name: role-login
      roles: [staff, admin]
      steps:
        - navigate: /login/{{role.name}}
        # Canvas-rendered apps expose the semantics tree only once booted
        - wait_for: {element_present: flt-semantics, timeout_ms: 15000}
          required: false
        - fill: {target: [{label: Email}, {placeholder: Email}], value: "{{role.email}}"}
        - fill: {target: [{label: Password}, {placeholder: Password}], value: "{{role.password}}"}
        - click: [{role: button, name: Login}, {text: Login}]
        - wait_for: network_idle
        - screenshot: after-login
      assertions:
        - url_contains: "{{role.home}}"
"""


def init(
    dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Parent directory for .uiprobe/ project. Defaults to current directory.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing .uiprobe/ directory.",
    ),
) -> None:
    """Initialize a new uiprobe project directory.

    Creates .uiprobe/ with scenarios/ and runs/ subdirectories, a
    config.yaml template and a sample scenario set.
    """
    project_dir = dir.resolve() / PROJECT_DIR_NAME

    if project_dir.exists() and not force:
        console.print(
            Panel(
                f"[yellow]Directory already exists:[/yellow] {project_dir}\n\n"
                "Use [bold]--force[/bold] to overwrite.",
                title="Already Initialized",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=2)

    subdirs = ["scenarios", "runs"]
    for sub in subdirs:
        (project_dir / sub).mkdir(parents=True, exist_ok=True)

    (project_dir / "config.yaml").write_text(SAMPLE_CONFIG, encoding="utf-8")
    (project_dir / "scenarios" / "auth.yaml").write_text(SAMPLE_SCENARIO_SET, encoding="utf-8")

    # Display result as a Rich tree
    tree = Tree(f"[bold green]{project_dir}[/bold green]", guide_style="dim")
    tree.add("[cyan]config.yaml[/cyan]")

    for sub in subdirs:
        branch = tree.add(f"[blue]{sub}/[/blue]")
        for child in sorted((project_dir / sub).iterdir()):
            if child.is_file():
                branch.add(f"[dim]{child.name}[/dim]")

    console.print()
    console.print(
        Panel(
            tree,
            title="[bold green]uiprobe Initialized[/bold green]",
            border_style="green",
        )
    )
    console.print()
    console.print("[dim]Next steps:[/dim]")
    console.print("  1. Set [cyan]base_url[/cyan] in [cyan].uiprobe/config.yaml[/cyan]")
    console.print("  2. Adapt [cyan].uiprobe/scenarios/auth.yaml[/cyan] to your login page")
    console.print("  3. Run [bold]playwright install chromium[/bold]")
    console.print("  4. Run [bold]uiprobe validate[/bold], then [bold]uiprobe run auth[/bold]")
    console.print()
