"""uiprobe configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from uiprobe.models import (
    DEFAULT_BASE_URL,
    DEFAULT_BROWSER,
    DEFAULT_CASCADE_BUDGET_MS,
    DEFAULT_INTERVAL_MS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_RETRIES,
    DEFAULT_SCENARIO_TIMEOUT_MS,
    DEFAULT_SETTLE_MS,
    DEFAULT_TIMEOUT_MS,
    VIEWPORTS,
)

PROJECT_DIR_NAME = ".uiprobe"

# Environment variable -> HarnessOptions field
_ENV_OPTIONS = {
    "UIPROBE_TIMEOUT_MS": "timeout_ms",
    "UIPROBE_INTERVAL_MS": "interval_ms",
    "UIPROBE_SCENARIO_TIMEOUT_MS": "scenario_timeout_ms",
    "UIPROBE_SETTLE_MS": "settle_ms",
    "UIPROBE_RETRIES": "retries",
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class UIProbeConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@dataclass
class HarnessOptions:
    """Timing and failure-policy knobs shared by every scenario in a run.

    Attributes:
        timeout_ms: Default WaitFor timeout when a step does not set one.
        interval_ms: Readiness poll cadence.
        cascade_budget_ms: Total time a selector list may spend looking for
            a match, shared across all of its selectors.
        settle_ms: Delay after a click before the URL is re-read.
        scenario_timeout_ms: Hard deadline for one scenario.
        navigation_timeout_ms: Timeout for a single page navigation.
        retries: Extra attempts for a failed locate/interaction step. Each
            attempt re-resolves the selector cascade.
        continue_on_failure: Keep executing steps after one fails.
        screenshot_on_failure: Try a screenshot before recording a failure.
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    interval_ms: int = DEFAULT_INTERVAL_MS
    cascade_budget_ms: int = DEFAULT_CASCADE_BUDGET_MS
    settle_ms: int = DEFAULT_SETTLE_MS
    scenario_timeout_ms: int = DEFAULT_SCENARIO_TIMEOUT_MS
    navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    retries: int = DEFAULT_RETRIES
    continue_on_failure: bool = True
    screenshot_on_failure: bool = True

    def __post_init__(self) -> None:
        for name in (
            "timeout_ms",
            "interval_ms",
            "cascade_budget_ms",
            "settle_ms",
            "scenario_timeout_ms",
            "navigation_timeout_ms",
            "retries",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise UIProbeConfigError(f"Option '{name}' must be a non-negative integer, got {value!r}")
        if self.interval_ms == 0:
            raise UIProbeConfigError("Option 'interval_ms' must be greater than zero")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HarnessOptions:
        """Build options from a mapping, rejecting unknown keys."""
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise UIProbeConfigError(
                f"Unknown option(s): {', '.join(unknown)}\n\nRecognized options: {', '.join(sorted(known))}"
            )
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key in ("continue_on_failure", "screenshot_on_failure"):
                values[key] = _parse_bool(value, key)
            else:
                values[key] = _parse_int(value, key)
        return cls(**values)


@dataclass
class UIProbeConfig:
    """Configuration for a uiprobe run."""

    base_url: str = DEFAULT_BASE_URL
    # Set from UIPROBE_BASE_URL or --base-url; beats a scenario set's own base_url.
    base_url_override: str | None = None

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME))
    scenarios_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME) / "scenarios")
    runs_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME) / "runs")

    # Browser
    browser: str = DEFAULT_BROWSER
    headless: bool = True
    viewports: dict[str, tuple[int, int]] = field(default_factory=lambda: dict(VIEWPORTS))

    options: HarnessOptions = field(default_factory=HarnessOptions)

    @classmethod
    def from_file(cls, config_path: Path) -> UIProbeConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise UIProbeConfigError(f"Config file not found: {config_path}\n\nTo fix: uiprobe init")
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise UIProbeConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise UIProbeConfigError(f"Config file must contain a mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def for_project(cls, project_dir: Path) -> UIProbeConfig:
        """Default config rooted at *project_dir*, for projects without a config.yaml."""
        return cls._from_dict({}, project_dir)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> UIProbeConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir
        config.scenarios_dir = project_dir / data.get("scenarios_dir", "scenarios")
        config.runs_dir = project_dir / data.get("runs_dir", "runs")

        if "base_url" in data:
            config.base_url = str(data["base_url"])
        if "browser" in data:
            browser = str(data["browser"])
            if browser not in ("chromium", "firefox", "webkit"):
                raise UIProbeConfigError(f"Unsupported browser: {browser}")
            config.browser = browser
        if "headless" in data:
            config.headless = _parse_bool(data["headless"], "headless")

        if "viewports" in data:
            vps = data["viewports"] or {}
            if not isinstance(vps, dict):
                raise UIProbeConfigError("'viewports' must be a mapping of name -> {width, height}")
            for name, vp in vps.items():
                if not isinstance(vp, dict):
                    raise UIProbeConfigError(f"Viewport '{name}' must be a mapping with width and height")
                config.viewports[str(name)] = (
                    _parse_int(vp.get("width", 1280), f"viewports.{name}.width"),
                    _parse_int(vp.get("height", 720), f"viewports.{name}.height"),
                )

        if "options" in data:
            opts = data["options"] or {}
            if not isinstance(opts, dict):
                raise UIProbeConfigError("'options' must be a mapping")
            config.options = HarnessOptions.from_dict(opts)

        return config

    def apply_env(self, environ: Mapping[str, str] | None = None) -> UIProbeConfig:
        """Overlay ``UIPROBE_*`` environment variables onto this config."""
        env = os.environ if environ is None else environ

        if env.get("UIPROBE_BASE_URL"):
            self.base_url_override = env["UIPROBE_BASE_URL"]
        if env.get("UIPROBE_HEADLESS"):
            self.headless = _parse_bool(env["UIPROBE_HEADLESS"], "UIPROBE_HEADLESS")

        overrides: dict[str, Any] = {}
        for var, name in _ENV_OPTIONS.items():
            if env.get(var):
                overrides[name] = _parse_int(env[var], var)
        if overrides:
            merged = {**self.options.__dict__, **overrides}
            self.options = HarnessOptions(**merged)
        return self

    def effective_base_url(self, set_base_url: str | None = None) -> str:
        """Pick the base URL: override, then the scenario set's, then config.yaml's."""
        return self.base_url_override or set_base_url or self.base_url

    def resolve_viewport(self, name: str) -> tuple[int, int]:
        """Look up a named viewport."""
        if name not in self.viewports:
            raise UIProbeConfigError(
                f"Unknown viewport: {name}\n\nConfigured viewports: {', '.join(sorted(self.viewports))}"
            )
        return self.viewports[name]

    def resolve_scenario_set(self, set_name: str) -> Path:
        """Return the path of a scenario set file by name."""
        for suffix in (".yaml", ".yml"):
            path = self.scenarios_dir / f"{set_name}{suffix}"
            if path.exists():
                return path
        raise UIProbeConfigError(
            f"Scenario set not found: {set_name}\n\n"
            f"Expected file: {self.scenarios_dir / (set_name + '.yaml')}\n"
            "To fix: Create the scenario set file or run: uiprobe init"
        )


def find_project_dir(start: Path | None = None) -> Path | None:
    """Walk upward from *start* looking for a ``.uiprobe`` directory."""
    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        project_dir = candidate / PROJECT_DIR_NAME
        if project_dir.is_dir():
            return project_dir
    return None


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    raise UIProbeConfigError(f"'{name}' must be a boolean, got {value!r}")


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise UIProbeConfigError(f"'{name}' must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise UIProbeConfigError(f"'{name}' must be an integer, got {value!r}") from exc
