"""Unit tests for uiprobe.config -- UIProbeConfig, HarnessOptions and env overlay."""

from __future__ import annotations

from pathlib import Path

import pytest

from uiprobe.config import (
    HarnessOptions,
    UIProbeConfig,
    UIProbeConfigError,
    find_project_dir,
)
from uiprobe.models import (
    DEFAULT_BASE_URL,
    DEFAULT_INTERVAL_MS,
    DEFAULT_SCENARIO_TIMEOUT_MS,
    DEFAULT_TIMEOUT_MS,
    VIEWPORTS,
)


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestDefaults:
    """UIProbeConfig and HarnessOptions should have sensible defaults."""

    def test_default_base_url_matches_models_constant(self):
        cfg = UIProbeConfig()
        assert cfg.base_url == DEFAULT_BASE_URL
        assert cfg.base_url_override is None

    def test_default_viewports_are_builtin_set(self):
        cfg = UIProbeConfig()
        assert cfg.viewports == VIEWPORTS
        assert cfg.viewports is not VIEWPORTS

    def test_default_options(self):
        opts = HarnessOptions()
        assert opts.timeout_ms == DEFAULT_TIMEOUT_MS
        assert opts.interval_ms == DEFAULT_INTERVAL_MS
        assert opts.scenario_timeout_ms == DEFAULT_SCENARIO_TIMEOUT_MS
        assert opts.retries == 0

    def test_continue_on_failure_is_default(self):
        assert HarnessOptions().continue_on_failure is True

    def test_headless_and_chromium_by_default(self):
        cfg = UIProbeConfig()
        assert cfg.headless is True
        assert cfg.browser == "chromium"


# ---------------------------------------------------------------------------
# 2. from_file()
# ---------------------------------------------------------------------------

class TestFromFile:
    """UIProbeConfig.from_file() should load and validate YAML."""

    def test_from_file_with_valid_yaml(self, tmp_path: Path, sample_config_yaml: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(sample_config_yaml, encoding="utf-8")

        cfg = UIProbeConfig.from_file(config_file)

        assert cfg.base_url == "http://localhost:3000"
        assert cfg.browser == "firefox"
        assert cfg.headless is False
        assert cfg.project_dir == tmp_path
        assert cfg.scenarios_dir == tmp_path / "sets"
        assert cfg.runs_dir == tmp_path / "out"
        assert cfg.options.timeout_ms == 4000
        assert cfg.options.interval_ms == 100
        assert cfg.options.retries == 2
        assert cfg.options.continue_on_failure is False

    def test_viewports_merge_with_builtins(self, tmp_path: Path, sample_config_yaml: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(sample_config_yaml, encoding="utf-8")

        cfg = UIProbeConfig.from_file(config_file)

        assert cfg.viewports["desktop"] == (1920, 1080)
        assert cfg.viewports["kiosk"] == (1080, 1920)
        assert cfg.viewports["mobile"] == VIEWPORTS["mobile"]

    def test_missing_file_raises_config_error(self, tmp_path: Path):
        with pytest.raises(UIProbeConfigError, match="Config file not found"):
            UIProbeConfig.from_file(tmp_path / "nonexistent.yaml")

    def test_invalid_yaml_raises_config_error(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("base_url: [unclosed", encoding="utf-8")
        with pytest.raises(UIProbeConfigError, match="Invalid YAML"):
            UIProbeConfig.from_file(config_file)

    def test_non_mapping_raises_config_error(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(UIProbeConfigError, match="mapping"):
            UIProbeConfig.from_file(config_file)

    def test_empty_yaml_returns_defaults(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")
        cfg = UIProbeConfig.from_file(config_file)
        assert cfg.base_url == DEFAULT_BASE_URL
        assert cfg.scenarios_dir == tmp_path / "scenarios"

    def test_unsupported_browser_rejected(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("browser: netscape\n", encoding="utf-8")
        with pytest.raises(UIProbeConfigError, match="Unsupported browser"):
            UIProbeConfig.from_file(config_file)


# ---------------------------------------------------------------------------
# 3. HarnessOptions validation
# ---------------------------------------------------------------------------

class TestHarnessOptions:
    """Options must be non-negative integers and keys must be known."""

    def test_unknown_option_rejected(self):
        with pytest.raises(UIProbeConfigError, match="Unknown option"):
            HarnessOptions.from_dict({"timeout": 5})

    def test_negative_value_rejected(self):
        with pytest.raises(UIProbeConfigError, match="non-negative"):
            HarnessOptions(timeout_ms=-1)

    def test_zero_interval_rejected(self):
        with pytest.raises(UIProbeConfigError, match="interval_ms"):
            HarnessOptions(interval_ms=0)

    def test_non_integer_string_rejected(self):
        with pytest.raises(UIProbeConfigError, match="integer"):
            HarnessOptions.from_dict({"retries": "many"})

    def test_boolean_strings_parsed(self):
        opts = HarnessOptions.from_dict({"continue_on_failure": "no", "screenshot_on_failure": "yes"})
        assert opts.continue_on_failure is False
        assert opts.screenshot_on_failure is True


# ---------------------------------------------------------------------------
# 4. Environment overlay
# ---------------------------------------------------------------------------

class TestApplyEnv:
    """UIPROBE_* variables should override file values."""

    def test_timing_overrides(self):
        cfg = UIProbeConfig().apply_env({"UIPROBE_TIMEOUT_MS": "2500", "UIPROBE_RETRIES": "3"})
        assert cfg.options.timeout_ms == 2500
        assert cfg.options.retries == 3

    def test_headless_override(self):
        cfg = UIProbeConfig().apply_env({"UIPROBE_HEADLESS": "false"})
        assert cfg.headless is False

    def test_invalid_env_value_raises(self):
        with pytest.raises(UIProbeConfigError, match="UIPROBE_SETTLE_MS"):
            UIProbeConfig().apply_env({"UIPROBE_SETTLE_MS": "soon"})

    def test_empty_env_changes_nothing(self):
        cfg = UIProbeConfig()
        before = cfg.options
        cfg.apply_env({})
        assert cfg.options == before
        assert cfg.base_url_override is None


# ---------------------------------------------------------------------------
# 5. Base URL precedence
# ---------------------------------------------------------------------------

class TestEffectiveBaseUrl:
    """Override beats the scenario set, which beats config.yaml."""

    def test_config_value_when_nothing_else(self):
        cfg = UIProbeConfig(base_url="http://config")
        assert cfg.effective_base_url() == "http://config"

    def test_scenario_set_beats_config(self):
        cfg = UIProbeConfig(base_url="http://config")
        assert cfg.effective_base_url("http://set") == "http://set"

    def test_env_override_beats_scenario_set(self):
        cfg = UIProbeConfig(base_url="http://config").apply_env({"UIPROBE_BASE_URL": "http://env"})
        assert cfg.effective_base_url("http://set") == "http://env"


# ---------------------------------------------------------------------------
# 6. Lookups
# ---------------------------------------------------------------------------

class TestLookups:
    """Viewport, scenario set and project directory resolution."""

    def test_resolve_viewport(self):
        assert UIProbeConfig().resolve_viewport("mobile") == VIEWPORTS["mobile"]

    def test_resolve_unknown_viewport_lists_known(self):
        with pytest.raises(UIProbeConfigError, match="desktop"):
            UIProbeConfig().resolve_viewport("watch")

    def test_resolve_scenario_set_accepts_yml(self, tmp_project_dir: Path):
        (tmp_project_dir / "scenarios" / "auth.yml").write_text("scenarios: []\n", encoding="utf-8")
        cfg = UIProbeConfig.for_project(tmp_project_dir)
        assert cfg.resolve_scenario_set("auth") == tmp_project_dir / "scenarios" / "auth.yml"

    def test_resolve_missing_scenario_set(self, tmp_project_dir: Path):
        cfg = UIProbeConfig.for_project(tmp_project_dir)
        with pytest.raises(UIProbeConfigError, match="Scenario set not found"):
            cfg.resolve_scenario_set("checkout")

    def test_find_project_dir_walks_upward(self, tmp_project_dir: Path):
        nested = tmp_project_dir.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_dir(nested) == tmp_project_dir.resolve()

    def test_find_project_dir_returns_none_without_project(self, tmp_path: Path):
        assert find_project_dir(tmp_path) is None
