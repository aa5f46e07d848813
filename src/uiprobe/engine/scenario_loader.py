"""Scenario set loading, templating and role x viewport expansion.

A scenario set is a YAML file::

    scenario_set:
      name: auth
      viewports: [desktop, mobile]
      roles:
        customer: {email: customer@example.com, password: customer123}
      scenarios:
        - name: login
          roles: [customer]
          steps:
            - navigate: /login/{{role.name}}
            - fill: {target: [{placeholder: Email}], value: "{{role.email}}"}
"""

from __future__ import annotations

import dataclasses
import logging
import re
from pathlib import Path
from typing import Any

import yaml

from uiprobe.engine.errors import ScenarioDefinitionError
from uiprobe.engine.scenario import (
    ACTION_TYPES,
    Action,
    Assert,
    Click,
    ClickAt,
    Condition,
    Evaluate,
    Fill,
    Hover,
    InjectStyle,
    Locate,
    Navigate,
    Scenario,
    Screenshot,
    WaitFor,
    selector_list,
)

logger = logging.getLogger("uiprobe.engine.scenario_loader")

DEFAULT_SET_VIEWPORTS = ("desktop",)

_MISSING = object()  # Sentinel for "dotpath not found"
_TEMPLATE_RE = re.compile(r"\{\{(.+?)\}\}")


@dataclasses.dataclass
class ScenarioSet:
    """A parsed, validated scenario set file."""

    name: str
    path: Path
    base_url: str | None = None
    viewports: tuple[str, ...] = DEFAULT_SET_VIEWPORTS
    roles: dict[str, dict[str, Any]] = dataclasses.field(default_factory=dict)
    definitions: list[dict[str, Any]] = dataclasses.field(default_factory=list)

    @property
    def scenario_names(self) -> list[str]:
        return [d["name"] for d in self.definitions]


@dataclasses.dataclass(frozen=True)
class ExpandedScenario:
    """One concrete (scenario, role, viewport) combination ready to run."""

    scenario: Scenario
    viewport_size: tuple[int, int]


def load_scenario_set(path: Path) -> ScenarioSet:
    """Load and validate a scenario set file.

    Raises:
        ScenarioDefinitionError: The file is missing, not valid YAML, or
            any scenario in it is malformed.
    """
    if not path.exists():
        raise ScenarioDefinitionError(f"Scenario set not found: {path}")
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ScenarioDefinitionError(f"{path}: invalid YAML: {exc}") from exc

    body = data.get("scenario_set", data) if isinstance(data, dict) else None
    if not isinstance(body, dict):
        raise ScenarioDefinitionError(f"{path}: expected a 'scenario_set' mapping")

    scenarios = body.get("scenarios")
    if not isinstance(scenarios, list) or not scenarios:
        raise ScenarioDefinitionError(f"{path}: 'scenarios' must be a non-empty list")

    roles = body.get("roles") or {}
    if not isinstance(roles, dict) or not all(isinstance(v, dict) or v is None for v in roles.values()):
        raise ScenarioDefinitionError(f"{path}: 'roles' must map role names to mappings")

    scenario_set = ScenarioSet(
        name=str(body.get("name") or path.stem),
        path=path,
        base_url=body.get("base_url"),
        viewports=_as_names(body.get("viewports", DEFAULT_SET_VIEWPORTS), f"{path}: viewports"),
        roles={str(k): dict(v or {}) for k, v in roles.items()},
    )

    seen: set[str] = set()
    for i, raw in enumerate(scenarios):
        where = f"{path}: scenarios[{i}]"
        if not isinstance(raw, dict) or not raw.get("name"):
            raise ScenarioDefinitionError(f"{where}: each scenario needs a 'name'")
        name = str(raw["name"])
        if name in seen:
            raise ScenarioDefinitionError(f"{where}: duplicate scenario name '{name}'")
        seen.add(name)
        for role in _as_names(raw.get("roles", ()), f"{where}.roles"):
            if role not in scenario_set.roles:
                raise ScenarioDefinitionError(f"{where}.roles: unknown role '{role}'")
        # Parse once untemplated so structural errors surface at load time.
        parse_scenario(raw, where=where)
        scenario_set.definitions.append(raw)

    logger.debug("Loaded scenario set %s with %d scenario(s)", scenario_set.name, len(seen))
    return scenario_set


def expand_scenarios(
    scenario_set: ScenarioSet,
    viewport_sizes: dict[str, tuple[int, int]],
    *,
    roles: list[str] | None = None,
    viewports: list[str] | None = None,
    run_id: str = "",
) -> list[ExpandedScenario]:
    """Expand definitions into scenarios x roles x viewports, applying filters.

    Scenarios with no ``roles`` run once per viewport without a role and are
    dropped when a role filter is given.
    """
    expanded: list[ExpandedScenario] = []
    for i, raw in enumerate(scenario_set.definitions):
        where = f"{scenario_set.path}: scenarios[{i}]"
        scenario_roles: list[str | None] = list(_as_names(raw.get("roles", ()), where)) or [None]
        scenario_viewports = _as_names(raw.get("viewports", scenario_set.viewports), where)

        for role in scenario_roles:
            if roles and role not in roles:
                continue
            for viewport in scenario_viewports:
                if viewports and viewport not in viewports:
                    continue
                if viewport not in viewport_sizes:
                    raise ScenarioDefinitionError(f"{where}: unknown viewport '{viewport}'")
                width, height = viewport_sizes[viewport]
                template_vars = {
                    "run_id": run_id,
                    "role": {"name": role or "", **scenario_set.roles.get(role or "", {})},
                    "viewport": {"name": viewport, "width": width, "height": height},
                }
                resolved = resolve_templates(raw, template_vars)
                scenario = parse_scenario(resolved, where=where, role=role, viewport=viewport)
                expanded.append(ExpandedScenario(scenario=scenario, viewport_size=(width, height)))
    return expanded


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_scenario(
    raw: dict[str, Any],
    *,
    where: str = "scenario",
    role: str | None = None,
    viewport: str | None = None,
) -> Scenario:
    steps_raw = raw.get("steps")
    if not isinstance(steps_raw, list) or not steps_raw:
        raise ScenarioDefinitionError(f"{where}: 'steps' must be a non-empty list")
    steps = tuple(parse_step(step, where=f"{where}.steps[{j}]") for j, step in enumerate(steps_raw))

    assertions_raw = raw.get("assertions") or []
    if not isinstance(assertions_raw, list):
        raise ScenarioDefinitionError(f"{where}: 'assertions' must be a list")
    assertions = []
    for j, spec in enumerate(assertions_raw):
        try:
            assertions.append(Condition.from_spec(spec))
        except (TypeError, ValueError) as exc:
            raise ScenarioDefinitionError(f"{where}.assertions[{j}]: {exc}") from exc

    return Scenario(
        name=str(raw["name"]),
        steps=steps,
        assertions=tuple(assertions),
        role=role,
        viewport=viewport,
        tags=tuple(str(t) for t in raw.get("tags") or ()),
    )


def parse_step(raw: Any, *, where: str = "step") -> Action:
    """Turn one ``{kind: args}`` step mapping into an Action."""
    if not isinstance(raw, dict):
        raise ScenarioDefinitionError(f"{where}: step must be a mapping, got {raw!r}")
    kinds = [key for key in raw if key in ACTION_TYPES]
    extra = set(raw) - set(ACTION_TYPES) - {"required"}
    if len(kinds) != 1 or extra:
        raise ScenarioDefinitionError(
            f"{where}: step needs exactly one of {', '.join(ACTION_TYPES)}; got {', '.join(map(str, raw))}"
        )
    kind = kinds[0]
    args = raw[kind]
    required = raw.get("required", True)
    if not isinstance(required, bool):
        raise ScenarioDefinitionError(f"{where}: 'required' must be true or false, got {required!r}")
    try:
        return _build_action(kind, args, required)
    except (TypeError, ValueError, KeyError) as exc:
        raise ScenarioDefinitionError(f"{where} ({kind}): {exc}") from exc


def _build_action(kind: str, args: Any, required: bool) -> Action:
    if kind == "navigate":
        url = args.get("url") if isinstance(args, dict) else args
        if not url:
            raise ValueError("navigate needs a url")
        return Navigate(str(url), required=required)

    if kind == "wait_for":
        if args == "network_idle":
            return WaitFor(Condition.from_spec(args), required=required)
        if not isinstance(args, dict):
            raise ValueError("wait_for needs a condition mapping")
        condition_spec = {k: v for k, v in args.items() if k != "timeout_ms"}
        timeout = args.get("timeout_ms")
        return WaitFor(
            Condition.from_spec(condition_spec),
            int(timeout) if timeout is not None else None,
            required=required,
        )

    if kind == "locate":
        return Locate(selector_list(args), required=required)

    if kind in ("click", "hover"):
        options = isinstance(args, dict) and ("target" in args or "force" in args)
        target = args.get("target") if options else args
        selectors = selector_list(target) if target else None
        if kind == "hover":
            return Hover(selectors, required=required)
        force = args.get("force", False) if options else False
        if not isinstance(force, bool):
            raise ValueError(f"click 'force' must be true or false, got {force!r}")
        return Click(selectors, force=force, required=required)

    if kind == "click_at":
        if isinstance(args, dict):
            x, y = args["x"], args["y"]
        elif isinstance(args, (list, tuple)) and len(args) == 2:
            x, y = args
        else:
            raise ValueError("click_at needs {x, y} or [x, y]")
        return ClickAt(x, y, required=required)

    if kind == "fill":
        if not isinstance(args, dict) or "value" not in args:
            raise ValueError("fill needs a mapping with 'value'")
        target = args.get("target")
        return Fill(selector_list(target) if target else None, str(args["value"]), required=required)

    if kind == "assert":
        return Assert(Condition.from_spec(args), required=required)

    if kind == "screenshot":
        label = args.get("label") if isinstance(args, dict) else args
        if not label:
            raise ValueError("screenshot needs a label")
        return Screenshot(str(label), required=required)

    if kind == "evaluate":
        if not args:
            raise ValueError("evaluate needs a script")
        return Evaluate(str(args), required=required)

    if kind == "inject_style":
        if not args:
            raise ValueError("inject_style needs css")
        return InjectStyle(str(args), required=required)

    raise ValueError(f"unknown step kind '{kind}'")


def _as_names(value: Any, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    raise ScenarioDefinitionError(f"{where}: expected a name or list of names, got {value!r}")


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def resolve_templates(obj: Any, template_vars: dict[str, Any]) -> Any:
    """Recursively resolve {{template.var}} placeholders in a data structure."""
    if isinstance(obj, str):
        return _resolve_string_template(obj, template_vars)
    elif isinstance(obj, dict):
        return {k: resolve_templates(v, template_vars) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [resolve_templates(item, template_vars) for item in obj]
    return obj


def _resolve_string_template(s: str, template_vars: dict[str, Any]) -> str:
    """Resolve all {{dotpath}} occurrences in a string.

    Iterates up to 5 times to handle nested templates (e.g., a role field
    containing {{run_id}}).
    """

    def replacer(match: re.Match) -> str:
        dotpath = match.group(1).strip()
        value = _resolve_dotpath(template_vars, dotpath)
        if value is _MISSING:
            logger.warning("Unresolved template variable: {{%s}}", dotpath)
            return match.group(0)  # Leave unresolved
        if value is None:
            return ""
        return str(value)

    result = s
    for _ in range(5):
        new_result = _TEMPLATE_RE.sub(replacer, result)
        if new_result == result:
            break
        result = new_result
    return result


def _resolve_dotpath(data: Any, dotpath: str) -> Any:
    """Resolve a dotpath like 'role.email'; returns _MISSING when absent."""
    current = data
    for part in dotpath.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current
