"""Scenario model: selectors, conditions and the Action variants.

All types here are immutable. Scenarios are built by the scenario loader
from YAML, or directly in Python::

    Scenario(
        name="customer-login",
        steps=(
            Navigate("/login/customer"),
            WaitFor(Condition("element_visible", selector_list({"placeholder": "Email"})), 10000),
            Fill(selector_list({"placeholder": "Email"}), "customer@example.com"),
        ),
    )
"""

from __future__ import annotations

import dataclasses
from typing import Any, ClassVar, Protocol

STRATEGIES = ("role", "text", "css", "xpath", "label", "placeholder", "testid")

# Body text length, used by the text_length_at_least condition.
BODY_TEXT_LENGTH_JS = "() => (document.body && document.body.innerText ? document.body.innerText.length : 0)"


class _Finder(Protocol):
    def find(self, selectors: tuple[Selector, ...]) -> Any: ...


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class Selector:
    """One locator strategy.

    ``name`` is the accessible name for ``role`` selectors. ``exact`` asks
    text-like strategies for an exact rather than substring match.
    """

    strategy: str
    value: str
    name: str | None = None
    exact: bool = False

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown selector strategy '{self.strategy}' (expected one of {', '.join(STRATEGIES)})")
        if not isinstance(self.value, str) or not self.value:
            raise ValueError(f"Selector '{self.strategy}' needs a non-empty string value")

    def describe(self) -> str:
        if self.strategy == "role" and self.name:
            return f"role={self.value}[name={self.name!r}]"
        return f"{self.strategy}={self.value}"

    @classmethod
    def from_spec(cls, spec: Any) -> Selector:
        """Build a selector from ``"css=#id"`` strings or ``{strategy: value}`` mappings.

        A bare string with no recognised ``engine=`` prefix is treated as CSS.
        """
        if isinstance(spec, Selector):
            return spec
        if isinstance(spec, str):
            engine, sep, rest = spec.partition("=")
            if sep and engine in STRATEGIES and rest:
                return cls(engine, rest)
            return cls("css", spec)
        if isinstance(spec, dict):
            strategies = [key for key in spec if key in STRATEGIES]
            extra = set(spec) - set(STRATEGIES) - {"name", "exact"}
            if len(strategies) != 1 or extra:
                raise ValueError(f"Selector mapping needs exactly one strategy key, got {sorted(spec)}")
            strategy = strategies[0]
            name = spec.get("name")
            return cls(
                strategy,
                str(spec[strategy]),
                name=str(name) if name is not None else None,
                exact=bool(spec.get("exact", False)),
            )
        raise ValueError(f"Cannot build a selector from {spec!r}")


def selector_list(*specs: Any) -> tuple[Selector, ...]:
    """Build a non-empty, ordered selector tuple.

    Accepts individual specs or a single list of specs.
    """
    if len(specs) == 1 and isinstance(specs[0], (list, tuple)):
        specs = tuple(specs[0])
    selectors = tuple(Selector.from_spec(spec) for spec in specs)
    if not selectors:
        raise ValueError("A selector list must contain at least one selector")
    return selectors


def describe_selectors(selectors: tuple[Selector, ...] | None) -> str:
    if not selectors:
        return "<current element>"
    return " | ".join(s.describe() for s in selectors)


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

CONDITION_KINDS = (
    "url_contains",
    "text_visible",
    "element_visible",
    "element_present",
    "text_length_at_least",
    "network_idle",
    "js_truthy",
)


@dataclasses.dataclass(frozen=True)
class Condition:
    """A readiness or verification predicate over the current page.

    ``value`` depends on ``kind``: a substring for ``url_contains`` and
    ``text_visible``, a selector tuple for ``element_visible``, a tuple of CSS
    selectors for ``element_present`` (any one suffices), a minimum length for
    ``text_length_at_least``, a JS expression for ``js_truthy`` and nothing
    for ``network_idle``.
    """

    kind: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.kind not in CONDITION_KINDS:
            raise ValueError(f"Unknown condition '{self.kind}' (expected one of {', '.join(CONDITION_KINDS)})")
        if self.kind == "element_visible" and not self.value:
            raise ValueError("element_visible needs a non-empty selector list")
        if self.kind == "element_present" and not self.value:
            raise ValueError("element_present needs at least one CSS selector")
        if self.kind in ("url_contains", "text_visible", "js_truthy") and not self.value:
            raise ValueError(f"{self.kind} needs a non-empty value")
        if self.kind == "text_length_at_least" and not isinstance(self.value, int):
            raise ValueError("text_length_at_least needs an integer value")

    def describe(self) -> str:
        if self.kind == "element_visible":
            return f"element_visible({describe_selectors(self.value)})"
        if self.kind == "element_present":
            return f"element_present({', '.join(self.value)})"
        if self.kind == "network_idle":
            return "network_idle"
        return f"{self.kind}({self.value!r})"

    def evaluate(self, driver: Any, finder: _Finder) -> Any:
        """Evaluate once against *driver*; the result's truthiness is the verdict."""
        if self.kind == "url_contains":
            return self.value in driver.url
        if self.kind == "text_visible":
            return finder.find((Selector("text", self.value),)) is not None
        if self.kind == "element_visible":
            return finder.find(self.value) is not None
        if self.kind == "element_present":
            return any(driver.locate(Selector("css", css)) for css in self.value)
        if self.kind == "text_length_at_least":
            return (driver.evaluate(BODY_TEXT_LENGTH_JS) or 0) >= self.value
        if self.kind == "network_idle":
            return driver.pending_requests() == 0
        return bool(driver.evaluate(self.value))

    @classmethod
    def from_spec(cls, spec: Any) -> Condition:
        """Build a condition from a single-key mapping such as ``{url_contains: /home}``."""
        if isinstance(spec, Condition):
            return spec
        if isinstance(spec, str) and spec == "network_idle":
            return cls("network_idle")
        if not isinstance(spec, dict):
            raise ValueError(f"Condition must be a mapping, got {spec!r}")
        kinds = [key for key in spec if key in CONDITION_KINDS]
        if len(kinds) != 1:
            raise ValueError(f"Condition needs exactly one of {', '.join(CONDITION_KINDS)}; got {sorted(spec)}")
        kind = kinds[0]
        raw = spec[kind]
        if kind == "element_visible":
            return cls(kind, selector_list(raw))
        if kind == "element_present":
            items = raw if isinstance(raw, (list, tuple)) else [raw]
            return cls(kind, tuple(str(item) for item in items))
        if kind == "text_length_at_least":
            return cls(kind, int(raw))
        if kind == "network_idle":
            return cls(kind)
        return cls(kind, str(raw))


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True, kw_only=True)
class Action:
    """Base for all scenario steps.

    A step with ``required=False`` is diagnostic: its failure is recorded
    but does not fail the scenario.
    """

    kind: ClassVar[str] = "action"
    required: bool = True

    def describe(self) -> str:
        return self.kind


@dataclasses.dataclass(frozen=True)
class Navigate(Action):
    kind: ClassVar[str] = "navigate"
    url: str

    def describe(self) -> str:
        return f"navigate {self.url}"


@dataclasses.dataclass(frozen=True)
class WaitFor(Action):
    kind: ClassVar[str] = "wait_for"
    condition: Condition
    timeout_ms: int | None = None

    def describe(self) -> str:
        return f"wait_for {self.condition.describe()}"


@dataclasses.dataclass(frozen=True)
class Locate(Action):
    kind: ClassVar[str] = "locate"
    selectors: tuple[Selector, ...]

    def describe(self) -> str:
        return f"locate {describe_selectors(self.selectors)}"


@dataclasses.dataclass(frozen=True)
class Click(Action):
    """Click the first matching element, or the last located one.

    ``force`` clicks even when another element covers the target.
    """

    kind: ClassVar[str] = "click"
    selectors: tuple[Selector, ...] | None = None
    force: bool = False

    def describe(self) -> str:
        suffix = " (forced)" if self.force else ""
        return f"click {describe_selectors(self.selectors)}{suffix}"


@dataclasses.dataclass(frozen=True)
class ClickAt(Action):
    """Click at viewport coordinates, bypassing element resolution."""

    kind: ClassVar[str] = "click_at"
    x: float
    y: float

    def __post_init__(self) -> None:
        for axis in (self.x, self.y):
            if isinstance(axis, bool) or not isinstance(axis, (int, float)) or axis < 0:
                raise ValueError(f"click_at needs non-negative numeric coordinates, got ({self.x!r}, {self.y!r})")

    def describe(self) -> str:
        return f"click_at ({self.x:g}, {self.y:g})"


@dataclasses.dataclass(frozen=True)
class Fill(Action):
    kind: ClassVar[str] = "fill"
    selectors: tuple[Selector, ...] | None
    value: str

    def describe(self) -> str:
        return f"fill {describe_selectors(self.selectors)}"


@dataclasses.dataclass(frozen=True)
class Hover(Action):
    kind: ClassVar[str] = "hover"
    selectors: tuple[Selector, ...] | None = None

    def describe(self) -> str:
        return f"hover {describe_selectors(self.selectors)}"


@dataclasses.dataclass(frozen=True)
class Assert(Action):
    kind: ClassVar[str] = "assert"
    condition: Condition

    def describe(self) -> str:
        return f"assert {self.condition.describe()}"


@dataclasses.dataclass(frozen=True)
class Screenshot(Action):
    kind: ClassVar[str] = "screenshot"
    label: str

    def describe(self) -> str:
        return f"screenshot {self.label}"


@dataclasses.dataclass(frozen=True)
class Evaluate(Action):
    """Run a page script and keep its result in the step detail."""

    kind: ClassVar[str] = "evaluate"
    script: str


@dataclasses.dataclass(frozen=True)
class InjectStyle(Action):
    """Add a stylesheet to the page, e.g. to neutralise a covering overlay."""

    kind: ClassVar[str] = "inject_style"
    css: str


ACTION_TYPES: dict[str, type[Action]] = {
    cls.kind: cls
    for cls in (Navigate, WaitFor, Locate, Click, ClickAt, Fill, Hover, Assert, Screenshot, Evaluate, InjectStyle)
}


# ---------------------------------------------------------------------------
# Scenario
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class Scenario:
    """A named, ordered sequence of steps plus end-of-run assertions."""

    name: str
    steps: tuple[Action, ...]
    assertions: tuple[Condition, ...] = ()
    role: str | None = None
    viewport: str | None = None
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Scenario name must not be empty")
        # Accept lists from callers but store tuples.
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "assertions", tuple(self.assertions))
        object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def label(self) -> str:
        """Name qualified by role and viewport, used for artifacts."""
        parts = [self.name]
        if self.role:
            parts.append(self.role)
        if self.viewport:
            parts.append(self.viewport)
        return "-".join(parts)
