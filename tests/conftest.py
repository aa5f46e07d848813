"""Shared fixtures for uiprobe unit tests.

The fakes here stand in for a Playwright page: FakeDriver.wait() advances a
FakeClock instead of sleeping, so timing behaviour is exact and instant.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from uiprobe.engine.scenario import Click, Condition, Fill, Navigate, Scenario, WaitFor, selector_list

BASE_URL = "http://app.test"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock in seconds, advanced explicitly in milliseconds."""

    def __init__(self) -> None:
        self.ms = 0.0

    def __call__(self) -> float:
        return self.ms / 1000.0

    def advance(self, ms: float) -> None:
        self.ms += ms


class FakeElement:
    """ElementHandle double with a settable computed state."""

    def __init__(
        self,
        description: str = "element",
        *,
        value: str = "",
        rejects_fill: bool = False,
        rejects_typing: bool = False,
        on_click: Callable[[], None] | None = None,
        click_errors: list[Exception] | None = None,
        **state: Any,
    ) -> None:
        self.description = description
        self._state: dict[str, Any] = {
            "attached": True,
            "width": 120,
            "height": 24,
            "display": "block",
            "visibility": "visible",
            "opacity": 1,
            "disabled": False,
        }
        self._state.update(state)
        self.value = value
        self.rejects_fill = rejects_fill
        self.rejects_typing = rejects_typing
        self.on_click = on_click
        self.click_errors = list(click_errors or [])
        self.clicks = 0
        self.forced_clicks = 0
        self.hovers = 0
        self.fills: list[str] = []
        self.typed: list[str] = []
        self.events: list[str] = []

    def set_state(self, **state: Any) -> None:
        self._state.update(state)

    def state(self) -> dict[str, Any]:
        return dict(self._state)

    def click(self, timeout_ms: int, force: bool = False) -> None:
        # A forced click skips the checks that produce interception errors.
        if self.click_errors and not force:
            raise self.click_errors.pop(0)
        self.clicks += 1
        if force:
            self.forced_clicks += 1
        if self.on_click is not None:
            self.on_click()

    def fill(self, value: str, timeout_ms: int) -> None:
        self.fills.append(value)
        self.value = "" if self.rejects_fill else value

    def type(self, value: str, delay_ms: int = 0) -> None:
        self.typed.append(value)
        if not self.rejects_typing:
            self.value += value

    def hover(self, timeout_ms: int) -> None:
        self.hovers += 1

    def input_value(self) -> str:
        return self.value

    def dispatch_event(self, event: str) -> None:
        self.events.append(event)


class FakeDriver:
    """BrowserDriver double.

    Elements are registered per selector description (``"css=#email"``,
    ``"role=button[name='Login']"``). Callbacks scheduled with :meth:`at`
    fire once the clock passes their time, which is how tests make things
    appear "later".
    """

    def __init__(self, clock: FakeClock | None = None, url: str = "about:blank") -> None:
        self.clock = clock or FakeClock()
        self.url = url
        self.elements: dict[str, list[FakeElement]] = {}
        self.locate_errors: dict[str, Exception] = {}
        self.locate_calls: list[str] = []
        self.scripts: dict[str, Any] = {}
        self.navigations: list[tuple[str, int]] = []
        self.navigate_error: Exception | None = None
        self.screenshots: list[Path] = []
        self.screenshot_error: Exception | None = None
        self.styles: list[str] = []
        self.mouse_clicks: list[tuple[float, float]] = []
        self.on_mouse_click: Callable[[float, float], None] | None = None
        self.waits: list[float] = []
        self.pending = 0
        self.closed = False
        self._scheduled: list[tuple[float, Callable[[], None]]] = []
        self._subscribers: dict[str, list[Callable[[dict[str, Any]], None]]] = {}

    # -- Test helpers --

    def add(self, selector: str, *elements: FakeElement) -> None:
        self.elements.setdefault(selector, []).extend(elements)

    def at(self, ms: float, callback: Callable[[], None]) -> None:
        self._scheduled.append((ms, callback))

    def emit(self, kind: str, payload: dict[str, Any]) -> None:
        for callback in list(self._subscribers.get(kind, [])):
            callback(payload)

    def subscriber_count(self) -> int:
        return sum(len(v) for v in self._subscribers.values())

    def _run_due(self) -> None:
        due = [item for item in self._scheduled if item[0] <= self.clock.ms]
        for item in due:
            self._scheduled.remove(item)
            item[1]()

    # -- BrowserDriver --

    def navigate(self, url: str, timeout_ms: int) -> None:
        self.navigations.append((url, timeout_ms))
        if self.navigate_error is not None:
            raise self.navigate_error
        self.url = url

    def evaluate(self, script: str, arg: Any = None) -> Any:
        value = self.scripts.get(script)
        if isinstance(value, Exception):
            raise value
        return value() if callable(value) else value

    def locate(self, selector: Any) -> list[FakeElement]:
        described = selector.describe()
        self.locate_calls.append(described)
        if described in self.locate_errors:
            raise self.locate_errors[described]
        return list(self.elements.get(described, []))

    def screenshot(self, path: Path) -> None:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        Path(path).write_bytes(b"\x89PNG\r\n")
        self.screenshots.append(Path(path))

    def wait(self, ms: float) -> None:
        self.waits.append(ms)
        self.clock.advance(ms)
        self._run_due()

    def pending_requests(self) -> int:
        return self.pending

    def add_style(self, css: str) -> None:
        self.styles.append(css)

    def mouse_click(self, x: float, y: float) -> None:
        self.mouse_clicks.append((x, y))
        if self.on_mouse_click is not None:
            self.on_mouse_click(x, y)

    def subscribe(self, kind: str, callback: Callable[[dict[str, Any]], None]) -> None:
        self._subscribers.setdefault(kind, []).append(callback)

    def unsubscribe(self, kind: str, callback: Callable[[dict[str, Any]], None]) -> None:
        callbacks = self._subscribers.get(kind, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """BrowserSession double handing out FakeDrivers set up by *setup*."""

    def __init__(self, clock: FakeClock, setup: Callable[[FakeDriver], None] | None = None) -> None:
        self.clock = clock
        self.setup = setup
        self.started = False
        self.stopped = False
        self.drivers: list[FakeDriver] = []
        self.viewports: list[tuple[int, int]] = []

    def start(self) -> None:
        self.started = True

    def new_driver(self, viewport_size: tuple[int, int]) -> FakeDriver:
        self.viewports.append(viewport_size)
        driver = FakeDriver(self.clock)
        if self.setup is not None:
            self.setup(driver)
        self.drivers.append(driver)
        return driver

    def stop(self) -> None:
        self.stopped = True


def install_login_page(driver: FakeDriver, *, redirects: bool = True, home: str = "/home") -> dict[str, FakeElement]:
    """Register a login form whose submit button redirects to *home*."""

    def submit() -> None:
        if redirects:
            driver.url = BASE_URL + home

    elements = {
        "email": FakeElement("placeholder=Email"),
        "password": FakeElement("placeholder=Password"),
        "submit": FakeElement("role=button[name='Login']", on_click=submit),
    }
    driver.add("placeholder=Email", elements["email"])
    driver.add("placeholder=Password", elements["password"])
    driver.add("role=button[name='Login']", elements["submit"])
    return elements


def customer_login_scenario() -> Scenario:
    email = selector_list({"placeholder": "Email"})
    return Scenario(
        name="customer-login",
        steps=(
            Navigate("/login/customer"),
            WaitFor(Condition("element_visible", email), 10000),
            Fill(email, "customer@example.com"),
            Fill(selector_list({"placeholder": "Password"}), "customer123"),
            Click(selector_list({"role": "button", "name": "Login"}, {"text": "Login"})),
            WaitFor(Condition("url_contains", "/home"), 8000),
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def driver(clock: FakeClock) -> FakeDriver:
    return FakeDriver(clock)


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary .uiprobe/ project directory with full structure."""
    project_dir = tmp_path / ".uiprobe"
    for sub in ("scenarios", "runs"):
        (project_dir / sub).mkdir(parents=True)

    config_data = {
        "base_url": BASE_URL,
        "headless": True,
        "options": {"settle_ms": 0},
    }
    (project_dir / "config.yaml").write_text(yaml.dump(config_data, default_flow_style=False), encoding="utf-8")
    return project_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a valid uiprobe config.yaml as a string."""
    return """\
base_url: "http://localhost:3000"
browser: firefox
headless: false
scenarios_dir: sets
runs_dir: out
viewports:
  desktop:
    width: 1920
    height: 1080
  kiosk:
    width: 1080
    height: 1920
options:
  timeout_ms: 4000
  interval_ms: 100
  retries: 2
  continue_on_failure: false
"""


@pytest.fixture
def sample_scenario_set_yaml() -> str:
    """Return a valid scenario set with two roles as a string."""
    return """\
scenario_set:
  name: auth
  viewports: [desktop]
  roles:
    customer: {email: customer@example.com, password: customer123}
    staff: {email: staff@example.com, password: staff123}
  scenarios:
    - name: login
      roles: [customer, staff]
      steps:
        - navigate: /login/{{role.name}}
        - wait_for: {element_visible: [{placeholder: Email}], timeout_ms: 10000}
        - fill: {target: [{placeholder: Email}], value: "{{role.email}}"}
        - fill: {target: [{placeholder: Password}], value: "{{role.password}}"}
        - click: [{role: button, name: Login}, "text=Login"]
        - wait_for: {url_contains: /home, timeout_ms: 8000}
    - name: landing
      steps:
        - navigate: /
        - screenshot: landing
          required: false
      assertions:
        - url_contains: app.test
"""
