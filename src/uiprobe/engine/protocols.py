"""Browser driver protocols.

These protocols define the contract between the harness components and the
browser automation layer. ``PlaywrightDriver`` is the production
implementation; tests inject in-memory fakes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

# Driver notification kinds a DiagnosticRecorder subscribes to.
EVENT_KINDS = ("console", "pageerror", "requestfailed", "response")


@runtime_checkable
class ElementHandle(Protocol):
    """A live reference to a located element.

    ``state()`` returns a snapshot with keys ``attached``, ``width``,
    ``height``, ``display``, ``visibility``, ``opacity`` and ``disabled``.
    A detached element reports ``attached: False`` rather than raising.
    """

    description: str

    def state(self) -> dict[str, Any]: ...

    def click(self, timeout_ms: int, force: bool = False) -> None: ...

    def fill(self, value: str, timeout_ms: int) -> None: ...

    def type(self, value: str, delay_ms: int = 0) -> None: ...

    def hover(self, timeout_ms: int) -> None: ...

    def input_value(self) -> str: ...

    def dispatch_event(self, event: str) -> None: ...


@runtime_checkable
class BrowserDriver(Protocol):
    """Primitives the harness needs from one browser context."""

    @property
    def url(self) -> str: ...

    def navigate(self, url: str, timeout_ms: int) -> None: ...

    def evaluate(self, script: str, arg: Any = None) -> Any: ...

    def locate(self, selector: Any) -> list[ElementHandle]: ...

    def screenshot(self, path: Path) -> None: ...

    def wait(self, ms: float) -> None: ...

    def pending_requests(self) -> int: ...

    def add_style(self, css: str) -> None: ...

    def mouse_click(self, x: float, y: float) -> None: ...

    def subscribe(self, kind: str, callback: Callable[[dict[str, Any]], None]) -> None: ...

    def unsubscribe(self, kind: str, callback: Callable[[dict[str, Any]], None]) -> None: ...
