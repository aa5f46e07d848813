"""Playwright-backed implementation of the browser driver protocol.

BrowserSession owns the Playwright process and the browser; each scenario
gets its own PlaywrightDriver wrapping a fresh context and page, which it
closes when the scenario ends.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from uiprobe.engine.scenario import Selector
from uiprobe.models import DEFAULT_BROWSER

if TYPE_CHECKING:
    from playwright.sync_api import Browser, BrowserContext, Locator, Page, Playwright

logger = logging.getLogger("uiprobe.engine.browser_runner")

# Attachment, geometry and computed style of an element, read in one round-trip.
ELEMENT_STATE_JS = """el => {
    if (!el.isConnected) return {attached: false};
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return {
        attached: true,
        width: rect.width,
        height: rect.height,
        display: style.display,
        visibility: style.visibility,
        opacity: parseFloat(style.opacity),
        disabled: !!el.disabled || el.getAttribute('aria-disabled') === 'true',
    };
}"""


class PlaywrightElement:
    """ElementHandle over a Playwright element handle."""

    def __init__(self, handle: Any, description: str) -> None:
        self._handle = handle
        self.description = description

    def state(self) -> dict[str, Any]:
        try:
            return self._handle.evaluate(ELEMENT_STATE_JS)
        except Exception as exc:
            # Evaluating on a handle whose frame navigated away raises.
            logger.debug("State read failed for %s: %s", self.description, exc)
            return {"attached": False}

    def click(self, timeout_ms: int, force: bool = False) -> None:
        self._handle.click(timeout=timeout_ms, force=force)

    def fill(self, value: str, timeout_ms: int) -> None:
        self._handle.fill(value, timeout=timeout_ms)

    def type(self, value: str, delay_ms: int = 0) -> None:
        self._handle.type(value, delay=delay_ms)

    def hover(self, timeout_ms: int) -> None:
        self._handle.hover(timeout=timeout_ms)

    def input_value(self) -> str:
        return self._handle.input_value()

    def dispatch_event(self, event: str) -> None:
        self._handle.dispatch_event(event, {"bubbles": True})


class PlaywrightDriver:
    """BrowserDriver over one Playwright context and page."""

    def __init__(self, context: BrowserContext, page: Page) -> None:
        self._context = context
        self._page = page
        self._subscribers: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self._in_flight = 0
        self._closed = False

        page.on("console", lambda msg: self._emit("console", {"type": msg.type, "text": msg.text}))
        page.on("pageerror", lambda err: self._emit("pageerror", {"message": str(err)}))
        page.on("request", self._on_request)
        page.on("requestfinished", self._on_request_done)
        page.on("requestfailed", self._on_request_failed)
        page.on("response", lambda resp: self._emit("response", {"url": resp.url, "status": resp.status}))

    # -- Events --------------------------------------------------------------

    def subscribe(self, kind: str, callback: Callable[[dict[str, Any]], None]) -> None:
        self._subscribers.setdefault(kind, []).append(callback)

    def unsubscribe(self, kind: str, callback: Callable[[dict[str, Any]], None]) -> None:
        callbacks = self._subscribers.get(kind, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, kind: str, payload: dict[str, Any]) -> None:
        for callback in list(self._subscribers.get(kind, [])):
            callback(payload)

    def _on_request(self, request: Any) -> None:
        self._in_flight += 1

    def _on_request_done(self, request: Any) -> None:
        self._in_flight = max(0, self._in_flight - 1)

    def _on_request_failed(self, request: Any) -> None:
        self._in_flight = max(0, self._in_flight - 1)
        self._emit(
            "requestfailed",
            {"url": request.url, "method": request.method, "failure": request.failure},
        )

    # -- Primitives ----------------------------------------------------------

    @property
    def url(self) -> str:
        return self._page.url

    def navigate(self, url: str, timeout_ms: int) -> None:
        self._page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")

    def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return self._page.evaluate(script)
        return self._page.evaluate(script, arg)

    def locate(self, selector: Selector) -> list[PlaywrightElement]:
        locator = self._locator(selector)
        handles = locator.element_handles()
        described = selector.describe()
        return [
            PlaywrightElement(handle, described if i == 0 else f"{described} (#{i + 1})")
            for i, handle in enumerate(handles)
        ]

    def _locator(self, selector: Selector) -> Locator:
        page = self._page
        if selector.strategy == "role":
            return page.get_by_role(selector.value, name=selector.name, exact=selector.exact)
        if selector.strategy == "text":
            return page.get_by_text(selector.value, exact=selector.exact)
        if selector.strategy == "label":
            return page.get_by_label(selector.value, exact=selector.exact)
        if selector.strategy == "placeholder":
            return page.get_by_placeholder(selector.value, exact=selector.exact)
        if selector.strategy == "testid":
            return page.get_by_test_id(selector.value)
        if selector.strategy == "xpath":
            return page.locator(f"xpath={selector.value}")
        return page.locator(selector.value)

    def screenshot(self, path: Path) -> None:
        self._page.screenshot(path=str(path), full_page=True)

    def wait(self, ms: float) -> None:
        # Playwright keeps dispatching page events while it waits.
        self._page.wait_for_timeout(ms)

    def pending_requests(self) -> int:
        return self._in_flight

    def add_style(self, css: str) -> None:
        self._page.add_style_tag(content=css)

    def mouse_click(self, x: float, y: float) -> None:
        # CSS pixels relative to the viewport's top-left corner.
        self._page.mouse.click(x, y)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._subscribers.clear()
        try:
            self._context.close()
        except Exception as exc:
            logger.debug("Context close failed: %s", exc)


class BrowserSession:
    """Owns the Playwright process and one browser for a whole suite run."""

    def __init__(self, browser: str = DEFAULT_BROWSER, headless: bool = True) -> None:
        self.browser_name = browser
        self.headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    def start(self) -> None:
        """Launch the Playwright browser. Call once before new_driver()."""
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        launcher = getattr(self._playwright, self.browser_name)
        self._browser = launcher.launch(headless=self.headless)
        logger.info("Launched %s (headless=%s)", self.browser_name, self.headless)

    def new_driver(self, viewport_size: tuple[int, int]) -> PlaywrightDriver:
        """Create a fresh, isolated context and page."""
        if self._browser is None:
            raise RuntimeError("BrowserSession.start() must be called first")
        context = self._browser.new_context(viewport={"width": viewport_size[0], "height": viewport_size[1]})
        return PlaywrightDriver(context, context.new_page())

    def stop(self) -> None:
        """Close the browser and Playwright. Call once after all scenarios complete."""
        try:
            if self._browser is not None:
                self._browser.close()
        except Exception as exc:
            logger.debug("Browser close failed: %s", exc)
        try:
            if self._playwright is not None:
                self._playwright.stop()
        except Exception as exc:
            logger.debug("Playwright stop failed: %s", exc)
        self._browser = None
        self._playwright = None

    def __enter__(self) -> BrowserSession:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
