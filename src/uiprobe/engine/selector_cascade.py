"""SelectorCascade -- ordered, first-match-wins element resolution.

UI toolkits expose the same control through different DOM shapes (a native
tag, an ARIA role, a synthesized accessibility node). A cascade tries each
locator strategy in priority order and settles on the first one that yields a
visible, enabled element.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from uiprobe.engine.errors import NotFoundError, WaitTimeoutError
from uiprobe.engine.poller import wait_until
from uiprobe.engine.protocols import BrowserDriver, ElementHandle
from uiprobe.engine.scenario import Selector, describe_selectors
from uiprobe.models import DEFAULT_CASCADE_BUDGET_MS

logger = logging.getLogger("uiprobe.engine.selector_cascade")

# Pass cadence while waiting for any selector to match.
CASCADE_INTERVAL_MS = 250


def interactable_reason(state: dict[str, Any]) -> str | None:
    """Return why an element is not interactable, or None if it is."""
    if not state.get("attached", True):
        return "detached"
    if (state.get("width") or 0) <= 0 or (state.get("height") or 0) <= 0:
        return "zero-size bounding box"
    if state.get("display") == "none":
        return "display: none"
    if state.get("visibility") == "hidden":
        return "visibility: hidden"
    try:
        opacity = float(state.get("opacity", 1))
    except (TypeError, ValueError):
        opacity = 1.0
    if opacity <= 0:
        return "opacity: 0"
    if state.get("disabled"):
        return "disabled"
    return None


def is_interactable(state: dict[str, Any]) -> bool:
    return interactable_reason(state) is None


class SelectorCascade:
    """Resolves selector lists against one browser driver.

    Args:
        driver: The browser driver to query.
        budget_ms: Default total budget shared across a selector list.
        interval_ms: Delay between full passes over the list.
        sleep: Millisecond sleep used between passes. Defaults to the
            driver's own wait.
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        *,
        budget_ms: int = DEFAULT_CASCADE_BUDGET_MS,
        interval_ms: int = CASCADE_INTERVAL_MS,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._driver = driver
        self.budget_ms = budget_ms
        self.interval_ms = interval_ms
        self._sleep = sleep or driver.wait
        self._clock = clock

    def find(self, selectors: tuple[Selector, ...]) -> ElementHandle | None:
        """One strict-order pass; returns the first interactable match or None."""
        for selector in selectors:
            try:
                handles = self._driver.locate(selector)
            except Exception as exc:
                logger.debug("Selector %s could not be evaluated: %s", selector.describe(), exc)
                continue
            for handle in handles:
                reason = interactable_reason(handle.state())
                if reason is None:
                    logger.debug("Matched %s", selector.describe())
                    return handle
                logger.debug("Skipping %s: %s", selector.describe(), reason)
        return None

    def resolve(self, selectors: tuple[Selector, ...], budget_ms: float | None = None) -> ElementHandle:
        """Repeat passes over *selectors* until one matches or the budget is spent.

        Raises:
            ValueError: *selectors* is empty.
            NotFoundError: Nothing matched within the budget.
        """
        if not selectors:
            raise ValueError("Cannot resolve an empty selector list")
        budget = self.budget_ms if budget_ms is None else budget_ms
        try:
            result = wait_until(
                lambda: self.find(selectors),
                timeout_ms=budget,
                interval_ms=self.interval_ms,
                description=describe_selectors(selectors),
                sleep=self._sleep,
                clock=self._clock,
            )
        except WaitTimeoutError as exc:
            raise NotFoundError([s.describe() for s in selectors], exc.elapsed_ms) from None
        return result.value
