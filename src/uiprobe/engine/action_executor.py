"""InteractionExecutor -- click, fill and hover with pre/post-condition checks.

Every interaction re-verifies the element right before acting, since handles
go stale after navigation or re-render. Clicks fingerprint the page before and
after a settle delay to report whether navigation (or any other visible
change) happened. Fills read the value back and fall back to real keypresses
when the framework discarded a programmatic write. A click blocked by an
overlay can be forced, or sent to viewport coordinates instead.

The executor never retries; retry policy belongs to the ScenarioRunner.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable

from uiprobe.engine.errors import (
    InteractionError,
    NotInteractableError,
    ProbeError,
    StaleHandleError,
    ValueNotAppliedError,
)
from uiprobe.engine.protocols import BrowserDriver, ElementHandle
from uiprobe.engine.selector_cascade import interactable_reason
from uiprobe.models import DEFAULT_SETTLE_MS

logger = logging.getLogger("uiprobe.engine.action_executor")

DEFAULT_ACTION_TIMEOUT_MS = 5000

# Lightweight page fingerprint used to detect what a click changed.
PAGE_STATE_JS = """() => {
    const dialogs = document.querySelectorAll(
        '[role="dialog"], [role="alertdialog"], .modal, [data-modal], [aria-modal="true"]'
    );
    const visibleText = document.body?.innerText || '';
    const focused = document.activeElement;
    return {
        url: window.location.href,
        title: document.title,
        visible_dialogs: Array.from(dialogs).filter(d => d.offsetParent !== null).length,
        text_length: visibleText.length,
        focused_tag: focused?.tagName?.toLowerCase() || null,
        focused_id: focused?.id || null,
        alert_count: document.querySelectorAll('[role="alert"], .alert, .error, .toast').length,
    };
}"""


@dataclasses.dataclass(frozen=True)
class InteractionOutcome:
    """What an interaction did."""

    action: str
    selector: str
    navigation_occurred: bool = False
    url_before: str = ""
    url_after: str = ""
    changes: tuple[str, ...] = ()
    value: str | None = None
    used_fallback: bool = False
    page_state: dict = dataclasses.field(default_factory=dict, compare=False)

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"selector": self.selector}
        if self.action == "click":
            detail.update(
                navigation_occurred=self.navigation_occurred,
                url_before=self.url_before,
                url_after=self.url_after,
                changes=list(self.changes),
            )
        if self.action == "fill":
            detail.update(value=self.value, used_fallback=self.used_fallback)
        return detail


class InteractionExecutor:
    """Performs interactions on already-resolved element handles.

    Args:
        driver: The browser driver the handles belong to.
        settle_ms: Delay after a click before the URL is read again.
        action_timeout_ms: Timeout passed to each driver interaction.
        wait: Millisecond sleep used for the settle delay. Defaults to the
            driver's own wait.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        *,
        settle_ms: int = DEFAULT_SETTLE_MS,
        action_timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS,
        wait: Callable[[float], None] | None = None,
    ) -> None:
        self._driver = driver
        self.settle_ms = settle_ms
        self.action_timeout_ms = action_timeout_ms
        self._wait = wait or driver.wait

    # -- Interactions --------------------------------------------------------

    def click(self, handle: ElementHandle, force: bool = False) -> InteractionOutcome:
        """Click *handle* and report whether the page navigated.

        With ``force`` the click goes through even when an overlay covers the
        element; only a detached handle is still rejected.
        """
        if force:
            self._verify_attached(handle)
        else:
            self._verify(handle)
        return self._click_and_observe(
            handle.description,
            lambda: handle.click(self.action_timeout_ms, force=force),
        )

    def click_at(self, x: float, y: float) -> InteractionOutcome:
        """Click at viewport coordinates, whatever element is on top there."""
        target = f"({x:g}, {y:g})"
        return self._click_and_observe(target, lambda: self._driver.mouse_click(x, y))

    def _click_and_observe(self, target: str, do_click: Callable[[], None]) -> InteractionOutcome:
        before = self._capture_page_state()
        url_before = self._driver.url

        self._perform("click", target, do_click)

        if self.settle_ms > 0:
            self._wait(self.settle_ms)

        url_after = self._driver.url
        after = self._capture_page_state()
        change = _detect_page_change(before, after)
        navigation = url_before != url_after
        if navigation:
            logger.info("Click on %s navigated %s -> %s", target, url_before, url_after)
        elif not change["changed"]:
            logger.debug("Click on %s produced no visible change", target)

        return InteractionOutcome(
            action="click",
            selector=target,
            navigation_occurred=navigation,
            url_before=url_before,
            url_after=url_after,
            changes=tuple(change["changes"]),
            page_state=after,
        )

    def fill(self, handle: ElementHandle, value: str) -> InteractionOutcome:
        """Write *value* into *handle* and confirm it reads back unchanged.

        Filling replaces the field's content, so repeating the call with the
        same value leaves the same state.

        Raises:
            ValueNotAppliedError: The value still differs after the
                keypress fallback.
        """
        self._verify(handle)
        self._perform("fill", handle.description, lambda: self._fill_and_dispatch(handle, value))

        actual = self._read_value(handle)
        used_fallback = False
        if actual != value:
            # Controlled inputs may reset programmatic writes; type it instead.
            logger.info(
                "Fill on %s read back %r instead of %r; retrying with keypresses",
                handle.description,
                actual,
                value,
            )
            used_fallback = True
            self._perform("fill", handle.description, lambda: self._type_replacing(handle, value))
            actual = self._read_value(handle)
            if actual != value:
                raise ValueNotAppliedError(handle.description, value, actual)

        return InteractionOutcome(
            action="fill",
            selector=handle.description,
            value=actual,
            used_fallback=used_fallback,
        )

    def hover(self, handle: ElementHandle) -> InteractionOutcome:
        self._verify(handle)
        self._perform("hover", handle.description, lambda: handle.hover(self.action_timeout_ms))
        return InteractionOutcome(action="hover", selector=handle.description)

    # -- Helpers -------------------------------------------------------------

    def _verify(self, handle: ElementHandle) -> None:
        """Re-check the handle right before acting on it."""
        try:
            state = handle.state()
        except Exception as exc:
            raise StaleHandleError(handle.description) from exc
        reason = interactable_reason(state)
        if reason == "detached":
            raise StaleHandleError(handle.description)
        if reason is not None:
            raise NotInteractableError(handle.description, reason)

    def _verify_attached(self, handle: ElementHandle) -> None:
        try:
            attached = handle.state().get("attached", False)
        except Exception as exc:
            raise StaleHandleError(handle.description) from exc
        if not attached:
            raise StaleHandleError(handle.description)

    def _perform(self, action: str, target: str, fn: Callable[[], None]) -> None:
        """Run a driver call, translating its failures into harness errors."""
        try:
            fn()
        except ProbeError:
            raise
        except Exception as exc:
            if _is_overlay_interception_error(exc):
                raise NotInteractableError(target, "covered by another element") from exc
            if _is_detached_error(exc):
                raise StaleHandleError(target) from exc
            raise InteractionError(action, target, exc) from exc

    def _fill_and_dispatch(self, handle: ElementHandle, value: str) -> None:
        handle.fill(value, self.action_timeout_ms)
        handle.dispatch_event("input")
        handle.dispatch_event("change")

    def _type_replacing(self, handle: ElementHandle, value: str) -> None:
        handle.fill("", self.action_timeout_ms)
        handle.type(value, delay_ms=10)
        handle.dispatch_event("change")

    def _read_value(self, handle: ElementHandle) -> str:
        try:
            return handle.input_value()
        except Exception as exc:
            if _is_detached_error(exc):
                raise StaleHandleError(handle.description) from exc
            raise InteractionError("read value", handle.description, exc) from exc

    def _capture_page_state(self) -> dict:
        """Fingerprint the page; an empty dict when the page cannot be queried."""
        try:
            return self._driver.evaluate(PAGE_STATE_JS) or {}
        except Exception as exc:
            logger.debug("Page state capture failed: %s", exc)
            return {}


def _is_overlay_interception_error(error: Exception) -> bool:
    """Match driver errors like '<div class="scrim"> intercepts pointer events'."""
    return "intercepts pointer events" in str(error).lower()


def _is_detached_error(error: Exception) -> bool:
    msg = str(error).lower()
    return "not attached" in msg or "detached" in msg


def _detect_page_change(before: dict, after: dict) -> dict:
    """Compare two page fingerprints and list what changed."""
    if not before or not after:
        return {"changed": True, "changes": ["state capture failed"]}

    changes: list[str] = []
    if before.get("url") != after.get("url"):
        changes.append(f"navigated: {before.get('url')} -> {after.get('url')}")
    if before.get("title") != after.get("title"):
        changes.append("title changed")
    if after.get("visible_dialogs", 0) > before.get("visible_dialogs", 0):
        changes.append("dialog opened")
    elif after.get("visible_dialogs", 0) < before.get("visible_dialogs", 0):
        changes.append("dialog closed")
    if before.get("text_length") != after.get("text_length"):
        changes.append("content changed")
    if before.get("focused_tag") != after.get("focused_tag") or before.get("focused_id") != after.get("focused_id"):
        changes.append(f"focus moved to {after.get('focused_tag')}#{after.get('focused_id') or ''}")
    if before.get("alert_count", 0) != after.get("alert_count", 0):
        changes.append("alert appeared or disappeared")

    return {"changed": bool(changes), "changes": changes}
