"""Unit tests for uiprobe.engine.action_executor -- verified interactions."""

from __future__ import annotations

import pytest

from conftest import FakeDriver, FakeElement
from uiprobe.engine.action_executor import PAGE_STATE_JS, InteractionExecutor, _detect_page_change
from uiprobe.engine.errors import (
    InteractionError,
    NotInteractableError,
    StaleHandleError,
    ValueNotAppliedError,
)


def _make_executor(driver: FakeDriver, **overrides) -> InteractionExecutor:
    defaults = {"settle_ms": 1000, "action_timeout_ms": 5000}
    defaults.update(overrides)
    return InteractionExecutor(driver, **defaults)


# ---------------------------------------------------------------------------
# 1. Click
# ---------------------------------------------------------------------------

class TestClick:
    """Clicks report whether the page navigated after the settle delay."""

    def test_click_reports_navigation(self, driver: FakeDriver):
        driver.url = "http://app.test/login"
        button = FakeElement("text=Login", on_click=lambda: setattr(driver, "url", "http://app.test/home"))

        outcome = _make_executor(driver).click(button)

        assert button.clicks == 1
        assert outcome.navigation_occurred is True
        assert outcome.url_before == "http://app.test/login"
        assert outcome.url_after == "http://app.test/home"

    def test_click_waits_settle_delay(self, driver: FakeDriver):
        _make_executor(driver, settle_ms=750).click(FakeElement())
        assert driver.waits == [750]

    def test_zero_settle_skips_wait(self, driver: FakeDriver):
        _make_executor(driver, settle_ms=0).click(FakeElement())
        assert driver.waits == []

    def test_click_without_navigation(self, driver: FakeDriver):
        driver.url = "http://app.test/form"
        outcome = _make_executor(driver).click(FakeElement())
        assert outcome.navigation_occurred is False
        assert outcome.to_detail()["url_after"] == "http://app.test/form"

    def test_click_detects_dialog_from_page_state(self, driver: FakeDriver):
        states = iter([{"url": "u", "visible_dialogs": 0}, {"url": "u", "visible_dialogs": 1}])
        driver.scripts[PAGE_STATE_JS] = lambda: next(states)
        outcome = _make_executor(driver).click(FakeElement())
        assert "dialog opened" in outcome.changes

    def test_overlay_interception_is_not_interactable(self, driver: FakeDriver):
        button = FakeElement(
            "css=#submit",
            click_errors=[RuntimeError('<div class="scrim"> intercepts pointer events')],
        )
        with pytest.raises(NotInteractableError) as exc_info:
            _make_executor(driver).click(button)
        assert exc_info.value.reason == "covered by another element"

    def test_detached_during_click_is_stale(self, driver: FakeDriver):
        button = FakeElement("css=#submit", click_errors=[RuntimeError("Element is not attached to the DOM")])
        with pytest.raises(StaleHandleError):
            _make_executor(driver).click(button)

    def test_other_driver_failures_wrapped(self, driver: FakeDriver):
        button = FakeElement("css=#submit", click_errors=[RuntimeError("Target closed")])
        with pytest.raises(InteractionError) as exc_info:
            _make_executor(driver).click(button)
        assert exc_info.value.action == "click"
        assert exc_info.value.selector == "css=#submit"


# ---------------------------------------------------------------------------
# 2. Pre-action verification
# ---------------------------------------------------------------------------

class TestVerification:
    """Handles are re-checked immediately before every interaction."""

    def test_detached_handle_is_stale(self, driver: FakeDriver):
        with pytest.raises(StaleHandleError):
            _make_executor(driver).click(FakeElement(attached=False))

    def test_handle_hidden_since_resolution(self, driver: FakeDriver):
        element = FakeElement("css=#menu")
        element.set_state(visibility="hidden")
        with pytest.raises(NotInteractableError) as exc_info:
            _make_executor(driver).hover(element)
        assert exc_info.value.reason == "visibility: hidden"
        assert element.hovers == 0

    def test_disabled_field_not_filled(self, driver: FakeDriver):
        field = FakeElement(disabled=True)
        with pytest.raises(NotInteractableError):
            _make_executor(driver).fill(field, "x")
        assert field.fills == []

    def test_state_read_failure_is_stale(self, driver: FakeDriver):
        element = FakeElement()

        def broken_state():
            raise RuntimeError("Execution context was destroyed")

        element.state = broken_state
        with pytest.raises(StaleHandleError):
            _make_executor(driver).click(element)


# ---------------------------------------------------------------------------
# 3. Fill
# ---------------------------------------------------------------------------

class TestFill:
    """Fill writes, dispatches events and reads the value back."""

    def test_fill_reads_back_value(self, driver: FakeDriver):
        field = FakeElement("placeholder=Email")
        outcome = _make_executor(driver).fill(field, "customer@example.com")

        assert field.value == "customer@example.com"
        assert outcome.value == "customer@example.com"
        assert outcome.used_fallback is False
        assert field.events == ["input", "change"]

    def test_fill_is_idempotent(self, driver: FakeDriver):
        field = FakeElement(value="stale text")
        executor = _make_executor(driver)
        first = executor.fill(field, "customer123")
        second = executor.fill(field, "customer123")
        assert field.value == "customer123"
        assert first.value == second.value == "customer123"

    def test_fill_replaces_existing_content(self, driver: FakeDriver):
        field = FakeElement(value="old@example.com")
        _make_executor(driver).fill(field, "new@example.com")
        assert field.value == "new@example.com"

    def test_rejected_programmatic_write_falls_back_to_typing(self, driver: FakeDriver):
        field = FakeElement("label=Email", rejects_fill=True)
        outcome = _make_executor(driver).fill(field, "staff@example.com")

        assert outcome.used_fallback is True
        assert outcome.value == "staff@example.com"
        assert field.typed == ["staff@example.com"]
        assert field.fills == ["staff@example.com", ""]

    def test_value_still_wrong_after_fallback_raises(self, driver: FakeDriver):
        field = FakeElement("label=Email", rejects_fill=True, rejects_typing=True)
        with pytest.raises(ValueNotAppliedError) as exc_info:
            _make_executor(driver).fill(field, "admin@example.com")
        assert exc_info.value.expected == "admin@example.com"
        assert exc_info.value.actual == ""


# ---------------------------------------------------------------------------
# 4. Page change detection
# ---------------------------------------------------------------------------

class TestDetectPageChange:
    """Fingerprint comparison lists each kind of change."""

    def test_no_change(self):
        state = {"url": "a", "title": "t", "text_length": 10}
        assert _detect_page_change(state, dict(state)) == {"changed": False, "changes": []}

    def test_failed_capture_counts_as_change(self):
        assert _detect_page_change({}, {"url": "a"})["changed"] is True

    def test_content_and_title_changes(self):
        result = _detect_page_change(
            {"url": "a", "title": "Login", "text_length": 10},
            {"url": "a", "title": "Home", "text_length": 50},
        )
        assert "title changed" in result["changes"]
        assert "content changed" in result["changes"]


# ---------------------------------------------------------------------------
# 5. Forced and coordinate clicks
# ---------------------------------------------------------------------------

class TestOverlayWorkarounds:
    """Clicks that get past an element covering the target."""

    def test_forced_click_goes_through_overlay(self, driver: FakeDriver):
        driver.url = "http://app.test/login"

        def submit():
            driver.url = "http://app.test/home"

        button = FakeElement(
            "css=#submit",
            on_click=submit,
            click_errors=[RuntimeError('<div class="scrim"> intercepts pointer events')],
        )

        outcome = _make_executor(driver).click(button, force=True)

        assert button.forced_clicks == 1
        assert outcome.navigation_occurred is True

    def test_forced_click_ignores_visibility_but_not_detachment(self, driver: FakeDriver):
        faded = FakeElement("css=#submit", opacity=0)
        _make_executor(driver).click(faded, force=True)
        assert faded.forced_clicks == 1

        with pytest.raises(StaleHandleError):
            _make_executor(driver).click(FakeElement(attached=False), force=True)

    def test_click_at_coordinates(self, driver: FakeDriver):
        driver.url = "http://app.test/login"
        driver.on_mouse_click = lambda x, y: setattr(driver, "url", "http://app.test/home")

        outcome = _make_executor(driver, settle_ms=500).click_at(640, 360.5)

        assert driver.mouse_clicks == [(640, 360.5)]
        assert driver.waits == [500]
        assert outcome.selector == "(640, 360.5)"
        assert outcome.navigation_occurred is True

    def test_click_at_failure_wrapped(self, driver: FakeDriver):
        def broken(x, y):
            raise RuntimeError("Target closed")

        driver.on_mouse_click = broken
        with pytest.raises(InteractionError) as exc_info:
            _make_executor(driver).click_at(10, 20)
        assert exc_info.value.selector == "(10, 20)"
