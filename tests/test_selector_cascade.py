"""Unit tests for uiprobe.engine.selector_cascade -- first-match-wins resolution."""

from __future__ import annotations

import pytest

from conftest import FakeDriver, FakeElement
from uiprobe.engine.errors import NotFoundError
from uiprobe.engine.scenario import selector_list
from uiprobe.engine.selector_cascade import SelectorCascade, interactable_reason, is_interactable


def _visible_state(**overrides) -> dict:
    state = {"attached": True, "width": 10, "height": 10, "display": "block", "visibility": "visible", "opacity": 1}
    state.update(overrides)
    return state


# ---------------------------------------------------------------------------
# 1. Interactability
# ---------------------------------------------------------------------------

class TestInteractableReason:
    """Hidden, zero-size, transparent, disabled and detached elements are skipped."""

    def test_visible_element_is_interactable(self):
        assert interactable_reason(_visible_state()) is None
        assert is_interactable(_visible_state())

    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"attached": False}, "detached"),
            ({"width": 0}, "zero-size bounding box"),
            ({"display": "none"}, "display: none"),
            ({"visibility": "hidden"}, "visibility: hidden"),
            ({"opacity": 0}, "opacity: 0"),
            ({"disabled": True}, "disabled"),
        ],
    )
    def test_not_interactable_reasons(self, overrides, reason):
        assert interactable_reason(_visible_state(**overrides)) == reason

    def test_detached_checked_first(self):
        assert interactable_reason({"attached": False, "display": "none"}) == "detached"


# ---------------------------------------------------------------------------
# 2. find() -- a single ordered pass
# ---------------------------------------------------------------------------

class TestFind:
    """The first interactable match in list order wins."""

    def test_first_matching_selector_wins_even_when_later_ones_match(self, driver: FakeDriver):
        first = FakeElement("css=#login")
        second = FakeElement("text=Login")
        driver.add("css=#login", first)
        driver.add("text=Login", second)

        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=1000)
        assert cascade.find(selector_list("css=#login", "text=Login")) is first
        assert driver.locate_calls == ["css=#login"]

    def test_falls_through_to_later_selector(self, driver: FakeDriver):
        fallback = FakeElement("role=button[name='Login']")
        driver.add("role=button[name='Login']", fallback)

        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=1000)
        found = cascade.find(selector_list("css=#missing", {"role": "button", "name": "Login"}))

        assert found is fallback
        assert driver.locate_calls == ["css=#missing", "role=button[name='Login']"]

    def test_skips_hidden_matches(self, driver: FakeDriver):
        driver.add("css=.btn", FakeElement("hidden", display="none"), FakeElement("disabled", disabled=True))
        visible = FakeElement("visible")
        driver.add("text=Go", visible)

        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=1000)
        assert cascade.find(selector_list("css=.btn", "text=Go")) is visible

    def test_second_handle_of_same_selector_can_match(self, driver: FakeDriver):
        hidden = FakeElement("first", width=0)
        shown = FakeElement("second")
        driver.add("css=.btn", hidden, shown)

        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=1000)
        assert cascade.find(selector_list("css=.btn")) is shown

    def test_selector_that_raises_is_skipped(self, driver: FakeDriver):
        driver.locate_errors["xpath=//bad["] = ValueError("invalid xpath")
        ok = FakeElement("ok")
        driver.add("css=#ok", ok)

        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=1000)
        assert cascade.find(selector_list("xpath=//bad[", "css=#ok")) is ok

    def test_no_match_returns_none(self, driver: FakeDriver):
        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=1000)
        assert cascade.find(selector_list("css=#nothing")) is None


# ---------------------------------------------------------------------------
# 3. resolve() -- repeated passes under a shared budget
# ---------------------------------------------------------------------------

class TestResolve:
    """resolve() keeps passing over the list until a match or the budget ends."""

    def test_element_appearing_later_is_found(self, driver: FakeDriver):
        late = FakeElement("late")
        driver.at(600, lambda: driver.add("text=Continue", late))

        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=2000, interval_ms=250)
        assert cascade.resolve(selector_list("css=#continue", "text=Continue")) is late
        assert driver.clock.ms == pytest.approx(750)

    def test_budget_is_shared_across_the_whole_list(self, driver: FakeDriver):
        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=1000, interval_ms=250)
        with pytest.raises(NotFoundError):
            cascade.resolve(selector_list("css=#a", "css=#b", "css=#c"))
        assert sum(driver.waits) == pytest.approx(1000)

    def test_not_found_lists_every_selector_tried(self, driver: FakeDriver):
        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=500)
        with pytest.raises(NotFoundError) as exc_info:
            cascade.resolve(selector_list({"role": "button", "name": "Login"}, "text=Login"))
        assert exc_info.value.tried_selectors == ["role=button[name='Login']", "text=Login"]
        assert exc_info.value.elapsed_ms == pytest.approx(500)
        assert exc_info.value.retryable is True

    def test_explicit_budget_overrides_default(self, driver: FakeDriver):
        cascade = SelectorCascade(driver, clock=driver.clock, budget_ms=5000, interval_ms=100)
        with pytest.raises(NotFoundError):
            cascade.resolve(selector_list("css=#x"), budget_ms=300)
        assert driver.clock.ms == pytest.approx(300)

    def test_empty_list_rejected(self, driver: FakeDriver):
        with pytest.raises(ValueError):
            SelectorCascade(driver, clock=driver.clock).resolve(())
