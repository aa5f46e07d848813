"""Harness exception hierarchy.

Every error a harness component can raise derives from :class:`ProbeError`.
The ScenarioRunner converts these into ActionResult data; anything that is
not a ProbeError is treated as unexpected and errors the whole scenario.
"""

from __future__ import annotations

from typing import Any


class ProbeError(Exception):
    """Base class for all harness errors."""

    retryable = False

    def context(self) -> dict[str, Any]:
        """Structured fields attached to this error, for reports."""
        return {}


class WaitTimeoutError(ProbeError, TimeoutError):
    """Raised when a readiness wait exceeds its budget."""

    def __init__(self, elapsed_ms: float, last_value: Any = None, description: str = "") -> None:
        self.elapsed_ms = elapsed_ms
        self.last_value = last_value
        self.description = description
        what = f" for {description}" if description else ""
        super().__init__(f"Timed out after {elapsed_ms:.0f}ms waiting{what} (last value: {last_value!r})")

    def context(self) -> dict[str, Any]:
        return {"elapsed_ms": round(self.elapsed_ms, 1), "last_value": repr(self.last_value)}


class PredicateError(ProbeError):
    """Raised when a readiness predicate itself raised an exception."""

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Readiness check raised {type(cause).__name__}: {cause}")

    def context(self) -> dict[str, Any]:
        return {"cause": type(self.cause).__name__}


class NotFoundError(ProbeError):
    """Raised when no selector in a cascade matched an interactable element."""

    retryable = True

    def __init__(self, tried_selectors: list[str], elapsed_ms: float = 0.0) -> None:
        self.tried_selectors = list(tried_selectors)
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"No visible, enabled element matched after {elapsed_ms:.0f}ms; tried: " + ", ".join(self.tried_selectors)
        )

    def context(self) -> dict[str, Any]:
        return {"tried_selectors": self.tried_selectors, "elapsed_ms": round(self.elapsed_ms, 1)}


class StaleHandleError(ProbeError):
    """Raised when an element handle is no longer attached to the DOM."""

    retryable = True

    def __init__(self, selector: str) -> None:
        self.selector = selector
        super().__init__(f"Element is detached: {selector}")

    def context(self) -> dict[str, Any]:
        return {"selector": self.selector}


class NotInteractableError(ProbeError):
    """Raised when an element is hidden, disabled or covered at action time."""

    retryable = True

    def __init__(self, selector: str, reason: str) -> None:
        self.selector = selector
        self.reason = reason
        super().__init__(f"Element is not interactable ({reason}): {selector}")

    def context(self) -> dict[str, Any]:
        return {"selector": self.selector, "reason": self.reason}


class ValueNotAppliedError(ProbeError):
    """Raised when a filled value does not read back as written."""

    def __init__(self, selector: str, expected: str, actual: str) -> None:
        self.selector = selector
        self.expected = expected
        self.actual = actual
        super().__init__(f"Value not applied to {selector}: expected {expected!r}, read back {actual!r}")

    def context(self) -> dict[str, Any]:
        return {"selector": self.selector, "expected": self.expected, "actual": self.actual}


class InteractionError(ProbeError):
    """Raised when the browser driver fails during an interaction."""

    def __init__(self, action: str, selector: str, cause: BaseException) -> None:
        self.action = action
        self.selector = selector
        self.cause = cause
        super().__init__(f"{action} on {selector} failed: {type(cause).__name__}: {cause}")

    def context(self) -> dict[str, Any]:
        return {"action": self.action, "selector": self.selector, "cause": type(self.cause).__name__}


class NavigationError(ProbeError):
    """Raised when a page navigation fails."""

    def __init__(self, url: str, cause: BaseException) -> None:
        self.url = url
        self.cause = cause
        super().__init__(f"Navigation to {url} failed: {cause}")

    def context(self) -> dict[str, Any]:
        return {"url": self.url}


class ScriptError(ProbeError):
    """Raised when a page script evaluation or style injection fails."""

    def __init__(self, script: str, cause: BaseException) -> None:
        self.script = script
        self.cause = cause
        super().__init__(f"Script failed: {cause}")

    def context(self) -> dict[str, Any]:
        return {"script": self.script[:200]}


class AssertionFailedError(ProbeError):
    """Raised when an Assert step's condition does not hold."""

    def __init__(self, description: str, observed: Any = None) -> None:
        self.description = description
        self.observed = observed
        super().__init__(f"Assertion failed: {description} (observed: {observed!r})")

    def context(self) -> dict[str, Any]:
        return {"condition": self.description, "observed": repr(self.observed)}


class ScenarioTimeoutError(ProbeError, TimeoutError):
    """Raised when a scenario exceeds its overall deadline."""

    def __init__(self, scenario: str, timeout_ms: int) -> None:
        self.scenario = scenario
        self.timeout_ms = timeout_ms
        super().__init__(f"Scenario '{scenario}' exceeded its {timeout_ms}ms deadline")

    def context(self) -> dict[str, Any]:
        return {"timeout_ms": self.timeout_ms}


class ArtifactWriteError(ProbeError, OSError):
    """Raised when a screenshot or report cannot be written."""

    def __init__(self, path: str, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Could not write {path}: {cause}")

    def context(self) -> dict[str, Any]:
        return {"path": self.path}


class FinalizedError(ProbeError):
    """Raised when a report is added to an aggregate that was already finalized."""

    pass


class ScenarioDefinitionError(ProbeError):
    """Raised when a scenario set file is malformed."""

    pass
