"""ScenarioRunner -- runs one scenario and produces a ScenarioReport.

Lifecycle per scenario: PENDING -> RUNNING -> SUCCEEDED | FAILED | ERRORED.

Harness errors raised by the poller, the selector cascade and the
interaction executor are captured as ActionResult data so one broken step
does not abort the rest of a diagnostic run. Only unexpected exceptions (a
crashed driver, an unwritable artifact directory) and the scenario deadline
end a scenario early, as ERRORED.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from uiprobe.config import HarnessOptions
from uiprobe.engine.action_executor import InteractionExecutor
from uiprobe.engine.diagnostics import DiagnosticEvent, DiagnosticRecorder, iso_timestamp
from uiprobe.engine.errors import (
    ArtifactWriteError,
    AssertionFailedError,
    NavigationError,
    NotFoundError,
    PredicateError,
    ProbeError,
    ScenarioTimeoutError,
    ScriptError,
)
from uiprobe.engine.poller import wait_until
from uiprobe.engine.protocols import BrowserDriver, ElementHandle
from uiprobe.engine.scenario import (
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
    Selector,
    WaitFor,
)
from uiprobe.engine.selector_cascade import SelectorCascade

logger = logging.getLogger("uiprobe.engine.scenario_runner")


class ScenarioStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ERRORED = "errored"


@dataclasses.dataclass(frozen=True)
class ErrorInfo:
    """Serializable description of an exception."""

    type: str
    message: str
    context: dict[str, Any] = dataclasses.field(default_factory=dict, compare=False)

    @classmethod
    def from_exception(cls, exc: BaseException, **extra: Any) -> ErrorInfo:
        context = exc.context() if isinstance(exc, ProbeError) else {}
        context.update(extra)
        return cls(type=type(exc).__name__, message=str(exc), context=context)


@dataclasses.dataclass(frozen=True)
class ActionResult:
    """Outcome of one scenario step. Every step gets one, even when skipped."""

    index: int
    action: str
    kind: str
    succeeded: bool
    duration_ms: float
    required: bool = True
    attempts: int = 1
    skipped: bool = False
    error: ErrorInfo | None = None
    artifact: str | None = None
    detail: dict[str, Any] = dataclasses.field(default_factory=dict, compare=False)


@dataclasses.dataclass(frozen=True)
class AssertionOutcome:
    condition: str
    passed: bool
    observed: str = ""
    error: ErrorInfo | None = None


@dataclasses.dataclass(frozen=True)
class ScenarioReport:
    """Finished record of one scenario run."""

    scenario: str
    status: ScenarioStatus
    results: tuple[ActionResult, ...]
    events: tuple[DiagnosticEvent, ...]
    assertions: tuple[AssertionOutcome, ...] = ()
    role: str | None = None
    viewport: str | None = None
    started_at: str = ""
    duration_ms: float = 0.0
    error: ErrorInfo | None = None

    @property
    def success(self) -> bool:
        return self.status is ScenarioStatus.SUCCEEDED

    @property
    def label(self) -> str:
        return "-".join(part for part in (self.scenario, self.role, self.viewport) if part)

    def failed_results(self) -> list[ActionResult]:
        return [r for r in self.results if not r.succeeded and not r.skipped]

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["status"] = self.status.value
        data["success"] = self.success
        return data


@dataclasses.dataclass
class ScenarioState:
    """Mutable per-run state, owned by exactly one ``run()`` call."""

    scenario: Scenario
    status: ScenarioStatus = ScenarioStatus.PENDING
    current_url: str = ""
    handle: ElementHandle | None = None
    handle_selectors: tuple[Selector, ...] | None = None
    last_snapshot: dict[str, Any] = dataclasses.field(default_factory=dict)
    results: list[ActionResult] = dataclasses.field(default_factory=list)


class Deadline:
    """Scenario-wide time budget that clamps every wait inside the scenario."""

    def __init__(self, scenario: str, timeout_ms: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.scenario = scenario
        self.timeout_ms = timeout_ms
        self._clock = clock
        self._start = clock()

    def remaining_ms(self) -> float:
        return self.timeout_ms - (self._clock() - self._start) * 1000.0

    @property
    def expired(self) -> bool:
        return self.remaining_ms() <= 0

    def error(self) -> ScenarioTimeoutError:
        return ScenarioTimeoutError(self.scenario, self.timeout_ms)

    def check(self) -> None:
        if self.expired:
            raise self.error()

    def clamp(self, ms: float) -> float:
        """Return *ms* limited to the remaining budget.

        Raises:
            ScenarioTimeoutError: Nothing remains.
        """
        remaining = self.remaining_ms()
        if remaining <= 0:
            raise self.error()
        return min(ms, remaining)

    def bound(self, sleep: Callable[[float], None]) -> Callable[[float], None]:
        """Wrap a millisecond sleep so it never outlives the deadline."""

        def _sleep(ms: float) -> None:
            sleep(self.clamp(ms))
            self.check()

        return _sleep


@dataclasses.dataclass
class _RunContext:
    state: ScenarioState
    deadline: Deadline
    cascade: SelectorCascade
    executor: InteractionExecutor
    sleep: Callable[[float], None]


class ScenarioRunner:
    """Executes scenarios against one browser context.

    Args:
        driver: Browser context, exclusively owned while ``run()`` executes.
        recorder: Diagnostic recorder attached to the same context.
        base_url: Prefix for relative Navigate URLs.
        options: Timing and failure policy.
        clock: Monotonic clock in seconds.
        now: Wall clock for report timestamps.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        recorder: DiagnosticRecorder,
        *,
        base_url: str = "",
        options: HarnessOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._driver = driver
        self._recorder = recorder
        self.base_url = base_url
        self.options = options or HarnessOptions()
        self._clock = clock
        self._now = now

    # -- Public API ----------------------------------------------------------

    def run(self, scenario: Scenario) -> ScenarioReport:
        """Run every step of *scenario*, then its assertions."""
        state = ScenarioState(scenario=scenario, current_url=self._safe_url())
        started_at = iso_timestamp(self._now())
        start = self._clock()
        state.status = ScenarioStatus.RUNNING
        logger.info("Scenario %s: running %d step(s)", scenario.label, len(scenario.steps))

        ctx = self._make_context(state)
        error: ErrorInfo | None = None
        assertions: tuple[AssertionOutcome, ...] = ()
        fatal: BaseException | None = None

        for index, action in enumerate(scenario.steps):
            if fatal is not None or self._should_stop(state):
                state.results.append(skipped_result(index, action))
                continue
            result, fatal = self._run_step(index, action, ctx)
            state.results.append(result)

        if fatal is None:
            try:
                assertions = self._check_assertions(scenario.assertions, ctx)
            except ScenarioTimeoutError as exc:
                fatal = exc

        if fatal is not None:
            state.status = ScenarioStatus.ERRORED
            error = ErrorInfo.from_exception(fatal)
            logger.error("Scenario %s errored: %s", scenario.label, fatal)
        elif any(not r.succeeded and r.required for r in state.results) or not all(a.passed for a in assertions):
            state.status = ScenarioStatus.FAILED
        else:
            state.status = ScenarioStatus.SUCCEEDED

        duration_ms = (self._clock() - start) * 1000.0
        logger.info("Scenario %s: %s in %.0fms", scenario.label, state.status.value, duration_ms)
        return ScenarioReport(
            scenario=scenario.name,
            status=state.status,
            results=tuple(state.results),
            events=tuple(self._recorder.drain()),
            assertions=assertions,
            role=scenario.role,
            viewport=scenario.viewport,
            started_at=started_at,
            duration_ms=duration_ms,
            error=error,
        )

    # -- Steps ---------------------------------------------------------------

    def _make_context(self, state: ScenarioState) -> _RunContext:
        deadline = Deadline(state.scenario.label, self.options.scenario_timeout_ms, clock=self._clock)
        sleep = deadline.bound(self._driver.wait)
        cascade = SelectorCascade(
            self._driver,
            budget_ms=self.options.cascade_budget_ms,
            sleep=sleep,
            clock=self._clock,
        )
        executor = InteractionExecutor(self._driver, settle_ms=self.options.settle_ms, wait=sleep)
        return _RunContext(state=state, deadline=deadline, cascade=cascade, executor=executor, sleep=sleep)

    def _should_stop(self, state: ScenarioState) -> bool:
        if self.options.continue_on_failure:
            return False
        return any(not r.succeeded and r.required and not r.skipped for r in state.results)

    def _run_step(self, index: int, action: Action, ctx: _RunContext) -> tuple[ActionResult, BaseException | None]:
        """Execute one step with retries; returns its result and any fatal error."""
        start = self._clock()
        attempts = 0
        failure: BaseException | None = None
        fatal: BaseException | None = None
        detail: dict[str, Any] = {}
        artifact: str | None = None

        while True:
            attempts += 1
            try:
                ctx.deadline.check()
                detail, artifact = self._dispatch(action, ctx)
                failure = None
                break
            except (ScenarioTimeoutError, ArtifactWriteError) as exc:
                failure = fatal = exc
                break
            except ProbeError as exc:
                failure = exc
                if ctx.deadline.expired:
                    fatal = ctx.deadline.error()
                    break
                if exc.retryable and attempts <= self.options.retries:
                    logger.info("Step %d (%s) failed: %s; retrying", index + 1, action.describe(), exc)
                    ctx.state.handle = None
                    continue
                break
            except Exception as exc:
                logger.error("Step %d (%s) raised unexpectedly: %s", index + 1, action.describe(), exc)
                failure = fatal = exc
                break

        duration_ms = (self._clock() - start) * 1000.0
        if failure is None:
            logger.debug("Step %d ok: %s", index + 1, action.describe())
            return (
                ActionResult(
                    index=index,
                    action=action.describe(),
                    kind=action.kind,
                    succeeded=True,
                    duration_ms=duration_ms,
                    required=action.required,
                    attempts=attempts,
                    artifact=artifact,
                    detail=detail,
                ),
                None,
            )

        logger.info("Step %d failed: %s -- %s", index + 1, action.describe(), failure)
        extra: dict[str, Any] = {}
        if self.options.screenshot_on_failure and not isinstance(fatal, ScenarioTimeoutError):
            artifact, extra = self._failure_screenshot(index, action)
        return (
            ActionResult(
                index=index,
                action=action.describe(),
                kind=action.kind,
                succeeded=False,
                duration_ms=duration_ms,
                required=action.required,
                attempts=attempts,
                error=ErrorInfo.from_exception(failure, **extra),
                artifact=artifact,
                detail={"url": self._safe_url()},
            ),
            fatal,
        )

    def _failure_screenshot(self, index: int, action: Action) -> tuple[str | None, dict[str, Any]]:
        try:
            path = self._recorder.flush_screenshot(f"step{index + 1}-{action.kind}-failed")
        except ArtifactWriteError as exc:
            logger.warning("Failure screenshot for step %d could not be written: %s", index + 1, exc)
            return None, {"screenshot_error": str(exc)}
        return str(path), {}

    def _dispatch(self, action: Action, ctx: _RunContext) -> tuple[dict[str, Any], str | None]:
        """Perform one step; returns (detail, artifact path)."""
        state = ctx.state

        if isinstance(action, Navigate):
            url = self._absolute_url(action.url)
            timeout = ctx.deadline.clamp(self.options.navigation_timeout_ms)
            try:
                self._driver.navigate(url, timeout_ms=int(timeout))
            except ProbeError:
                raise
            except Exception as exc:
                raise NavigationError(url, exc) from exc
            state.current_url = self._driver.url
            state.handle = None
            state.handle_selectors = None
            return {"url": url, "final_url": state.current_url}, None

        if isinstance(action, WaitFor):
            timeout_ms = action.timeout_ms if action.timeout_ms is not None else self.options.timeout_ms
            timeout = ctx.deadline.clamp(timeout_ms)
            result = wait_until(
                lambda: action.condition.evaluate(self._driver, ctx.cascade),
                timeout_ms=timeout,
                interval_ms=self.options.interval_ms,
                description=action.condition.describe(),
                sleep=ctx.sleep,
                clock=self._clock,
            )
            state.current_url = self._driver.url
            return {"elapsed_ms": round(result.elapsed_ms, 1), "attempts": result.attempts}, None

        if isinstance(action, Locate):
            handle = self._target(action.selectors, ctx)
            return {"selector": handle.description}, None

        if isinstance(action, (Click, ClickAt)):
            if isinstance(action, ClickAt):
                outcome = ctx.executor.click_at(action.x, action.y)
            else:
                outcome = ctx.executor.click(self._target(action.selectors, ctx), force=action.force)
            state.current_url = outcome.url_after
            state.last_snapshot = outcome.page_state
            return outcome.to_detail(), None

        if isinstance(action, Fill):
            outcome = ctx.executor.fill(self._target(action.selectors, ctx), action.value)
            return outcome.to_detail(), None

        if isinstance(action, Hover):
            outcome = ctx.executor.hover(self._target(action.selectors, ctx))
            return outcome.to_detail(), None

        if isinstance(action, Assert):
            observed = self._evaluate_condition(action.condition, ctx)
            if not observed:
                raise AssertionFailedError(action.condition.describe(), observed)
            return {"observed": observed}, None

        if isinstance(action, Screenshot):
            path = self._recorder.flush_screenshot(action.label)
            return {"path": str(path)}, str(path)

        if isinstance(action, Evaluate):
            try:
                value = self._driver.evaluate(action.script)
            except Exception as exc:
                raise ScriptError(action.script, exc) from exc
            state.last_snapshot = {"evaluate": value}
            return {"result": value}, None

        if isinstance(action, InjectStyle):
            try:
                self._driver.add_style(action.css)
            except Exception as exc:
                raise ScriptError(action.css, exc) from exc
            return {"css_length": len(action.css)}, None

        raise TypeError(f"Unsupported action: {action!r}")

    def _target(self, selectors: tuple[Selector, ...] | None, ctx: _RunContext) -> ElementHandle:
        """Resolve the element a step acts on.

        Steps without selectors reuse the last located element, re-resolving
        its selectors when the handle was dropped for a retry.
        """
        state = ctx.state
        if selectors is None:
            if state.handle is not None:
                return state.handle
            selectors = state.handle_selectors
            if not selectors:
                raise NotFoundError(["<no element located yet>"])
        budget = ctx.deadline.clamp(self.options.cascade_budget_ms)
        handle = ctx.cascade.resolve(selectors, budget_ms=budget)
        state.handle = handle
        state.handle_selectors = selectors
        return handle

    def _evaluate_condition(self, condition: Condition, ctx: _RunContext) -> Any:
        try:
            return condition.evaluate(self._driver, ctx.cascade)
        except ProbeError:
            raise
        except Exception as exc:
            raise PredicateError(exc) from exc

    def _check_assertions(self, conditions: tuple[Condition, ...], ctx: _RunContext) -> tuple[AssertionOutcome, ...]:
        outcomes = []
        for condition in conditions:
            ctx.deadline.check()
            try:
                observed = self._evaluate_condition(condition, ctx)
            except PredicateError as exc:
                outcomes.append(
                    AssertionOutcome(condition.describe(), passed=False, error=ErrorInfo.from_exception(exc))
                )
                continue
            passed = bool(observed)
            if not passed:
                logger.info("Assertion failed: %s", condition.describe())
            outcomes.append(AssertionOutcome(condition.describe(), passed=passed, observed=repr(observed)))
        return tuple(outcomes)

    # -- Helpers -------------------------------------------------------------

    def _absolute_url(self, url: str) -> str:
        if "://" in url or not self.base_url:
            return url
        return f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"

    def _safe_url(self) -> str:
        try:
            return self._driver.url
        except Exception as exc:
            logger.debug("Could not read page URL: %s", exc)
            return ""


def skipped_result(index: int, action: Action) -> ActionResult:
    return ActionResult(
        index=index,
        action=action.describe(),
        kind=action.kind,
        succeeded=False,
        duration_ms=0.0,
        required=action.required,
        attempts=0,
        skipped=True,
    )
