"""ReadinessPoller -- bounded waiting for a condition to become true."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any, Callable

from uiprobe.engine.errors import PredicateError, WaitTimeoutError
from uiprobe.models import DEFAULT_INTERVAL_MS, DEFAULT_TIMEOUT_MS

logger = logging.getLogger("uiprobe.engine.poller")


@dataclasses.dataclass(frozen=True)
class PollResult:
    """Outcome of a successful wait."""

    value: Any
    elapsed_ms: float
    attempts: int


def _sleep_ms(ms: float) -> None:
    time.sleep(ms / 1000.0)


def wait_until(
    predicate: Callable[[], Any],
    timeout_ms: float = DEFAULT_TIMEOUT_MS,
    interval_ms: float = DEFAULT_INTERVAL_MS,
    *,
    description: str = "",
    sleep: Callable[[float], None] = _sleep_ms,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult:
    """Poll *predicate* until it returns a truthy value.

    The predicate is evaluated immediately; if truthy, the call returns with
    no delay. Otherwise it sleeps ``interval_ms`` between evaluations, with
    the last sleep clamped to whatever remains of ``timeout_ms`` so the call
    never overshoots the budget by more than one predicate evaluation.

    Args:
        predicate: Zero-argument callable. Falsy results keep polling.
        timeout_ms: Total budget in milliseconds.
        interval_ms: Delay between evaluations.
        description: Human-readable label used in errors and logs.
        sleep: Millisecond sleep function. The runner passes the driver's
            own wait so the browser keeps dispatching events.
        clock: Monotonic clock in seconds.

    Returns:
        PollResult with the first truthy value.

    Raises:
        WaitTimeoutError: The budget elapsed with the predicate still falsy.
        PredicateError: The predicate raised.
    """
    if interval_ms <= 0:
        raise ValueError("interval_ms must be positive")

    start = clock()
    attempts = 0
    while True:
        attempts += 1
        try:
            value = predicate()
        except PredicateError:
            raise
        except Exception as exc:
            logger.debug("Predicate %s raised %s", description or predicate, exc)
            raise PredicateError(exc) from exc

        elapsed_ms = (clock() - start) * 1000.0
        if value:
            return PollResult(value=value, elapsed_ms=elapsed_ms, attempts=attempts)

        remaining_ms = timeout_ms - elapsed_ms
        if remaining_ms <= 0:
            logger.debug("Wait %s timed out after %d attempts", description, attempts)
            raise WaitTimeoutError(elapsed_ms, value, description)

        sleep(min(interval_ms, remaining_ms))
