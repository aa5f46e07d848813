"""DiagnosticRecorder -- console, page-error and network capture plus screenshots.

A recorder is attached to exactly one browser context for that context's
lifetime. It records everything it is told about, in arrival order, and leaves
classification to the reporting layer.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from uiprobe.engine.errors import ArtifactWriteError
from uiprobe.engine.protocols import BrowserDriver

logger = logging.getLogger("uiprobe.engine.diagnostics")

EVENT_CONSOLE = "console"
EVENT_PAGE_ERROR = "pageerror"
EVENT_NETWORK_ERROR = "networkerror"
EVENT_HTTP_STATUS = "httpStatus"


@dataclasses.dataclass(frozen=True)
class DiagnosticEvent:
    """One raw browser signal."""

    kind: str  # console | pageerror | networkerror | httpStatus
    message: str
    timestamp: str
    url: str | None = None


def iso_timestamp(moment: datetime) -> str:
    """UTC ISO 8601 with millisecond precision and a ``Z`` suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def filename_timestamp(moment: datetime) -> str:
    """ISO timestamp made filesystem-safe by replacing ``:`` and ``.`` with ``-``."""
    return re.sub(r"[:.]", "-", iso_timestamp(moment))


def sanitize_for_filename(text: str) -> str:
    """Keep word characters and hyphens; collapse whitespace to underscores."""
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"\s+", "_", text.strip())
    return text[:100] or "unnamed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiagnosticRecorder:
    """Buffers diagnostic events for one browser context and writes screenshots.

    Use :meth:`attach` to build and subscribe in one step, and :meth:`detach`
    (or a ``with`` block) to unsubscribe when the context closes::

        with DiagnosticRecorder.attach(driver, artifacts_dir, "customer-login") as recorder:
            ...
            events = recorder.drain()
    """

    def __init__(
        self,
        driver: BrowserDriver,
        artifacts_dir: Path,
        scenario: str,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._driver = driver
        self.artifacts_dir = Path(artifacts_dir)
        self.scenario = scenario
        self._now = now
        self._events: list[DiagnosticEvent] = []
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {}

    @classmethod
    def attach(
        cls,
        driver: BrowserDriver,
        artifacts_dir: Path,
        scenario: str,
        now: Callable[[], datetime] = _utcnow,
    ) -> DiagnosticRecorder:
        recorder = cls(driver, artifacts_dir, scenario, now=now)
        recorder._subscribe()
        return recorder

    @property
    def attached(self) -> bool:
        return bool(self._handlers)

    def _subscribe(self) -> None:
        if self._handlers:
            return
        self._handlers = {
            "console": self._on_console,
            "pageerror": self._on_page_error,
            "requestfailed": self._on_request_failed,
            "response": self._on_response,
        }
        for kind, handler in self._handlers.items():
            self._driver.subscribe(kind, handler)
        logger.debug("Recorder attached for %s", self.scenario)

    def detach(self) -> None:
        """Unsubscribe from the driver. Buffered events stay available."""
        for kind, handler in self._handlers.items():
            try:
                self._driver.unsubscribe(kind, handler)
            except Exception as exc:
                # The context may already be closed.
                logger.debug("Unsubscribe %s failed: %s", kind, exc)
        self._handlers = {}

    def __enter__(self) -> DiagnosticRecorder:
        self._subscribe()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.detach()

    # -- Events --------------------------------------------------------------

    def record(self, event: DiagnosticEvent) -> None:
        self._events.append(event)

    def drain(self) -> list[DiagnosticEvent]:
        """Return buffered events in arrival order and clear the buffer."""
        events, self._events = self._events, []
        return events

    def _stamp(self) -> str:
        return iso_timestamp(self._now())

    def _on_console(self, payload: dict[str, Any]) -> None:
        level = payload.get("type", "log")
        self.record(DiagnosticEvent(EVENT_CONSOLE, f"[{level}] {payload.get('text', '')}", self._stamp()))

    def _on_page_error(self, payload: dict[str, Any]) -> None:
        self.record(DiagnosticEvent(EVENT_PAGE_ERROR, str(payload.get("message", "")), self._stamp()))

    def _on_request_failed(self, payload: dict[str, Any]) -> None:
        failure = payload.get("failure") or "request failed"
        self.record(
            DiagnosticEvent(
                EVENT_NETWORK_ERROR,
                f"{payload.get('method', 'GET')} {payload.get('url', '')}: {failure}",
                self._stamp(),
                url=payload.get("url"),
            )
        )

    def _on_response(self, payload: dict[str, Any]) -> None:
        status = int(payload.get("status", 0))
        if status < 400:
            return
        self.record(
            DiagnosticEvent(
                EVENT_HTTP_STATUS,
                f"HTTP {status} {payload.get('url', '')}",
                self._stamp(),
                url=payload.get("url"),
            )
        )

    # -- Screenshots ---------------------------------------------------------

    def screenshot_path(self, label: str) -> Path:
        """Build a unique ``{scenario}_{label}_{timestamp}.png`` path."""
        stem = "_".join(
            (
                sanitize_for_filename(self.scenario),
                sanitize_for_filename(label),
                filename_timestamp(self._now()),
            )
        )
        path = self.artifacts_dir / f"{stem}.png"
        counter = 1
        while path.exists():
            path = self.artifacts_dir / f"{stem}-{counter}.png"
            counter += 1
        return path

    def flush_screenshot(self, label: str) -> Path:
        """Write a screenshot of the current page.

        Raises:
            ArtifactWriteError: The directory or file could not be written.
        """
        try:
            self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArtifactWriteError(str(self.artifacts_dir), exc) from exc
        path = self.screenshot_path(label)
        try:
            self._driver.screenshot(path)
        except Exception as exc:
            raise ArtifactWriteError(str(path), exc) from exc
        logger.debug("Screenshot saved: %s", path)
        return path
