"""uiprobe Orchestrator -- runs a whole scenario set.

Loads a scenario set, expands it across roles and viewports, runs each
expanded scenario in its own browser context, aggregates the reports and
writes the run artifacts::

    <runs_dir>/UIP-RUN-<timestamp>-<suffix>/
        run-status.json
        report.json
        report.md
        screenshots/
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import json
import logging
import random
import time
from pathlib import Path
from typing import Any, Callable

from uiprobe.config import UIProbeConfig, UIProbeConfigError
from uiprobe.engine.browser_runner import BrowserSession
from uiprobe.engine.diagnostics import DiagnosticRecorder
from uiprobe.engine.report_generator import AggregateReport, ReportAggregator, ReportGenerator, write_json
from uiprobe.engine.scenario import Scenario
from uiprobe.engine.scenario_loader import ExpandedScenario, expand_scenarios, load_scenario_set
from uiprobe.engine.scenario_runner import (
    ErrorInfo,
    ScenarioReport,
    ScenarioRunner,
    ScenarioStatus,
    skipped_result,
)
from uiprobe.models import RUN_ID_PREFIX

logger = logging.getLogger("uiprobe.engine.orchestrator")


@dataclasses.dataclass
class SuiteOutcome:
    """Where a finished run left its artifacts."""

    aggregate: AggregateReport
    run_dir: Path
    report_path: Path
    markdown: str


class SuiteOrchestrator:
    """Coordinates a complete run: load, expand, execute, aggregate, persist.

    Args:
        config: Loaded configuration (env and CLI overrides already applied).
        session_factory: Builds the browser session; takes the browser name
            and the headless flag.
    """

    def __init__(
        self,
        config: UIProbeConfig,
        session_factory: Callable[..., Any] = BrowserSession,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._session_factory = session_factory
        self._clock = clock

    def run(
        self,
        set_name: str,
        roles: list[str] | None = None,
        viewports: list[str] | None = None,
        on_report: Callable[[ScenarioReport], None] | None = None,
    ) -> SuiteOutcome:
        """Execute every scenario of *set_name* that passes the filters.

        Args:
            set_name: Scenario set file name without extension.
            roles: Only run these roles.
            viewports: Only run these viewports.
            on_report: Called with each ScenarioReport as it finishes.

        Raises:
            UIProbeConfigError: The set is missing or nothing matches.
            ScenarioDefinitionError: The set is malformed.
        """
        scenario_set = load_scenario_set(self._config.resolve_scenario_set(set_name))
        run_id = self._generate_run_id()

        expanded = expand_scenarios(
            scenario_set,
            self._config.viewports,
            roles=roles,
            viewports=viewports,
            run_id=run_id,
        )
        if not expanded:
            raise UIProbeConfigError(
                f"No scenarios in '{set_name}' match the filters (roles={roles or 'any'}, "
                f"viewports={viewports or 'any'})"
            )

        base_url = self._config.effective_base_url(scenario_set.base_url)

        run_dir = self._config.runs_dir / run_id
        screenshots_dir = run_dir / "screenshots"
        screenshots_dir.mkdir(parents=True, exist_ok=True)
        start_time_iso = dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")
        self._write_status_file(run_dir, "running", run_id, set_name, start_time_iso)
        logger.info(
            "uiprobe run %s starting: set=%s, %d scenario(s), base_url=%s", run_id, set_name, len(expanded), base_url
        )

        aggregator = ReportAggregator(run_id)
        all_passed = False
        try:
            session = self._session_factory(self._config.browser, self._config.headless)
            session.start()
            try:
                for item in expanded:
                    report = self._run_one(session, item, base_url, screenshots_dir)
                    aggregator.add_report(report)
                    if on_report is not None:
                        on_report(report)
            finally:
                session.stop()

            aggregate = aggregator.finalize()
            all_passed = aggregate.passed
            report_path = write_json(aggregate, run_dir / "report.json")
            markdown = ReportGenerator().generate(aggregate)
            (run_dir / "report.md").write_text(markdown)
            logger.info("Saved reports to %s", run_dir)
        finally:
            final_status = "completed" if all_passed else "failed"
            end_time_iso = dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")
            self._write_status_file(
                run_dir, final_status, run_id, set_name, start_time_iso, end_time=end_time_iso, passed=all_passed
            )

        return SuiteOutcome(aggregate=aggregate, run_dir=run_dir, report_path=report_path, markdown=markdown)

    def _run_one(
        self,
        session: Any,
        item: ExpandedScenario,
        base_url: str,
        screenshots_dir: Path,
    ) -> ScenarioReport:
        """Run one expanded scenario in a fresh browser context."""
        scenario = item.scenario
        try:
            driver = session.new_driver(item.viewport_size)
        except Exception as exc:
            logger.error("Could not open a browser context for %s: %s", scenario.label, exc)
            return _errored_report(scenario, exc)

        recorder: DiagnosticRecorder | None = None
        try:
            recorder = DiagnosticRecorder.attach(driver, screenshots_dir, scenario.label)
            with recorder:
                runner = ScenarioRunner(
                    driver,
                    recorder,
                    base_url=base_url,
                    options=self._config.options,
                    clock=self._clock,
                )
                return runner.run(scenario)
        except Exception as exc:
            logger.error("Scenario %s aborted: %s", scenario.label, exc)
            events = tuple(recorder.drain()) if recorder is not None else ()
            return _errored_report(scenario, exc, events)
        finally:
            driver.close()

    @staticmethod
    def _write_status_file(
        run_dir: Path,
        status: str,
        run_id: str,
        scenario_set: str,
        start_time: str,
        end_time: str | None = None,
        passed: bool | None = None,
    ) -> None:
        """Write or update the run-status.json file."""
        data: dict[str, Any] = {
            "status": status,
            "run_id": run_id,
            "scenario_set": scenario_set,
            "start_time": start_time,
        }
        if end_time is not None:
            data["end_time"] = end_time
        if passed is not None:
            data["passed"] = passed
        try:
            (run_dir / "run-status.json").write_text(json.dumps(data, indent=2))
        except OSError as exc:
            logger.warning("Failed to write run-status.json: %s", exc)

    @staticmethod
    def _generate_run_id() -> str:
        """Generate a unique run ID."""
        ts = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%d-%H%M%S")
        # Short random suffix to avoid collisions
        suffix = "".join(random.choices("abcdefghijklmnopqrstuvwxyz0123456789", k=4))
        return f"{RUN_ID_PREFIX}-{ts}-{suffix}"


def _errored_report(scenario: Scenario, exc: BaseException, events: tuple = ()) -> ScenarioReport:
    results = tuple(skipped_result(i, action) for i, action in enumerate(scenario.steps))
    return ScenarioReport(
        scenario=scenario.name,
        status=ScenarioStatus.ERRORED,
        results=results,
        events=events,
        role=scenario.role,
        viewport=scenario.viewport,
        error=ErrorInfo.from_exception(exc),
    )
