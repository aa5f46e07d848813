"""uiprobe Report Generator -- aggregates scenario reports and renders them.

ReportAggregator collects ScenarioReports in submission order and freezes them
into an AggregateReport, which is persisted as JSON and rendered as markdown.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from uiprobe.engine.diagnostics import iso_timestamp
from uiprobe.engine.errors import ArtifactWriteError, FinalizedError
from uiprobe.engine.scenario_runner import ScenarioReport

logger = logging.getLogger("uiprobe.engine.report_generator")

REPORT_SCHEMA_VERSION = 1


@dataclasses.dataclass(frozen=True)
class ReportSummary:
    total: int
    passed: int
    failed: int


@dataclasses.dataclass(frozen=True)
class AggregateReport:
    """Immutable result of one suite invocation."""

    run_id: str
    timestamp: str
    scenario_reports: tuple[ScenarioReport, ...]
    summary: ReportSummary

    @property
    def passed(self) -> bool:
        return self.summary.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": REPORT_SCHEMA_VERSION,
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "summary": dataclasses.asdict(self.summary),
            "scenario_reports": [r.to_dict() for r in self.scenario_reports],
        }


class ReportAggregator:
    """Accumulates ScenarioReports until :meth:`finalize` freezes them."""

    def __init__(self, run_id: str = "", now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)) -> None:
        self.run_id = run_id
        self._now = now
        self._reports: list[ScenarioReport] = []
        self._final: AggregateReport | None = None

    @property
    def finalized(self) -> bool:
        return self._final is not None

    def add_report(self, report: ScenarioReport) -> None:
        """Append *report*.

        Raises:
            FinalizedError: :meth:`finalize` was already called.
        """
        if self._final is not None:
            raise FinalizedError(f"Cannot add report for '{report.label}': aggregate {self.run_id!r} is finalized")
        self._reports.append(report)

    def finalize(self) -> AggregateReport:
        """Compute the summary and freeze. Later calls return the same object."""
        if self._final is None:
            total = len(self._reports)
            passed = sum(1 for r in self._reports if r.success)
            self._final = AggregateReport(
                run_id=self.run_id,
                timestamp=iso_timestamp(self._now()),
                scenario_reports=tuple(self._reports),
                summary=ReportSummary(total=total, passed=passed, failed=total - passed),
            )
            logger.info("Aggregate %s finalized: %d/%d passed", self.run_id, passed, total)
        return self._final


def write_json(aggregate: AggregateReport, path: Path) -> Path:
    """Persist *aggregate* as JSON.

    The file is written next to its final location and then renamed, so an
    earlier report at *path* is never left half-overwritten.

    Raises:
        ArtifactWriteError: The file could not be written.
    """
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(aggregate.to_dict(), indent=2, default=str))
        tmp.replace(path)
    except OSError as exc:
        raise ArtifactWriteError(str(path), exc) from exc
    return path


class ReportGenerator:
    """Generates markdown reports from aggregate reports."""

    def generate(self, aggregate: AggregateReport) -> str:
        """Generate a complete report in markdown format.

        Args:
            aggregate: The finalized AggregateReport.

        Returns:
            Complete markdown report as a string.
        """
        sections = [
            self._header(aggregate),
            self._summary(aggregate),
            self._scenario_table(aggregate),
            self._failures_section(aggregate),
            self._diagnostics_section(aggregate),
            self._screenshots_section(aggregate),
        ]
        return "\n\n".join(s for s in sections if s)

    def _header(self, a: AggregateReport) -> str:
        verdict = "PASS" if a.passed else "FAIL"
        return f"# uiprobe Report\n\n**Run ID:** {a.run_id}\n**Date:** {a.timestamp}\n**Verdict:** {verdict}"

    def _summary(self, a: AggregateReport) -> str:
        steps = sum(len(r.results) for r in a.scenario_reports)
        failed_steps = sum(len(r.failed_results()) for r in a.scenario_reports)
        return (
            f"## Summary\n"
            f"- Scenarios: {a.summary.total} total, {a.summary.passed} passed, {a.summary.failed} failed\n"
            f"- Steps: {steps - failed_steps}/{steps} succeeded"
        )

    def _scenario_table(self, a: AggregateReport) -> str:
        if not a.scenario_reports:
            return "## Scenarios\n\nNo scenarios were run."
        lines = [
            "## Scenarios",
            "| Scenario | Role | Viewport | Status | Steps | Duration |",
            "|----------|------|----------|--------|-------|----------|",
        ]
        for r in a.scenario_reports:
            ok = sum(1 for s in r.results if s.succeeded)
            lines.append(
                f"| {r.scenario} | {r.role or '-'} | {r.viewport or '-'} | {r.status.value.upper()} "
                f"| {ok}/{len(r.results)} | {r.duration_ms / 1000:.1f}s |"
            )
        return "\n".join(lines)

    def _failures_section(self, a: AggregateReport) -> str:
        lines = ["## Failures", ""]
        for r in a.scenario_reports:
            if r.error:
                lines.append(f"- **{r.label}**: {r.error.type}: {r.error.message}")
            for step in r.failed_results():
                message = step.error.message if step.error else "failed"
                if len(message) > 120:
                    message = message[:117] + "..."
                flag = "" if step.required else " (optional)"
                lines.append(f"- **{r.label}** step {step.index + 1} `{step.action}`{flag}: {message}")
            for outcome in r.assertions:
                if not outcome.passed:
                    lines.append(f"- **{r.label}** assertion `{outcome.condition}` did not hold")
        if len(lines) == 2:
            return "## Failures\n\nNo failures."
        return "\n".join(lines)

    def _diagnostics_section(self, a: AggregateReport) -> str:
        lines = ["## Diagnostic Events", ""]
        for r in a.scenario_reports:
            for event in r.events:
                message = event.message if len(event.message) <= 120 else event.message[:117] + "..."
                lines.append(f"- **{r.label}** `{event.kind}` {event.timestamp}: {message}")
        if len(lines) == 2:
            return "## Diagnostic Events\n\nNo events recorded."
        return "\n".join(lines)

    def _screenshots_section(self, a: AggregateReport) -> str:
        lines = ["## Screenshots", ""]
        for r in a.scenario_reports:
            for step in r.results:
                if step.artifact:
                    lines.append(f"- **{r.label}** step {step.index + 1}: `{step.artifact}`")
        if len(lines) == 2:
            return "## Screenshots\n\nNo screenshots captured."
        return "\n".join(lines)
