"""uiprobe engine -- core interaction modules.

Provides the complete interaction harness:
- wait_until: Bounded readiness polling
- SelectorCascade: Ordered multi-strategy element resolution, first match wins
- InteractionExecutor: Verified click / fill / hover with fallbacks
- DiagnosticRecorder: Console, page error and network event capture plus screenshots
- ScenarioRunner: Executes one scenario against a driver
- ReportAggregator: Collects scenario reports into one aggregate report
- ReportGenerator: Markdown report generation from an aggregate report
"""

from uiprobe.engine.action_executor import InteractionExecutor, InteractionOutcome
from uiprobe.engine.diagnostics import DiagnosticEvent, DiagnosticRecorder
from uiprobe.engine.poller import PollResult, wait_until
from uiprobe.engine.report_generator import AggregateReport, ReportAggregator, ReportGenerator, ReportSummary
from uiprobe.engine.scenario import Condition, Scenario, Selector
from uiprobe.engine.scenario_runner import ActionResult, ScenarioReport, ScenarioRunner, ScenarioStatus
from uiprobe.engine.selector_cascade import SelectorCascade

# The Playwright-backed driver and the suite orchestrator are NOT imported
# here; import them from their modules when a real browser is needed:
#   from uiprobe.engine.browser_runner import BrowserSession
#   from uiprobe.engine.orchestrator import SuiteOrchestrator

__all__ = [
    "ActionResult",
    "AggregateReport",
    "Condition",
    "DiagnosticEvent",
    "DiagnosticRecorder",
    "InteractionExecutor",
    "InteractionOutcome",
    "PollResult",
    "ReportAggregator",
    "ReportGenerator",
    "ReportSummary",
    "Scenario",
    "ScenarioReport",
    "ScenarioRunner",
    "ScenarioStatus",
    "Selector",
    "SelectorCascade",
    "wait_until",
]
