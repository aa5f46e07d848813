"""Centralized harness defaults."""

# Readiness polling
DEFAULT_TIMEOUT_MS = 10000
DEFAULT_INTERVAL_MS = 500

# Selector cascade budget, shared across the whole selector list
DEFAULT_CASCADE_BUDGET_MS = 5000

# Post-click settle delay
DEFAULT_SETTLE_MS = 1000

# Scenario-level deadline
DEFAULT_SCENARIO_TIMEOUT_MS = 60000
DEFAULT_NAVIGATION_TIMEOUT_MS = 30000

DEFAULT_RETRIES = 0

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_BROWSER = "chromium"

VIEWPORTS = {
    "desktop": (1280, 720),
    "mobile": (375, 667),
    "tablet": (768, 1024),
}

RUN_ID_PREFIX = "UIP-RUN"
