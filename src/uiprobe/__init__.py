"""uiprobe -- resilient multi-strategy UI probing and interaction harness."""

__version__ = "0.1.0"
