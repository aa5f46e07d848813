"""uiprobe command-line interface."""
