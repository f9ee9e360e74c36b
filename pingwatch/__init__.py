"""Reachability monitor with uptime reports and debounced notifications."""

__version__ = "1.0.0"
