"""Terminal client for browsing and live-tailing uptime monitor check logs."""

__version__ = "0.1.0"
