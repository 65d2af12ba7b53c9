"""
AWBW turn notifier package.

This package contains modules for fetching the Advance Wars By Web
"your turn" page with a persisted login, fingerprinting the pending
games, persisting the last observation, notifying Discord and exposing
a run trigger over HTTP.
"""

__all__ = [
    "config",
    "errors",
    "utils",
    "scraper",
    "session",
    "store",
    "notifier",
    "monitor",
    "server",
    "main",
]
