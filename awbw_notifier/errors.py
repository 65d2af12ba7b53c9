"""Exception taxonomy for a single notifier run.

Every error aborts the run; the caller (scheduler or HTTP trigger) is
expected to retry on its own schedule.
"""

from __future__ import annotations

from typing import Optional


class NotifierError(Exception):
    """Base class for all run failures."""


class ConfigError(NotifierError):
    """A required setting is missing at the point it is needed."""


class TransportError(NotifierError):
    """Network or IO failure talking to the monitored site."""


class DeadlineExceeded(TransportError):
    """The end-to-end run deadline elapsed."""


class AuthenticationError(NotifierError):
    """Login was attempted and the page still reports an anonymous session."""


class StorageError(NotifierError):
    """The state store could not be read or written."""


class NotificationError(NotifierError):
    """The webhook answered with a non-2xx status."""

    def __init__(self, status: Optional[int], body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"Webhook failed: {status} {body}".rstrip())


__all__ = [
    "NotifierError",
    "ConfigError",
    "TransportError",
    "DeadlineExceeded",
    "AuthenticationError",
    "StorageError",
    "NotificationError",
]
