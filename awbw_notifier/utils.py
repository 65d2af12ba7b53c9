"""Helper utilities.

This module centralises the HTTP session factory, the per-run deadline
and the retry policy applied to idempotent GET requests.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, Optional

import requests
from requests import Response
from tenacity import (RetryCallState, Retrying, after_log,
                      retry_if_exception_type, stop_after_attempt,
                      wait_exponential)

from . import config
from .errors import DeadlineExceeded


logger = logging.getLogger(__name__)


def get_http_session() -> requests.Session:
    """Return a new HTTP session with the notifier's default headers.

    Caller is responsible for closing the session.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": config.USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
        }
    )
    return session


class RunDeadline:
    """Wall-clock budget shared by every network call of one run."""

    def __init__(self, seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.seconds = float(config.RUN_DEADLINE_SECONDS if seconds is None else seconds)
        self._expires_at = clock() + self.seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, phase: str = "", reserve: float = 0.0) -> None:
        """Raise `DeadlineExceeded` unless more than ``reserve`` seconds are left."""
        if self.remaining() <= reserve:
            where = f" during {phase}" if phase else ""
            raise DeadlineExceeded(f"Run deadline of {self.seconds:.0f}s exceeded{where}")

    def timeout(self, cap: Optional[float] = None) -> float:
        """Per-request timeout: the configured cap, shortened to what is left."""
        self.check()
        cap = config.REQUEST_TIMEOUT if cap is None else cap
        return min(float(cap), self.remaining())


def _deadline_stop(deadline: RunDeadline) -> Callable[[RetryCallState], bool]:
    def _stop(retry_state: RetryCallState) -> bool:
        return deadline.expired()
    return _stop


def retryable_get(method: Callable[..., Response]) -> Callable[..., Response]:
    """Decorator applying the GET retry policy.

    The decorated function must accept a `requests.Session` as its first
    argument, followed by URL, a `timeout` keyword and optional kwargs,
    and return a `requests.Response`.  Only connection errors and
    timeouts are retried, up to ``config.HTTP_GET_ATTEMPTS`` attempts
    with exponential back-off between 1 and 10 seconds, and never past
    the run deadline.  With the default of one attempt the call fails
    fast.
    """

    @functools.wraps(method)
    def wrapper(session: requests.Session, url: str, *, deadline: Optional[RunDeadline] = None, **kwargs: Any) -> Response:
        def _attempt() -> Response:
            timeout = deadline.timeout() if deadline is not None else config.REQUEST_TIMEOUT
            return method(session, url, timeout=timeout, **kwargs)

        stop = stop_after_attempt(config.HTTP_GET_ATTEMPTS)
        if deadline is not None:
            stop = stop | _deadline_stop(deadline)

        retrying = Retrying(
            reraise=True,
            stop=stop,
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            after=after_log(logger, logging.WARNING),
        )
        return retrying(_attempt)

    return wrapper


def request_timeout(deadline: Optional[RunDeadline]) -> float:
    """Timeout for a single non-retried request."""
    return deadline.timeout() if deadline is not None else config.REQUEST_TIMEOUT


__all__ = ["get_http_session", "retryable_get", "request_timeout", "RunDeadline"]
