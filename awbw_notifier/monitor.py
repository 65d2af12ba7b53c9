"""One check-and-notify cycle.

Phases, strictly in order: load state, ensure session, fetch, extract,
compare, persist, notify if changed.  The state is written before the
notification is sent, so a failed or interrupted send never causes the
same change to be announced twice.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from . import config, notifier
from .scraper import extract_turn_info, looks_like_turn_page
from .session import SessionManager
from .store import StateStore, make_store
from .utils import RunDeadline

logger = logging.getLogger(__name__)

# Serializes runs inside one process; separate processes are not coordinated.
_run_lock = threading.Lock()


@dataclass
class RunResult:
    changed: bool
    count: int
    logged_in: bool
    posted: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "changed": self.changed,
            "count": self.count,
            "loggedIn": self.logged_in,
            "posted": self.posted,
        }


def has_changed(stored_sig: str, new_sig: str) -> bool:
    """An empty stored signature is a cold start, never a change."""
    return stored_sig != "" and stored_sig != new_sig


def run_once(
    *,
    store: Optional[StateStore] = None,
    session: Optional[requests.Session] = None,
    deadline: Optional[RunDeadline] = None,
    webhook_url: Optional[str] = None,
    state_key: Optional[str] = None,
) -> RunResult:
    """Run a single cycle. Any failure propagates; there is no partial result."""
    with _run_lock:
        deadline = deadline or RunDeadline()
        own_store = store is None
        if own_store:
            store = make_store(deadline)
        try:
            return _run(store, session, deadline, webhook_url, state_key or config.STATE_OBJECT)
        finally:
            if own_store:
                store.close()


def _run(
    store: StateStore,
    session: Optional[requests.Session],
    deadline: RunDeadline,
    webhook_url: Optional[str],
    key: str,
) -> RunResult:
    deadline.check("state load")
    state = store.load(key)
    previous_sig = state.sig

    with SessionManager(state.cookies_json, session=session, deadline=deadline) as sm:
        html = sm.fetch_authenticated(config.TURNS_URL)
        logged_in = sm.logged_in

        if not looks_like_turn_page(html):
            logger.warning("This is not the Your Turn Games page !")

        info = extract_turn_info(html)
        sig = info.signature
        changed = has_changed(previous_sig, sig)
        logger.info(
            "Turns: count=%d games=%s changed=%s%s",
            info.count,
            list(info.ids),
            changed,
            " (cold start)" if not previous_sig else "",
        )

        state.sig = sig
        state.count = info.count
        state.cookies_json = sm.dump_cookies()

    # Notify time is reserved here; after the save it runs on a plain request timeout.
    deadline.check("state save", reserve=config.NOTIFY_RESERVE_SECONDS if changed else 0.0)
    store.save(key, state)
    logger.info("State saved to %s", key)

    posted = False
    if changed:
        notifier.notify(info.count, info.ids, webhook_url=webhook_url)
        posted = True

    return RunResult(changed=changed, count=info.count, logged_in=logged_in, posted=posted)


__all__ = ["RunResult", "has_changed", "run_once"]
