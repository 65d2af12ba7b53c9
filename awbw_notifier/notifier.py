"""Discord webhook notifier.

Posts a one-line summary of the pending turns to a Discord channel.
The message text is a pure function of (count, ids).
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

import requests

from . import config
from .errors import ConfigError, NotificationError, TransportError
from .utils import RunDeadline, get_http_session, request_timeout

logger = logging.getLogger(__name__)

MAX_LINKS = 5
SEPARATOR = " • "


def _game_url(game_id: int) -> str:
    return f"{config.BASE_URL}game.php?games_id={game_id}"


def build_message(count: int, ids: Sequence[int]) -> str:
    """Format the turn summary.

    Links are shown for the first five ids in the order given, followed by
    "+K more" when there are more.
    """
    if count == 0 and not ids:
        return "✅ **AWBW** → No pending turns"

    parts = [f"🎮 **AWBW ({count})** → [All]({config.TURNS_URL})"]
    parts.extend(f"[{gid}]({_game_url(gid)})" for gid in ids[:MAX_LINKS])
    if len(ids) > MAX_LINKS:
        parts.append(f"+{len(ids) - MAX_LINKS} more")
    return SEPARATOR.join(parts)


def send_message(
    webhook_url: str,
    content: str,
    session: Optional[requests.Session] = None,
    deadline: Optional[RunDeadline] = None,
) -> None:
    """POST ``{"content": ...}`` to the webhook. Single attempt."""
    close_session = False
    if session is None:
        session = get_http_session()
        close_session = True

    try:
        try:
            resp = session.post(webhook_url, json={"content": content}, timeout=request_timeout(deadline))
        except requests.RequestException as exc:
            raise TransportError(f"Discord webhook request failed: {exc}") from exc

        if not resp.ok:
            raise NotificationError(resp.status_code, resp.text or "")
        logger.info("Discord notification sent (HTTP %s)", resp.status_code)
    finally:
        if close_session:
            session.close()


def notify(
    count: int,
    ids: Sequence[int],
    webhook_url: Optional[str] = None,
    session: Optional[requests.Session] = None,
    deadline: Optional[RunDeadline] = None,
) -> str:
    """Build and send the summary; returns the message that was posted."""
    if webhook_url is None:
        webhook_url = config.DISCORD_WEBHOOK_URL
    if not webhook_url:
        raise ConfigError("DISCORD_WEBHOOK_URL env missing")

    msg = build_message(count, ids)
    logger.info("Sending turn notification (count=%d, games=%d)", count, len(ids))
    send_message(webhook_url, msg, session=session, deadline=deadline)
    return msg


__all__ = ["build_message", "send_message", "notify"]
