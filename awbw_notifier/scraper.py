"""Turn-list fingerprinting.

Turns the "Your Games" page into a canonical `TurnInfo` and a stable
signature.  Every lookup degrades to zero/empty when the markup is not
what we expect: a layout change means "no turns detected", never a crash.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

TURN_HEADING = "Your Turn Games"

_TURN_COUNT_RE = re.compile(r"Your Turn Games\s*\((\d+)\)")
_START_COUNT_RE = re.compile(r"Your Games Waiting to Start\s*\((\d+)\)")
_GAME_HREF_RE = re.compile(r"(?:^|/)game\.php\?games_id=(\d+)")
# Fallback over raw markup, for links html.parser does not surface as <a>.
_RAW_GAME_HREF_RE = re.compile(r"""href\s*=\s*["']?game\.php\?games_id=(\d+)""")


@dataclass(frozen=True)
class TurnInfo:
    count: int
    ids: Tuple[int, ...]

    @property
    def signature(self) -> str:
        return make_signature(self.count, self.ids)


def _parse(html: str) -> Optional[BeautifulSoup]:
    try:
        return BeautifulSoup(html or "", "html.parser")
    except Exception:
        logger.warning("Could not parse page markup; treating it as empty.", exc_info=True)
        return None


def _capture_int(pattern: re.Pattern, text: str) -> int:
    m = pattern.search(text or "")
    if not m:
        return 0
    try:
        return int(m.group(1))
    except ValueError:
        return 0


def _game_ids(soup: Optional[BeautifulSoup], html: str) -> Tuple[int, ...]:
    ids: set[int] = set()
    if soup is not None:
        for a in soup.find_all("a", href=True):
            m = _GAME_HREF_RE.search((a.get("href") or "").strip())
            if m:
                ids.add(int(m.group(1)))
    for m in _RAW_GAME_HREF_RE.finditer(html or ""):
        ids.add(int(m.group(1)))
    return tuple(sorted(ids))


def extract_turn_info(html: str) -> TurnInfo:
    """Return the pending-turn count and the sorted, unique game ids."""
    soup = _parse(html)
    text = soup.get_text(" ") if soup is not None else (html or "")

    turn_count = _capture_int(_TURN_COUNT_RE, text)
    start_count = _capture_int(_START_COUNT_RE, text)

    return TurnInfo(count=turn_count + start_count, ids=_game_ids(soup, html))


def looks_like_turn_page(html: str) -> bool:
    return TURN_HEADING in (html or "")


def make_signature(count: int, ids: Iterable[int]) -> str:
    """sha256 over the sorted id list, or over the count when there are no ids."""
    canonical = sorted(set(int(i) for i in ids))
    if canonical:
        source = ",".join(str(i) for i in canonical)
    else:
        source = f"count:{int(count)}"
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


__all__ = ["TurnInfo", "extract_turn_info", "looks_like_turn_page", "make_signature"]
