"""Authenticated access to the AWBW turn page.

A `SessionManager` owns one `requests.Session` (and its cookie jar) for
the duration of a run.  It is seeded from the persisted cookie document,
logs in again when the site reports an anonymous session, and dumps the
jar back out so the next run can reuse it.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Dict, Optional

import requests
from bs4 import BeautifulSoup
from requests.cookies import RequestsCookieJar, create_cookie

from . import config
from .errors import AuthenticationError, ConfigError, TransportError
from .utils import RunDeadline, get_http_session, request_timeout, retryable_get

logger = logging.getLogger(__name__)

_LOGIN_FORM_MARKERS = ("Login", "Username", "Password", "Forgot Password")


@retryable_get
def _get(session: requests.Session, url: str, **kwargs) -> requests.Response:
    """Thin wrapper around session.get with the GET retry policy."""
    return session.get(url, **kwargs)


def is_logged_out(html: str) -> bool:
    return config.LOGGED_OUT_MARKER in (html or "")


def looks_like_login_form(html: str) -> bool:
    return all(marker in (html or "") for marker in _LOGIN_FORM_MARKERS)


def hidden_form_fields(html: str) -> Dict[str, str]:
    """Collect name/value pairs of every hidden <input> inside a <form>.

    These carry the anti-forgery/session tokens the login POST must echo
    back.  Inputs without a name are skipped; a missing value becomes "".
    """
    fields: Dict[str, str] = {}
    soup = BeautifulSoup(html or "", "html.parser")
    for inp in soup.select("form input"):
        name = inp.get("name")
        if not name:
            continue
        if (inp.get("type") or "").strip().lower() != "hidden":
            continue
        fields[name] = inp.get("value") or ""
    return fields


# ---- Cookie persistence ------------------------------------------------------

def dump_cookies(jar: RequestsCookieJar) -> str:
    """Serialize a cookie jar to a stable JSON document.

    Expired cookies are dropped and the rest are sorted by
    (domain, path, name) so equal jars always produce equal text.
    """
    now = time.time()
    cookies = []
    for c in sorted(jar, key=lambda c: (c.domain or "", c.path or "", c.name)):
        if c.expires is not None and c.expires <= now:
            continue
        cookies.append(
            {
                "name": c.name,
                "value": c.value,
                "domain": c.domain,
                "path": c.path,
                "expires": c.expires,
                "secure": bool(c.secure),
                "http_only": c.has_nonstandard_attr("HttpOnly"),
            }
        )
    return json.dumps({"cookies": cookies}, separators=(",", ":"))


def load_cookies(jar: RequestsCookieJar, text: Optional[str]) -> int:
    """Restore cookies written by `dump_cookies` into ``jar``.

    A corrupt document leaves the jar empty (the next fetch will simply
    trigger a login).  Returns the number of cookies loaded.
    """
    if not text:
        return 0
    now = time.time()
    try:
        doc = json.loads(text)
        entries = doc.get("cookies", []) if isinstance(doc, dict) else doc
        loaded = []
        for e in entries:
            expires = e.get("expires")
            if expires is not None and expires <= now:
                continue
            loaded.append(
                create_cookie(
                    e["name"],
                    e.get("value") or "",
                    domain=e.get("domain") or "",
                    path=e.get("path") or "/",
                    expires=expires,
                    secure=bool(e.get("secure")),
                    rest={"HttpOnly": None} if e.get("http_only") else {},
                )
            )
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        logger.warning("Stored cookie document is unreadable (%s); starting with an empty jar.", exc)
        jar.clear()
        return 0

    for cookie in loaded:
        jar.set_cookie(cookie)
    return len(loaded)


# ---- Session manager ---------------------------------------------------------

class SessionManager:
    """Cookie-backed AWBW session scoped to a single run."""

    def __init__(
        self,
        cookies_json: Optional[str] = None,
        *,
        session: Optional[requests.Session] = None,
        deadline: Optional[RunDeadline] = None,
    ) -> None:
        self.session = session if session is not None else get_http_session()
        self.deadline = deadline
        self.logged_in = False
        self.login_attempted = False
        n = load_cookies(self.session.cookies, cookies_json)
        logger.debug("Restored %d cookies from state", n)

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def dump_cookies(self) -> str:
        return dump_cookies(self.session.cookies)

    def fetch(self, url: str) -> str:
        """GET ``url`` and return the body; non-2xx is a transport failure."""
        try:
            resp = _get(self.session, url, deadline=self.deadline)
        except requests.RequestException as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc
        if not resp.ok:
            raise TransportError(f"GET {url} returned HTTP {resp.status_code}")
        return resp.text

    def fetch_authenticated(self, target_url: Optional[str] = None) -> str:
        """Fetch the target page, logging in once if the session is anonymous."""
        url = target_url or config.TURNS_URL

        html = self.fetch(url)
        self.logged_in = not is_logged_out(html)
        if self.logged_in:
            return html

        logger.info("Login required")
        self.login()

        html = self.fetch(url)
        self.logged_in = not is_logged_out(html)
        if not self.logged_in:
            raise AuthenticationError("Login failed: still not logged in after POST")
        logger.info("Login succeeded")
        return html

    def login(self, username: Optional[str] = None, password: Optional[str] = None) -> None:
        """Submit the login form with freshly harvested hidden fields.

        Single attempt.  Whether it worked is decided by the caller's
        re-fetch, not by the login response.
        """
        username = username or config.AWBW_USERNAME
        password = password or config.AWBW_PASSWORD
        if not username:
            raise ConfigError("AWBW_USERNAME env missing")
        if not password:
            raise ConfigError("AWBW_PASSWORD env missing")

        self.login_attempted = True
        form = hidden_form_fields(self.fetch(config.LOGIN_URL))
        form["username"] = username
        form["password"] = password

        try:
            resp = self.session.post(
                config.LOGIN_URL,
                data=form,
                timeout=request_timeout(self.deadline),
            )
        except requests.RequestException as exc:
            raise TransportError(f"POST {config.LOGIN_URL} failed: {exc}") from exc

        if not resp.ok:
            logger.warning("Login POST returned HTTP %s", resp.status_code)
        if looks_like_login_form(resp.text or ""):
            logger.warning("Login response looks like login page again")


__all__ = [
    "SessionManager",
    "dump_cookies",
    "load_cookies",
    "hidden_form_fields",
    "is_logged_out",
    "looks_like_login_form",
]
