from __future__ import annotations

import json
import logging
import time

import pytest
import requests
from requests.cookies import RequestsCookieJar

from awbw_notifier import config
from awbw_notifier.errors import AuthenticationError, ConfigError, TransportError
from awbw_notifier.session import (
    SessionManager,
    dump_cookies,
    hidden_form_fields,
    load_cookies,
    looks_like_login_form,
)

from fakes import (
    LOGGED_OUT_PAGE,
    LOGIN_FORM_AGAIN,
    LOGIN_PAGE,
    TURN_PAGE,
    FakeResponse,
    FakeSession,
    logged_in_site,
    login_sets_cookie,
)


def _site_requiring_login(after_login: str = TURN_PAGE, login_reply=login_sets_cookie) -> FakeSession:
    return (
        FakeSession()
        .add("GET", config.TURNS_URL, FakeResponse(200, LOGGED_OUT_PAGE), FakeResponse(200, after_login))
        .add("GET", config.LOGIN_URL, FakeResponse(200, LOGIN_PAGE))
        .add("POST", config.LOGIN_URL, login_reply)
    )


def test_hidden_form_fields_keeps_only_named_hidden_inputs():
    assert hidden_form_fields(LOGIN_PAGE) == {"csrf_token": "tok123", "redirect": "yourgames.php"}


def test_hidden_form_fields_defaults_missing_value():
    html = '<form><input type="hidden" name="nonce"></form>'

    assert hidden_form_fields(html) == {"nonce": ""}


def test_hidden_form_fields_ignores_inputs_outside_forms():
    assert hidden_form_fields('<input type="hidden" name="x" value="1">') == {}


def test_looks_like_login_form_needs_every_marker():
    assert looks_like_login_form(LOGIN_FORM_AGAIN)
    assert not looks_like_login_form("Login Username Password")


def test_fetch_authenticated_reuses_valid_session():
    session = logged_in_site()
    sm = SessionManager(session=session)

    html = sm.fetch_authenticated()

    assert html == TURN_PAGE
    assert sm.logged_in
    assert not sm.login_attempted
    assert session.methods() == [("GET", config.TURNS_URL)]


def test_fetch_authenticated_logs_in_with_hidden_fields():
    session = _site_requiring_login()
    sm = SessionManager(session=session)

    html = sm.fetch_authenticated()

    assert html == TURN_PAGE
    assert sm.logged_in and sm.login_attempted
    assert session.methods() == [
        ("GET", config.TURNS_URL),
        ("GET", config.LOGIN_URL),
        ("POST", config.LOGIN_URL),
        ("GET", config.TURNS_URL),
    ]
    form = session.calls[2][2]["data"]
    assert form == {
        "csrf_token": "tok123",
        "redirect": "yourgames.php",
        "username": "commander",
        "password": "hunter2",
    }
    assert session.cookies.get("PHPSESSID") == "fresh"


def test_fetch_authenticated_fails_when_still_logged_out():
    session = _site_requiring_login(after_login=LOGGED_OUT_PAGE)
    sm = SessionManager(session=session)

    with pytest.raises(AuthenticationError):
        sm.fetch_authenticated()

    assert not sm.logged_in
    # one login attempt only
    assert session.methods().count(("POST", config.LOGIN_URL)) == 1


def test_login_form_echo_only_warns(caplog):
    session = _site_requiring_login(login_reply=FakeResponse(200, LOGIN_FORM_AGAIN))
    sm = SessionManager(session=session)

    with caplog.at_level(logging.WARNING, logger="awbw_notifier.session"):
        html = sm.fetch_authenticated()

    assert html == TURN_PAGE
    assert "looks like login page again" in caplog.text


def test_missing_credentials_stop_before_posting(monkeypatch):
    monkeypatch.setattr(config, "AWBW_PASSWORD", None)
    session = _site_requiring_login()
    sm = SessionManager(session=session)

    with pytest.raises(ConfigError):
        sm.fetch_authenticated()

    assert ("POST", config.LOGIN_URL) not in session.methods()


def test_error_status_is_a_transport_error():
    session = FakeSession().add("GET", config.TURNS_URL, FakeResponse(503, "Service Unavailable"))

    with pytest.raises(TransportError):
        SessionManager(session=session).fetch_authenticated()


def test_network_failure_is_a_transport_error():
    session = FakeSession().add("GET", config.TURNS_URL, requests.ConnectionError("reset"))

    with pytest.raises(TransportError):
        SessionManager(session=session).fetch_authenticated()


def test_get_is_retried_when_enabled(monkeypatch):
    monkeypatch.setattr(config, "HTTP_GET_ATTEMPTS", 2)
    monkeypatch.setattr(time, "sleep", lambda s: None)
    session = FakeSession().add(
        "GET", config.TURNS_URL, requests.Timeout("slow"), FakeResponse(200, TURN_PAGE)
    )

    assert SessionManager(session=session).fetch_authenticated() == TURN_PAGE
    assert len(session.calls) == 2


def test_get_fails_fast_by_default():
    session = FakeSession().add(
        "GET", config.TURNS_URL, requests.Timeout("slow"), FakeResponse(200, TURN_PAGE)
    )

    with pytest.raises(TransportError):
        SessionManager(session=session).fetch_authenticated()
    assert len(session.calls) == 1


# ---- cookies -----------------------------------------------------------------

def _jar(*cookies) -> RequestsCookieJar:
    jar = RequestsCookieJar()
    for name, value, kwargs in cookies:
        jar.set(name, value, **kwargs)
    return jar


def test_cookie_round_trip_restores_cookies():
    future = int(time.time()) + 3600
    jar = _jar(
        ("PHPSESSID", "abc", {"domain": "awbw.amarriner.com", "path": "/"}),
        ("remember", "1", {"domain": "awbw.amarriner.com", "path": "/", "expires": future, "secure": True}),
    )

    sm = SessionManager(dump_cookies(jar), session=FakeSession())

    assert sm.session.cookies.get("PHPSESSID") == "abc"
    assert sm.session.cookies.get("remember") == "1"
    restored = {c.name: c for c in sm.session.cookies}
    assert restored["remember"].expires == future
    assert restored["remember"].secure


def test_cookie_dump_is_stable_for_equal_jars():
    a = _jar(("b", "2", {"domain": "x.test"}), ("a", "1", {"domain": "x.test"}))
    b = _jar(("a", "1", {"domain": "x.test"}), ("b", "2", {"domain": "x.test"}))

    assert dump_cookies(a) == dump_cookies(b)
    assert [c["name"] for c in json.loads(dump_cookies(a))["cookies"]] == ["a", "b"]


def test_expired_cookies_are_dropped():
    jar = _jar(("old", "x", {"domain": "x.test", "expires": int(time.time()) - 10}))

    assert json.loads(dump_cookies(jar)) == {"cookies": []}


def test_corrupt_cookie_document_starts_empty(caplog):
    jar = RequestsCookieJar()

    with caplog.at_level(logging.WARNING, logger="awbw_notifier.session"):
        assert load_cookies(jar, "{not json") == 0

    assert len(jar) == 0
    assert "unreadable" in caplog.text


def test_missing_cookie_document_is_empty():
    assert load_cookies(RequestsCookieJar(), None) == 0
