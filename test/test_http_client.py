import socket

import pytest
import requests
import urllib3.util.connection

from conftest import SERVER, FakeClock, FakeResponse, token_body
from viewer_core.api import ImageFetcher
from viewer_core.errors import TimeoutExhausted
from viewer_core.http_client import create_session, reset_session
from viewer_core.session import SessionManager


@pytest.fixture
def connects(monkeypatch):
    """Every socket connect urllib3 makes times out; returns the attempt log."""
    attempts = []

    def timed_out(address, *args, **kwargs):
        attempts.append(address)
        raise socket.timeout("timed out")

    monkeypatch.setattr(urllib3.util.connection, "create_connection", timed_out)
    return attempts


@pytest.fixture
def http():
    session = create_session()
    session.trust_env = False
    yield session
    session.close()


def test_adapter_does_not_retry():
    session = create_session()
    adapter = session.get_adapter(SERVER)
    assert adapter.max_retries.total == 0
    assert session.headers["Accept"] == "application/json"


def test_reset_session_returns_fresh_session():
    old = create_session()
    new = reset_session(old)
    assert new is not old
    assert new.get_adapter(SERVER).max_retries.total == 0


def test_one_connect_per_request(http, connects):
    with pytest.raises(requests.ConnectTimeout):
        http.get(SERVER + "/api/image", timeout=1)
    assert len(connects) == 1


def test_login_timeout_is_one_connect(http, connects):
    session = SessionManager(SERVER, http=http, clock=FakeClock())

    with pytest.raises(requests.Timeout):
        session.login("shir", "secret")

    assert len(connects) == 1
    assert not session.is_authenticated


def test_fetch_makes_exactly_three_connects(http, connects, monkeypatch):
    session = SessionManager(SERVER, http=http, clock=FakeClock())
    monkeypatch.setattr(http, "post", lambda *args, **kwargs: FakeResponse(200, token_body()))
    session.login("shir", "secret")
    sleeps = []

    with pytest.raises(TimeoutExhausted) as excinfo:
        ImageFetcher(session, sleep=sleeps.append).fetch_latest()

    assert excinfo.value.attempts == 3
    assert len(connects) == 3
    assert sleeps == [2, 2]
