from unittest.mock import MagicMock

import pytest

from conftest import SERVER, FakeResponse, token_body, user_body
from viewer_core.app import ViewerApp
from viewer_core.history import HistoryStore
from viewer_core.session import SessionManager
from viewer_core.state import StatusType


@pytest.fixture
def config():
    return {"serverUrl": SERVER, "username": "", "pollIntervalSec": 5, "validateEachCycle": True}


@pytest.fixture
def fetchers():
    return MagicMock(name="image_fetcher"), MagicMock(name="result_fetcher")


@pytest.fixture
def app(config, session, fetchers):
    images, results = fetchers
    return ViewerApp(config, session, HistoryStore(), images, results)


@pytest.fixture
def statuses(app):
    seen = []
    app.add_status_listener(lambda state: seen.append((state.status_message, state.status_type)))
    return seen


def test_logged_out_availability(app):
    assert app.can_login()
    assert not app.can_start()
    assert not app.can_stop()
    assert not app.can_refresh()
    assert not app.can_logout()
    assert not app.can_show_history()


def test_login_success(app, http, statuses):
    http.post.return_value = FakeResponse(200, token_body())
    http.get.return_value = FakeResponse(200, user_body("shir"))

    assert app.login("shir", "secret") is True

    assert statuses[-1] == ("Authentication successful! Welcome, shir", StatusType.SUCCESS)
    assert app.can_start()
    assert app.can_logout()
    assert not app.can_login()


def test_login_success_without_user_info(app, http, statuses):
    http.post.return_value = FakeResponse(200, token_body())
    http.get.return_value = FakeResponse(500, text="down")

    assert app.login("shir", "secret") is True
    assert statuses[-1][1] is StatusType.SUCCESS
    assert "User info unavailable" in statuses[-1][0]


def test_login_failure_reports_error(app, http, statuses):
    http.post.return_value = FakeResponse(401, text="bad credentials")

    assert app.login("shir", "wrong") is False

    assert statuses[-1][1] is StatusType.ERROR
    assert statuses[-1][0].startswith("Authentication failed")
    assert app.can_login()


def test_login_requires_credentials(app, http, statuses):
    assert app.login() is False
    http.post.assert_not_called()
    assert statuses[-1] == ("Username and password are required.", StatusType.ERROR)


def test_login_falls_back_to_configured_credentials(config, session, fetchers, http):
    config.update(username="cfg-user", password="cfg-pass")
    app = ViewerApp(config, session, HistoryStore(), *fetchers)
    http.post.return_value = FakeResponse(200, token_body())
    http.get.return_value = FakeResponse(200, user_body("cfg-user"))

    assert app.login() is True
    assert http.post.call_args.kwargs["json"] == {"username": "cfg-user", "password": "cfg-pass"}


def test_logout(app, http, store, statuses):
    http.post.return_value = FakeResponse(200, token_body())
    http.get.return_value = FakeResponse(200, user_body())
    app.login("shir", "secret")

    assert app.logout() is True

    assert statuses[-1] == ("Logged out successfully.", StatusType.SUCCESS)
    assert not store.path.exists()
    assert app.can_login()
    assert app.logout() is False


def test_initialize_without_stored_session(app, statuses):
    assert app.initialize() is False
    assert statuses[-1] == ("Please login to start monitoring.", StatusType.INFO)


def test_initialize_restores_valid_session(config, http, clock, store, fetchers):
    http.post.return_value = FakeResponse(200, token_body())
    SessionManager(SERVER, http=http, store=store, clock=clock).login("shir", "secret")

    session = SessionManager(SERVER, http=http, store=store, clock=clock)
    app = ViewerApp(config, session, HistoryStore(), *fetchers)
    http.get.return_value = FakeResponse(200, user_body("shir"))

    assert app.initialize() is True
    assert app.state.status_message == "Welcome back, shir!"
    assert app.can_start()


def test_initialize_refreshes_expired_access_token(config, http, clock, store, fetchers):
    http.post.return_value = FakeResponse(200, token_body())
    SessionManager(SERVER, http=http, store=store, clock=clock).login("shir", "secret")
    clock.advance(7200)

    session = SessionManager(SERVER, http=http, store=store, clock=clock)
    app = ViewerApp(config, session, HistoryStore(), *fetchers)
    http.post.return_value = FakeResponse(200, token_body("access-2", "refresh-2"))
    http.get.return_value = FakeResponse(200, user_body())

    assert app.initialize() is True
    assert session.current_access_token() == "access-2"


def test_initialize_discards_rejected_session(config, http, clock, store, fetchers):
    http.post.return_value = FakeResponse(200, token_body())
    SessionManager(SERVER, http=http, store=store, clock=clock).login("shir", "secret")

    session = SessionManager(SERVER, http=http, store=store, clock=clock)
    app = ViewerApp(config, session, HistoryStore(), *fetchers)
    http.get.return_value = FakeResponse(401, text="revoked")

    assert app.initialize() is False
    assert not session.is_authenticated
    assert not store.path.exists()


def test_show_history_empty_sets_status(app, logged_in, statuses):
    assert app.show_history() == []
    assert statuses[-1][0].startswith("No images in history yet")


def test_refresh_now_runs_one_cycle(app, logged_in, http, fetchers):
    images, results = fetchers
    images.fetch_latest.side_effect = RuntimeError("stop here")
    http.get.return_value = FakeResponse(200, user_body())

    worker = app.refresh_now()
    worker.join(2)

    images.fetch_latest.assert_called_once()
    assert not app.can_stop()


def test_refresh_now_unavailable_when_logged_out(app, fetchers):
    assert app.refresh_now() is None
    fetchers[0].fetch_latest.assert_not_called()
