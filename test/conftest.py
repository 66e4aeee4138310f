import base64
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from viewer_core.session import SessionManager
from viewer_core.storage import SecureStore

SERVER = "https://scope.test"


class FakeResponse:
    """Just enough of requests.Response for the viewer core."""

    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self.text = text


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def token_body(access="access-1", refresh="refresh-1", expires_in=3600):
    return {"access_token": access, "refresh_token": refresh, "expires_in": expires_in}


def image_body(image_id="IMG1", payload=b"\x89PNG-bytes", timestamp="2024-05-01T12:00:00Z"):
    return {
        "image_id": image_id,
        "timestamp": timestamp,
        "image_data_base64": base64.b64encode(payload).decode("ascii"),
    }


def result_body(image_id="IMG1", intensity=4.2, focus=0.91, label="healthy",
                histogram=(0, 0, 5, 10, 0)):
    return {
        "image_id": image_id,
        "intensity_average": intensity,
        "focus_score": focus,
        "classification_label": label,
        "histogram": list(histogram),
    }


def user_body(username="shir"):
    return {
        "user_id": "u-1",
        "username": username,
        "email": "shir@example.com",
        "role": "viewer",
        "is_active": True,
        "created_at": "2024-01-01T00:00:00Z",
        "last_login": None,
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def http():
    """MagicMock standing in for requests.Session; set post/get side effects per test."""
    return MagicMock(name="http")


@pytest.fixture
def store(tmp_path):
    return SecureStore(tmp_path / "session.bin", tmp_path / "store.key")


@pytest.fixture
def session(http, clock, store):
    return SessionManager(SERVER, http=http, store=store, clock=clock)


@pytest.fixture
def logged_in(session, http):
    """A session that has logged in once with token_body()."""
    http.post.return_value = FakeResponse(200, token_body())
    session.login("shir", "secret")
    http.post.reset_mock()
    http.post.return_value = None
    return session
