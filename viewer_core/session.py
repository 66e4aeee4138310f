"""
SessionManager: the only owner of access/refresh tokens.

Login, refresh and logout are serialised by one lock so at most one
credential change is in flight. Fetchers never see the Credentials
object mutate; they ask for a token string snapshot per request.
"""

import threading
from datetime import datetime, timezone, timedelta

import requests

from .constants import (
    API_TIMEOUT, ACCESS_EXPIRY_SKEW_SEC, REFRESH_TOKEN_LIFETIME_DAYS,
    LOGIN_PATH, REFRESH_PATH, ME_PATH,
)
from .config import log
from . import codec
from . import http_client
from .errors import AuthFailure, NoRefreshToken, RequestFailure, DecodeFailure
from .models import Credentials, TokenGrant, UserInfo


def utcnow():
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Token lifecycle against the auth endpoints:
      login()    → POST /api/auth/login, stores and persists Credentials
      refresh()  → POST /api/auth/refresh, rotates both tokens
      validate() → GET /api/auth/me, never raises
      logout()   → forgets everything, memory and disk
    """

    def __init__(self, server_url, http=None, store=None, clock=utcnow, timeout=API_TIMEOUT):
        self.server_url = server_url.rstrip("/")
        self.http = http if http is not None else http_client.create_session()
        self._store = store
        self._clock = clock
        self._timeout = timeout
        self._lock = threading.RLock()
        self._credentials = None
        self._username = None
        self._password = None
        self.current_user = None
        self.persistence_ok = True   # False after a failed save/delete

    # ─── Snapshots / predicates ──────────────────────────────────

    @property
    def credentials(self):
        return self._credentials

    @property
    def is_authenticated(self) -> bool:
        return bool(self._credentials and self._credentials.access_token)

    @property
    def can_relogin(self) -> bool:
        return bool(self._username and self._password)

    def is_access_expired(self) -> bool:
        creds = self._credentials
        return creds is None or self._clock() >= creds.access_expiry

    def is_refresh_expired(self) -> bool:
        creds = self._credentials
        return creds is None or not creds.refresh_token or self._clock() >= creds.refresh_expiry

    def current_access_token(self) -> str:
        creds = self._credentials
        return creds.access_token if creds else ""

    def auth_headers(self):
        return {"Authorization": f"Bearer {self.current_access_token()}"}

    def reset_http(self):
        """Swap in a fresh HTTP session after unexpected transport errors."""
        self.http = http_client.reset_session(self.http)

    # ─── Login / refresh ─────────────────────────────────────────

    def login(self, username, password) -> Credentials:
        with self._lock:
            log.info("Logging in as %s ...", username)
            grant = self._post_for_tokens(
                LOGIN_PATH, {"username": username, "password": password}, "Login")
            self._username = username
            self._password = password
            creds = self._install(grant)
            log.info("Login OK | access token valid until %s", creds.access_expiry.isoformat())
            return creds

    def relogin(self) -> Credentials:
        """Full login with the username/password remembered from the last login()."""
        if not self.can_relogin:
            raise AuthFailure("No credentials remembered for re-login")
        return self.login(self._username, self._password)

    def refresh(self) -> bool:
        """
        Rotate both tokens. Returns False, with no network call, when the
        refresh token itself has expired; the caller must fall back to a
        full login in that case.
        """
        with self._lock:
            creds = self._credentials
            if creds is None or not creds.refresh_token:
                raise NoRefreshToken()
            if self._clock() >= creds.refresh_expiry:
                log.warning("Refresh token expired at %s, full login required",
                            creds.refresh_expiry.isoformat())
                return False

            grant = self._post_for_tokens(
                REFRESH_PATH, {"refresh_token": creds.refresh_token}, "Token refresh")
            creds = self._install(grant)
            log.info("Token refreshed | access token valid until %s", creds.access_expiry.isoformat())
            return True

    def ensure_fresh(self) -> bool:
        """Refresh only if the access token is still expired once the lock is held."""
        with self._lock:
            if not self.is_access_expired():
                return True
            return self.refresh()

    def _post_for_tokens(self, path, payload, what):
        resp = self.http.post(self.server_url + path, json=payload, timeout=self._timeout)
        if not 200 <= resp.status_code < 300:
            log.error("%s failed: HTTP %d", what, resp.status_code)
            raise AuthFailure(f"{what} failed: HTTP {resp.status_code}",
                              status_code=resp.status_code, body=resp.text)
        data = codec.decode_object(resp.text, what)
        return TokenGrant.from_payload(data)

    def _install(self, grant):
        issued = self._clock()
        # Lifetimes of 60s or less get no skew, or the token would be expired on arrival.
        skew = ACCESS_EXPIRY_SKEW_SEC if grant.expires_in > ACCESS_EXPIRY_SKEW_SEC else 0
        creds = Credentials(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            access_expiry=issued + timedelta(seconds=grant.expires_in - skew),
            refresh_expiry=issued + timedelta(days=REFRESH_TOKEN_LIFETIME_DAYS),
        )
        self._credentials = creds
        self._persist()
        return creds

    # ─── Who-am-I ────────────────────────────────────────────────

    def get_current_user(self) -> UserInfo:
        resp = self.http.get(self.server_url + ME_PATH, headers=self.auth_headers(),
                             timeout=self._timeout)
        if resp.status_code == 401:
            raise AuthFailure("Token rejected by /me", status_code=401, body=resp.text)
        if not 200 <= resp.status_code < 300:
            raise RequestFailure(resp.status_code, resp.text, ME_PATH)
        user = UserInfo.from_payload(codec.decode_object(resp.text, "User profile"))
        self.current_user = user
        return user

    def validate(self) -> bool:
        if not self.is_authenticated:
            return False
        try:
            self.get_current_user()
            return True
        except (AuthFailure, RequestFailure, DecodeFailure, requests.RequestException) as e:
            log.warning("Token validation failed: %s", e)
            return False

    # ─── Logout / persistence ────────────────────────────────────

    def logout(self):
        with self._lock:
            had_session = self._credentials is not None
            self._credentials = None
            self._username = None
            self._password = None
            self.current_user = None
            if self._store is not None:
                self.persistence_ok = self._store.delete()
            if had_session:
                log.info("Logged out")

    def load_persisted(self) -> bool:
        """Restore credentials saved by a previous run. False if none usable."""
        if self._store is None:
            return False
        document = self._store.load()
        if not document:
            return False
        try:
            creds = Credentials.from_dict(document)
        except DecodeFailure as e:
            log.warning("Discarding stored credentials: %s", e)
            return False
        with self._lock:
            self._credentials = creds
        log.info("Restored stored session (refresh token valid until %s)",
                 creds.refresh_expiry.isoformat())
        return True

    def _persist(self):
        if self._store is None or self._credentials is None:
            return
        self.persistence_ok = self._store.save(self._credentials.to_dict())
        if not self.persistence_ok:
            log.warning("Session kept in memory only; it will not survive a restart")
