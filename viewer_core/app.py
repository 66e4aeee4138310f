"""
ViewerApp: the command surface handed to the presentation layer.

Commands (each gated by a can_*() predicate):
  start_monitoring()  : authenticated and not running
  stop_monitoring()   : running
  refresh_now()       : authenticated
  login()             : not authenticated
  logout()            : authenticated
  show_history()      : authenticated

Commands may be called from any thread. Credential changes go through the
SessionManager lock, history changes through the HistoryStore lock, and
poll cycles through the orchestrator's cycle lock.
"""

import requests

from .constants import VIEWER_VERSION, POLL_INTERVAL_SEC
from .config import log, SESSION_FILE, HISTORY_FILE, KEY_FILE
from .storage import SecureStore
from .session import SessionManager
from .history import HistoryStore
from .api import ImageFetcher, ResultFetcher
from .poller import PollOrchestrator
from .state import ViewerState, StatusType
from .errors import AuthFailure, DecodeFailure, RequestFailure


class ViewerApp:

    def __init__(self, config, session, history, image_fetcher=None, result_fetcher=None):
        self._config = config
        self.session = session
        self.history = history
        self.state = ViewerState()
        self.poller = PollOrchestrator(
            session,
            image_fetcher or ImageFetcher(session),
            result_fetcher or ResultFetcher(session),
            history,
            state=self.state,
            poll_interval=config.get("pollIntervalSec", POLL_INTERVAL_SEC),
            validate_each_cycle=config.get("validateEachCycle", True),
        )

    @classmethod
    def from_config(cls, config, session_file=SESSION_FILE, history_file=HISTORY_FILE,
                    key_file=KEY_FILE):
        """Wire the production collaborators: encrypted stores + pooled HTTP session."""
        session = SessionManager(config["serverUrl"], store=SecureStore(session_file, key_file))
        history = HistoryStore(SecureStore(history_file, key_file))
        return cls(config, session, history)

    # ─── Listeners ───────────────────────────────────────────────

    def add_update_listener(self, callback):
        self.poller.add_update_listener(callback)

    def add_status_listener(self, callback):
        self.state.listeners.append(callback)

    # ─── Availability ────────────────────────────────────────────

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    def can_start(self):
        return self.is_authenticated and not self.poller.is_running

    def can_stop(self):
        return self.poller.is_running

    def can_refresh(self):
        return self.is_authenticated

    def can_login(self):
        return not self.is_authenticated

    def can_logout(self):
        return self.is_authenticated

    def can_show_history(self):
        return self.is_authenticated

    # ─── Startup ─────────────────────────────────────────────────

    def initialize(self) -> bool:
        """Load history and any stored session. True if the stored session is usable."""
        log.info("Microscope Viewer v%s initializing", VIEWER_VERSION)
        self.history.load()

        if self.session.load_persisted():
            self.state.set_status("Validating stored authentication...", StatusType.INFO)
            if self.session.is_access_expired() and not self.session.is_refresh_expired():
                try:
                    self.session.refresh()
                except (AuthFailure, DecodeFailure, requests.RequestException) as e:
                    log.warning("Stored refresh token rejected: %s", e)

            if self.session.validate():
                user = self.session.current_user
                self.state.set_status(
                    f"Welcome back, {user.username if user else 'User'}!", StatusType.SUCCESS)
                return True

            log.info("Stored session is no longer valid, clearing it")
            self.session.logout()

        self.state.set_status("Please login to start monitoring.", StatusType.INFO)
        return False

    # ─── Commands ────────────────────────────────────────────────

    def login(self, username=None, password=None) -> bool:
        if not self.can_login():
            return False
        username = username or self._config.get("username", "")
        password = password or self._config.get("password", "")
        if not username or not password:
            self.state.set_status("Username and password are required.", StatusType.ERROR)
            return False

        self.state.set_status("Authenticating with server...", StatusType.INFO)
        try:
            self.session.login(username, password)
        except (AuthFailure, DecodeFailure, requests.RequestException) as e:
            log.error("Login failed: %s", e)
            self.state.set_status(f"Authentication failed: {e}", StatusType.ERROR)
            return False

        try:
            user = self.session.get_current_user()
            self.state.set_status(f"Authentication successful! Welcome, {user.username}",
                                  StatusType.SUCCESS)
        except (AuthFailure, DecodeFailure, RequestFailure, requests.RequestException) as e:
            log.warning("User info unavailable after login: %s", e)
            self.state.set_status("Authentication successful! (User info unavailable)",
                                  StatusType.SUCCESS)
        return True

    def logout(self) -> bool:
        if not self.can_logout():
            return False
        self.state.set_status("Logging out...", StatusType.INFO)
        self.poller.stop()
        self.session.logout()
        self.state.set_status("Logged out successfully.", StatusType.SUCCESS)
        return True

    def start_monitoring(self) -> bool:
        if not self.can_start():
            return False
        return self.poller.start()

    def stop_monitoring(self) -> bool:
        if not self.can_stop():
            return False
        self.poller.stop()
        return True

    def refresh_now(self):
        """Run a cycle right away. Returns the worker thread when not polling."""
        if not self.can_refresh():
            return None
        self.state.set_status("Refreshing data...", StatusType.INFO)
        return self.poller.trigger_now()

    def show_history(self):
        if not self.can_show_history():
            return []
        entries = self.history.entries()
        if not entries:
            self.state.set_status(
                "No images in history yet. Start monitoring to see images here.",
                StatusType.INFO)
        return entries

    def remove_history_item(self, image_id) -> bool:
        return self.history.remove(image_id)

    def clear_history(self) -> bool:
        return self.history.clear()

    def shutdown(self, timeout=None):
        self.poller.stop()
        self.poller.join(timeout)
        log.info("ViewerApp shut down.")
