"""
PollOrchestrator: the background poll loop.

One daemon thread runs run_cycle() back to back, waiting the delay each
cycle returns:
  token health → fetch image → novelty gate → fetch result → reconcile → emit

Nothing raised inside a cycle ends the loop. Auth failures switch the
phase to REAUTHENTICATING, malformed data skips the cycle, everything
else backs off for ERROR_BACKOFF_SEC.
"""

import threading

import requests

from .constants import POLL_INTERVAL_SEC, ERROR_BACKOFF_SEC, DESYNC_RETRY_SEC
from .config import log
from .errors import (
    AuthFailure, DecodeFailure, DesyncFailure, FetchCancelled, TimeoutExhausted,
)
from .models import ReconciledUpdate
from .state import ViewerState, PollPhase, StatusType


class PollOrchestrator:

    def __init__(self, session, image_fetcher, result_fetcher, history, state=None,
                 poll_interval=POLL_INTERVAL_SEC, error_backoff=ERROR_BACKOFF_SEC,
                 desync_retry=DESYNC_RETRY_SEC, validate_each_cycle=True):
        self._session = session
        self._image_fetcher = image_fetcher
        self._result_fetcher = result_fetcher
        self._history = history
        self.state = state if state is not None else ViewerState()
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.desync_retry = desync_retry
        self.validate_each_cycle = validate_each_cycle

        self._update_listeners = []
        self._wake = threading.Event()
        self._cycle_lock = threading.Lock()   # one cycle at a time, loop or triggered
        self._start_lock = threading.Lock()   # guards _thread and the running flag
        self._thread = None

    # ─── Listeners ───────────────────────────────────────────────

    def add_update_listener(self, callback):
        """callback(ReconciledUpdate), called on the poll thread."""
        self._update_listeners.append(callback)

    def _emit(self, update):
        for callback in list(self._update_listeners):
            try:
                callback(update)
            except Exception as e:
                log.error("Update listener failed for %s: %s", update.image_id, e, exc_info=True)

    # ─── Start / stop ────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self.state.running

    def start(self) -> bool:
        """Begin polling. Logs in first (AUTHENTICATING) when no session is held."""
        with self._start_lock:
            if self.state.running:
                return False

            if not self._session.is_authenticated:
                self.state.set_phase(PollPhase.AUTHENTICATING)
                self.state.set_status("Authenticating...", StatusType.INFO)
                if not self._login_with_remembered():
                    self.state.set_phase(PollPhase.IDLE)
                    return False

            self.state.running = True
            self.state.set_phase(PollPhase.POLLING)
            self.state.set_status("Monitoring started", StatusType.INFO)
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name="poll-loop", daemon=True)
                self._thread.start()
            log.info("Polling started (interval=%ss, backoff=%ss)",
                     self.poll_interval, self.error_backoff)
            return True

    def stop(self):
        """
        Clear the running flag and wake the loop so it exits promptly; an
        in-flight request is not interrupted.
        """
        with self._start_lock:
            if not self.state.running:
                return
            self.state.running = False
            self._wake.set()
            if self._thread is None:
                self.state.set_phase(PollPhase.STOPPED)
        self.state.set_status("Monitoring stopped", StatusType.INFO)
        log.info("Stop requested")

    def join(self, timeout=None):
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def trigger_now(self):
        """Start the next cycle immediately, or run one cycle if not polling."""
        with self._start_lock:
            if self.state.running and self._thread is not None:
                self._wake.set()
                return None
        worker = threading.Thread(target=self.run_cycle, name="poll-once", daemon=True)
        worker.start()
        return worker

    def _run(self):
        log.info("Poll loop thread started")
        while True:
            while self.state.running:
                delay = self.run_cycle(is_cancelled=lambda: not self.state.running)
                self._wake.wait(delay)
                self._wake.clear()
            with self._start_lock:
                if not self.state.running:
                    self._thread = None
                    self.state.set_phase(PollPhase.STOPPED)
                    break
        log.info("Poll loop thread exited")

    # ─── One cycle ───────────────────────────────────────────────

    def run_cycle(self, is_cancelled=None):
        """Run one poll cycle. Returns seconds to wait before the next one."""
        with self._cycle_lock:
            try:
                return self._cycle(is_cancelled)
            except FetchCancelled as e:
                log.info("%s", e)
                return 0
            except AuthFailure as e:
                if not self.state.running and not self._session.is_authenticated:
                    # logged out while this cycle was in flight
                    log.info("Cycle ended after logout: %s", e)
                    return self.poll_interval
                log.error("Authentication failure during poll: %s", e)
                self.state.set_phase(PollPhase.REAUTHENTICATING)
                self.state.set_status(f"Authentication failed: {e}", StatusType.ERROR)
                return self.poll_interval
            except DecodeFailure as e:
                log.warning("Skipping cycle, malformed server data: %s", e)
                self.state.set_status(f"Skipped malformed data: {e}", StatusType.WARNING)
                return self.poll_interval
            except (TimeoutExhausted, requests.RequestException) as e:
                self._record_failure(e)
                self._session.reset_http()
                return self.error_backoff
            except Exception as e:
                self._record_failure(e)
                return self.error_backoff

    def _record_failure(self, error):
        log.error("Data polling failed: %s", error, exc_info=True)
        self.state.consecutive_failures += 1
        self.state.set_status(f"Data polling failed: {error}", StatusType.ERROR)

    def _cycle(self, is_cancelled):
        if self.state.phase is PollPhase.REAUTHENTICATING:
            if not self._reauthenticate():
                return self.poll_interval

        if self._session.is_access_expired():
            if self._session.is_refresh_expired():
                self.state.set_status("Refresh token expired. Attempting re-login...",
                                      StatusType.ERROR)
                if not self._reauthenticate():
                    return self.poll_interval
            else:
                self.state.set_status("Refreshing authentication token...", StatusType.WARNING)
                if self._try_refresh():
                    self.state.set_status("Token refreshed successfully", StatusType.SUCCESS)
                else:
                    self.state.set_status("Token refresh failed. Attempting re-login...",
                                          StatusType.ERROR)
                    if not self._reauthenticate():
                        return self.poll_interval

        if self.validate_each_cycle and not self._session.validate():
            self.state.set_status("Token validation failed. Attempting re-login...",
                                  StatusType.ERROR)
            if not self._reauthenticate():
                return self.poll_interval

        image = self._image_fetcher.fetch_latest(is_cancelled=is_cancelled)
        if image.image_id == self.state.last_seen_image_id:
            log.debug("No new image (still %s)", image.image_id)
            return self.poll_interval

        result = self._result_fetcher.fetch_latest(is_cancelled=is_cancelled)
        try:
            update = ReconciledUpdate.from_records(image, result)
        except DesyncFailure as e:
            log.info("Image/result desync, retrying in %ss: %s", self.desync_retry, e)
            self.state.set_status(f"Waiting for analysis of {image.image_id}...",
                                  StatusType.WARNING)
            return self.desync_retry

        durable = self._history.add(update)
        self.state.mark_seen(update.image_id)
        if durable:
            self.state.set_status(f"New data received: {update.image_id}", StatusType.SUCCESS)
        else:
            self.state.set_status(
                f"New data received: {update.image_id} (history not saved to disk)",
                StatusType.WARNING)
        log.info("New data received: %s", update.image_id)
        self._emit(update)
        return self.poll_interval

    # ─── Authentication helpers ──────────────────────────────────

    def _try_refresh(self) -> bool:
        try:
            return self._session.refresh()
        except (AuthFailure, DecodeFailure, requests.RequestException) as e:
            log.warning("Token refresh failed: %s", e)
            return False

    def _login_with_remembered(self) -> bool:
        try:
            self._session.relogin()
        except (AuthFailure, DecodeFailure, requests.RequestException) as e:
            log.error("Login failed: %s", e)
            self.state.set_status(f"Authentication failed: {e}", StatusType.ERROR)
            return False
        return True

    def _reauthenticate(self) -> bool:
        self.state.set_phase(PollPhase.REAUTHENTICATING)
        try:
            self._session.relogin()
        except (AuthFailure, DecodeFailure, requests.RequestException) as e:
            log.error("Re-authentication failed: %s", e)
            self.state.set_status(f"Re-authentication failed: {e}", StatusType.ERROR)
            return False
        self.state.set_phase(PollPhase.POLLING if self.state.running else PollPhase.IDLE)
        self.state.set_status("Re-authentication successful", StatusType.SUCCESS)
        return True
