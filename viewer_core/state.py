"""
ViewerState: single source of truth for what the presentation layer shows
about the core (phase, status line, flags, last seen image).

Mutated only by the poll orchestrator and the ViewerApp command handlers,
through set_status()/set_phase(), which also notify listeners.
"""

import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import log


class PollPhase(enum.Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    POLLING = "polling"
    REAUTHENTICATING = "reauthenticating"
    STOPPED = "stopped"


class StatusType(enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ViewerState:
    # ── Lifecycle ─────────────────────────────────────────────
    phase: PollPhase = PollPhase.IDLE
    running: bool = False

    # ── Status line ───────────────────────────────────────────
    status_message: str = "Please login to start monitoring."
    status_type: StatusType = StatusType.INFO
    status_time: float = field(default_factory=time.time)

    # ── Polling ───────────────────────────────────────────────
    last_seen_image_id: Optional[str] = None
    last_update_time: float = 0.0
    consecutive_failures: int = 0

    listeners: List[Callable] = field(default_factory=list, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def set_status(self, message, status_type=StatusType.INFO):
        with self._lock:
            self.status_message = message
            self.status_type = status_type
            self.status_time = time.time()
        self._notify()

    def set_phase(self, phase):
        with self._lock:
            if self.phase is phase:
                return
            self.phase = phase
        self._notify()

    def mark_seen(self, image_id):
        with self._lock:
            self.last_seen_image_id = image_id
            self.last_update_time = time.time()
            self.consecutive_failures = 0

    def _notify(self):
        for listener in list(self.listeners):
            try:
                listener(self)
            except Exception as e:
                log.error("Status listener failed: %s", e, exc_info=True)
