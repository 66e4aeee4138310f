"""
HistoryStore: the newest-first log of reconciled updates.

Capped at HISTORY_CAP entries; the oldest is evicted in the same call that
inserts past the cap. Every mutation is followed by a best-effort save of
the whole sequence.
"""

import threading

from .constants import HISTORY_CAP
from .config import log
from .errors import DecodeFailure
from .models import ReconciledUpdate


class HistoryStore:

    def __init__(self, store=None, cap=HISTORY_CAP):
        self._store = store
        self._cap = cap
        self._entries = []
        self._lock = threading.Lock()
        self.persistence_ok = True

    def __len__(self):
        return len(self._entries)

    def entries(self):
        """Snapshot, newest first."""
        with self._lock:
            return list(self._entries)

    def latest(self):
        with self._lock:
            return self._entries[0] if self._entries else None

    def add(self, update) -> bool:
        """Insert at the head, evict past the cap, persist. Returns durability."""
        with self._lock:
            self._entries.insert(0, update)
            evicted = self._entries[self._cap:]
            del self._entries[self._cap:]
            if evicted:
                log.info("History full, evicted %s", ", ".join(e.image_id for e in evicted))
            return self._save_locked()

    def remove(self, image_id) -> bool:
        with self._lock:
            self._entries = [e for e in self._entries if e.image_id != image_id]
            return self._save_locked()

    def clear(self) -> bool:
        with self._lock:
            self._entries = []
            return self._save_locked()

    def load(self):
        """Replace the in-memory log with the persisted one. Empty on any failure."""
        loaded = []
        document = self._store.load() if self._store is not None else None
        if isinstance(document, list):
            try:
                loaded = [ReconciledUpdate.from_dict(item) for item in document]
            except (DecodeFailure, TypeError, AttributeError) as e:
                log.warning("Discarding stored history: %s", e)
                loaded = []
        elif document is not None:
            log.warning("Discarding stored history: unexpected format")
        with self._lock:
            self._entries = loaded[:self._cap]
            if loaded:
                log.info("Loaded %d history entries", len(self._entries))
            return list(self._entries)

    def _save_locked(self):
        if self._store is None:
            return True
        ok = self._store.save([e.to_dict() for e in self._entries])
        if not ok:
            log.warning("History kept in memory only (%d entries)", len(self._entries))
        self.persistence_ok = ok
        return ok
