from datetime import datetime, timedelta, timezone

import pytest

from viewer_core.history import HistoryStore
from viewer_core.models import ReconciledUpdate
from viewer_core.storage import SecureStore

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_update(n, intensity=1.25, focus=0.75):
    return ReconciledUpdate(
        image_id=f"IMG{n}",
        captured_at=T0 + timedelta(seconds=n),
        image_bytes=bytes([n % 256]) * 8,
        intensity_average=intensity,
        focus_score=focus,
        classification_label="anomaly" if n % 2 else "healthy",
        histogram=(n, 0, 3),
    )


@pytest.fixture
def secure_store(tmp_path):
    return SecureStore(tmp_path / "history.bin", tmp_path / "store.key")


def test_add_inserts_newest_first():
    history = HistoryStore()
    history.add(make_update(1))
    history.add(make_update(2))

    assert [e.image_id for e in history.entries()] == ["IMG2", "IMG1"]
    assert history.latest().image_id == "IMG2"


def test_cap_evicts_oldest_on_51st_insert():
    history = HistoryStore()
    for n in range(1, 51):
        history.add(make_update(n))
    assert len(history) == 50

    history.add(make_update(51))

    ids = [e.image_id for e in history.entries()]
    assert len(ids) == 50
    assert ids[0] == "IMG51"
    assert "IMG1" not in ids
    assert ids[-1] == "IMG2"


def test_never_exceeds_custom_cap():
    history = HistoryStore(cap=3)
    for n in range(10):
        history.add(make_update(n))
        assert len(history) <= 3
    assert [e.image_id for e in history.entries()] == ["IMG9", "IMG8", "IMG7"]


def test_round_trip_through_encrypted_store(secure_store):
    history = HistoryStore(secure_store)
    for n in range(1, 6):
        assert history.add(make_update(n)) is True

    reloaded = HistoryStore(secure_store).load()

    assert reloaded == history.entries()


def test_round_trip_keeps_unavailable_metrics(secure_store):
    history = HistoryStore(secure_store)
    history.add(make_update(1, intensity=None, focus=None))

    (entry,) = HistoryStore(secure_store).load()
    assert entry.intensity_average is None
    assert entry.focus_score is None


def test_remove_and_clear_are_idempotent(secure_store):
    history = HistoryStore(secure_store)
    for n in range(1, 4):
        history.add(make_update(n))

    history.remove("IMG2")
    history.remove("IMG2")
    history.remove("does-not-exist")
    assert [e.image_id for e in history.entries()] == ["IMG3", "IMG1"]
    assert [e.image_id for e in HistoryStore(secure_store).load()] == ["IMG3", "IMG1"]

    history.clear()
    history.clear()
    assert history.entries() == []
    assert HistoryStore(secure_store).load() == []


def test_load_empty_when_nothing_stored(secure_store):
    assert HistoryStore(secure_store).load() == []


def test_load_empty_on_corrupt_file(secure_store):
    secure_store.path.write_bytes(b"not a fernet token")
    assert HistoryStore(secure_store).load() == []


def test_load_empty_on_unexpected_document(secure_store):
    secure_store.save({"not": "a list"})
    assert HistoryStore(secure_store).load() == []


def test_persistence_failure_is_reported_not_raised():
    class FullDisk:
        def save(self, document):
            return False

        def load(self):
            return None

    history = HistoryStore(FullDisk())

    assert history.add(make_update(1)) is False
    assert history.persistence_ok is False
    assert len(history) == 1
