from types import SimpleNamespace

import pytest

from minepattern import persistence
from minepattern.persistence import FirestorePersistence, InMemoryPersistence


class FakeSnapshot:
    def __init__(self, data):
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, store, key):
        self.store = store
        self.key = key

    def get(self, transaction=None):
        return FakeSnapshot(self.store.get(self.key))

    def set(self, doc):
        self.store[self.key] = dict(doc)

    def update(self, data):
        self.store[self.key].update(data)


class FakeCollection:
    def __init__(self, store, name):
        self.store = store
        self.name = name

    def document(self, doc_id):
        return FakeDocument(self.store, (self.name, doc_id))


class FakeTransaction:
    def update(self, ref, data):
        ref.update(data)


class FakeClient:
    def __init__(self):
        self.docs = {}

    def collection(self, name):
        return FakeCollection(self.docs, name)

    def transaction(self):
        return FakeTransaction()


@pytest.fixture
def firestore_store(monkeypatch):
    # run transactional bodies inline against the fake client
    monkeypatch.setattr(persistence, "firestore", SimpleNamespace(transactional=lambda fn: fn))
    client = FakeClient()
    return FirestorePersistence(client=client), client


def test_firestore_pending_round_trip(firestore_store):
    store, client = firestore_store
    assert store.get_session("u1") is None
    assert store.get_pending_mine_count("u1") is None
    store.set_pending_mine_count("u1", 5)
    assert store.get_pending_mine_count("u1") == 5
    assert ("minePatternSessions", "u1") in client.docs
    store.set_pending_mine_count("u1", 9)
    assert store.get_pending_mine_count("u1") == 9
    cleared = store.clear_pending("u1", emitted=True)
    assert cleared["awaiting_mine_count"] is None
    assert cleared["patterns_emitted"] == 1
    stats = store.get_stats("u1")
    assert stats == {
        "user_id": "u1",
        "patterns_emitted": 1,
        "awaiting_identifier": False,
        "pending_mine_count": None,
    }


def test_firestore_clear_missing_session(firestore_store):
    store, _ = firestore_store
    with pytest.raises(KeyError):
        store.clear_pending("nobody")


def test_firestore_users_are_separate_documents(firestore_store):
    store, client = firestore_store
    store.set_pending_mine_count("a", 3)
    store.set_pending_mine_count("b", 4)
    assert store.get_pending_mine_count("a") == 3
    assert store.get_pending_mine_count("b") == 4
    assert len(client.docs) == 2


def test_in_memory_clear_without_emit():
    store = InMemoryPersistence()
    store.set_pending_mine_count("u1", 2)
    store.clear_pending("u1")
    assert store.get_stats("u1")["patterns_emitted"] == 0
    with pytest.raises(KeyError):
        store.clear_pending("u2")
