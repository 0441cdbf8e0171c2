import copy

import pytest

from vibe.db import firestore_store
from vibe.db.firestore_store import FirestoreStore
from vibe.schemas import Message, ProfileSettings, UserProfile

pytestmark = pytest.mark.anyio


class Snapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class DocumentRef:
    def __init__(self, db, path):
        self.db = db
        self.path = path
        self.id = path[-1]

    def collection(self, name):
        return CollectionRef(self.db, self.path + (name,))

    def get(self):
        return Snapshot(self, self.db.docs.get(self.path))

    def set(self, data, merge=False):
        if merge and self.path in self.db.docs:
            merged = self.db.docs[self.path]
            merged.update(copy.deepcopy(data))
        else:
            self.db.docs[self.path] = copy.deepcopy(data)

    def delete(self):
        self.db.docs.pop(self.path, None)


class Query:
    """Ordered by one field, ties broken by document id in the same direction."""

    def __init__(self, collection, field=None, descending=False, after=None, limit=None):
        self.collection = collection
        self.field = field
        self.descending = descending
        self.after = after
        self._limit = limit

    def _key(self, snap):
        return (snap.to_dict().get(self.field), snap.id)

    def start_after(self, snapshot):
        return Query(self.collection, self.field, self.descending, snapshot, self._limit)

    def limit(self, n):
        return Query(self.collection, self.field, self.descending, self.after, n)

    def stream(self):
        snaps = sorted(self.collection.stream(), key=self._key, reverse=self.descending)
        if self.after is not None:
            anchor = self._key(self.after)
            snaps = [s for s in snaps if (self._key(s) < anchor if self.descending else self._key(s) > anchor)]
        return iter(snaps[: self._limit] if self._limit is not None else snaps)


class CollectionRef:
    def __init__(self, db, path):
        self.db = db
        self.path = path

    def document(self, doc_id):
        return DocumentRef(self.db, self.path + (doc_id,))

    def order_by(self, field, direction="ASCENDING"):
        return Query(self, field, descending=str(direction).upper() == "DESCENDING")

    def stream(self):
        depth = len(self.path) + 1
        paths = [p for p in self.db.docs if len(p) == depth and p[:-1] == self.path]
        return [DocumentRef(self.db, p).get() for p in paths]


class Batch:
    def __init__(self, db):
        self.db = db
        self.ops = []

    def delete(self, ref):
        self.ops.append(ref)

    def commit(self):
        self.db.commits.append(len(self.ops))
        for ref in self.ops:
            ref.delete()
        self.ops = []


class FakeFirestore:
    def __init__(self):
        self.docs = {}
        self.commits = []

    def collection(self, name):
        return CollectionRef(self, (name,))

    def batch(self):
        return Batch(self)


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def store(db):
    return FirestoreStore(db)


def message(i: int, timestamp=None) -> Message:
    return Message(
        id=f"m{i:02d}",
        type="user" if i % 2 == 0 else "bot",
        content=f"message {i}",
        timestamp=timestamp or f"2024-05-01T10:{i // 60:02d}:{i % 60:02d}.000Z",
    )


async def test_messages_live_under_user_chats(store, db):
    await store.add_message("alice", message(1))
    assert db.docs[("users", "alice", "chats", "m01")]["content"] == "message 1"


async def test_paging_walks_whole_history_without_gaps(store):
    for i in range(45):
        await store.add_message("alice", message(i))

    seen, sizes, flags = [], [], []
    cursor = None
    while True:
        page = await store.fetch_page("alice", limit=20, cursor=cursor)
        sizes.append(len(page.messages))
        flags.append(page.has_more)
        seen.extend(m.id for m in page.messages)
        cursor = page.cursor
        if not page.has_more:
            break

    assert sizes == [20, 20, 5]
    assert flags == [True, True, False]
    assert seen == [f"m{i:02d}" for i in reversed(range(45))]


async def test_message_fields_round_trip(store):
    original = Message(
        id="bot-1",
        type="bot",
        content="Sorry, try again",
        timestamp="2024-05-01T10:00:00.000Z",
        ttsAudioUrl="https://storage.example.test/tts-audio/tts_1.mp3",
        isError=True,
    )
    await store.add_message("alice", original)
    (stored,) = (await store.fetch_page("alice")).messages
    assert stored == original


async def test_document_id_fills_in_missing_id_field(store, db):
    # Documents written by the web client may omit the id field
    db.docs[("users", "alice", "chats", "legacy")] = {
        "type": "user",
        "content": "old message",
        "timestamp": "2024-05-01T09:00:00.000Z",
    }
    (stored,) = (await store.fetch_page("alice")).messages
    assert stored.id == "legacy"
    assert stored.content == "old message"


async def test_unknown_cursor_yields_empty_page(store):
    await store.add_message("alice", message(1))
    page = await store.fetch_page("alice", cursor="missing")
    assert page.messages == []
    assert page.has_more is False


async def test_clear_deletes_in_batches(store, db, monkeypatch):
    monkeypatch.setattr(firestore_store, "BATCH_LIMIT", 4)
    for i in range(10):
        await store.add_message("alice", message(i))
    await store.add_message("bob", message(1))

    assert await store.clear("alice") == 10
    assert db.commits == [4, 4, 2]
    assert (await store.fetch_page("alice")).messages == []
    assert [m.id for m in (await store.fetch_page("bob")).messages] == ["m01"]


async def test_profile_save_and_merge_settings(store, db):
    assert await store.get_profile("alice") is None

    profile = UserProfile(
        email="alice@example.test",
        name="Alice",
        createdAt="2024-05-01T10:00:00.000Z",
        updatedAt="2024-05-01T10:00:00.000Z",
    )
    await store.save_profile("alice", profile)
    assert await store.get_profile("alice") == profile

    await store.update_settings(
        "alice", ProfileSettings(personality="calm_mentor", language="hindi"), "2024-05-02T10:00:00.000Z"
    )
    updated = await store.get_profile("alice")
    assert updated.settings == ProfileSettings(personality="calm_mentor", language="hindi")
    assert updated.updated_at == "2024-05-02T10:00:00.000Z"
    assert updated.email == "alice@example.test"
    assert db.docs[("users", "alice")]["createdAt"] == "2024-05-01T10:00:00.000Z"
