from __future__ import annotations

import copy
from collections import defaultdict

import pytest
from google.api_core import exceptions as gexc
from google.cloud import firestore

from classbook import create_app
from classbook.firebase_init import Ready, Unavailable
from classbook.record_store import RecordStore
from config import TestConfig


class FakeSnapshot:
    def __init__(self, ref, data):
        self.reference = ref
        self.id = ref.id
        self._data = copy.deepcopy(data)

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocumentReference:
    def __init__(self, client, collection, doc_id):
        self._client = client
        self._collection = collection
        self.id = doc_id

    def _docs(self):
        return self._client.collections[self._collection]

    def get(self, transaction=None):
        self._client.maybe_fail('get')
        return FakeSnapshot(self, self._docs().get(self.id))

    def set(self, data, merge=False):
        self._client.maybe_fail('set')
        self._client.writes += 1
        data = copy.deepcopy(data)
        if merge and self.id in self._docs():
            self._docs()[self.id].update(data)
        else:
            self._docs()[self.id] = data

    def update(self, data):
        self._client.maybe_fail('update')
        if self.id not in self._docs():
            raise gexc.NotFound(f'No document to update: {self.id}')
        self._client.writes += 1
        self._docs()[self.id].update(copy.deepcopy(data))

    def delete(self):
        self._client.maybe_fail('delete')
        self._client.writes += 1
        self._docs().pop(self.id, None)


class FakeQuery:
    def __init__(self, client, collection, orders=()):
        self._client = client
        self._collection = collection
        self._orders = orders

    def order_by(self, field_path):
        return FakeQuery(self._client, self._collection, self._orders + (field_path,))

    def stream(self):
        self._client.maybe_fail('ordered_stream' if self._orders else 'stream')
        docs = self._client.collections[self._collection]
        refs = [FakeDocumentReference(self._client, self._collection, i) for i in docs]
        snapshots = [FakeSnapshot(ref, docs[ref.id]) for ref in refs]
        if self._orders:
            snapshots.sort(key=lambda s: tuple(str(s._data.get(f, '')) for f in self._orders))
        return iter(snapshots)


class FakeCollection(FakeQuery):
    def document(self, doc_id):
        return FakeDocumentReference(self._client, self._collection, doc_id)


class FakeTransaction:
    """Writes apply immediately; transaction bodies read before they write."""

    def set(self, ref, data, merge=False):
        ref.set(data, merge=merge)

    def update(self, ref, data):
        ref.update(data)

    def delete(self, ref):
        ref.delete()


class FakeFirestore:
    """In-memory stand-in for google.cloud.firestore.Client."""

    def __init__(self):
        self.collections = defaultdict(dict)
        self.writes = 0
        self._failures = {}

    def collection(self, name):
        return FakeCollection(self, name)

    def transaction(self):
        return FakeTransaction()

    def fail(self, op, exc, times=None):
        """Raise `exc` on the next `times` calls of `op` (forever if None)."""
        self._failures[op] = [exc, times]

    def maybe_fail(self, op):
        failure = self._failures.get(op)
        if failure is None:
            return
        exc, times = failure
        if times is not None:
            if times <= 1:
                del self._failures[op]
            else:
                failure[1] = times - 1
        raise exc


@pytest.fixture(autouse=True)
def direct_transactions(monkeypatch):
    # Run transaction bodies directly against the fake transaction
    monkeypatch.setattr(firestore, 'transactional', lambda fn: fn)


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def store(db):
    return RecordStore(db)


@pytest.fixture
def app(store):
    return create_app(TestConfig, backend=Ready(store))


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def unavailable_client():
    app = create_app(TestConfig, backend=Unavailable('credentials not found'))
    return app.test_client()
