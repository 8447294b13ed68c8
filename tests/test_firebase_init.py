import pytest

from classbook import firebase_init
from classbook.firebase_init import Ready, Unavailable, init_backend
from classbook.results import BackendUnavailable


def test_init_backend_ready(monkeypatch, db):
    monkeypatch.setattr(firebase_init, 'init_firebase', lambda config: db)

    backend = init_backend({'META_DOCUMENT': 'catalog', 'ENTRIES_COLLECTION': 'lessons'})

    assert isinstance(backend, Ready)
    assert backend.available
    store = backend.get_store()
    assert store.meta_document == 'catalog'
    assert store.entries_collection == 'lessons'
    assert store.meta_collection == 'meta'


def test_init_backend_unavailable(monkeypatch):
    def broken(config):
        raise ValueError('Failed to initialize a certificate credential.')

    monkeypatch.setattr(firebase_init, 'init_firebase', broken)

    backend = init_backend({})

    assert isinstance(backend, Unavailable)
    assert not backend.available
    with pytest.raises(BackendUnavailable, match='certificate'):
        backend.get_store()


def test_failed_client_leaves_firebase_uninitialized(monkeypatch):
    registered = []

    def initialize_app(cred, options=None):
        registered.append(object())
        return registered[-1]

    def get_app():
        if not registered:
            raise ValueError('The default Firebase app does not exist.')
        return registered[-1]

    def broken_client(app):
        raise OSError('metadata server unreachable')

    monkeypatch.setattr(firebase_init, '_app', None)
    monkeypatch.setattr(firebase_init, '_db', None)
    monkeypatch.setattr(firebase_init.credentials, 'ApplicationDefault', lambda: 'adc')
    monkeypatch.setattr(firebase_init.firebase_admin, 'initialize_app', initialize_app)
    monkeypatch.setattr(firebase_init.firebase_admin, 'get_app', get_app)
    monkeypatch.setattr(firebase_init.firestore, 'client', broken_client)
    config = {'GOOGLE_APPLICATION_CREDENTIALS': '/nonexistent/key.json'}

    assert isinstance(init_backend(config), Unavailable)
    assert firebase_init._app is None
    assert firebase_init._db is None

    monkeypatch.setattr(firebase_init.firestore, 'client', lambda app: 'client')
    assert firebase_init.init_firebase(config) == 'client'
    assert len(registered) == 1
