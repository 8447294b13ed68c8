import logging
import os
from dataclasses import dataclass

import firebase_admin
from firebase_admin import credentials, firestore
from google.auth import exceptions as auth_exceptions

from classbook.record_store import RecordStore
from classbook.results import BackendUnavailable

logger = logging.getLogger(__name__)

_app = None
_db = None


@dataclass(frozen=True)
class Ready:
    """Firestore is initialized; callers get the record store."""
    store: RecordStore
    available = True

    def get_store(self):
        return self.store


@dataclass(frozen=True)
class Unavailable:
    """Firestore could not be initialized; every store access fails loudly."""
    reason: str
    available = False

    def get_store(self):
        raise BackendUnavailable(self.reason)


def init_firebase(app_config=None):
    global _app, _db

    if _app is not None:
        return _db

    app_config = app_config or {}
    cred_path = app_config.get('GOOGLE_APPLICATION_CREDENTIALS') or os.environ.get(
        'GOOGLE_APPLICATION_CREDENTIALS', './firebase-service-account.json'
    )

    if os.path.exists(cred_path):
        cred = credentials.Certificate(cred_path)
    else:
        cred = credentials.ApplicationDefault()

    project_id = app_config.get('FIREBASE_PROJECT_ID') or os.environ.get('FIREBASE_PROJECT_ID', '')

    options = {}
    if project_id:
        options['projectId'] = project_id

    # A previous attempt may have registered the app before client() failed
    try:
        app = firebase_admin.get_app()
    except ValueError:
        app = firebase_admin.initialize_app(cred, options=options if options else None)
    db = firestore.client(app)
    _app, _db = app, db
    return _db


def init_backend(app_config):
    """Resolve the backend once at startup: Ready(store) or Unavailable(reason)."""
    try:
        db = init_firebase(app_config)
    except (ValueError, OSError, auth_exceptions.GoogleAuthError) as err:
        logger.error('Firestore unavailable: %s', err)
        return Unavailable(str(err) or err.__class__.__name__)
    return Ready(RecordStore.from_config(db, app_config))
