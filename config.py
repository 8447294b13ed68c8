import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


class Config:
    SECRET_KEY = os.environ.get('SESSION_SECRET') or os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None

    FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID', '')
    GOOGLE_APPLICATION_CREDENTIALS = os.environ.get(
        'GOOGLE_APPLICATION_CREDENTIALS', './firebase-service-account.json'
    )

    META_COLLECTION = os.environ.get('CLASSBOOK_META_COLLECTION', 'meta')
    META_DOCUMENT = os.environ.get('CLASSBOOK_META_DOCUMENT', 'kb_meta')
    ENTRIES_COLLECTION = os.environ.get('CLASSBOOK_ENTRIES_COLLECTION', 'entries')

    # Demo deployments seed an example course on an empty database
    SEED_EXAMPLE_DATA = _env_flag('SEED_EXAMPLE_DATA')

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    SEED_EXAMPLE_DATA = False
    LOG_LEVEL = 'DEBUG'
