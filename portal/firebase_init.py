import os
import firebase_admin
from firebase_admin import credentials

from portal.logging import get_logger
from portal.store import FirebaseStore, MemoryStore

logger = get_logger(__name__)

_app = None


def init_firebase(app_config=None):
    global _app

    if _app is not None:
        return _app

    cred_path = os.environ.get('GOOGLE_APPLICATION_CREDENTIALS', './firebase-service-account.json')

    if os.path.exists(cred_path):
        cred = credentials.Certificate(cred_path)
    else:
        cred = credentials.ApplicationDefault()

    database_url = ''
    timeout = None
    if app_config:
        database_url = app_config.get('FIREBASE_DATABASE_URL', '')
        timeout = app_config.get('FIREBASE_HTTP_TIMEOUT')
    if not database_url:
        database_url = os.environ.get('FIREBASE_DATABASE_URL', '')

    options = {}
    if database_url:
        options['databaseURL'] = database_url
    if timeout:
        options['httpTimeout'] = timeout

    _app = firebase_admin.initialize_app(cred, options=options if options else None)
    logger.info('firebase_initialized', database_url=database_url)
    return _app


def build_store(app_config):
    """Create the KeyValueStore selected by ``STORE_BACKEND``."""
    backend = app_config.get('STORE_BACKEND', 'firebase')
    if backend == 'memory':
        logger.info('store_selected', backend='memory')
        return MemoryStore()
    if backend == 'firebase':
        return FirebaseStore(init_firebase(app_config))
    raise ValueError(f'Unknown STORE_BACKEND: {backend!r}')
