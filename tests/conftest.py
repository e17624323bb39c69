"""
Class Portal - Test Configuration and Fixtures
"""
import random

import pytest

from config import TestConfig
from portal.cache import LocalCache
from portal.local_state import CredentialStore, LocalStorage
from portal.overlays.container import ControlPanel, OverlayContainer
from portal.overlays.scheduler import ManualScheduler
from portal.pending import PendingChangeQueue
from portal.store import MemoryStore
from portal.sync import SyncReconciler

CLASS_NAME = '10-M'

USERS = {
    'administration': {
        'adm-key': {'type': 'admin', 'name': 'Principal', 'active': True},
        'adm-blocked': {'type': 'admin', 'name': 'Former principal', 'active': False},
    },
    CLASS_NAME: {
        'elder-key': {'type': 'elder', 'name': 'Class monitor', 'active': True},
        'student-key': {'type': 'student', 'name': 'Pupil', 'active': True},
        'blocked-key': {'type': 'elder', 'name': 'Blocked', 'active': False},
    },
}

ADMIN_USER = {'key': 'adm-key', 'name': 'Principal', 'type': 'admin',
              'user_type': 'admin', 'class': CLASS_NAME}
ELDER_USER = {'key': 'elder-key', 'name': 'Class monitor', 'type': 'elder',
              'user_type': 'class', 'class': CLASS_NAME}
STUDENT_USER = {'key': 'student-key', 'name': 'Pupil', 'type': 'student',
                'user_type': 'class', 'class': CLASS_NAME}


@pytest.fixture
def store():
    """Remote store preloaded with users and one homework record"""
    return MemoryStore({
        'users': USERS,
        'classes': {CLASS_NAME: {'homework': '<p>Read chapter 1</p>', 'lastUpdate': '01.09.2026, 08:00:00'}},
    })


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / 'local_state.json')


@pytest.fixture
def cache(storage):
    return LocalCache(storage)


@pytest.fixture
def queue(storage):
    return PendingChangeQueue(storage).load_from_disk()


@pytest.fixture
def credentials(storage):
    return CredentialStore(storage)


@pytest.fixture
def reconciler(store, queue):
    return SyncReconciler(store, queue)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def container():
    return OverlayContainer(width=1280, height=720)


@pytest.fixture
def panel():
    return ControlPanel()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def app(store):
    from portal import create_app
    app = create_app(TestConfig, store=store)
    yield app
    app.extensions['portal'].unwatch_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def portal(app):
    return app.extensions['portal']


def login_as(client, user):
    with client.session_transaction() as session:
        session['portal_user'] = dict(user)


@pytest.fixture
def admin_client(client):
    login_as(client, ADMIN_USER)
    return client


@pytest.fixture
def elder_client(client):
    login_as(client, ELDER_USER)
    return client


@pytest.fixture
def student_client(client):
    login_as(client, STUDENT_USER)
    return client
