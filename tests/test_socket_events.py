"""
Tests for the overlay Socket.IO protocol
"""
import pytest

from portal import socketio
from portal.cache import GALLERY, HOMEWORK

from conftest import ADMIN_USER, CLASS_NAME, ELDER_USER, STUDENT_USER, login_as


def _events(received, name):
    return [msg['args'][0] for msg in received if msg['name'] == name]


@pytest.fixture
def connect(app, client):
    def _connect(user=None):
        if user is not None:
            login_as(client, user)
        return socketio.test_client(app, flask_test_client=client)
    return _connect


class TestConnect:

    def test_connect_sends_status(self, connect):
        sio = connect()

        assert sio.is_connected()
        [status] = _events(sio.get_received(), 'overlay_status')
        assert status['active'] is None
        sio.disconnect()

    def test_status_on_request(self, connect):
        sio = connect()
        sio.get_received()

        sio.emit('overlay_status')

        assert _events(sio.get_received(), 'overlay_status')


class TestControls:

    def test_student_cannot_control(self, connect, portal):
        portal.events.activate_event('snow-event')
        sio = connect(STUDENT_USER)
        sio.get_received()

        sio.emit('overlay_set_density', {'value': 10})

        [error] = _events(sio.get_received(), 'overlay_error')
        assert 'Administrators' in error['message']
        assert len(portal.events.active.particles) == 100

    def test_admin_changes_density(self, connect, portal):
        portal.events.activate_event('snow-event')
        sio = connect(ADMIN_USER)
        sio.get_received()

        sio.emit('overlay_set_density', {'value': 25})

        received = sio.get_received()
        statuses = _events(received, 'overlay_status')
        assert statuses[-1]['active']['particleCount'] == 25
        assert _events(received, 'overlay_values')[-1]['snowflakeCount'] == 25

    def test_admin_storm_and_reset(self, connect, portal):
        portal.events.activate_event('snow-event')
        sio = connect(ADMIN_USER)

        sio.emit('overlay_storm', {})
        assert portal.events.active.storm_active

        sio.emit('overlay_reset', {})
        assert not portal.events.active.storm_active
        assert len(portal.events.active.particles) == 100

    def test_admin_melt(self, connect, portal):
        portal.events.activate_event('snow-event')
        sio = connect(ADMIN_USER)

        sio.emit('overlay_melt')

        assert portal.events.active.melting

    def test_control_without_event_reports_error(self, connect):
        sio = connect(ADMIN_USER)
        sio.get_received()

        sio.emit('overlay_storm', {})

        [error] = _events(sio.get_received(), 'overlay_error')
        assert error['action'] == 'storm'


class TestFrames:

    def test_frames_broadcast_to_viewers(self, connect, portal):
        sio = connect()
        portal.events.activate_event('snow-event')
        sio.get_received()

        portal.scheduler.advance(0.2)

        frames = _events(sio.get_received(), 'overlay_frame')
        assert frames
        assert frames[-1]['overlay'] == 'snow-event'
        assert len(frames[-1]['particles']) >= 100

    def test_deactivate_clears_viewers(self, connect, portal):
        sio = connect()
        portal.events.activate_event('snow-event')
        sio.get_received()

        portal.events.deactivate_event()

        assert _events(sio.get_received(), 'overlay_clear')


class TestClassUpdates:

    def test_connect_pushes_current_homework(self, connect):
        sio = connect(STUDENT_USER)

        [update] = _events(sio.get_received(), 'homework_update')
        assert update['class'] == CLASS_NAME
        assert update['record']['homework'] == '<p>Read chapter 1</p>'

    def test_anonymous_viewer_not_subscribed(self, connect, portal):
        sio = connect()

        assert not _events(sio.get_received(), 'homework_update')
        assert portal.cache.get(CLASS_NAME, HOMEWORK) is None

    def test_remote_edit_refreshes_cache_and_room(self, connect, portal, store):
        sio = connect(STUDENT_USER)
        sio.get_received()

        store.update(f'classes/{CLASS_NAME}', {'homework': '<p>Exercise 4</p>'})

        [update] = _events(sio.get_received(), 'homework_update')
        assert update['record']['homework'] == '<p>Exercise 4</p>'
        assert portal.cache.get(CLASS_NAME, HOMEWORK)['homework'] == '<p>Exercise 4</p>'

    def test_gallery_upload_pushed_to_room(self, connect, portal):
        sio = connect(STUDENT_USER)
        sio.get_received()

        entry, reached = portal.gallery.upload(ELDER_USER, CLASS_NAME, 'data:image/png;base64,iVBORw0KGgo=')

        assert reached
        [update] = _events(sio.get_received(), 'gallery_update')
        assert [image['fileName'] for image in update['images']] == [entry['fileName']]
        assert entry['fileName'] in portal.cache.get(CLASS_NAME, GALLERY)

    def test_offline_store_retried_on_next_connect(self, connect, portal, store):
        store.set_offline()
        connect(STUDENT_USER)

        assert not portal.watch_class(CLASS_NAME)

        store.set_offline(False)
        sio = connect(STUDENT_USER)
        assert _events(sio.get_received(), 'homework_update')
