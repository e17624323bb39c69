"""
Tests for EventManager: one active overlay, mirrored remotely
"""
import pytest

from portal.errors import AccessDeniedError, UnknownOverlayError
from portal.overlays import ACTIVE_EVENT_PATH, EventManager, Overlay, SnowOverlay

from conftest import ADMIN_USER, ELDER_USER


class QuietOverlay(Overlay):
    name = 'quiet-event'
    description = 'Does nothing'


@pytest.fixture
def manager(store, scheduler, container):
    return EventManager(store, scheduler, container)


class TestRegistry:

    def test_snow_registered_by_default(self, manager):
        names = [e['name'] for e in manager.list_events()]

        assert 'snow-event' in names

    def test_register_custom_overlay(self, manager):
        manager.register(QuietOverlay)

        assert 'quiet-event' in [e['name'] for e in manager.list_events()]


class TestActivation:

    def test_activate_writes_pointer(self, manager, store):
        overlay = manager.activate_event('snow-event', ADMIN_USER)

        assert isinstance(overlay, SnowOverlay)
        assert manager.is_event_active('snow-event')
        pointer = store.get(ACTIVE_EVENT_PATH)
        assert pointer['name'] == 'snow-event'
        assert pointer['activatedBy'] == 'Principal'
        assert pointer['activatedAt'] > 0

    def test_unknown_event(self, manager):
        with pytest.raises(UnknownOverlayError):
            manager.activate_event('fireworks', ADMIN_USER)

    def test_non_admin_denied(self, manager, store):
        with pytest.raises(AccessDeniedError):
            manager.activate_event('snow-event', ELDER_USER)

        assert manager.get_active_event() is None
        assert store.get(ACTIVE_EVENT_PATH) is None

    def test_activating_replaces_previous(self, manager):
        manager.register(QuietOverlay)
        snow = manager.activate_event('snow-event', ADMIN_USER)

        manager.activate_event('quiet-event', ADMIN_USER)

        assert not snow.is_active
        assert manager.is_event_active('quiet-event')
        assert not manager.is_event_active('snow-event')

    def test_deactivate_clears_pointer(self, manager, store, scheduler):
        manager.activate_event('snow-event', ADMIN_USER)

        manager.deactivate_event()

        assert manager.get_active_event() is None
        assert store.get(ACTIVE_EVENT_PATH) is None
        assert scheduler.pending() == 0

    def test_offline_activation_still_runs(self, manager, store):
        store.set_offline()

        overlay = manager.activate_event('snow-event', ADMIN_USER)

        assert overlay.is_active
        assert len(overlay.particles) == 100


class TestRestore:

    def test_restore_from_pointer(self, manager, store):
        store.set(ACTIVE_EVENT_PATH, {'name': 'snow-event', 'activatedAt': 1, 'activatedBy': 'Principal'})

        overlay = manager.restore_active_event()

        assert overlay is not None
        assert manager.is_event_active('snow-event')

    def test_restore_ignores_unknown_name(self, manager, store):
        store.set(ACTIVE_EVENT_PATH, {'name': 'fireworks'})

        assert manager.restore_active_event() is None

    def test_restore_without_pointer(self, manager):
        assert manager.restore_active_event() is None

    def test_restore_offline(self, manager, store):
        store.set_offline()

        assert manager.restore_active_event() is None


class TestControl:

    def test_control_applies_action(self, manager):
        manager.activate_event('snow-event', ADMIN_USER)

        status = manager.control('density', 42)

        assert status['particleCount'] == 42

    def test_control_without_running_event(self, manager):
        with pytest.raises(UnknownOverlayError):
            manager.control('storm')

    def test_control_checks_event_name(self, manager):
        manager.activate_event('snow-event', ADMIN_USER)

        with pytest.raises(UnknownOverlayError):
            manager.control('storm', name='fireworks')

    def test_unknown_action(self, manager):
        manager.activate_event('snow-event', ADMIN_USER)

        with pytest.raises(ValueError):
            manager.control('explode')

    def test_value_required(self, manager):
        manager.activate_event('snow-event', ADMIN_USER)

        with pytest.raises(ValueError):
            manager.control('wind')

    def test_controls_follow_new_overlay(self, manager, panel):
        manager.attach_controls(panel)
        manager.activate_event('snow-event', ADMIN_USER)

        assert panel.values['snowflakeCount'] == 100

    def test_status(self, manager):
        manager.activate_event('snow-event', ADMIN_USER)

        status = manager.status()

        assert status['active']['name'] == 'snow-event'
        assert status['active']['isActive'] is True
        assert status['events'][0]['isActive'] is True
