from portal.errors import AccessDeniedError, RemoteUnavailableError, UnknownOverlayError
from portal.logging import get_logger
from portal.permissions import can_manage_events
from portal.utils import now_ms

logger = get_logger(__name__)

ACTIVE_EVENT_PATH = 'events/active'

# action -> (overlay method, takes a value)
CONTROL_ACTIONS = {
    'density': ('set_density', True),
    'speed': ('set_speed', True),
    'wind': ('set_wind', True),
    'storm': ('trigger_storm', False),
    'melt': ('melt_away', False),
    'reset': ('reset', False),
}


class EventManager:
    """Keeps at most one overlay running and mirrors the choice remotely."""

    def __init__(self, store, scheduler, container, overlay_types=None):
        from portal.overlays import OVERLAY_TYPES

        self.store = store
        self.scheduler = scheduler
        self.container = container
        self.overlay_types = dict(overlay_types or OVERLAY_TYPES)
        self.active = None
        self.controls = None

    def register(self, overlay_class):
        self.overlay_types[overlay_class.name] = overlay_class
        return overlay_class

    def list_events(self):
        events = []
        for name, overlay_class in sorted(self.overlay_types.items()):
            active = self.active is not None and self.active.name == name
            events.append({
                'name': name,
                'description': overlay_class.description,
                'requiresAdmin': overlay_class.requires_admin,
                'isActive': active and self.active.is_active,
            })
        return events

    def get_active_event(self):
        return self.active

    def is_event_active(self, name):
        return self.active is not None and self.active.name == name and self.active.is_active

    def activate_event(self, name, user=None, persist=True):
        overlay_class = self.overlay_types.get(name)
        if overlay_class is None:
            raise UnknownOverlayError(f'Unknown event: {name}')
        if overlay_class.requires_admin and user is not None and not can_manage_events(user):
            raise AccessDeniedError('Only administrators can start this event')

        if self.active is not None:
            self.deactivate_event(persist=False)

        overlay = overlay_class(self.scheduler)
        overlay.activate(self.container, self.store)
        if self.controls is not None:
            overlay.attach_controls(self.controls)
        self.active = overlay

        if persist:
            pointer = {
                'name': name,
                'activatedAt': now_ms(),
                'activatedBy': _user_name(user),
            }
            try:
                self.store.set(ACTIVE_EVENT_PATH, pointer)
            except RemoteUnavailableError as e:
                logger.warning('active_event_save_failed', overlay=name, error=str(e))
        return overlay

    def deactivate_event(self, persist=True):
        overlay, self.active = self.active, None
        if overlay is not None:
            overlay.deactivate()
        if persist:
            try:
                self.store.delete(ACTIVE_EVENT_PATH)
            except RemoteUnavailableError as e:
                logger.warning('active_event_clear_failed', error=str(e))
        return overlay

    def restore_active_event(self):
        """Reactivate whatever overlay the remote pointer names, if any."""
        try:
            pointer = self.store.get(ACTIVE_EVENT_PATH)
        except RemoteUnavailableError as e:
            logger.warning('active_event_load_failed', error=str(e))
            return None
        if not isinstance(pointer, dict) or not pointer.get('name'):
            return None

        name = pointer['name']
        if name not in self.overlay_types:
            logger.warning('active_event_unknown', overlay=name)
            return None
        if self.is_event_active(name):
            return self.active
        logger.info('active_event_restored', overlay=name,
                    activated_by=pointer.get('activatedBy'))
        return self.activate_event(name, persist=False)

    def attach_controls(self, panel):
        self.controls = panel
        if self.active is not None:
            self.active.attach_controls(panel)

    def active_overlay(self, name=None):
        """The running overlay, optionally checked against ``name``."""
        overlay = self.active
        if overlay is None or not overlay.is_active:
            raise UnknownOverlayError('No event is running')
        if name is not None and overlay.name != name:
            raise UnknownOverlayError(f'{name} is not running')
        return overlay

    def control(self, action, value=None, name=None):
        """Apply a live control action to the running overlay and return its status."""
        if action not in CONTROL_ACTIONS:
            raise ValueError(f'Unknown action: {action}')
        method_name, takes_value = CONTROL_ACTIONS[action]
        overlay = self.active_overlay(name)
        method = getattr(overlay, method_name, None)
        if method is None:
            raise ValueError(f'{overlay.name} does not support {action}')
        if takes_value:
            if value is None:
                raise ValueError(f'{action} needs a value')
            method(value)
        else:
            method()
        return overlay.get_status()

    def status(self):
        return {
            'active': self.active.get_status() if self.active is not None else None,
            'events': self.list_events(),
        }


def _user_name(user):
    if user is None:
        return 'system'
    if isinstance(user, dict):
        return user.get('name') or 'unknown'
    return getattr(user, 'name', None) or 'unknown'
