from flask_socketio import emit, join_room

from portal import socketio
from portal.context import class_room, get_portal
from portal.decorators import get_current_user
from portal.errors import OverlayError
from portal.logging import get_logger

logger = get_logger(__name__)

VIEWER_ROOM = 'overlay'
ADMIN_ROOM = 'overlay_admin'

# socket event -> EventManager control action
CONTROL_EVENTS = {
    'overlay_set_density': 'density',
    'overlay_set_speed': 'speed',
    'overlay_set_wind': 'wind',
    'overlay_storm': 'storm',
    'overlay_melt': 'melt',
    'overlay_reset': 'reset',
}


def _get_socket_user():
    """Get current user from the Flask session context in Socket.IO events."""
    user = get_current_user()
    if user and user.is_authenticated:
        return user
    return None


@socketio.on('connect')
def handle_connect(auth=None):
    join_room(VIEWER_ROOM)
    user = _get_socket_user()
    if user and user.can_manage_events():
        join_room(ADMIN_ROOM)
    if user and user.class_name:
        join_room(class_room(user.class_name))
        get_portal().watch_class(user.class_name)
    emit('overlay_status', get_portal().events.status())


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    logger.debug('overlay_viewer_left', reason=str(reason) if reason else None)


@socketio.on('overlay_status')
def handle_status():
    emit('overlay_status', get_portal().events.status())


def _handle_control(action, data):
    user = _get_socket_user()
    if not user or not user.can_manage_events():
        emit('overlay_error', {'message': 'Administrators only'})
        return

    data = data if isinstance(data, dict) else {}
    portal = get_portal()
    try:
        portal.run(portal.events.control, action, data.get('value'), data.get('name'))
    except (OverlayError, ValueError, TypeError) as e:
        emit('overlay_error', {'message': str(e), 'action': action})
        return
    logger.info('overlay_control', action=action, value=data.get('value'), via='socket')
    emit('overlay_status', portal.events.status(), to=VIEWER_ROOM)


def _register(event_name, action):
    def handler(data=None):
        _handle_control(action, data)
    handler.__name__ = f'handle_{event_name}'
    socketio.on_event(event_name, handler)


for _event_name, _action in CONTROL_EVENTS.items():
    _register(_event_name, _action)
