from flask import Blueprint, jsonify, request

from portal import socketio
from portal.context import get_portal
from portal.decorators import admin_required, auth_required, get_current_user
from portal.errors import AccessDeniedError, OverlayError, UnknownOverlayError
from portal.logging import get_logger

logger = get_logger(__name__)

bp = Blueprint('overlays', __name__, url_prefix='/events')


def broadcast_status(status):
    socketio.emit('overlay_status', status, to='overlay')


def _error(e):
    if isinstance(e, UnknownOverlayError):
        return jsonify({'error': str(e)}), 404
    if isinstance(e, AccessDeniedError):
        return jsonify({'error': str(e)}), 403
    if isinstance(e, OverlayError):
        return jsonify({'error': str(e)}), 409
    return jsonify({'error': str(e)}), 400


@bp.route('/')
@auth_required
def list_events():
    return jsonify(get_portal().events.status())


@bp.route('/<name>/activate', methods=['POST'])
@admin_required
def activate(name):
    portal = get_portal()
    user = get_current_user().to_dict()
    try:
        portal.run(portal.events.activate_event, name, user)
    except (OverlayError, AccessDeniedError) as e:
        return _error(e)
    status = portal.events.status()
    broadcast_status(status)
    return jsonify({'success': True, **status})


@bp.route('/deactivate', methods=['POST'])
@admin_required
def deactivate():
    portal = get_portal()
    portal.run(portal.events.deactivate_event)
    status = portal.events.status()
    broadcast_status(status)
    return jsonify({'success': True, **status})


@bp.route('/<name>/<action>', methods=['POST'])
@admin_required
def control(name, action):
    portal = get_portal()
    data = request.get_json(silent=True) or {}
    value = data.get('value', request.form.get('value'))
    try:
        overlay_status = portal.run(portal.events.control, action, value, name)
    except (OverlayError, ValueError, TypeError) as e:
        return _error(e)
    logger.info('overlay_control', overlay=name, action=action, value=value)
    broadcast_status(portal.events.status())
    return jsonify({'success': True, 'active': overlay_status})
