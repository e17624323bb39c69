from functools import wraps
from flask import request, redirect, url_for, flash, g, session, jsonify

from portal.permissions import can_edit, can_manage_events, role_display_name

SESSION_USER = 'portal_user'


class CurrentUser:
    """Proxy object providing attribute access to the logged-in user dict."""

    def __init__(self, data=None):
        self._data = data or {}

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        return self._data.get(name)

    def __getitem__(self, key):
        return self._data[key]

    def __contains__(self, key):
        return key in self._data

    def get(self, key, default=None):
        return self._data.get(key, default)

    def to_dict(self):
        return dict(self._data)

    @property
    def is_authenticated(self):
        return bool(self._data)

    @property
    def class_name(self):
        return self._data.get('class')

    @property
    def role(self):
        return self._data.get('type', 'student')

    @property
    def role_name(self):
        return role_display_name(self.role)

    @property
    def display_name(self):
        return self._data.get('name') or self._data.get('key', '')

    def is_admin(self):
        return self._data.get('user_type') == 'admin'

    def can_edit(self):
        return can_edit(self._data)

    def can_manage_events(self):
        return can_manage_events(self._data)


def login_user(user):
    session[SESSION_USER] = user
    g._current_user = CurrentUser(user)


def logout_user():
    session.pop(SESSION_USER, None)
    g._current_user = CurrentUser()


def load_current_user():
    """Load current user into g before each request."""
    if hasattr(g, '_current_user'):
        return
    g._current_user = CurrentUser(session.get(SESSION_USER))


def get_current_user():
    if not hasattr(g, '_current_user'):
        load_current_user()
    return g._current_user


def _wants_json():
    return request.is_json or request.accept_mimetypes.best == 'application/json'


def auth_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        user = get_current_user()
        if not user.is_authenticated:
            if _wants_json():
                return jsonify({'error': 'Login required'}), 401
            flash('Please log in first.', 'info')
            return redirect(url_for('auth.select_class', next=request.url))
        g.current_user = user
        return f(*args, **kwargs)
    return decorated


def _permission_required(check, message):
    def decorator(f):
        @wraps(f)
        @auth_required
        def decorated(*args, **kwargs):
            user = get_current_user()
            if not check(user):
                if _wants_json():
                    return jsonify({'error': message}), 403
                flash(message, 'danger')
                return redirect(url_for('main.dashboard'))
            return f(*args, **kwargs)
        return decorated
    return decorator


editor_required = _permission_required(
    lambda user: user.can_edit(), 'You are not allowed to edit.')

admin_required = _permission_required(
    lambda user: user.can_manage_events(), 'Administrators only.')
