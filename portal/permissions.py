"""Authorization predicates consulted by every mutating operation."""

EDITOR_ROLES = ('admin', 'subadmin', 'elder')

ROLE_NAMES = {
    'admin': 'Administrator',
    'subadmin': 'Sub-admin',
    'tester': 'Tester',
    'elder': 'Class monitor',
    'student': 'Student',
}


def _field(user, name):
    if user is None:
        return None
    if isinstance(user, dict):
        return user.get(name)
    return getattr(user, name, None)


def can_edit(user):
    """Homework and gallery writes are limited to editor roles."""
    return _field(user, 'type') in EDITOR_ROLES


def can_manage_events(user):
    """Only the administration may toggle and tune overlays."""
    return _field(user, 'user_type') == 'admin' or _field(user, 'type') == 'admin'


def role_display_name(role):
    return ROLE_NAMES.get(role, role)
