"""Access-key login against the ``users`` tree."""

from portal.errors import AccessDeniedError, ValidationError
from portal.logging import get_logger
from portal.permissions import role_display_name
from portal.store import join_path
from portal.utils import now_ms

logger = get_logger(__name__)

ADMIN_GROUP = 'administration'
ROLES = ('admin', 'subadmin', 'tester', 'elder', 'student')


class AuthService:

    def __init__(self, store, credentials, reconciler, default_admin_class=None):
        self.store = store
        self.credentials = credentials
        self.reconciler = reconciler
        self.default_admin_class = default_admin_class

    def check_access_key(self, class_name, role, key):
        """Return the session user for ``key`` or raise.

        Raises ValidationError for missing input, AccessDeniedError for an
        unknown, blocked or mismatched key and RemoteUnavailableError when
        the users tree cannot be read.
        """
        key = (key or '').strip()
        if not key:
            raise ValidationError('Enter an access key')
        if not class_name or not role:
            raise ValidationError('Select a class and a role first')
        if '/' in key:
            raise AccessDeniedError('Invalid key or access blocked')

        admin = self.store.get(join_path('users', ADMIN_GROUP, key))
        if isinstance(admin, dict):
            if admin.get('active') is False:
                raise AccessDeniedError('Invalid key or access blocked')
            user = self._session_user(admin, key, 'admin', class_name or self.default_admin_class)
            user.setdefault('type', 'admin')
        else:
            record = self.store.get(join_path('users', class_name, key))
            if not isinstance(record, dict) or record.get('active') is False:
                raise AccessDeniedError('Invalid key or access blocked')
            if record.get('type') != role:
                raise AccessDeniedError(
                    f'Key does not match the selected role "{role_display_name(role)}"')
            user = self._session_user(record, key, 'class', class_name)

        self.credentials.save(key, class_name, role)
        logger.info('login_succeeded', user_type=user['user_type'],
                    class_name=user['class'], role=user.get('type'))
        return user

    def _session_user(self, record, key, user_type, class_name):
        user = dict(record)
        user.update({
            'key': key,
            'user_type': user_type,
            'class': class_name,
            'login_time': now_ms(),
        })
        return user

    def login(self, class_name, role, key):
        """Check the key, then replay anything queued while offline."""
        user = self.check_access_key(class_name, role, key)
        return user, self.reconciler.sync_pending_changes()

    def quick_login(self):
        saved = self.credentials.load()
        if saved is None:
            raise ValidationError('No saved login')
        return self.login(saved['class_name'], saved['role'], saved['key'])

    def logout(self, forget=False):
        if forget:
            self.credentials.clear()
