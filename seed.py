import secrets

from config import Config
from portal.firebase_init import build_store
from portal.overlays import SnowOverlay
from portal.store import join_path
from portal.utils import human_timestamp, now_ms

CLASS_ROLES = ('elder', 'student', 'student', 'tester')


def _new_key(prefix):
    return f'{prefix}-{secrets.token_hex(4)}'


def seed_store(store, classes, admin_names=('Principal', 'Deputy')):
    """Write users, empty homework and the default snow config.

    Returns ``{group: {key: record}}`` for every created user.
    """
    created = {}

    print("Creating administration keys...")
    admins = {}
    for name in admin_names:
        key = _new_key('adm')
        admins[key] = {'type': 'admin', 'name': name, 'active': True}
        store.set(join_path('users', 'administration', key), admins[key])
    created['administration'] = admins

    print("Creating class users...")
    for class_name in classes:
        users = {}
        for i, role in enumerate(CLASS_ROLES, start=1):
            key = _new_key(class_name.lower())
            users[key] = {'type': role, 'name': f'{class_name} {role} {i}', 'active': True}
            store.set(join_path('users', class_name, key), users[key])
        created[class_name] = users

        store.update(join_path('classes', class_name), {
            'homework': '<p>No homework yet.</p>',
            'lastUpdate': human_timestamp(),
        })

    print("Creating event config...")
    defaults = {key: SnowOverlay.defaults[key] for key in SnowOverlay.persisted_keys}
    defaults['lastUpdated'] = now_ms()
    store.set(join_path('events', 'config', SnowOverlay.name), defaults)

    return created


def seed_database():
    config = {k: getattr(Config, k) for k in dir(Config) if k.isupper()}
    store = build_store(config)
    created = seed_store(store, Config.PORTAL_CLASSES)

    print("\n" + "=" * 60)
    print("    Access keys")
    print("=" * 60)
    for group, users in created.items():
        print(f"\n[{group}]")
        for key, record in users.items():
            print(f"  {record['type']:<10} {record['name']:<24} {key}")
    print("\n" + "=" * 60)
    print("Database seeded!")


if __name__ == '__main__':
    seed_database()
