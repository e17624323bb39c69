"""Local key/value storage that survives restarts.

Mirrors the browser ``localStorage`` model: string keys, string values,
every write flushed to disk before returning. The portal keeps its cache,
pending-change queue and remembered login in here so a restart can
rehydrate before any remote round-trip completes.
"""

import json
import os
import tempfile
import threading
from pathlib import Path

from portal.logging import get_logger

logger = get_logger(__name__)

# Storage keys
HOMEWORK_KEY = 'homeworkData'
GALLERY_KEY = 'galleryData'
PENDING_KEY = 'pendingChanges'
LAST_KEY = 'school_last_key'
LAST_CLASS = 'school_last_class'
LAST_ROLE = 'school_last_role'


class LocalStorage:
    """String-valued key/value map persisted as a JSON document.

    With ``path=None`` the storage lives in memory only.
    """

    def __init__(self, path=None):
        self.path = Path(path) if path else None
        self._items = {}
        self._lock = threading.RLock()
        self._load()

    def _load(self):
        if self.path is None or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.error('local_state_unreadable', path=str(self.path), error=str(e))
            return
        if isinstance(data, dict):
            self._items = {str(k): str(v) for k, v in data.items()}

    def _flush(self):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix='.local_state-')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(self._items, fh, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def get_item(self, key):
        with self._lock:
            return self._items.get(key)

    def set_item(self, key, value):
        with self._lock:
            self._items[key] = str(value)
            self._flush()

    def remove_item(self, key):
        with self._lock:
            if self._items.pop(key, None) is not None:
                self._flush()

    def keys(self):
        with self._lock:
            return list(self._items)

    def clear(self):
        with self._lock:
            self._items = {}
            self._flush()

    def get_json(self, key, default=None):
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning('local_state_corrupt_entry', key=key)
            return default

    def set_json(self, key, value):
        self.set_item(key, json.dumps(value, ensure_ascii=False))


class CredentialStore:
    """Remembers the last successful login for quick re-login."""

    def __init__(self, storage):
        self.storage = storage

    def save(self, key, class_name, role):
        self.storage.set_item(LAST_KEY, key)
        self.storage.set_item(LAST_CLASS, class_name)
        self.storage.set_item(LAST_ROLE, role)

    def load(self):
        """Return ``{'key', 'class_name', 'role'}`` or None if nothing is saved."""
        saved = {
            'key': self.storage.get_item(LAST_KEY),
            'class_name': self.storage.get_item(LAST_CLASS),
            'role': self.storage.get_item(LAST_ROLE),
        }
        if not all(saved.values()):
            return None
        return saved

    def clear(self):
        for key in (LAST_KEY, LAST_CLASS, LAST_ROLE):
            self.storage.remove_item(key)
