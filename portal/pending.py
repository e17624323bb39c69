"""Persisted queue of mutations that have not reached the remote store yet."""

import uuid
from dataclasses import asdict, dataclass

from portal.local_state import PENDING_KEY
from portal.logging import get_logger
from portal.utils import now_ms

logger = get_logger(__name__)

HOMEWORK = 'homework'
GALLERY_ADD = 'gallery'
GALLERY_DELETE = 'delete_image'

CHANGE_KINDS = (HOMEWORK, GALLERY_ADD, GALLERY_DELETE)


@dataclass
class PendingChange:
    type: str
    class_name: str
    data: object = None
    file_name: str = None
    timestamp: int = 0
    id: str = ''

    def to_dict(self):
        d = asdict(self)
        d['class'] = d.pop('class_name')
        d['fileName'] = d.pop('file_name')
        return d

    @classmethod
    def from_dict(cls, d):
        return cls(
            type=d.get('type'),
            class_name=d.get('class'),
            data=d.get('data'),
            file_name=d.get('fileName'),
            timestamp=d.get('timestamp') or 0,
            id=d.get('id') or '',
        )


class PendingChangeQueue:
    """FIFO of PendingChange entries mirrored to local storage on every change.

    Logically identical changes are not merged: each enqueue is a separate
    user action and gets its own entry.
    """

    def __init__(self, storage):
        self.storage = storage
        self._changes = []

    def __len__(self):
        return len(self._changes)

    def _new_id(self):
        existing = {c.id for c in self._changes}
        while True:
            change_id = uuid.uuid4().hex[:12]
            if change_id not in existing:
                return change_id

    def _persist(self):
        self.storage.set_json(PENDING_KEY, [c.to_dict() for c in self._changes])

    def enqueue(self, change):
        """Stamp ``change`` with a fresh id and timestamp and append it."""
        if change.type not in CHANGE_KINDS:
            raise ValueError(f'Unknown change type: {change.type!r}')
        change.id = self._new_id()
        change.timestamp = now_ms()
        self._changes.append(change)
        self._persist()
        logger.info('change_enqueued', change_id=change.id, kind=change.type,
                    class_name=change.class_name, queued=len(self._changes))
        return change

    def list(self):
        return list(self._changes)

    def get(self, change_id):
        for change in self._changes:
            if change.id == change_id:
                return change
        return None

    def remove(self, change_id):
        before = len(self._changes)
        self._changes = [c for c in self._changes if c.id != change_id]
        if len(self._changes) != before:
            self._persist()
            return True
        return False

    def clear(self):
        self._changes = []
        self._persist()

    def load_from_disk(self):
        """Replace the in-memory queue with the persisted one."""
        raw = self.storage.get_json(PENDING_KEY, [])
        if not isinstance(raw, list):
            logger.warning('pending_queue_corrupt', found=type(raw).__name__)
            raw = []

        changes = []
        seen = set()
        for item in raw:
            if not isinstance(item, dict):
                continue
            change = PendingChange.from_dict(item)
            if not change.id or change.id in seen:
                change.id = uuid.uuid4().hex[:12]
            seen.add(change.id)
            changes.append(change)
        self._changes = changes
        logger.info('pending_queue_loaded', queued=len(changes))
        return self
