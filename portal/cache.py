"""Per-class cache of the last known homework and gallery payloads."""

from portal.local_state import GALLERY_KEY, HOMEWORK_KEY
from portal.logging import get_logger

logger = get_logger(__name__)

HOMEWORK = 'homework'
GALLERY = 'gallery'

_STORAGE_KEYS = {
    HOMEWORK: HOMEWORK_KEY,
    GALLERY: GALLERY_KEY,
}


class LocalCache:
    """Class name → cached record, one storage key per record kind.

    ``save`` always replaces the whole record; there is no merge and no
    expiry. A newer remote value simply overwrites what is cached.
    """

    def __init__(self, storage):
        self.storage = storage

    def _storage_key(self, kind):
        try:
            return _STORAGE_KEYS[kind]
        except KeyError:
            raise ValueError(f'Unknown cache kind: {kind!r}') from None

    def _records(self, kind):
        records = self.storage.get_json(self._storage_key(kind), {})
        return records if isinstance(records, dict) else {}

    def save(self, class_name, kind, data):
        records = self._records(kind)
        records[class_name] = data
        self.storage.set_json(self._storage_key(kind), records)

    def get(self, class_name, kind):
        return self._records(kind).get(class_name)

    def add_image(self, class_name, image_id, entry):
        gallery = self.get(class_name, GALLERY) or {}
        gallery[image_id] = entry
        self.save(class_name, GALLERY, gallery)

    def delete_image(self, class_name, image_id):
        gallery = self.get(class_name, GALLERY)
        if gallery and image_id in gallery:
            del gallery[image_id]
            self.save(class_name, GALLERY, gallery)

    def size_estimate(self):
        """Approximate bytes held by the cache (two bytes per character)."""
        total = 0
        for key in _STORAGE_KEYS.values():
            raw = self.storage.get_item(key)
            if raw:
                total += len(raw) * 2
        return total

    def clear_all(self):
        for key in _STORAGE_KEYS.values():
            self.storage.remove_item(key)
        logger.info('cache_cleared')
