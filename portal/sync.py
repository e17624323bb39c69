"""Replay of queued changes against the remote store."""

from dataclasses import dataclass, field

from portal.errors import RemoteUnavailableError
from portal.logging import get_logger
from portal.pending import GALLERY_ADD, GALLERY_DELETE, HOMEWORK
from portal.store import join_path
from portal.utils import human_timestamp

logger = get_logger(__name__)


def class_path(class_name):
    return join_path('classes', class_name)


def image_path(class_name, image_id):
    return join_path('classes', class_name, 'gallery', image_id)


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0
    synced_ids: list = field(default_factory=list)

    @property
    def attempted(self):
        return self.synced + self.failed


class SyncReconciler:
    """Drains the PendingChangeQueue into the KeyValueStore.

    Entries are replayed in insertion order so that two homework edits for
    the same class land in the order they were made. Each entry succeeds or
    fails on its own; failed entries stay queued for the next attempt.
    """

    def __init__(self, store, queue):
        self.store = store
        self.queue = queue

    def apply(self, change):
        """Issue the remote write for a single change."""
        if change.type == HOMEWORK:
            self.store.update(class_path(change.class_name), {
                'homework': change.data,
                'lastUpdate': human_timestamp(),
            })
        elif change.type == GALLERY_ADD:
            self.store.set(image_path(change.class_name, change.file_name), change.data)
        elif change.type == GALLERY_DELETE:
            self.store.delete(image_path(change.class_name, change.file_name))
        else:
            raise ValueError(f'Unknown change type: {change.type!r}')

    def sync_pending_changes(self):
        result = SyncResult()
        pending = self.queue.list()
        if not pending:
            return result

        logger.info('sync_started', queued=len(pending))
        for change in pending:
            try:
                self.apply(change)
            except RemoteUnavailableError as e:
                result.failed += 1
                logger.warning('sync_entry_failed', change_id=change.id,
                               kind=change.type, class_name=change.class_name,
                               error=str(e))
                continue
            except Exception as e:
                result.failed += 1
                logger.exception('sync_entry_error', change_id=change.id,
                                 kind=change.type, class_name=change.class_name,
                                 error=str(e))
                continue
            self.queue.remove(change.id)
            result.synced += 1
            result.synced_ids.append(change.id)

        logger.info('sync_finished', synced=result.synced, failed=result.failed,
                    remaining=len(self.queue))
        return result
