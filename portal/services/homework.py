import re

from portal.cache import HOMEWORK as HOMEWORK_RECORD
from portal.errors import AccessDeniedError, RemoteUnavailableError, ValidationError
from portal.logging import get_logger
from portal.pending import HOMEWORK, PendingChange
from portal.permissions import can_edit
from portal.sync import class_path
from portal.utils import human_timestamp, now_ms

logger = get_logger(__name__)

EDITOR_PLACEHOLDER = 'Enter homework here...'

_TAG_RE = re.compile(r'<[^>]+>')


def plain_text(content):
    """Visible text of an HTML fragment."""
    text = _TAG_RE.sub(' ', content or '')
    return ' '.join(text.replace('&nbsp;', ' ').split())


class HomeworkService:

    def __init__(self, store, cache, queue):
        self.store = store
        self.cache = cache
        self.queue = queue

    def load(self, class_name):
        """Return ``(record, from_cache)``; remote values refresh the cache."""
        try:
            record = self.store.get(class_path(class_name))
        except RemoteUnavailableError:
            return self.cache.get(class_name, HOMEWORK_RECORD), True
        if isinstance(record, dict):
            record.pop('gallery', None)
            self.cache.save(class_name, HOMEWORK_RECORD, record)
            return record, False
        return self.cache.get(class_name, HOMEWORK_RECORD), record is None

    def save(self, user, class_name, content):
        """Store homework for ``class_name``.

        The change is cached and queued before the remote write; returns True
        when it also reached the server.
        """
        if not can_edit(user):
            raise AccessDeniedError('You are not allowed to edit homework')
        text = plain_text(content)
        if not text or text == EDITOR_PLACEHOLDER:
            raise ValidationError('Enter the homework first')

        timestamp = now_ms()
        record = {
            'homework': content,
            'lastUpdate': human_timestamp(),
            '_editedBy': user.get('key'),
            '_timestamp': timestamp,
        }
        self.cache.save(class_name, HOMEWORK_RECORD, record)
        change = self.queue.enqueue(PendingChange(HOMEWORK, class_name, data=content))

        try:
            self.store.update(class_path(class_name), record)
        except RemoteUnavailableError:
            logger.info('homework_saved_offline', class_name=class_name, change_id=change.id)
            return False
        self.queue.remove(change.id)
        logger.info('homework_saved', class_name=class_name, editor=user.get('key'))
        return True

    def subscribe(self, class_name, listener=None):
        """Follow remote changes; every non-empty value is cached first."""

        def on_change(record):
            if not record:
                return
            if isinstance(record, dict):
                record = {k: v for k, v in record.items() if k != 'gallery'}
            self.cache.save(class_name, HOMEWORK_RECORD, record)
            if listener is not None:
                listener(record)

        return self.store.subscribe(class_path(class_name), on_change)
