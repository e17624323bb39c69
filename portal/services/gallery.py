import base64
import binascii
import re
import secrets

from portal.cache import GALLERY as GALLERY_RECORD
from portal.errors import AccessDeniedError, RemoteUnavailableError, ValidationError
from portal.logging import get_logger
from portal.pending import GALLERY_ADD, GALLERY_DELETE, PendingChange
from portal.permissions import can_edit
from portal.sync import image_path
from portal.store import join_path
from portal.utils import human_timestamp, now_ms

logger = get_logger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024

_DATA_URL_RE = re.compile(r'^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.+)$', re.S)


def parse_data_url(data_url):
    """Return ``(mime_type, size_in_bytes)`` for a base64 image data URL."""
    match = _DATA_URL_RE.match(data_url or '')
    if not match:
        raise ValidationError('Upload must be a base64 data URL')
    mime = match.group('mime')
    if not mime.startswith('image/'):
        raise ValidationError('Please choose an image file (JPG, PNG, GIF)')
    try:
        size = len(base64.b64decode(match.group('payload'), validate=True))
    except (binascii.Error, ValueError):
        raise ValidationError('Image data is not valid base64') from None
    if size > MAX_IMAGE_BYTES:
        raise ValidationError('File too large. Maximum size: 5MB')
    return mime, size


def new_image_id():
    return f'img_{now_ms()}_{secrets.token_hex(5)[:9]}'


class GalleryService:

    def __init__(self, store, cache, queue):
        self.store = store
        self.cache = cache
        self.queue = queue

    def load(self, class_name):
        """Return ``(images, from_cache)`` with images newest first."""
        try:
            gallery = self.store.get(join_path('classes', class_name, 'gallery'))
        except RemoteUnavailableError:
            return self.sorted_images(self.cache.get(class_name, GALLERY_RECORD)), True
        gallery = gallery if isinstance(gallery, dict) else {}
        self.cache.save(class_name, GALLERY_RECORD, gallery)
        return self.sorted_images(gallery), False

    @staticmethod
    def sorted_images(gallery):
        images = []
        for image_id, entry in (gallery or {}).items():
            if isinstance(entry, dict):
                images.append({**entry, 'fileName': entry.get('fileName') or image_id})
        images.sort(key=lambda e: e.get('timestamp') or 0, reverse=True)
        return images

    def upload(self, user, class_name, data_url, file_name=None):
        """Add an image; returns ``(entry, reached_server)``."""
        if not can_edit(user):
            raise AccessDeniedError('You are not allowed to upload images')
        _, size = parse_data_url(data_url)

        image_id = new_image_id()
        entry = {
            'url': data_url,
            'fileName': image_id,
            'originalName': file_name or 'Image',
            'uploadedBy': user.get('key'),
            'uploadedAt': human_timestamp(),
            'timestamp': now_ms(),
            'type': 'base64',
            'size': size,
        }
        self.cache.add_image(class_name, image_id, entry)
        change = self.queue.enqueue(
            PendingChange(GALLERY_ADD, class_name, data=entry, file_name=image_id))

        try:
            self.store.set(image_path(class_name, image_id), entry)
        except RemoteUnavailableError:
            logger.info('image_saved_offline', class_name=class_name, image_id=image_id)
            return entry, False
        self.queue.remove(change.id)
        logger.info('image_uploaded', class_name=class_name, image_id=image_id, size=size)
        return entry, True

    def delete(self, user, class_name, image_id):
        """Remove an image; returns whether the delete reached the server."""
        if not can_edit(user):
            raise AccessDeniedError('You are not allowed to delete images')
        if not image_id or '/' in image_id:
            raise ValidationError('Unknown image')

        self.cache.delete_image(class_name, image_id)
        change = self.queue.enqueue(
            PendingChange(GALLERY_DELETE, class_name, file_name=image_id))

        try:
            self.store.delete(image_path(class_name, image_id))
        except RemoteUnavailableError:
            logger.info('image_deleted_offline', class_name=class_name, image_id=image_id)
            return False
        self.queue.remove(change.id)
        logger.info('image_deleted', class_name=class_name, image_id=image_id)
        return True

    def subscribe(self, class_name, listener=None):
        def on_change(gallery):
            gallery = gallery if isinstance(gallery, dict) else {}
            self.cache.save(class_name, GALLERY_RECORD, gallery)
            if listener is not None:
                listener(self.sorted_images(gallery))

        return self.store.subscribe(join_path('classes', class_name, 'gallery'), on_change)
