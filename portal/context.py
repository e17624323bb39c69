"""Per-app wiring of the local state, remote store and overlay engine."""

from flask import current_app

from portal.cache import LocalCache
from portal.errors import RemoteUnavailableError
from portal.local_state import CredentialStore, LocalStorage
from portal.logging import get_logger
from portal.overlays import EventManager
from portal.overlays.container import SocketIOContainer, SocketIOControlPanel
from portal.overlays.scheduler import LoopScheduler, ManualScheduler
from portal.pending import PendingChangeQueue
from portal.services import AuthService, GalleryService, HomeworkService
from portal.sync import SyncReconciler

logger = get_logger(__name__)


class PortalContext:
    """Everything a request or socket handler needs, built once per app."""

    def __init__(self, config, store, socketio):
        self.config = config
        self.store = store
        self.socketio = socketio
        self._watched = {}

        self.storage = LocalStorage(config.get('LOCAL_STATE_PATH'))
        self.cache = LocalCache(self.storage)
        self.queue = PendingChangeQueue(self.storage).load_from_disk()
        self.credentials = CredentialStore(self.storage)
        self.reconciler = SyncReconciler(store, self.queue)

        self.auth = AuthService(store, self.credentials, self.reconciler,
                                config.get('DEFAULT_ADMIN_CLASS'))
        self.homework = HomeworkService(store, self.cache, self.queue)
        self.gallery = GalleryService(store, self.cache, self.queue)

        if config.get('OVERLAY_SCHEDULER', 'loop') == 'manual':
            self.scheduler = ManualScheduler()
        else:
            self.scheduler = LoopScheduler(socketio)
        self.container = SocketIOContainer(
            socketio,
            width=config.get('OVERLAY_VIEWPORT_WIDTH', 1280),
            height=config.get('OVERLAY_VIEWPORT_HEIGHT', 720),
            fps=config.get('OVERLAY_BROADCAST_FPS', 15),
        )
        self.controls = SocketIOControlPanel(socketio)
        self.events = EventManager(store, self.scheduler, self.container)
        self.events.attach_controls(self.controls)

    def start(self):
        """Bring back the remotely active overlay and start its clock."""
        self.events.restore_active_event()
        if isinstance(self.scheduler, LoopScheduler):
            self.scheduler.start()
        logger.info('portal_started', pending=len(self.queue),
                    active_event=self.events.active.name if self.events.active else None)
        return self

    def run(self, callback, *args):
        """Run an overlay operation on the scheduler's owner task."""
        return self.scheduler.dispatch(callback, *args)

    def watch_class(self, class_name):
        """Follow a class's homework and gallery, caching every change and
        pushing it to the class room. Returns False while the store is offline.
        """
        if class_name in self._watched:
            return True
        room = class_room(class_name)

        def on_homework(record):
            self.socketio.emit('homework_update',
                               {'class': class_name, 'record': record}, to=room)

        def on_gallery(images):
            self.socketio.emit('gallery_update',
                               {'class': class_name, 'images': images}, to=room)

        cancels = []
        try:
            cancels.append(self.homework.subscribe(class_name, on_homework))
            cancels.append(self.gallery.subscribe(class_name, on_gallery))
        except RemoteUnavailableError as e:
            for cancel in cancels:
                cancel()
            logger.warning('class_watch_failed', class_name=class_name, error=str(e))
            return False
        self._watched[class_name] = cancels
        logger.info('class_watched', class_name=class_name)
        return True

    def unwatch_all(self):
        for cancels in self._watched.values():
            for cancel in cancels:
                cancel()
        self._watched.clear()


def class_room(class_name):
    return f'class:{class_name}'


def get_portal():
    return current_app.extensions['portal']
