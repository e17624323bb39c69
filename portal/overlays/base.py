import random
from enum import Enum

from portal.errors import OverlayError, OverlayResourceMissing, RemoteUnavailableError
from portal.logging import get_logger
from portal.store import join_path
from portal.utils import now_ms

logger = get_logger(__name__)


class OverlayState(str, Enum):
    INACTIVE = 'inactive'
    ACTIVATING = 'activating'
    RUNNING = 'running'
    DEACTIVATING = 'deactivating'


class Overlay:
    """Common lifecycle for decorative overlays.

    Subclasses declare ``name``, ``defaults`` and ``persisted_keys`` and
    implement ``prepare`` (build initial state while activating), ``start``
    (begin timers once running) and ``stop`` (cancel timers, drop state).
    The tunable config lives in the remote store under
    ``events/config/<name>`` and is merged over ``defaults`` on activation.
    """

    name = None
    description = ''
    requires_admin = False
    defaults = {}
    persisted_keys = ()

    def __init__(self, scheduler, rng=None):
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.config = dict(self.defaults)
        self.state = OverlayState.INACTIVE
        self.container = None
        self.store = None
        self.controls = None

    @property
    def is_active(self):
        return self.state == OverlayState.RUNNING

    @property
    def config_path(self):
        return join_path('events', 'config', self.name)

    def activate(self, container, store):
        if self.state != OverlayState.INACTIVE:
            raise OverlayError(f'{self.name} is already {self.state.value}')
        if container is None:
            raise OverlayResourceMissing(f'{self.name} has no container to draw into')

        self.state = OverlayState.ACTIVATING
        self.container = container
        self.store = store
        self.load_config()
        self.prepare()
        self.state = OverlayState.RUNNING
        self.start()
        logger.info('overlay_activated', overlay=self.name, config=self.config)
        return self

    def deactivate(self):
        if self.state == OverlayState.INACTIVE:
            return self
        self.state = OverlayState.DEACTIVATING
        self.stop()
        self.release_controls()
        if self.container is not None:
            self.container.clear()
        self.container = None
        self.store = None
        self.state = OverlayState.INACTIVE
        logger.info('overlay_deactivated', overlay=self.name)
        return self

    def prepare(self):
        pass

    def start(self):
        pass

    def stop(self):
        pass

    def load_config(self):
        if self.store is None:
            return self
        try:
            saved = self.store.get(self.config_path)
        except RemoteUnavailableError as e:
            logger.warning('overlay_config_load_failed', overlay=self.name, error=str(e))
            return self
        if isinstance(saved, dict):
            self.config = {**self.defaults, **self.config, **saved}
            logger.info('overlay_config_loaded', overlay=self.name, saved=saved)
        return self

    def persisted_values(self):
        return {key: self.config.get(key) for key in self.persisted_keys}

    def save_config(self):
        if self.store is None:
            return False
        payload = self.persisted_values()
        payload['lastUpdated'] = now_ms()
        try:
            self.store.set(self.config_path, payload)
        except RemoteUnavailableError as e:
            logger.warning('overlay_config_save_failed', overlay=self.name, error=str(e))
            return False
        self.config['lastUpdated'] = payload['lastUpdated']
        return True

    def attach_controls(self, panel):
        self.controls = panel
        return self

    def release_controls(self):
        self.controls = None

    def get_status(self):
        return {
            'name': self.name,
            'description': self.description,
            'isActive': self.is_active,
            'requiresAdmin': self.requires_admin,
            'state': self.state.value,
            'config': dict(self.config),
        }
