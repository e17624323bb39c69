"""Surfaces an overlay draws into and the control panel it reports to."""

from portal.logging import get_logger

logger = get_logger(__name__)


class OverlayContainer:
    """Viewport an overlay renders onto.

    The base container keeps only the latest frame; subclasses push frames
    somewhere (a Socket.IO room, a test recorder).
    """

    def __init__(self, width=1280, height=720):
        self.width = width
        self.height = height
        self.attached = True
        self.last_frame = None
        self.frames_rendered = 0

    def render(self, frame):
        self.last_frame = frame
        self.frames_rendered += 1

    def clear(self):
        self.last_frame = None

    def detach(self):
        self.attached = False
        self.clear()


class SocketIOContainer(OverlayContainer):
    """Broadcasts frames to a Socket.IO room, throttled to ``fps``."""

    def __init__(self, socketio, room='overlay', width=1280, height=720, fps=15):
        super().__init__(width, height)
        self.socketio = socketio
        self.room = room
        self.min_gap = 1.0 / fps if fps else 0.0
        self._last_emit = None

    def render(self, frame):
        super().render(frame)
        now = frame.get('t', 0.0)
        if self._last_emit is not None and now - self._last_emit < self.min_gap:
            return
        self._last_emit = now
        self.socketio.emit('overlay_frame', frame, to=self.room)

    def clear(self):
        super().clear()
        self.socketio.emit('overlay_clear', {}, to=self.room)


class ControlPanel:
    """Receives config values and live statistics from the running overlay."""

    def __init__(self):
        self.values = {}
        self.stats = {}
        self.messages = []

    def show_values(self, values):
        self.values = dict(values)

    def show_stats(self, stats):
        self.stats = dict(stats)

    def notify(self, message, level='info'):
        self.messages.append((level, message))
        logger.info('overlay_notice', message=message, level=level)


class SocketIOControlPanel(ControlPanel):
    """Control panel mirrored to the admins' Socket.IO room."""

    def __init__(self, socketio, room='overlay_admin'):
        super().__init__()
        self.socketio = socketio
        self.room = room

    def show_values(self, values):
        super().show_values(values)
        self.socketio.emit('overlay_values', self.values, to=self.room)

    def show_stats(self, stats):
        super().show_stats(stats)
        self.socketio.emit('overlay_stats', self.stats, to=self.room)

    def notify(self, message, level='info'):
        super().notify(message, level)
        self.socketio.emit('overlay_message', {'message': message, 'level': level},
                           to=self.room)
