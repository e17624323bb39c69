"""Decorative overlays ("events") toggled by admins.

Every overlay type implements the Overlay contract and is registered here
by name; the EventManager only ever looks types up through this map.
"""

from portal.overlays.base import Overlay, OverlayState
from portal.overlays.manager import ACTIVE_EVENT_PATH, EventManager
from portal.overlays.snow import SnowOverlay

OVERLAY_TYPES = {
    SnowOverlay.name: SnowOverlay,
}

__all__ = [
    'ACTIVE_EVENT_PATH',
    'EventManager',
    'OVERLAY_TYPES',
    'Overlay',
    'OverlayState',
    'SnowOverlay',
]
