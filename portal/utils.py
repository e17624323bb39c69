import time
from datetime import datetime


def now_ms():
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def human_timestamp(moment=None):
    """Local time label shown next to homework and images (``17.10.2026, 09:05:00``)."""
    moment = moment or datetime.now()
    return moment.strftime('%d.%m.%Y, %H:%M:%S')
