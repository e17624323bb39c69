import os
from dotenv import load_dotenv

load_dotenv()


def _split(value):
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    SECRET_KEY = os.environ.get('SESSION_SECRET') or os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '')

    # Remote store
    STORE_BACKEND = os.environ.get('STORE_BACKEND', 'firebase')
    FIREBASE_DATABASE_URL = os.environ.get('FIREBASE_DATABASE_URL', '')
    FIREBASE_HTTP_TIMEOUT = float(os.environ.get('FIREBASE_HTTP_TIMEOUT', 10))

    # Browser-local state (cache, pending queue, remembered credentials)
    LOCAL_STATE_PATH = os.environ.get('LOCAL_STATE_PATH', 'data/local_state.json')

    PORTAL_CLASSES = _split(os.environ.get('PORTAL_CLASSES', '10-M,10-A,11-M,11-A'))
    DEFAULT_ADMIN_CLASS = os.environ.get('DEFAULT_ADMIN_CLASS', '10-M')

    # Overlays
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'eventlet')
    OVERLAY_VIEWPORT_WIDTH = int(os.environ.get('OVERLAY_VIEWPORT_WIDTH', 1280))
    OVERLAY_VIEWPORT_HEIGHT = int(os.environ.get('OVERLAY_VIEWPORT_HEIGHT', 720))
    OVERLAY_BROADCAST_FPS = int(os.environ.get('OVERLAY_BROADCAST_FPS', 15))
    OVERLAY_SCHEDULER = os.environ.get('OVERLAY_SCHEDULER', 'loop')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_JSON = os.environ.get('LOG_JSON', 'false').lower() in ('true', '1')


class TestConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    STORE_BACKEND = 'memory'
    LOCAL_STATE_PATH = None
    SOCKETIO_ASYNC_MODE = 'threading'
    OVERLAY_SCHEDULER = 'manual'
    LOG_LEVEL = 'WARNING'
