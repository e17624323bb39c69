from flask import Flask
from flask_socketio import SocketIO
from flask_wtf.csrf import CSRFProtect
from config import Config

from portal.logging import setup_logging

socketio = SocketIO()
csrf = CSRFProtect()


def create_app(config_class=Config, store=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    setup_logging(json_output=app.config.get('LOG_JSON', False),
                  log_level=app.config.get('LOG_LEVEL', 'INFO'))

    csrf.init_app(app)

    # Remote store
    if store is None:
        from portal.firebase_init import build_store
        store = build_store(app.config)

    # CORS origins
    allowed_origins = []
    cors_origins = app.config.get('CORS_ALLOWED_ORIGINS', '')
    if cors_origins:
        for origin in cors_origins.split(','):
            origin = origin.strip()
            if origin:
                allowed_origins.append(origin)

    # handlers must be registered before the first init_app so every app gets them
    from portal import events  # noqa: F401

    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins if allowed_origins else None,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'eventlet')
    )

    from portal.context import PortalContext
    app.extensions['portal'] = PortalContext(app.config, store, socketio).start()

    # Register current_user context processor and before_request
    from portal.decorators import load_current_user, get_current_user
    from portal.permissions import can_edit, can_manage_events, role_display_name

    @app.before_request
    def before_request():
        load_current_user()

    @app.context_processor
    def inject_current_user():
        return {
            'current_user': get_current_user(),
            'can_edit': can_edit,
            'can_manage_events': can_manage_events,
            'role_display_name': role_display_name,
        }

    # Register blueprints
    from portal.routes import auth, main, overlays
    app.register_blueprint(auth.bp)
    app.register_blueprint(main.bp)
    app.register_blueprint(overlays.bp)

    return app
