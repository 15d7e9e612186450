from flask import Flask, request, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from trio_tracker.config import config
from trio_tracker.errors import TrackerError

db = SQLAlchemy()
socketio = SocketIO()

# Reachable without the site-access cookie.
_PUBLIC_API_PATHS = {'/api/auth/verify-pin', '/api/health'}


def _parse_allowed_origins(raw_origins):
    if not raw_origins:
        return '*'

    if isinstance(raw_origins, (list, tuple, set)):
        cleaned = [origin for origin in raw_origins if origin]
        return cleaned or '*'

    raw_text = str(raw_origins).strip()
    if not raw_text or raw_text == '*':
        return '*'

    origins = [origin.strip() for origin in raw_text.split(',') if origin.strip()]
    return origins or '*'


def _register_error_handlers(app):
    @app.errorhandler(TrackerError)
    def _handle_tracker_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def _handle_unexpected_error(exc):
        if isinstance(exc, HTTPException):
            if request.path.startswith('/api/'):
                return jsonify({'error': exc.description}), exc.code
            return exc
        db.session.rollback()
        app.logger.exception('Unhandled error on %s %s', request.method, request.path)
        return jsonify({'error': 'Internal server error'}), 500


def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    allowed_origins = _parse_allowed_origins(app.config.get('CORS_ALLOWED_ORIGINS', '*'))
    if str(config_name).strip().lower() == 'production':
        secret_key = str(app.config.get('SECRET_KEY') or '').strip()
        if not secret_key or secret_key == 'dev-secret-key-change-in-prod':
            raise RuntimeError('SECRET_KEY must be set to a non-default value in production')
        if allowed_origins == '*':
            raise RuntimeError('CORS_ALLOWED_ORIGINS must be explicitly set in production')

    db.init_app(app)
    # Registers socket handlers; must precede socketio.init_app.
    from trio_tracker.routes import presence  # noqa: F401
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'threading'),
    )
    CORS(app, resources={r'/api/*': {'origins': allowed_origins}}, supports_credentials=True)

    @app.before_request
    def _enforce_origin_for_mutating_api_requests():
        if request.method in {'GET', 'HEAD', 'OPTIONS'}:
            return None
        if not request.path.startswith('/api/'):
            return None

        origin = str(request.headers.get('Origin') or '').strip()
        if not origin:
            return None

        configured_origins = _parse_allowed_origins(
            app.config.get('CORS_ALLOWED_ORIGINS', '*')
        )
        if configured_origins != '*' and origin not in configured_origins:
            return jsonify({'error': 'Invalid request origin'}), 403
        return None

    @app.before_request
    def _enforce_site_access():
        if request.method == 'OPTIONS':
            return None
        if not request.path.startswith('/api/') or request.path in _PUBLIC_API_PATHS:
            return None

        from trio_tracker.auth_utils import has_site_access
        if not has_site_access(request):
            return jsonify({'error': 'Site access PIN required'}), 401
        return None

    _register_error_handlers(app)

    from trio_tracker.routes.auth import auth_bp
    from trio_tracker.routes.seasons import seasons_bp
    from trio_tracker.routes.sessions import sessions_bp
    from trio_tracker.routes.rp import rp_bp
    from trio_tracker.routes.discord import discord_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(seasons_bp, url_prefix='/api/seasons')
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(rp_bp, url_prefix='/api/rp')
    app.register_blueprint(discord_bp, url_prefix='/api/discord')

    @app.route('/api/health')
    def health():
        return jsonify({'ok': True})

    with app.app_context():
        from trio_tracker import models  # noqa: F401
        db.create_all()

    return app
