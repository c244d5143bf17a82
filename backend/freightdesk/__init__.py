from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from datetime import timedelta
from typing import Optional, Dict, Any
import logging
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _error_payload(status: int, title: str, detail: str, errors: Optional[Dict[str, Any]] = None):
    body = {
        'error': {
            'status': status,
            'title': title,
            'detail': detail,
        }
    }
    if errors:
        body['error']['errors'] = errors
    return body


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(minutes=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES_MINUTES', '480')))
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['LOGIN_MAX_ATTEMPTS'] = int(os.getenv('LOGIN_MAX_ATTEMPTS', '5'))
    app.config['LOGIN_WINDOW_SECONDS'] = int(os.getenv('LOGIN_WINDOW_SECONDS', '900'))

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    logging.getLogger('freightdesk').setLevel(app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    @app.teardown_appcontext
    def remove_session(exc):  # type: ignore
        if SessionLocal is not None:
            SessionLocal.remove()

    jwt.init_app(app)
    _register_jwt_callbacks()

    from .services.auth import login_limiter
    login_limiter.configure(app.config['LOGIN_MAX_ATTEMPTS'], app.config['LOGIN_WINDOW_SECONDS'])

    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.clients import clients_bp
    from .routes.suppliers import suppliers_bp
    from .routes.services import services_bp
    from .routes.loading_orders import lo_bp
    from .routes.invoices import invoices_bp
    from .routes.documents import documents_bp
    from .routes.settings import settings_bp
    from .routes.audit import audit_bp
    from .routes.dashboard import dashboard_bp
    from .routes.notifications import notifications_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(users_bp, url_prefix='/users')
    app.register_blueprint(clients_bp, url_prefix='/clients')
    app.register_blueprint(suppliers_bp, url_prefix='/suppliers')
    app.register_blueprint(services_bp, url_prefix='/services')
    app.register_blueprint(lo_bp, url_prefix='/loading-orders')
    app.register_blueprint(invoices_bp, url_prefix='/invoices')
    app.register_blueprint(documents_bp, url_prefix='/documents')
    app.register_blueprint(settings_bp, url_prefix='/settings')
    app.register_blueprint(audit_bp, url_prefix='/audit')
    app.register_blueprint(dashboard_bp, url_prefix='/dashboard')
    app.register_blueprint(notifications_bp, url_prefix='/notifications')

    @app.route('/healthz')
    def health():
        from sqlalchemy import text
        try:
            get_db().execute(text('SELECT 1'))
            return {'status': 'ok', 'database': 'connected'}
        except Exception:
            app.logger.exception('Database health check failed')
            return {'status': 'degraded', 'database': 'unreachable'}, 503

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            return _error_payload(e.code, e.name, e.description, getattr(e, 'errors', None)), e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        if SessionLocal is not None:
            SessionLocal.rollback()
        return _error_payload(500, 'Internal Server Error', 'Unexpected error'), 500

    return app


def _register_jwt_callbacks():
    """Route flask-jwt-extended failures through the same error shape as abort()."""

    @jwt.unauthorized_loader
    def _missing_token(reason):
        return _error_payload(401, 'Unauthorized', reason), 401

    @jwt.invalid_token_loader
    def _invalid_token(reason):
        return _error_payload(401, 'Unauthorized', reason), 401

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return _error_payload(401, 'Unauthorized', 'Token has expired'), 401

    @jwt.revoked_token_loader
    def _revoked_token(jwt_header, jwt_payload):
        return _error_payload(401, 'Unauthorized', 'Session is no longer valid'), 401

    @jwt.token_in_blocklist_loader
    def _token_revoked(jwt_header, jwt_payload):
        from .services.auth import is_token_revoked
        return is_token_revoked(jwt_payload)

    @jwt.user_lookup_loader
    def _load_user(jwt_header, jwt_payload):
        from .models.user import User
        return get_db().get(User, int(jwt_payload['sub']))


def get_db():
    return SessionLocal()
