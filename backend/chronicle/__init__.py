from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['AUDIT_LOG_PATH'] = os.getenv('AUDIT_LOG_PATH', os.path.join('logs', 'audit.log'))
    app.config['AUDIT_LOG_FSYNC'] = _env_flag('AUDIT_LOG_FSYNC', True)
    app.config['BACKUP_EXECUTOR'] = os.getenv('BACKUP_EXECUTOR')
    app.config['BACKUP_RUN_CLAIM'] = os.getenv('BACKUP_RUN_CLAIM')
    app.config['BACKUP_CHECK_INTERVAL_MINUTES'] = int(os.getenv('BACKUP_CHECK_INTERVAL_MINUTES', '60'))

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

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

    jwt.init_app(app)

    # Audit trail + singleton backup policy, shared by routes and the trigger script
    from .services.log_store import AppendOnlyLogStore
    from .services.audit import AuditRecorder, EXTENSION_KEY as AUDIT_KEY
    from .services.backup_settings import BackupPolicyStore, EXTENSION_KEY as POLICY_KEY
    store = AppendOnlyLogStore(app.config['AUDIT_LOG_PATH'], fsync=app.config['AUDIT_LOG_FSYNC'])
    app.extensions[AUDIT_KEY] = AuditRecorder(store)
    app.extensions[POLICY_KEY] = BackupPolicyStore(get_db)

    from .routes.backup_settings import settings_bp
    from .routes.audit_logs import audit_bp
    app.register_blueprint(settings_bp)
    app.register_blueprint(audit_bp, url_prefix='/admin')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .exceptions import InvalidPolicyValue

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        if isinstance(e, InvalidPolicyValue):
            return {
                'error': {
                    'status': 400,
                    'title': 'Bad Request',
                    'detail': e.message,
                }
            }, 400
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
