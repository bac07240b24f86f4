"""
Flask Application Factory

Wires the replication engine into a Flask application:
- environment-specific configuration from ``dualsync.config``
- structlog configuration from ``LOG_LEVEL`` / ``LOG_FORMAT``
- Flask-SQLAlchemy bound to the target store
- the shared replication services (target store, writer, live dispatcher,
  verifier) stored in ``app.extensions['dualsync']``
- the ``/dual-write`` monitoring blueprint and the migration CLI commands
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog
from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

from dualsync.blueprints import monitoring_bp
from dualsync.config import get_config
from dualsync.models import db
from dualsync.services.base import SyncError, TargetUnavailableError
from dualsync.services.dispatcher import LiveHookDispatcher
from dualsync.services.failure_counters import FailureCounters
from dualsync.services.source_store import MongoSourceStore
from dualsync.services.target_store import TargetStore, create_target_engine
from dualsync.services.upsert_writer import UpsertWriter
from dualsync.services.verifier import ReconciliationVerifier
from dualsync.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


@dataclass
class SyncServices:
    """Replication services shared by the blueprint and CLI of one app."""
    target: TargetStore
    writer: UpsertWriter
    counters: FailureCounters
    dispatcher: LiveHookDispatcher
    source: Any = None
    verifier: Optional[ReconciliationVerifier] = None
    engine_factory: Callable[..., Any] = field(default=create_target_engine)
    dispose_engines: bool = True

    def shutdown(self, wait: bool = True) -> None:
        self.dispatcher.shutdown(wait=wait)
        if self.source is not None and hasattr(self.source, 'close'):
            self.source.close()


def build_source_store(app: Flask) -> Optional[MongoSourceStore]:
    """Create the MongoDB source store, or None when no URI is configured."""
    uri = app.config.get('MONGODB_URI')
    if not uri:
        logger.info("source_store_not_configured")
        return None
    return MongoSourceStore.from_uri(
        uri,
        database=app.config.get('MONGODB_DATABASE'),
        timeout_ms=app.config.get('MONGODB_TIMEOUT_MS', 10000),
    )


def init_services(app: Flask, source_store=None) -> SyncServices:
    with app.app_context():
        target = TargetStore(db.engine)

    source = source_store if source_store is not None else build_source_store(app)
    writer = UpsertWriter(target)
    counters = FailureCounters()
    verifier = None
    if source is not None:
        verifier = ReconciliationVerifier(
            source, target, writer=writer,
            resync_limit=app.config['RESYNC_LIMIT'],
            error_sample_size=app.config['MIGRATION_ERROR_SAMPLE_SIZE'],
        )

    dispatcher = LiveHookDispatcher(
        writer,
        target,
        enabled=lambda: app.config.get('DUAL_WRITE_ENABLED', False),
        counters=counters,
        max_workers=app.config['DUAL_WRITE_MAX_WORKERS'],
        queue_size=app.config['DUAL_WRITE_QUEUE_SIZE'],
        verifier=verifier,
    ).connect()

    services = SyncServices(
        target=target,
        writer=writer,
        counters=counters,
        dispatcher=dispatcher,
        source=source,
        verifier=verifier,
    )
    app.extensions['dualsync'] = services
    logger.info(
        "services_initialized",
        dual_write_enabled=dispatcher.enabled,
        source_configured=source is not None,
    )
    return services


def get_services(app: Optional[Flask] = None) -> SyncServices:
    return (app or current_app).extensions['dualsync']


def register_error_handlers(app: Flask) -> None:
    """Render every error raised under the app as ``{"error", "message"}`` JSON."""

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'error': error.name,
            'message': error.description,
            'status_code': error.code,
        }), error.code

    @app.errorhandler(SyncError)
    def handle_sync_error(error):
        status = 503 if isinstance(error, TargetUnavailableError) else 500
        logger.error("request_failed", error_type=type(error).__name__, error=error.message)
        return jsonify({
            'error': type(error).__name__,
            'message': error.message,
            'status_code': status,
        }), status

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception("unexpected_error")
        return jsonify({
            'error': 'Internal Server Error',
            'message': 'An unexpected error occurred',
            'status_code': 500,
        }), 500


def create_app(config_name=None, source_store=None) -> Flask:
    """
    Create and configure the application.

    Args:
        config_name: Configuration name or class; defaults from FLASK_CONFIG / FLASK_ENV
        source_store: Source store to use instead of one built from MONGODB_URI

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)
    config_class.init_app(app)

    configure_logging(
        level=app.config['LOG_LEVEL'],
        json_format=app.config['LOG_FORMAT'] == 'json',
        cache_logger_on_first_use=not app.testing,
    )

    db.init_app(app)
    init_services(app, source_store=source_store)

    app.register_blueprint(monitoring_bp)
    register_error_handlers(app)

    from dualsync.cli import register_commands
    register_commands(app)

    logger.info("app_created", config=config_class.__name__)
    return app
