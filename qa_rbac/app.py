"""
Flask Application Factory

Composition root of the RBAC core. ``create_app`` loads configuration,
configures structured logging, builds exactly one database adapter for the
configured backend, wires repositories and services with ``injector`` and
registers error handlers, health endpoints and the ``rbac`` CLI group.

Example:
    from qa_rbac.app import create_app
    app = create_app('development')
    resolver = app.injector.get(PermissionResolver)
"""

import uuid
from typing import Any, Dict, Optional

import redis
from flask import Flask, g, jsonify
from flask_sqlalchemy import SQLAlchemy

from qa_rbac.cli import register_cli_commands
from qa_rbac.config import get_config, load_environment_variables
from qa_rbac.container import build_injector
from qa_rbac.database.adapters import DatabaseAdapter, create_adapter
from qa_rbac.database.identity import BackendKind
from qa_rbac.services.cache import create_redis_client
from qa_rbac.utils.error_handling import DatabaseError, register_error_handlers
from qa_rbac.utils.logging import configure_logging, get_logger


logger = get_logger(__name__)

db = SQLAlchemy()


def configure_request_context(app: Flask) -> None:
    @app.before_request
    def assign_request_id():
        g.request_id = str(uuid.uuid4())


def register_health_endpoints(app: Flask) -> None:
    """Register ``/health``, which reports storage reachability."""

    @app.route('/health')
    def health_check():
        adapter = app.injector.get(DatabaseAdapter)
        try:
            adapter.ping()
        except DatabaseError as e:
            logger.error("health_check_failed", backend=adapter.kind.value, error=e.message)
            return jsonify({'status': 'unhealthy', 'backend': adapter.kind.value}), 503
        return jsonify({'status': 'healthy', 'backend': adapter.kind.value}), 200


def build_adapter(app: Flask) -> DatabaseAdapter:
    """Create the adapter for ``DATABASE_BACKEND``, using Flask-SQLAlchemy for SQL."""
    kind = BackendKind.parse(app.config['DATABASE_BACKEND'])
    if kind is BackendKind.POSTGRESQL:
        db.init_app(app)
        with app.app_context():
            return create_adapter(app.config, session_factory=db.session, engine=db.engine)
    return create_adapter(app.config)


def create_app(config_name: Optional[str] = None,
               adapter: Optional[DatabaseAdapter] = None,
               cache_client: Optional[redis.Redis] = None,
               config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_name: 'development', 'testing' or 'production'; defaults to
            ``FLASK_CONFIG``
        adapter: Pre-built database adapter; built from configuration when
            omitted
        cache_client: Redis client; created from ``REDIS_URL`` when omitted
            and ``CACHE_ENABLED`` is set
        config_overrides: Values applied on top of the configuration class

    Returns:
        Flask: Configured application with ``app.injector`` set
    """
    load_environment_variables()

    app = Flask(__name__)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config.get('LOG_LEVEL', 'INFO'), app.config.get('LOG_JSON', True))
    config_class.init_app(app)

    if adapter is None:
        adapter = build_adapter(app)

    if cache_client is None and app.config.get('CACHE_ENABLED'):
        cache_client = create_redis_client(app.config['REDIS_URL'])

    app.injector = build_injector(
        adapter,
        cache_client=cache_client,
        cache_ttl=app.config.get('RBAC_CACHE_TTL', 300),
        default_role_name=app.config.get('DEFAULT_ROLE_NAME', 'user'),
    )

    configure_request_context(app)
    register_error_handlers(app)
    register_health_endpoints(app)
    register_cli_commands(app)

    logger.info(
        "application_created",
        config=config_class.__name__,
        backend=adapter.kind.value,
        cache_enabled=cache_client is not None,
    )
    return app


__all__ = ['create_app', 'db']
