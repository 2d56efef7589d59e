import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
socketio = SocketIO()
cache = Cache()
migrate = Migrate()


def _redis_message_queue(app):
    """Redis URL for the Socket.IO message queue, if Redis answers"""
    if app.config.get("TESTING") or app.config.get("CACHE_TYPE") != "RedisCache":
        return None

    redis_url = app.config.get("CACHE_REDIS_URL") or os.environ.get("REDIS_URL")
    if not redis_url:
        return None

    import redis

    try:
        redis_client = redis.Redis.from_url(redis_url)
        redis_client.ping()
    except redis.exceptions.ConnectionError as e:
        logger.warning(f"Redis not available for Socket.IO message queue: {e}")
        return None

    logger.info(f"Socket.IO using Redis message queue at {redis_url}")
    return redis_url


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Setup logging first so extension start-up is logged
    from app.utils.logging_config import setup_logging

    setup_logging(app)

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)

    # Configure WebSocket CORS based on environment
    allowed_origins = app.config.get("SOCKETIO_CORS_ORIGINS", "*")
    if allowed_origins != "*":
        allowed_origins = allowed_origins.split(",")

    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "eventlet"),
        ping_timeout=60,
        ping_interval=25,
        message_queue=_redis_message_queue(app),
    )

    # Import and register blueprints
    from app.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    # Register error handlers
    register_error_handlers(app)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Initialize and start background scheduler
    if not app.config.get("TESTING", False):
        from app.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    # Register SocketIO handlers
    from app import socketio_handlers  # noqa: F401 - imported for side effects

    log_config_summary(app, config_name)

    return app


def log_config_summary(app, config_name):
    """Log which configuration and database the app started with"""
    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if "sqlite" in db_url:
        database = "SQLite (in-memory)" if "memory" in db_url else "SQLite (app.db)"
    elif "postgresql" in db_url:
        database = "PostgreSQL"
    else:
        database = db_url.split("://")[0] if "://" in db_url else "Unknown"

    logger.info(
        f"Pick'em scoring starting with '{config_name}' configuration, "
        f"database: {database}, cache: {app.config.get('CACHE_TYPE')}"
    )


def register_error_handlers(app):
    """Register JSON error handlers"""

    from app.services.scoring_service import LeagueNotFound

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

    @app.errorhandler(LeagueNotFound)
    def league_not_found(error):
        return jsonify({"error": str(error)}), 404

    @app.errorhandler(ValueError)
    def value_error(error):
        app.logger.warning(f"Invalid request: {error} - Path: {request.path}")
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({"error": error.description}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


from app import models  # noqa: F401, E402 - imported for model registration
