"""Flask application factory for the trigger engine."""

from __future__ import annotations

import logging

from flask import Flask, jsonify

from trigger_engine.config import Config
from trigger_engine.extensions import init_extensions, shutdown_extensions

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

__all__ = ['create_app', 'shutdown_extensions']


def create_app(config: type[Config] | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Configuration class to use. Defaults to Config from environment.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Load configuration
    if config is None:
        config = Config
    app.config.from_object(config)

    logging.getLogger().setLevel(app.config.get('LOG_LEVEL', 'INFO').upper())

    # Initialize services
    init_extensions(app)

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint.

        Returns:
            JSON response with database and scheduler state.
        """
        status = "healthy"
        database = "ok"
        try:
            app.extensions['db_manager'].get_thread_connection().executesql("SELECT 1")
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            database = "unavailable"
            status = "degraded"

        scheduler = app.extensions.get('scheduler')
        return jsonify({
            "status": status,
            "database": database,
            "inApp": app.extensions.get('in_app') is not None,
            "email": app.extensions.get('email_sender') is not None,
            "sms": app.extensions.get('sms_sender') is not None,
            "scheduler": scheduler.status() if scheduler else None,
        })

    @app.teardown_appcontext
    def close_db_connection(error=None) -> None:
        """Release the request thread's database connection.

        Args:
            error: Exception if context is being torn down due to error
        """
        manager = app.extensions.get('db_manager')
        if manager is not None:
            manager.close_thread_connection()

    logger.info(f"Trigger engine started (env={app.config.get('ENV')})")
    return app
