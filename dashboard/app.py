"""Flask application factory for the notification dashboard API."""

import os

from flask import Flask

from .config import get_config


def create_app(config=None):
    """Create and configure the Flask application.

    Args:
        config: Optional configuration object or dict

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    if config is None:
        config = get_config()

    if isinstance(config, dict):
        app.config.update(config)
    else:
        app.config.from_object(config)

    from common.notification_store import NotificationStore
    app.notification_store = NotificationStore(db_path=app.config.get("NOTIFICATION_DB_PATH"))

    from .routes.api import api_bp
    app.register_blueprint(api_bp, url_prefix="/api")

    return app


def run_dev_server():
    """Run development server."""
    app = create_app()
    app.run(
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 5000)),
        debug=True,
    )


if __name__ == "__main__":
    run_dev_server()
