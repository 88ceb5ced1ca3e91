"""Dashboard configuration."""

import os


class Config:
    """Base configuration."""

    # Flask
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-change-in-production")
    DEBUG = os.environ.get("FLASK_DEBUG", "false").lower() == "true"

    # API
    DASHBOARD_API_KEY = os.environ.get("DASHBOARD_API_KEY", "")

    # Notification Store
    NOTIFICATION_DB_PATH = os.environ.get(
        "NOTIFICATION_DB_PATH",
        os.path.expanduser("~/.ltc-alerts/notifications.db")
    )

    # Facility used when a request does not name one
    FACILITY_ID = os.environ.get("FACILITY_ID", "default")

    # Pagination
    NOTIFICATIONS_PER_PAGE = int(os.environ.get("NOTIFICATIONS_PER_PAGE", "100"))


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


def get_config():
    """Get configuration based on environment."""
    env = os.environ.get("FLASK_ENV", "development")
    if env == "production":
        return ProductionConfig()
    return DevelopmentConfig()
