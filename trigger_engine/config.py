"""Flask configuration management for the trigger engine."""

from __future__ import annotations

import os


class Config:
    """Base configuration class loading from environment variables."""

    # Flask settings
    DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"
    TESTING = os.getenv("FLASK_TESTING", "False").lower() == "true"
    ENV = os.getenv("FLASK_ENV", "production")
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")

    # Database configuration
    DB_TYPE = os.getenv("DB_TYPE", "postgres")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "")
    DB_NAME = os.getenv("DB_NAME", "trigger_engine")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_PATH = os.getenv("DB_PATH", "db/trigger_engine.db")
    DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MIGRATE = os.getenv("DB_MIGRATE", "true").lower() == "true"
    DB_MIGRATIONS_FOLDER = os.getenv("DB_MIGRATIONS_FOLDER", "migrations")

    # Redis configuration (in-app notification stream)
    REDIS_URL = os.getenv("REDIS_URL", "")
    IN_APP_STREAM = os.getenv("IN_APP_STREAM", "trigger-engine:in-app")
    REDIS_STREAM_MAX_LEN = int(os.getenv("REDIS_STREAM_MAX_LEN", "10000"))

    # SMTP configuration
    SMTP_HOST = os.getenv("SMTP_HOST", "")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
    SMTP_FROM_ADDRESS = os.getenv("SMTP_FROM_ADDRESS", "")
    SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", "Notifications")
    SMTP_TIMEOUT = int(os.getenv("SMTP_TIMEOUT", "30"))

    # SMS gateway configuration
    SMS_GATEWAY_URL = os.getenv("SMS_GATEWAY_URL", "")
    SMS_API_KEY = os.getenv("SMS_API_KEY", "")
    SMS_SENDER_ID = os.getenv("SMS_SENDER_ID", "")
    SMS_TIMEOUT = int(os.getenv("SMS_TIMEOUT", "10"))

    # Engine worker pools
    DISPATCH_WORKERS = int(os.getenv("DISPATCH_WORKERS", "1"))
    SEND_WORKERS = int(os.getenv("SEND_WORKERS", "4"))

    # Scheduler configuration
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "True").lower() == "true"
    STOCK_SCAN_INTERVAL_MINUTES = int(os.getenv("STOCK_SCAN_INTERVAL_MINUTES", "60"))
    DELIVERY_SCAN_INTERVAL_MINUTES = int(os.getenv("DELIVERY_SCAN_INTERVAL_MINUTES", "30"))
    QUALITY_SCAN_INTERVAL_MINUTES = int(os.getenv("QUALITY_SCAN_INTERVAL_MINUTES", "120"))
    OVERDUE_SCAN_HOUR = int(os.getenv("OVERDUE_SCAN_HOUR", "9"))
    WARM_UP_DELAY_SECONDS = int(os.getenv("WARM_UP_DELAY_SECONDS", "60"))
    SCHEDULER_POLL_SECONDS = float(os.getenv("SCHEDULER_POLL_SECONDS", "1"))

    # Logging configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    TESTING = False
    ENV = "development"
    DB_TYPE = "sqlite"


class TestingConfig(Config):
    """Testing environment configuration."""

    DEBUG = True
    TESTING = True
    ENV = "testing"
    SECRET_KEY = "test-secret-key"
    DB_TYPE = "sqlite"
    DB_PATH = ":memory:"
    REDIS_URL = ""
    SMTP_HOST = ""
    SMS_GATEWAY_URL = ""
    SEND_WORKERS = 1
    DISPATCH_WORKERS = 1
    SCHEDULER_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    TESTING = False
    ENV = "production"
