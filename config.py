"""Configuration module for Flask application."""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _build_database_url():
    """
    Resolve the database URL from the environment.

    Priority: DATABASE_URL > DB_* > POSTGRES_*. Returns None when no
    endpoint is configured so the app factory can fail fast.
    """
    url = os.getenv('DATABASE_URL')
    if url:
        return url

    host = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST')
    if not host:
        return None

    port = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
    name = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'inventory')
    user = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'inventory')
    password = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', '')

    return f"postgresql://{user}:{password}@{host}:{port}/{name}"


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'production')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Database
    DATABASE_URL = _build_database_url()

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    DB_POOL_SIZE = int(os.getenv('DB_POOL_SIZE', '10'))
    DB_MAX_OVERFLOW = int(os.getenv('DB_MAX_OVERFLOW', '20'))
    DB_POOL_RECYCLE = int(os.getenv('DB_POOL_RECYCLE', '1800'))  # seconds

    # Stock policy
    CRITICAL_STOCK_RATIO = Decimal(os.getenv('CRITICAL_STOCK_RATIO', '0.5'))
    STOCK_LOCK_TIMEOUT = float(os.getenv('STOCK_LOCK_TIMEOUT', '10'))  # seconds
    STOCK_HISTORY_DEFAULT_LIMIT = int(os.getenv('STOCK_HISTORY_DEFAULT_LIMIT', '50'))
    STOCK_HISTORY_MAX_LIMIT = int(os.getenv('STOCK_HISTORY_MAX_LIMIT', '500'))

    # Email configuration
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'
    LOW_STOCK_EMAIL_ENABLED = os.getenv('LOW_STOCK_EMAIL_ENABLED', 'false').lower() == 'true'
    ORDER_EMAIL_ENABLED = os.getenv('ORDER_EMAIL_ENABLED', 'false').lower() == 'true'

    # Redis Cache Configuration
    # Dashboard aggregates only; stock balances are always read from the database
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_DASHBOARD_TTL = int(os.getenv('CACHE_DASHBOARD_TTL', '60'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'inventory')
