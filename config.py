"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # JSON API: CSRF tokens are checked on form posts only
    WTF_CSRF_ENABLED = os.getenv('WTF_CSRF_ENABLED', 'true').lower() == 'true'

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'quotevoice')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'quotevoice')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'quotevoice')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Redis (rate limiting)
    # Shared limiter state; the app keeps serving if Redis is down
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    RATE_LIMIT_ENABLED = os.getenv('RATE_LIMIT_ENABLED', 'true').lower() == 'true'
    RATE_LIMIT_PER_MINUTE = int(os.getenv('RATE_LIMIT_PER_MINUTE', '100'))
    RATE_LIMIT_INVOICE_PER_MINUTE = int(os.getenv('RATE_LIMIT_INVOICE_PER_MINUTE', '20'))
    RATE_LIMIT_KEY_PREFIX = os.getenv('RATE_LIMIT_KEY_PREFIX', 'quotevoice:ratelimit')

    # PDF rendering and in-process cache
    PDF_CACHE_MAX_BYTES = int(os.getenv('PDF_CACHE_MAX_BYTES', 10 * 1024 * 1024))  # 10 MiB
    PDF_CACHE_TTL_SECONDS = int(os.getenv('PDF_CACHE_TTL_SECONDS', '1800'))  # 30 minutes
    PDF_DEFAULT_LOCALE = os.getenv('PDF_DEFAULT_LOCALE', 'fr-BE')

    # Invoicing defaults
    INVOICE_DEFAULT_DUE_DAYS = int(os.getenv('INVOICE_DEFAULT_DUE_DAYS', '30'))
    INVOICE_DEFAULT_DEPOSIT_PERCENTAGE = int(os.getenv('INVOICE_DEFAULT_DEPOSIT_PERCENTAGE', '30'))

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    RATE_LIMIT_ENABLED = False
    SENTRY_DSN = None
