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

    # Public URL used in notification links
    APP_URL = os.getenv('APP_URL', 'http://localhost:3000')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'marketplace')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'marketplace')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'marketplace')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # RFQ / Quote negotiation
    RFQ_VALID_DAYS = int(os.getenv('RFQ_VALID_DAYS', '30'))
    QUOTE_VALID_DAYS = int(os.getenv('QUOTE_VALID_DAYS', '7'))

    # Cart
    CART_EXPIRY_DAYS = int(os.getenv('CART_EXPIRY_DAYS', '7'))
    # 0 keeps delivery free; the storefront used 100 per supplier, free from 5000
    DELIVERY_FEE_PER_SUPPLIER = os.getenv('DELIVERY_FEE_PER_SUPPLIER', '0')
    FREE_DELIVERY_THRESHOLD = os.getenv('FREE_DELIVERY_THRESHOLD', '5000')
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '৳')

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestConfig(Config):
    """Configuration used by the test suite (in-memory SQLite)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    DELIVERY_FEE_PER_SUPPLIER = '0'
