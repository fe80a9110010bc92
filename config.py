"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # JWT
    JWT_SECRET = os.getenv('JWT_SECRET', 'default-access-secret')
    JWT_REFRESH_SECRET = os.getenv('JWT_REFRESH_SECRET', 'default-refresh-secret')
    JWT_ACCESS_EXPIRY = os.getenv('JWT_ACCESS_EXPIRY', '15m')
    JWT_REFRESH_EXPIRY = os.getenv('JWT_REFRESH_EXPIRY', '7d')
    JWT_ISSUER = os.getenv('JWT_ISSUER', 'martpos')

    # Sessions: live refresh tokens kept per user
    MAX_REFRESH_TOKENS = int(os.getenv('MAX_REFRESH_TOKENS', '5'))

    # Passwords (werkzeug.security method string)
    PASSWORD_HASH_METHOD = os.getenv('PASSWORD_HASH_METHOD', 'scrypt')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'martpos')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'martpos')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'martpos')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    DB_CREATE_ALL = os.getenv('DB_CREATE_ALL', 'false').lower() == 'true'

    # Audit log writer
    AUDIT_ASYNC = os.getenv('AUDIT_ASYNC', 'true').lower() == 'true'
    AUDIT_QUEUE_SIZE = int(os.getenv('AUDIT_QUEUE_SIZE', '10000'))

    # Redis (login rate limiting)
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    RATE_LIMIT_ENABLED = os.getenv('RATE_LIMIT_ENABLED', 'true').lower() == 'true'
    RATE_LIMIT_KEY_PREFIX = os.getenv('RATE_LIMIT_KEY_PREFIX', 'martpos')
    LOGIN_RATE_LIMIT = int(os.getenv('LOGIN_RATE_LIMIT', '10'))
    LOGIN_RATE_WINDOW = int(os.getenv('LOGIN_RATE_WINDOW', '900'))  # seconds

    # Live monitoring channel
    EVENT_CHANNEL_QUEUE_SIZE = int(os.getenv('EVENT_CHANNEL_QUEUE_SIZE', '100'))
    MONITOR_HEARTBEAT_SECONDS = int(os.getenv('MONITOR_HEARTBEAT_SECONDS', '15'))

    # Deployment bootstrap accounts (flask init-accounts)
    ADMIN_AUTO_CREATE = os.getenv('ADMIN_AUTO_CREATE', 'true').lower() != 'false'
    SUPER_ADMIN_EMAIL = os.getenv('SUPER_ADMIN_EMAIL', 'admin@example.com')
    SUPER_ADMIN_PASSWORD = os.getenv('SUPER_ADMIN_PASSWORD', 'admin123456')
    SUPER_ADMIN_FIRST_NAME = os.getenv('SUPER_ADMIN_FIRST_NAME', 'Super')
    SUPER_ADMIN_LAST_NAME = os.getenv('SUPER_ADMIN_LAST_NAME', 'Admin')
    DEFAULT_TENANT_NAME = os.getenv('DEFAULT_TENANT_NAME', 'Digital Mart')
    DEFAULT_SHOP_ADMIN_EMAIL = os.getenv('DEFAULT_SHOP_ADMIN_EMAIL', 'shopadmin@example.com')
    DEFAULT_SHOP_ADMIN_PASSWORD = os.getenv('DEFAULT_SHOP_ADMIN_PASSWORD', 'shopadmin123')
    DEFAULT_SHOP_ADMIN_NAME = os.getenv('DEFAULT_SHOP_ADMIN_NAME', 'Shop')
    DEFAULT_TENANT_PLAN = os.getenv('DEFAULT_TENANT_PLAN', 'professional')

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    JWT_SECRET = 'test-access-secret-0123456789abcdef0123'
    JWT_REFRESH_SECRET = 'test-refresh-secret-0123456789abcdef012'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    DB_CREATE_ALL = True
    AUDIT_ASYNC = False
    RATE_LIMIT_ENABLED = False
    # Cheap hashing keeps the suite fast
    PASSWORD_HASH_METHOD = 'pbkdf2:sha256:1000'
    SENTRY_DSN = None
