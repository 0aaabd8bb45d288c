"""
Configuration module for Zeropad.
Separates development, production and testing settings.

All deployment-specific values come from environment variables (optionally
via a .env file). The server holds no secrets of its own: encryption keys and
write tokens live in share links only.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def normalize_database_url(url):
    """
    Turn DATABASE_URL values into SQLAlchemy URLs.

    Accepts the forms used by earlier deployments:
        file:./sqlite.db       -> sqlite:///./sqlite.db
        postgres://...         -> postgresql://...
    Anything else is returned unchanged.
    """
    if not url:
        return 'sqlite:///instance/zeropad.db'
    if url.startswith('file:'):
        return 'sqlite:///' + url[len('file:'):]
    if url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    return url


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration with security defaults."""

    # Database configuration - SQLite unless DATABASE_URL says otherwise
    SQLALCHEMY_DATABASE_URI = normalize_database_url(os.environ.get('DATABASE_URL'))
    SQLALCHEMY_TRACK_MODIFICATIONS = False  # Disable for performance

    # 'sql' (SQLAlchemy, above) or 'memory' (process-local, lost on restart)
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'sql')

    # Maximum encryptedContent length in characters (base64, so bytes too)
    MAX_DOCUMENT_SIZE = int(os.environ.get('MAX_DOCUMENT_SIZE', 10 * 1024 * 1024))

    # Whole request bodies above this are refused before parsing.
    # None means MAX_DOCUMENT_SIZE plus room for the JSON envelope.
    MAX_CONTENT_LENGTH = None

    # Rate limiting settings: (window in seconds, max requests per window)
    RATE_LIMIT_ENABLED = _env_bool('RATE_LIMIT_ENABLED', True)
    RATE_LIMIT_CREATE = (60 * 60, 10)     # per client IP
    RATE_LIMIT_UPDATE = (60 * 60, 30)     # per document id
    RATE_LIMIT_GET = (60 * 60, 100)       # per client IP
    RATE_LIMIT_SWEEP_SECONDS = 10 * 60

    # Write authorization
    # Documents stored before write tokens existed have no hash. When True
    # anyone with the id may update them; when False they are read-only.
    ALLOW_LEGACY_WRITES = _env_bool('ALLOW_LEGACY_WRITES', True)
    # Refuse to create documents that have no write token hash
    REQUIRE_WRITE_TOKEN = _env_bool('REQUIRE_WRITE_TOKEN', False)

    # Audit logging settings
    AUDIT_LOG_ENABLED = True
    AUDIT_LOG_FILE = 'logs/security_audit.log'
    AUDIT_LOG_LEVEL = 'INFO'

    # Access logging settings
    ACCESS_LOG_ENABLED = True
    ACCESS_LOG_FILE = 'logs/access.log'
    ACCESS_LOG_LEVEL = 'INFO'


class DevelopmentConfig(Config):
    """Development configuration - less strict for testing."""

    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration - maximum security."""

    DEBUG = False
    TESTING = False

    # New documents must be editable only through a write token
    REQUIRE_WRITE_TOKEN = _env_bool('REQUIRE_WRITE_TOKEN', True)


class TestingConfig(Config):
    """Testing configuration for unit tests."""

    TESTING = True
    DEBUG = True

    # Use in-memory SQLite for tests
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    STORAGE_BACKEND = 'sql'

    # Small limit so size tests stay fast
    MAX_DOCUMENT_SIZE = 4096

    RATE_LIMIT_ENABLED = True
    ALLOW_LEGACY_WRITES = True
    REQUIRE_WRITE_TOKEN = False


# Config dictionary for easy access
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on FLASK_ENV environment variable."""
    env = os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])
