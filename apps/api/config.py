"""
Wilayah Review - Configuration
Application configuration management
"""
import os
import logging
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

# Monorepo layout: <repo>/apps/api/config.py -> BASE_DIR=<repo>
_THIS_DIR = Path(__file__).parent.resolve()
_MONOREPO_ROOT = _THIS_DIR.parent.parent
if (_MONOREPO_ROOT / 'apps' / 'api').exists():
    BASE_DIR = _MONOREPO_ROOT.resolve()
else:
    BASE_DIR = _THIS_DIR


def _require_env(name: str, default: str = None, allow_default_in_dev: bool = True) -> str:
    """
    Get environment variable, failing loudly in production if not set.

    Raises:
        RuntimeError: If a secret is not set in production
    """
    value = os.getenv(name)
    is_production = os.getenv('FLASK_ENV', 'development') == 'production'

    if value:
        return value

    if is_production:
        if default is None or name in ('SECRET_KEY', 'JWT_SECRET_KEY'):
            raise RuntimeError(
                f"SECURITY ERROR: {name} environment variable is required in production."
            )
        logging.warning(f"Using default value for {name} in production - consider setting explicitly")
        return default

    if default is not None and allow_default_in_dev:
        logging.debug(f"Using default value for {name} in development")
        return default

    raise RuntimeError(f"{name} environment variable is required")


def get_database_url():
    """
    Get and process the database URL.
    - Handles URL scheme conversion (postgres:// -> postgresql://)
    - Adds sslmode=require for PostgreSQL unless DB_SSLMODE overrides it
    """
    url = os.getenv('DATABASE_URL')

    if not url:
        fallback = f"sqlite:///{BASE_DIR / 'wilayah.db'}"
        logging.warning("DATABASE_URL not set; using fallback %s", fallback)
        return fallback

    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)

    if url.startswith('postgresql://'):
        sslmode = os.getenv('DB_SSLMODE', 'require')
        try:
            parsed = urlparse(url)
            query_params = parse_qs(parsed.query)
            if 'sslmode' not in query_params:
                query_params['sslmode'] = [sslmode]
            url = urlunparse((
                parsed.scheme,
                parsed.netloc,
                parsed.path,
                parsed.params,
                urlencode(query_params, doseq=True),
                parsed.fragment
            ))
        except ValueError as e:
            logging.warning(f"Could not parse DATABASE_URL (special chars?): {e}")
            if 'sslmode=' not in url:
                separator = '&' if '?' in url else '?'
                url = f"{url}{separator}sslmode={sslmode}"

    return url


def get_engine_options():
    """
    Get SQLAlchemy engine options based on the database type.

    PostgreSQL connections carry a server-side statement_timeout so a
    runaway spatial join cannot hold a pooled connection forever.
    """
    db_url = get_database_url()

    options = {
        'pool_pre_ping': True,
    }

    if db_url.startswith('postgresql://'):
        statement_timeout_ms = int(os.getenv('DB_STATEMENT_TIMEOUT_MS', 30000))
        options.update({
            'pool_recycle': 300,
            'pool_timeout': 20,
            'pool_size': int(os.getenv('DB_POOL_SIZE', 5)),
            'max_overflow': int(os.getenv('DB_MAX_OVERFLOW', 5)),
            'connect_args': {
                'connect_timeout': 20,
                'keepalives': 1,
                'keepalives_idle': 30,
                'keepalives_interval': 10,
                'keepalives_count': 5,
                'options': f'-c statement_timeout={statement_timeout_ms}',
                'application_name': 'wilayah-api',
            }
        })

    if db_url.startswith('sqlite://'):
        from sqlalchemy.pool import NullPool
        options = {'poolclass': NullPool}

    return options


class Config:
    """Base configuration"""

    SECRET_KEY = _require_env('SECRET_KEY', 'dev-secret-key-for-local-development-only')
    DEBUG = os.getenv('DEBUG', 'False') == 'True'
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    # Database
    SQLALCHEMY_DATABASE_URI = get_database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = DEBUG
    SQLALCHEMY_ENGINE_OPTIONS = get_engine_options()

    # Retry policy for transient store errors
    DB_RETRY_MAX_ATTEMPTS = int(os.getenv('DB_RETRY_MAX_ATTEMPTS', 3))
    DB_RETRY_INITIAL_DELAY = float(os.getenv('DB_RETRY_INITIAL_DELAY', 0.5))

    # JWT
    JWT_SECRET_KEY = _require_env('JWT_SECRET_KEY', 'jwt-dev-secret-for-local-development-only')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        seconds=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', 86400))
    )
    JWT_ALGORITHM = 'HS256'
    JWT_TOKEN_LOCATION = ['headers']

    # Rate Limiting Configuration
    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'True') == 'True'
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    if FLASK_ENV == 'production' and RATELIMIT_ENABLED and RATELIMIT_STORAGE_URI.strip().lower() == 'memory://':
        raise RuntimeError(
            "RATELIMIT_STORAGE_URI must use a shared backend (e.g., Redis) in production."
        )
    RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '200 per day, 50 per hour')
    RATELIMIT_HEADERS_ENABLED = True

    # CORS
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv('CORS_ORIGINS', 'http://localhost:5173').split(',')
        if origin.strip()
    ]

    # Spatial resolution
    SPATIAL_QUERY_TIMEOUT_SECONDS = float(os.getenv('SPATIAL_QUERY_TIMEOUT_SECONDS', 15))
    DEFAULT_PROVINCE_NAME = os.getenv('DEFAULT_PROVINCE_NAME', 'Kepulauan Bangka Belitung')
    SPATIAL_DATA_DIR = BASE_DIR / os.getenv('SPATIAL_DATA_DIR', 'data_peta')

    APP_NAME = os.getenv('APP_NAME', 'Wilayah Review')

    @staticmethod
    def init_app(app):
        """Initialize application configuration"""
        if app.config.get('SPATIAL_QUERY_TIMEOUT_SECONDS', 0) <= 0:
            app.logger.warning(
                "SPATIAL_QUERY_TIMEOUT_SECONDS=%s disables spatial deadlines",
                app.config.get('SPATIAL_QUERY_TIMEOUT_SECONDS'),
            )


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    JWT_SECRET_KEY = 'test-secret'
    DB_RETRY_MAX_ATTEMPTS = 0


# Config dictionary
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
