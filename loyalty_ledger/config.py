"""
Configuration management for the loyalty ledger service.

Business policy (tier thresholds, bonus sizes, COGS ceilings) lives in
utils/policy.py. This module only carries deployment settings.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, '') else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, '') else default


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False

    # Caller authentication (bearer tokens are verified here, issued elsewhere)
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-jwt-secret-change-in-production')
    JWT_ALGORITHM = 'HS256'
    JWT_AUDIENCE = os.getenv('JWT_AUDIENCE', '')

    # Identity provider: 'memory' for local work, 'http' for the real service
    IDENTITY_BACKEND = os.getenv('IDENTITY_BACKEND', 'memory')
    IDENTITY_SERVICE_URL = os.getenv('IDENTITY_SERVICE_URL', '')
    IDENTITY_SERVICE_TOKEN = os.getenv('IDENTITY_SERVICE_TOKEN', '')
    IDENTITY_TIMEOUT_SECONDS = _env_float('IDENTITY_TIMEOUT_SECONDS', 5.0)
    IDENTITY_USERS = {}

    # Outbound notifications (best effort)
    NOTIFICATION_WEBHOOK_URL = os.getenv('NOTIFICATION_WEBHOOK_URL', '')
    NOTIFICATION_TIMEOUT_SECONDS = _env_float('NOTIFICATION_TIMEOUT_SECONDS', 3.0)

    # Rate limiting: memory:// is per process, redis://host:6379 is shared
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', os.getenv('REDIS_URL') or 'memory://')

    # Payment provider webhook
    PAYMENT_WEBHOOK_SECRET = os.getenv('PAYMENT_WEBHOOK_SECRET', '')

    # Unit of work retries on write conflicts
    LEDGER_TRANSACTION_RETRIES = _env_int('LEDGER_TRANSACTION_RETRIES', 3)

    # Spin wheel randomness; unset means a fresh unseeded generator
    SPIN_RANDOM_SEED = os.getenv('SPIN_RANDOM_SEED')

    # Birthday job
    ENABLE_SCHEDULER = os.getenv('ENABLE_SCHEDULER') == 'true'
    BIRTHDAY_CRON_HOUR = _env_int('BIRTHDAY_CRON_HOUR', 9)
    BIRTHDAY_CRON_TIMEZONE = os.getenv('BIRTHDAY_CRON_TIMEZONE', 'America/New_York')

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',')
        if origin.strip()
    ]


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///loyalty_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
        # Balance checks and COGS aggregates must not see write skew
        'isolation_level': 'SERIALIZABLE',
    }

    IDENTITY_BACKEND = os.getenv('IDENTITY_BACKEND', 'http')

    _secret_key = os.getenv('SECRET_KEY', '')
    _jwt_secret_key = os.getenv('JWT_SECRET_KEY', '')

    @classmethod
    def validate_secrets(cls) -> None:
        """
        Validate signing secrets in production.

        Raises:
            RuntimeError: If SECRET_KEY or JWT_SECRET_KEY is missing or weak
        """
        for name, value in (('SECRET_KEY', cls._secret_key), ('JWT_SECRET_KEY', cls._jwt_secret_key)):
            if not value:
                raise RuntimeError(
                    f"CRITICAL: {name} environment variable is not set!\n"
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )

            insecure_patterns = ['dev', 'change', 'default', 'test', 'secret', 'password']
            lower_value = value.lower()
            for pattern in insecure_patterns:
                if pattern in lower_value:
                    raise RuntimeError(
                        f"CRITICAL: {name} contains '{pattern}' which suggests it's not secure!"
                    )

            if len(value) < 32:
                raise RuntimeError(f"CRITICAL: {name} is too short (minimum 32 characters required)!")

    SECRET_KEY = _secret_key
    JWT_SECRET_KEY = _jwt_secret_key


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    JWT_SECRET_KEY = 'testing-jwt-key'
    IDENTITY_BACKEND = 'memory'
    RATELIMIT_STORAGE_URI = 'memory://'
    PAYMENT_WEBHOOK_SECRET = 'testing-webhook-secret'
    NOTIFICATION_WEBHOOK_URL = ''
    CACHE_TYPE = 'NullCache'
    ENABLE_SCHEDULER = False


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secrets()
