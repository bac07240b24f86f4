"""
dualsync Configuration Management

Environment-specific configuration classes for the replication engine. Every
setting maps to an environment variable so deployments only touch ``.env``
files or the process environment.

The configuration covers:
- PostgreSQL target connection (SQLAlchemy URI, small bounded pool)
- MongoDB source connection
- Dual-write feature flag and dispatcher sizing
- Batch migration tuning: batch size, connect retry, error sampling
- Named migration targets mapped to PostgreSQL schemas
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from dualsync.services.base import ConfigurationError


def load_environment_variables() -> list:
    """
    Load ``.env.local``, ``.env.{FLASK_ENV}`` and ``.env``.

    Earlier files take precedence over later ones and existing process
    variables win over all of them. Returns the files that were found.
    """
    flask_env = os.environ.get('FLASK_ENV', 'development')
    loaded = []
    for env_file in ('.env.local', f'.env.{flask_env}', '.env'):
        if Path(env_file).exists():
            load_dotenv(env_file, override=False)
            loaded.append(env_file)
    return loaded


load_environment_variables()


def _flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).strip().lower() in ('true', '1')


def parse_targets(raw: str) -> Dict[str, Optional[str]]:
    """
    Parse ``MIGRATION_TARGETS`` into a name to schema mapping.

    Format: ``production=app,test=app_test``. An empty schema (``local=``)
    means the connection's default schema.
    """
    targets: Dict[str, Optional[str]] = {}
    for chunk in (raw or '').split(','):
        chunk = chunk.strip()
        if not chunk:
            continue
        if '=' not in chunk:
            raise ConfigurationError(f"Invalid MIGRATION_TARGETS entry: {chunk!r}")
        name, schema = chunk.split('=', 1)
        targets[name.strip()] = schema.strip() or None
    return targets


class Config:
    """
    Base configuration class containing common settings for all environments.
    """

    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-key-change-in-production'

    # Target store (PostgreSQL)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'postgresql://localhost:5432/dualsync_dev'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MIGRATION_POOL_SIZE = int(os.environ.get('MIGRATION_POOL_SIZE', '5'))
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 3600,
        'pool_size': MIGRATION_POOL_SIZE,
        'max_overflow': 0,
    }

    # Source store (MongoDB)
    MONGODB_URI = os.environ.get('MONGODB_URI')
    MONGODB_DATABASE = os.environ.get('MONGODB_DATABASE')
    MONGODB_TIMEOUT_MS = int(os.environ.get('MONGODB_TIMEOUT_MS', '10000'))

    # Live dual-write
    DUAL_WRITE_ENABLED = _flag('DUAL_WRITE_ENABLED')
    DUAL_WRITE_MAX_WORKERS = int(os.environ.get('DUAL_WRITE_MAX_WORKERS', '4'))
    DUAL_WRITE_QUEUE_SIZE = int(os.environ.get('DUAL_WRITE_QUEUE_SIZE', '1000'))
    RESYNC_LIMIT = int(os.environ.get('RESYNC_LIMIT', '5000'))

    # Batch migration
    MIGRATION_BATCH_SIZE = int(os.environ.get('MIGRATION_BATCH_SIZE', '100'))
    MIGRATION_WORKERS = int(os.environ.get('MIGRATION_WORKERS', '1'))
    MIGRATION_CONNECT_ATTEMPTS = int(os.environ.get('MIGRATION_CONNECT_ATTEMPTS', '5'))
    MIGRATION_CONNECT_BACKOFF = float(os.environ.get('MIGRATION_CONNECT_BACKOFF', '3'))
    MIGRATION_ERROR_SAMPLE_SIZE = int(os.environ.get('MIGRATION_ERROR_SAMPLE_SIZE', '5'))
    MIGRATION_TARGETS = parse_targets(
        os.environ.get('MIGRATION_TARGETS', 'production=app,test=app_test')
    )
    MIGRATION_DDL_DIR = os.environ.get('MIGRATION_DDL_DIR')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.environ.get('LOG_FORMAT', 'json')

    @staticmethod
    def init_app(app):
        """Hook for environment-specific initialization."""
        pass


class DevelopmentConfig(Config):
    """Development configuration with console logging."""

    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')
    LOG_FORMAT = os.environ.get('LOG_FORMAT', 'console')


class TestingConfig(Config):
    """
    Testing configuration.

    Uses an in-memory SQLite target and disables dual-write unless a test
    turns it on explicitly. Connect backoff is zero so retry tests are fast.
    """

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    DUAL_WRITE_ENABLED = False
    DUAL_WRITE_MAX_WORKERS = 1
    MIGRATION_CONNECT_BACKOFF = 0.0
    MIGRATION_TARGETS = {'test': None}
    LOG_LEVEL = 'DEBUG'
    LOG_FORMAT = 'console'


class ProductionConfig(Config):
    """Production configuration with required-setting validation."""

    DEBUG = False

    @staticmethod
    def init_app(app):
        missing = [
            key for key in ('MONGODB_URI', 'MONGODB_DATABASE')
            if not app.config.get(key)
        ]
        if not os.environ.get('DATABASE_URL'):
            missing.append('DATABASE_URL')
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None):
    """
    Get configuration class based on environment name.

    Args:
        config_name: Name of the configuration environment, or a config class

    Returns:
        Configuration class for the specified environment
    """
    if isinstance(config_name, type):
        return config_name
    if config_name is None:
        config_name = os.environ.get('FLASK_CONFIG') or os.environ.get('FLASK_ENV', 'default')

    return config.get(config_name, DevelopmentConfig)


@dataclass
class MigrationSettings:
    """Batch migration tuning, extracted from a Flask config mapping."""

    database_url: str
    targets: Dict[str, Optional[str]] = field(default_factory=dict)
    batch_size: int = 100
    workers: int = 1
    pool_size: int = 5
    connect_attempts: int = 5
    connect_backoff: float = 3.0
    error_sample_size: int = 5
    ddl_dir: Optional[str] = None
    engine_options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'MigrationSettings':
        database_url = values.get('SQLALCHEMY_DATABASE_URI')
        if not database_url:
            raise ConfigurationError("SQLALCHEMY_DATABASE_URI is not configured")

        batch_size = int(values.get('MIGRATION_BATCH_SIZE', 100))
        if batch_size <= 0:
            raise ConfigurationError("MIGRATION_BATCH_SIZE must be positive")

        targets = values.get('MIGRATION_TARGETS') or {}
        if isinstance(targets, str):
            targets = parse_targets(targets)

        return cls(
            database_url=database_url,
            targets=dict(targets),
            batch_size=batch_size,
            workers=max(1, int(values.get('MIGRATION_WORKERS', 1))),
            pool_size=int(values.get('MIGRATION_POOL_SIZE', 5)),
            connect_attempts=max(1, int(values.get('MIGRATION_CONNECT_ATTEMPTS', 5))),
            connect_backoff=float(values.get('MIGRATION_CONNECT_BACKOFF', 3)),
            error_sample_size=int(values.get('MIGRATION_ERROR_SAMPLE_SIZE', 5)),
            ddl_dir=values.get('MIGRATION_DDL_DIR'),
            engine_options={
                key: value for key, value in (values.get('SQLALCHEMY_ENGINE_OPTIONS') or {}).items()
                if key != 'pool_size'
            },
        )

    def resolve_targets(self, selectors) -> Dict[str, Optional[str]]:
        """
        Map CLI target selectors to schemas.

        ``both`` and ``all`` select every configured target. An empty
        selection selects the first configured target.
        """
        selectors = [s for s in (selectors or []) if s]
        if not self.targets:
            raise ConfigurationError("No migration targets configured")
        if not selectors:
            name = next(iter(self.targets))
            return {name: self.targets[name]}
        if any(s in ('both', 'all') for s in selectors):
            return dict(self.targets)

        unknown = [s for s in selectors if s not in self.targets]
        if unknown:
            raise ConfigurationError(f"Unknown migration target(s): {', '.join(unknown)}")
        return {s: self.targets[s] for s in selectors}


__all__ = [
    'Config',
    'DevelopmentConfig',
    'TestingConfig',
    'ProductionConfig',
    'config',
    'get_config',
    'MigrationSettings',
    'parse_targets',
    'load_environment_variables',
]
