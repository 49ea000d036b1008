"""
Specflow
Configuration classes for the Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'specflow_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # Logging (formatter picked from DEBUG/TESTING when LOG_FORMAT is unset)
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    LOG_FORMAT = os.getenv("LOG_FORMAT")

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Redis (workflow cache + AI response cache). "memory://" selects the
    # in-process backend.
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # Workflow engine
    WORKFLOW_CACHE_TTL = int(os.getenv("WORKFLOW_CACHE_TTL", "300"))        # 5 minutes
    APPROVAL_TTL_SECONDS = int(os.getenv("APPROVAL_TTL_SECONDS", "86400"))  # 24 hours

    # AI review
    AI_REVIEW_ENABLED = _env_bool("AI_REVIEW_ENABLED")
    AI_REVIEW_MODEL = os.getenv("AI_REVIEW_MODEL", "gpt-4o-mini")
    AI_REVIEW_TIMEOUT = float(os.getenv("AI_REVIEW_TIMEOUT", "30"))
    AI_REVIEW_MAX_RETRIES = int(os.getenv("AI_REVIEW_MAX_RETRIES", "3"))
    AI_REVIEW_CACHE_TTL = int(os.getenv("AI_REVIEW_CACHE_TTL", "3600"))
    # Off: a model without an API key makes AI validation unavailable.
    AI_REVIEW_STUB_FALLBACK = _env_bool("AI_REVIEW_STUB_FALLBACK")
    AI_MIN_PASSING_SCORE = int(os.getenv("AI_MIN_PASSING_SCORE", "70"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    REDIS_URL = "memory://"
    AI_REVIEW_ENABLED = False
    AI_REVIEW_MAX_RETRIES = 1


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
