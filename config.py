"""
Configuration for the JWT issuer service.

Provides environment-aware configuration classes that follow Flask's
recommended pattern: a shared ``Config`` base class holds defaults, and
environment-specific subclasses (``DevelopmentConfig``, ``TestingConfig``,
``ProductionConfig``) override only what differs.  The ``get_config``
factory resolves the correct class at runtime based on an environment
variable or an explicit argument.

Settings:
- Storage location for roles and signing keys (SQLAlchemy URI)
- Mount name used as the URL prefix (``/v1/<mount>``)
- Role TTL default and ceiling
- Signing key lifetime and RSA modulus size
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy.pool import StaticPool

BASE_DIR = Path(__file__).resolve().parent

# RS256 keys below this size are considered unsafe by most verifiers.
MIN_RSA_KEY_SIZE = 2048


def _int_env(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to *default*."""
    raw_value = os.environ.get(name, "").strip()
    if not raw_value:
        return default
    try:
        return int(raw_value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got '{raw_value}'.") from exc


class Config:
    """
    Base configuration shared by all environments.

    Subclasses should override only the values that need to change.
    Every setting can also be controlled via an environment variable so
    that container orchestrators can inject values at deploy time.
    """

    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'instance' / 'issuer.db'}",
    )

    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    # Routes are mounted under /v1/<ISSUER_MOUNT>
    ISSUER_MOUNT: str = os.environ.get("ISSUER_MOUNT", "jwt")

    # Applied when a role is written without a ttl (or with ttl <= 0)
    ROLE_DEFAULT_TTL_SECONDS: int = _int_env("ROLE_DEFAULT_TTL_SECONDS", 3600)
    # Longer role ttls are clamped to this value
    ROLE_MAX_TTL_SECONDS: int = _int_env("ROLE_MAX_TTL_SECONDS", 86400)

    # How long the active signing key is used before a new one is generated
    SIGNING_KEY_LIFETIME_HOURS: int = _int_env("SIGNING_KEY_LIFETIME_HOURS", 24)
    RSA_KEY_SIZE: int = _int_env("RSA_KEY_SIZE", MIN_RSA_KEY_SIZE)


class DevelopmentConfig(Config):
    """
    Configuration for local development.

    Enables debug mode for auto-reload and rich tracebacks while keeping
    ``TESTING`` off so that Flask error handlers behave normally.
    """

    DEBUG: bool = True
    TESTING: bool = False


class TestingConfig(Config):
    """
    Configuration for the automated test suite.

    Uses an in-memory SQLite database by default so test runs never touch
    development data.  ``StaticPool`` keeps a single connection alive so
    every thread sees the same in-memory database.
    """

    DEBUG: bool = True
    TESTING: bool = True
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "TEST_DATABASE_URL",
        "sqlite:///:memory:",
    )
    SQLALCHEMY_ENGINE_OPTIONS: dict = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }


class ProductionConfig(Config):
    """
    Configuration for production deployments.

    Disables debug mode and testing flags.  The database location should be
    supplied through ``DATABASE_URL``.
    """

    DEBUG: bool = False
    TESTING: bool = False


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Resolve a configuration class by environment name.

    Args:
        env: One of ``"development"``, ``"testing"``, or
            ``"production"``.  When ``None``, the ``FLASK_ENV``
            environment variable is consulted, falling back to
            ``"development"`` if unset.

    Returns:
        The configuration class (not an instance) corresponding to the
        requested environment.  Falls back to ``DevelopmentConfig`` for
        unrecognised names.
    """
    if env is None:
        env = os.environ.get("FLASK_ENV", "development")
    return config.get(env, config["default"])
