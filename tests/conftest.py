"""
Shared pytest fixtures for the issuer test suite.

Provides the reusable test infrastructure needed by the unit, integration
and contract suites: a Flask app backed by an in-memory database, an HTTP
test client, and core components wired to in-memory storage.

Key Concepts Demonstrated:
- Function-scoped app so every test starts with empty storage and no
  cached signing key
- Core components tested without Flask through ``InMemoryStorage``
- A frozen clock for assertions on ``iat``/``exp``
"""

from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest

os.environ["FLASK_ENV"] = "testing"

from issuer_app import create_app, db
from issuer_app.jwt import TokenIssuer
from issuer_app.keys import SigningKeyManager
from issuer_app.roles import RoleRegistry
from issuer_app.storage import InMemoryStorage

API_PREFIX = "/v1/jwt"


# -----------------------------------------------------------------------------
# Application Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def app():
    """
    Provide a freshly created Flask application.

    Each app gets its own in-memory SQLite database and its own signing key
    manager, so roles and keys never leak between tests.
    """
    application = create_app("testing")
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Provide a Flask test client for the current app."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def api_prefix() -> str:
    return API_PREFIX


# -----------------------------------------------------------------------------
# Core Component Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def registry(storage) -> RoleRegistry:
    return RoleRegistry(storage)


@pytest.fixture
def signing_keys(storage) -> SigningKeyManager:
    return SigningKeyManager(storage)


@pytest.fixture
def token_issuer(registry, signing_keys) -> TokenIssuer:
    return TokenIssuer(registry, signing_keys)


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed issue time: 2018-12-28T10:14:00Z (epoch 1545992040)."""
    return datetime(2018, 12, 28, 10, 14, 0, tzinfo=timezone.utc)
