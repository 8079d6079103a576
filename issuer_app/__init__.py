"""
JWT issuer Flask application factory.

Provides the ``create_app`` factory function used to build and configure the
Flask application that serves role management, token signing and public key
lookup.  The factory pattern allows different configurations (development,
testing, production) to be injected at runtime.

Wiring:
- Flask-SQLAlchemy backs the key-value store (``storage_entries`` table)
- ``app.extensions`` holds the role registry, signing key manager and
  token issuer shared by all request handlers
- A single error handler renders every service error as ``{"errors": [...]}``
- ``flask keys prune`` removes public keys whose verification window closed
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta

import click
from flask import Flask, current_app, jsonify
from flask.cli import AppGroup
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

from config import MIN_RSA_KEY_SIZE, get_config


# Shared SQLAlchemy instance -- initialised with a concrete app inside create_app()
db = SQLAlchemy()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

keys_cli = AppGroup("keys", help="Signing key maintenance.")


@keys_cli.command("prune")
def prune_keys() -> None:
    """Delete public keys whose verification window has closed."""
    removed = current_app.extensions["signing_keys"].clean_expired_public_keys()
    click.echo(f"Removed {len(removed)} expired key(s).")
    for kid in removed:
        click.echo(kid)


def _register_error_handlers(app: Flask) -> None:
    """Render service and HTTP errors in the ``{"errors": [...]}`` envelope."""
    from .errors import IssuerError

    @app.errorhandler(IssuerError)
    def handle_issuer_error(error: IssuerError):
        return jsonify({"errors": error.messages}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"errors": [error.description]}), error.code


def create_app(config_name: str | None = None) -> Flask:
    """
    Create and configure the issuer Flask application.

    Args:
        config_name: The configuration environment to load (e.g.
            ``"development"``, ``"testing"``, ``"production"``).  When
            ``None``, the value is resolved from the ``FLASK_ENV``
            environment variable, defaulting to ``"development"``.

    Returns:
        A fully configured :class:`~flask.Flask` application instance
        with storage initialised and routes registered.

    Raises:
        RuntimeError: If the configured RSA key size is below 2048 bits.
    """
    app = Flask(__name__, instance_relative_config=True)
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    logging.getLogger().setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logger.info("Creating issuer app with config: %s", config_class.__name__)

    if int(app.config["RSA_KEY_SIZE"]) < MIN_RSA_KEY_SIZE:
        raise RuntimeError(
            f"RSA_KEY_SIZE must be at least {MIN_RSA_KEY_SIZE} bits, "
            f"got {app.config['RSA_KEY_SIZE']}."
        )

    # Ensure the instance directory exists for the SQLite database file
    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)

    # Import inside the factory to avoid circular imports -- these modules
    # reference ``db`` from this package, which must exist first.
    from .jwt import TokenIssuer
    from .keys import SigningKeyManager
    from .roles import RoleRegistry
    from .routes.api import api_bp
    from .storage import SQLStorage

    storage = SQLStorage()
    registry = RoleRegistry(
        storage,
        default_ttl=app.config["ROLE_DEFAULT_TTL_SECONDS"],
        max_ttl=app.config["ROLE_MAX_TTL_SECONDS"],
    )
    signing_keys = SigningKeyManager(
        storage,
        key_size=app.config["RSA_KEY_SIZE"],
        lifetime=timedelta(hours=app.config["SIGNING_KEY_LIFETIME_HOURS"]),
        verification_grace=timedelta(seconds=app.config["ROLE_MAX_TTL_SECONDS"]),
    )
    app.extensions["role_registry"] = registry
    app.extensions["signing_keys"] = signing_keys
    app.extensions["token_issuer"] = TokenIssuer(registry, signing_keys)

    app.register_blueprint(api_bp, url_prefix=f"/v1/{app.config['ISSUER_MOUNT']}")
    _register_error_handlers(app)
    app.cli.add_command(keys_cli)

    # In production this would typically be handled by a migration tool.
    with app.app_context():
        db.create_all()
        logger.info("Issuer storage tables created")

    return app
