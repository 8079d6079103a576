"""
Issuer API endpoints.

Implements the HTTP interface of the issuer.  All routes are mounted on the
``issuer_api`` blueprint, served under ``/v1/<mount>`` by the application
factory (``/v1/jwt`` by default).

Endpoints:
    GET          /health         -- Liveness / readiness probe.
    GET|LIST     /role           -- List role names.
    POST|PUT     /role/<name>    -- Create or replace a role.
    GET          /role/<name>    -- Read a role.
    DELETE       /role/<name>    -- Delete a role.
    POST|PUT     /sign/<name>    -- Issue a token for a role.
    GET          /key/<kid>      -- Public key for verifying tokens by kid.

Request and response bodies are JSON.  Successful reads wrap their payload
as ``{"data": {...}}``; writes without a payload answer ``204 No Content``;
errors are rendered by the application's error handler as
``{"errors": [...]}``.
"""

from __future__ import annotations

import os
from typing import Any

from flask import Blueprint, Response, current_app, jsonify, request

api_bp = Blueprint("issuer_api", __name__)

ROLE_FIELDS = ("defaults", "overrides", "schema", "ttl")


# =====================================================================
# Helper Functions
# =====================================================================


def _request_data() -> dict[str, Any]:
    """Return the JSON request body, or an empty dict when there is none."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _data_response(data: dict[str, Any], status_code: int = 200) -> tuple[Response, int]:
    return jsonify({"data": data}), status_code


def _no_content() -> tuple[str, int]:
    return "", 204


def _registry():
    return current_app.extensions["role_registry"]


# =====================================================================
# API Endpoints
# =====================================================================


@api_bp.route("/health", methods=["GET"])
def health_check() -> tuple[Response, int]:
    """Liveness / readiness health-check endpoint."""
    return jsonify(
        {
            "status": "healthy",
            "service": "jwt-issuer",
            "environment": os.getenv("ENVIRONMENT", "unknown"),
        }
    ), 200


@api_bp.route("/role", methods=["GET", "LIST"])
@api_bp.route("/role/", methods=["GET", "LIST"])
def list_roles() -> tuple[Response, int]:
    """
    List the names of all registered roles.

    Returns:
        200 with ``{"data": {"keys": [...]}}``.
    """
    return _data_response({"keys": _registry().list_roles()})


@api_bp.route("/role/<name>", methods=["POST", "PUT"])
def write_role(name: str) -> tuple[str, int]:
    """
    Create or replace a role.

    Expects a JSON body with any of ``defaults``, ``overrides`` and
    ``schema`` (JSON documents encoded as strings) and ``ttl`` (seconds or
    a duration string).  Omitted fields reset to their defaults.

    Returns:
        204 on success.
        400 with every validation error if the role is rejected.
    """
    data = _request_data()
    fields = {field: data.get(field) for field in ROLE_FIELDS}
    _registry().write_role(name, **fields)
    return _no_content()


@api_bp.route("/role/<name>", methods=["GET"])
def read_role(name: str) -> tuple[Response, int]:
    """
    Read a role.

    Returns:
        200 with ``{"data": {"defaults", "name", "overrides", "schema", "ttl"}}``.
        404 if the role does not exist.
    """
    role = _registry().read_role(name)
    return _data_response(role.to_dict())


@api_bp.route("/role/<name>", methods=["DELETE"])
def delete_role(name: str) -> tuple[str, int]:
    """Delete a role.  Returns 204 whether or not it existed."""
    _registry().delete_role(name)
    return _no_content()


@api_bp.route("/sign/<name>", methods=["POST", "PUT"])
def sign(name: str) -> tuple[Response, int]:
    """
    Issue a signed token for a role.

    Expects an optional JSON body ``{"claims": "<JSON object as string>"}``.

    Returns:
        200 with ``{"data": {"token", "expires"}}``.
        400 if the claims are malformed or violate the role schema.
        404 if the role does not exist.
    """
    data = _request_data()
    issued = current_app.extensions["token_issuer"].issue_token(name, data.get("claims"))
    return _data_response(issued)


@api_bp.route("/key/<kid>", methods=["GET"])
def read_key(kid: str) -> tuple[Response, int]:
    """
    Return the public key that verifies tokens carrying ``kid``.

    Returns:
        200 with ``{"data": {"name": <kid>, "public": <PEM>}}``.
        404 if no key is published under that id.
    """
    public_pem = current_app.extensions["signing_keys"].get_public_key(kid)
    return _data_response({"name": kid, "public": public_pem})
