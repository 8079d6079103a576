"""
JWT issuance for roles.

Ties the role registry, the claim assembler and the signing key manager
together.  Tokens are signed with RS256 (RSA-SHA256): only this service
holds the private key, while verifiers fetch the public key named by the
token's ``kid`` header.

Token structure (claims):
    - role ``defaults``, replaced by caller claims, replaced by role
      ``overrides`` (see :mod:`issuer_app.claims`).
    - ``iat`` -- *issued-at* timestamp (UTC epoch seconds).
    - ``exp`` -- *expiration* timestamp, ``iat`` plus the role ttl.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from .claims import assemble, parse_claims
from .keys import SigningKeyManager
from .roles import RoleRegistry

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Issue signed tokens for registered roles."""

    def __init__(self, registry: RoleRegistry, keys: SigningKeyManager) -> None:
        self.registry = registry
        self.keys = keys

    def issue_token(
        self,
        role_name: str,
        claims: str | None = "",
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Create an RS256-signed JWT for *role_name*.

        Args:
            role_name: Name of a registered role.
            claims: Caller claims as a JSON-encoded object (may be empty).
            now: Issue time; defaults to the current UTC time.

        Returns:
            ``{"token": <compact JWS>, "expires": <epoch seconds>}``.

        Raises:
            NotFoundError: If the role does not exist.
            ValidationError: If the claims are malformed or violate the
                role schema.
        """
        role = self.registry.read_role(role_name)
        payload, expires = assemble(role, parse_claims(claims), now=now)

        key = self.keys.current_key()
        token = self.keys.sign(key.kid, payload)

        logger.info("Issued token for role %r with key %s", role_name, key.kid)
        return {"token": token, "expires": int(expires.timestamp())}
