"""
Client helpers for services that consume the issuer.

- :class:`TokenSource` requests tokens for a role and reuses each token
  until shortly before it expires.
- :class:`KeySource` fetches and caches the public keys published under
  ``key/<kid>`` and verifies tokens with them.

Both talk to the issuer over HTTP with ``requests``.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
import requests
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import load_pem_public_key

logger = logging.getLogger(__name__)

DEFAULT_MOUNT = "jwt"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Tokens are refreshed this long before their ``exp`` to absorb clock drift.
EXPIRY_GRACE = timedelta(seconds=5)


class TokenSourceError(Exception):
    """The issuer did not return a usable token."""


class KeyLookupError(Exception):
    """A public key could not be resolved for a ``kid``."""


def _mount_url(base_url: str, mount: str) -> str:
    return f"{base_url.rstrip('/')}/v1/{mount.strip('/')}"


def _error_summary(response: requests.Response) -> str:
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        errors = []
    return "; ".join(str(error) for error in errors) or response.reason or "no details"


class TokenSource:
    """
    Supply bearer tokens for one role.

    Args:
        base_url: Issuer root, e.g. ``"http://issuer:8200"``.
        role: Role to sign with.
        claims: Claims to include in every token.
        mount: Mount name the issuer is served under.
        headers: Extra request headers (e.g. management API credentials).
        session: ``requests`` session to reuse; one is created if omitted.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        role: str,
        claims: dict[str, Any] | None = None,
        mount: str = DEFAULT_MOUNT,
        headers: dict[str, str] | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.url = f"{_mount_url(base_url, mount)}/sign/{role}"
        self.claims = json.dumps(claims) if claims is not None else ""
        self.headers = dict(headers or {})
        self.session = session or requests.Session()
        self.timeout = timeout

        self._lock = threading.Lock()
        self._token: str | None = None
        self._refresh_at: datetime | None = None

    def token(self) -> str:
        """Return a valid token, requesting a new one when needed."""
        with self._lock:
            now = datetime.now(timezone.utc)
            if self._token is not None and self._refresh_at is not None and now < self._refresh_at:
                return self._token

            token, expires = self._request_token()
            self._token = token
            self._refresh_at = expires - EXPIRY_GRACE
            return token

    def _request_token(self) -> tuple[str, datetime]:
        try:
            response = self.session.post(
                self.url,
                json={"claims": self.claims},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TokenSourceError(f"sign request to {self.url} failed: {exc}") from exc

        if response.status_code != 200:
            raise TokenSourceError(
                f"sign request returned {response.status_code}: {_error_summary(response)}"
            )

        data = response.json().get("data") or {}
        token = data.get("token")
        expires = data.get("expires")
        if not isinstance(token, str) or not token:
            raise TokenSourceError("no token in sign response")
        if not isinstance(expires, int) or expires <= 0:
            raise TokenSourceError("no expiry in sign response")

        return token, datetime.fromtimestamp(expires, tz=timezone.utc)


class KeySource:
    """
    Resolve token signing keys by ``kid``.

    Keys are cached for the lifetime of the instance; a published key never
    changes, so there is nothing to invalidate.
    """

    def __init__(
        self,
        base_url: str,
        mount: str = DEFAULT_MOUNT,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.url = f"{_mount_url(base_url, mount)}/key"
        self.session = session or requests.Session()
        self.timeout = timeout

        self._lock = threading.Lock()
        self._cache: dict[str, rsa.RSAPublicKey] = {}

    def lookup_key(self, kid: str) -> rsa.RSAPublicKey:
        """
        Return the public key for *kid*.

        Raises:
            KeyLookupError: If *kid* is malformed, unknown, or not an RSA key.
        """
        try:
            uuid.UUID(str(kid))
        except ValueError as exc:
            raise KeyLookupError(f"invalid key id: {kid!r}") from exc

        key = self._cache.get(kid)
        if key is not None:
            return key

        with self._lock:
            key = self._cache.get(kid)
            if key is not None:
                return key
            key = self._fetch_key(kid)
            self._cache[kid] = key
            return key

    def _fetch_key(self, kid: str) -> rsa.RSAPublicKey:
        try:
            response = self.session.get(f"{self.url}/{kid}", timeout=self.timeout)
        except requests.RequestException as exc:
            raise KeyLookupError(f"key lookup for {kid} failed: {exc}") from exc

        if response.status_code == 404:
            raise KeyLookupError("signing key not found")
        if response.status_code != 200:
            raise KeyLookupError(
                f"key lookup returned {response.status_code}: {_error_summary(response)}"
            )

        pem = (response.json().get("data") or {}).get("public")
        if not isinstance(pem, str) or not pem:
            raise KeyLookupError("signing key not found")

        try:
            key = load_pem_public_key(pem.encode("utf-8"))
        except ValueError as exc:
            raise KeyLookupError("invalid signing key") from exc
        if not isinstance(key, rsa.RSAPublicKey):
            raise KeyLookupError("invalid signing key")

        logger.debug("Cached signing key %s", kid)
        return key

    def verify(self, token: str, **decode_options: Any) -> dict[str, Any]:
        """
        Verify *token* with the key named in its header and return the claims.

        Extra keyword arguments go to :func:`jwt.decode` (``audience``,
        ``leeway``, ``options``, ...).

        Raises:
            KeyLookupError: If the header has no usable ``kid``.
            jwt.InvalidTokenError: If the signature or claims are invalid.
        """
        header = jwt.get_unverified_header(token)
        kid = header.get("kid")
        if not kid:
            raise KeyLookupError("token header has no kid")
        return jwt.decode(token, self.lookup_key(kid), algorithms=["RS256"], **decode_options)
