"""
Signing key lifecycle.

One RSA key pair is active for the whole deployment at a time.  It is
generated on first use, stored, and replaced once its lifetime runs out.
Each pair is identified by a ``kid`` (a UUID) that is written into the
header of every token it signs, so verifiers can fetch the matching public
key from ``key/<kid>``.

Storage layout::

    privatekey/<kid>   {"pem": <PKCS8 PEM>, "expires": <iso8601>}
    key/<kid>          {"public": <SubjectPublicKeyInfo PEM>, "expires": <iso8601>}
    signing/current    {"kid": <kid>}

A public key outlives its private half by the maximum role ttl, so every
token the key signed can still be verified until the token itself expires.
Private key material never leaves this module except into storage.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .errors import InternalError, NotFoundError
from .storage import Storage

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"

PRIVATE_KEY_PREFIX = "privatekey/"
PUBLIC_KEY_PREFIX = "key/"
CURRENT_KEY_ENTRY = "signing/current"


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class SigningKey:
    """An RSA key pair and the instant it stops being used for signing."""

    kid: str
    private_key: rsa.RSAPrivateKey = field(repr=False)
    expires: datetime | None = None

    @property
    def public_pem(self) -> str:
        return self.private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("utf-8")

    def is_active(self, now: datetime) -> bool:
        return self.expires is not None and self.expires > now


class SigningKeyManager:
    """
    Generate, cache, rotate and expose signing keys.

    Key creation is serialised by a lock with a double-checked cache lookup,
    so concurrent first use of a ``kid`` generates exactly one key pair and
    every caller receives it.

    Args:
        storage: Backend for key material.
        key_size: RSA modulus size in bits.
        lifetime: How long a key is used for signing.
        verification_grace: Extra time the public key stays published after
            the key stops signing (the longest possible token ttl).
    """

    def __init__(
        self,
        storage: Storage,
        key_size: int = 2048,
        lifetime: timedelta = timedelta(hours=24),
        verification_grace: timedelta = timedelta(seconds=86400),
    ) -> None:
        self.storage = storage
        self.key_size = key_size
        self.lifetime = lifetime
        self.verification_grace = verification_grace

        self._lock = threading.Lock()
        self._keys: dict[str, SigningKey] = {}
        self._current: SigningKey | None = None

    # -----------------------------------------------------------------
    # Internal helpers (call with the lock held)
    # -----------------------------------------------------------------

    def _load_key(self, kid: str) -> SigningKey | None:
        entry = self.storage.get(PRIVATE_KEY_PREFIX + kid)
        if entry is None:
            return None
        private_key = serialization.load_pem_private_key(
            entry["pem"].encode("utf-8"), password=None
        )
        return SigningKey(kid=kid, private_key=private_key, expires=_from_iso(entry.get("expires")))

    def _generate_key(self, kid: str, expires: datetime) -> SigningKey:
        try:
            private_key = rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)
        except ValueError as exc:
            raise InternalError("signing key generation failed") from exc

        key = SigningKey(kid=kid, private_key=private_key, expires=expires)
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("utf-8")

        self.storage.put(
            PRIVATE_KEY_PREFIX + kid,
            {"pem": private_pem, "expires": _to_iso(expires)},
        )
        self.storage.put(
            PUBLIC_KEY_PREFIX + kid,
            {"public": key.public_pem, "expires": _to_iso(expires + self.verification_grace)},
        )
        logger.info("Generated %d-bit signing key %s", self.key_size, kid)
        return key

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def get_or_create_key(self, kid: str) -> SigningKey:
        """Return the key for *kid*, generating and storing it on first use."""
        key = self._keys.get(kid)
        if key is not None:
            return key

        with self._lock:
            key = self._keys.get(kid)
            if key is not None:
                return key
            key = self._load_key(kid)
            if key is None:
                key = self._generate_key(kid, datetime.now(timezone.utc) + self.lifetime)
            self._keys[kid] = key
            return key

    def current_key(self, now: datetime | None = None) -> SigningKey:
        """
        Return the deployment-wide signing key, rotating it when expired.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        key = self._current
        if key is not None and key.is_active(now):
            return key

        with self._lock:
            key = self._current
            if key is not None and key.is_active(now):
                return key

            pointer = self.storage.get(CURRENT_KEY_ENTRY)
            if pointer is not None:
                kid = pointer["kid"]
                key = self._keys.get(kid) or self._load_key(kid)
                if key is not None and key.is_active(now):
                    self._keys[kid] = key
                    self._current = key
                    return key

            previous = key.kid if key is not None else None
            kid = str(uuid.uuid4())
            key = self._generate_key(kid, now + self.lifetime)
            self._keys[kid] = key
            self.storage.put(CURRENT_KEY_ENTRY, {"kid": kid})
            self._current = key
            if previous is not None:
                logger.info("Rotated signing key %s -> %s", previous, kid)
            return key

    def sign(self, kid: str, claims: dict[str, Any]) -> str:
        """Sign *claims* as a compact RS256 JWT with ``kid`` in the header."""
        key = self.get_or_create_key(kid)
        return jwt.encode(claims, key.private_key, algorithm=ALGORITHM, headers={"kid": kid})

    def get_public_key(self, kid: str) -> str:
        """
        Return the PEM-encoded public key for *kid*.

        Raises:
            NotFoundError: If no public key is published under *kid*.
        """
        entry = self.storage.get(PUBLIC_KEY_PREFIX + kid)
        if entry is None:
            raise NotFoundError(f"key {kid!r} not found")
        return entry["public"]

    def clean_expired_public_keys(self, now: datetime | None = None) -> list[str]:
        """
        Delete published keys whose verification window has closed.

        Keys without an expiry are treated as expired.  The matching private
        keys are removed as well.

        Returns:
            The kids that were removed.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        removed = []
        with self._lock:
            for kid in self.storage.list(PUBLIC_KEY_PREFIX):
                entry = self.storage.get(PUBLIC_KEY_PREFIX + kid)
                if entry is None:
                    continue
                expires = _from_iso(entry.get("expires"))
                if expires is not None and now < expires:
                    continue
                self.storage.delete(PUBLIC_KEY_PREFIX + kid)
                self.storage.delete(PRIVATE_KEY_PREFIX + kid)
                self._keys.pop(kid, None)
                if self._current is not None and self._current.kid == kid:
                    self._current = None
                removed.append(kid)

        if removed:
            logger.info("Pruned %d expired public key(s)", len(removed))
        return removed
