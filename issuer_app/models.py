"""
Data model for the issuer service.

Defines the value types that flow through role management and token
signing, plus the single SQLAlchemy table that backs the key-value store.

Key Concepts:
- :class:`RawJSON` keeps the exact JSON text a caller supplied *and* a
  parsed view of it, so stored roles round-trip byte for byte while the
  validators still work on structured documents.
- :class:`RoleSpec` is the immutable, normalised form of a role.
- :class:`StorageEntry` is a plain key/value row; everything the service
  persists (roles, public keys, private keys) is serialised into it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any

from . import db


@dataclass(frozen=True)
class RawJSON:
    """
    A JSON document stored as the caller's original text.

    ``raw`` is returned verbatim by the API; ``value`` is the parsed
    document (``None`` when ``raw`` is empty).
    """

    raw: str = ""

    @classmethod
    def parse(cls, raw: str | None) -> "RawJSON":
        """
        Build a :class:`RawJSON`, failing early on malformed text.

        Raises:
            json.JSONDecodeError: If *raw* is non-empty and not valid JSON.
        """
        document = cls(raw or "")
        document.value  # noqa: B018 - parse now so errors surface at write time
        return document

    @cached_property
    def value(self) -> Any:
        if not self.raw.strip():
            return None
        return json.loads(self.raw)

    @property
    def is_empty(self) -> bool:
        return self.value is None

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class RoleSpec:
    """
    A named template describing how tokens for one class of requests are built.

    Attributes:
        name: Unique role identifier, taken from the request path.
        defaults: Claims applied first; callers may replace them.
        overrides: Claims applied last; nobody can replace them.
        schema: JSON Schema constraining the merged custom claims.
        ttl: Token lifetime in seconds (``exp = iat + ttl``).
    """

    name: str
    defaults: RawJSON = field(default_factory=RawJSON)
    overrides: RawJSON = field(default_factory=RawJSON)
    schema: RawJSON = field(default_factory=RawJSON)
    ttl: int = 3600

    def to_dict(self) -> dict[str, Any]:
        """Return the API representation; unset documents surface as ``""``."""
        return {
            "defaults": self.defaults.raw,
            "name": self.name,
            "overrides": self.overrides.raw,
            "schema": self.schema.raw,
            "ttl": self.ttl,
        }

    def to_storage(self) -> dict[str, Any]:
        return {
            "defaults": self.defaults.raw,
            "overrides": self.overrides.raw,
            "schema": self.schema.raw,
            "ttl": self.ttl,
        }

    @classmethod
    def from_storage(cls, name: str, data: dict[str, Any]) -> "RoleSpec":
        return cls(
            name=name,
            defaults=RawJSON(data.get("defaults", "")),
            overrides=RawJSON(data.get("overrides", "")),
            schema=RawJSON(data.get("schema", "")),
            ttl=int(data["ttl"]),
        )


class StorageEntry(db.Model):
    """
    One row of the key-value store.

    Keys are slash-separated paths such as ``role/<name>`` or
    ``key/<kid>``; values are JSON text.
    """

    __tablename__ = "storage_entries"

    key: str = db.Column(db.String(512), primary_key=True)
    value: str = db.Column(db.Text, nullable=False)
    updated_at: datetime = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<StorageEntry {self.key}>"
