"""
Role registry.

Stores :class:`~issuer_app.models.RoleSpec` records under ``role/<name>``.
Every write is validated in full before anything is persisted:

1. the role name,
2. the reserved-claim policy for ``defaults``, then ``overrides``,
3. the ``schema`` document against its meta-schema,
4. the ``ttl``.

All violations are collected into one sorted list and raised together as a
:class:`~issuer_app.errors.ValidationError`, so a rejected write never
leaves partial state behind.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from typing import Any

from .errors import NotFoundError, ValidationError
from .models import RawJSON, RoleSpec
from .policy import DEFAULTS, OVERRIDES, check_reserved
from .schema import check_schema
from .storage import Storage

logger = logging.getLogger(__name__)

ROLE_PREFIX = "role/"

NAME_PATTERN = re.compile(r"^\w(([\w.-]+)?\w)?$")

_DURATION_PATTERN = re.compile(r"^(\d+)([smhd]?)$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_ttl(value: Any) -> int | None:
    """
    Convert a ttl given as seconds or a duration string to seconds.

    Accepts integers, digit strings and ``<n>s|m|h|d``.  ``None`` and the
    empty string mean "unset".

    Raises:
        ValueError: If the value cannot be interpreted as a duration.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = _DURATION_PATTERN.match(value.strip())
        if match:
            amount, unit = match.groups()
            return int(amount) * _DURATION_UNITS[unit]
    raise ValueError(f"invalid duration: {value!r}")


def _parse_document(field: str, raw: Any, errors: list[str]) -> RawJSON:
    if raw is not None and not isinstance(raw, str):
        errors.append(f"{field}: must be a JSON-encoded string")
        return RawJSON()
    try:
        return RawJSON.parse(raw)
    except json.JSONDecodeError as exc:
        errors.append(f"{field}: invalid JSON document ({exc.msg})")
        return RawJSON()


class RoleRegistry:
    """
    Create, read, list and delete roles.

    Args:
        storage: Backend holding the serialised roles.
        default_ttl: ttl applied when a role is written without one.
        max_ttl: Upper bound for role ttls; larger values are clamped.
    """

    def __init__(self, storage: Storage, default_ttl: int = 3600, max_ttl: int = 86400) -> None:
        self.storage = storage
        self.default_ttl = default_ttl
        self.max_ttl = max_ttl
        # Serialises upserts of the same row within this process.
        self._write_lock = threading.Lock()

    def build_role(
        self,
        name: str,
        *,
        defaults: str | None = "",
        overrides: str | None = "",
        schema: str | None = "",
        ttl: Any = None,
    ) -> RoleSpec:
        """
        Validate the given fields and return the normalised role.

        Raises:
            ValidationError: With every violation found, sorted.
        """
        errors: list[str] = []

        if not isinstance(name, str) or not NAME_PATTERN.match(name):
            errors.append(f"name: {name!r} is not a valid role name")

        defaults_doc = _parse_document(DEFAULTS, defaults, errors)
        overrides_doc = _parse_document(OVERRIDES, overrides, errors)
        schema_doc = _parse_document("schema", schema, errors)

        errors.extend(check_reserved(defaults_doc.value, DEFAULTS))
        errors.extend(check_reserved(overrides_doc.value, OVERRIDES))
        if not schema_doc.is_empty:
            errors.extend(check_schema(schema_doc.value))

        try:
            seconds = parse_ttl(ttl)
        except ValueError as exc:
            errors.append(f"ttl: {exc}")
            seconds = None

        if errors:
            raise ValidationError(sorted(errors))

        if seconds is None or seconds <= 0:
            seconds = self.default_ttl
        seconds = min(seconds, self.max_ttl)

        return RoleSpec(
            name=name,
            defaults=defaults_doc,
            overrides=overrides_doc,
            schema=schema_doc,
            ttl=seconds,
        )

    def write_role(self, name: str, **fields: Any) -> RoleSpec:
        """
        Create or replace a role.

        Accepts the keyword fields of :meth:`build_role`.

        Raises:
            ValidationError: If any field is rejected; nothing is stored.
        """
        try:
            role = self.build_role(name, **fields)
        except ValidationError as exc:
            logger.warning("Rejected role %r with %d error(s)", name, len(exc.messages))
            raise

        with self._write_lock:
            self.storage.put(ROLE_PREFIX + name, role.to_storage())
        logger.info("Role %r written (ttl=%ss)", name, role.ttl)
        return role

    def read_role(self, name: str) -> RoleSpec:
        """
        Return the stored role.

        Raises:
            NotFoundError: If no role with that name exists.
        """
        data = self.storage.get(ROLE_PREFIX + name)
        if data is None:
            raise NotFoundError(f"role {name!r} not found")
        return RoleSpec.from_storage(name, data)

    def list_roles(self) -> list[str]:
        return self.storage.list(ROLE_PREFIX)

    def delete_role(self, name: str) -> None:
        """Remove a role; deleting an unknown role is not an error."""
        with self._write_lock:
            self.storage.delete(ROLE_PREFIX + name)
        logger.info("Role %r deleted", name)
