"""
Claim assembly for sign requests.

Claims come from three places and are layered with JSON merge-patch
(RFC 7386), lowest precedence first::

    role.defaults  <-  caller claims  <-  role.overrides

A ``null`` in a patch removes the key from the result.  After merging, the
role's custom schema (if any) is checked against the merged custom claims,
and finally ``iat``/``exp`` are stamped from the current time and the role
ttl, with a fresh ``jti`` per token.  Callers may not send reserved claims
at all; ``iss`` and ``aud`` come from the role alone.
"""

from __future__ import annotations

import copy
import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from .errors import ValidationError
from .models import RawJSON, RoleSpec
from .policy import CALLER, RESERVED_CLAIMS, check_reserved
from .schema import validate


def merge_patch(target: Any, patch: Any) -> Any:
    """
    Apply a JSON merge-patch to *target* and return the result.

    Objects merge key by key (recursively); any other patch value replaces
    the target outright.  Neither argument is modified.
    """
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)

    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def parse_claims(raw: Any) -> dict[str, Any]:
    """
    Parse caller-supplied claims.

    Accepts the JSON-encoded string sent on the wire (empty means no
    claims).

    Raises:
        ValidationError: If the text is not a JSON object.
    """
    if raw is not None and not isinstance(raw, str):
        raise ValidationError(["claims: must be a JSON-encoded string"])
    try:
        document = RawJSON.parse(raw).value
    except json.JSONDecodeError as exc:
        raise ValidationError([f"claims: invalid JSON document ({exc.msg})"]) from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValidationError(["claims: must be a JSON object"])
    return document


def assemble(
    role: RoleSpec,
    caller_claims: dict[str, Any],
    now: datetime | None = None,
) -> tuple[dict[str, Any], datetime]:
    """
    Build the claim set for one token.

    Args:
        role: The role the token is issued under.
        caller_claims: Parsed claims from the sign request.
        now: Issue time; defaults to the current UTC time.

    Returns:
        ``(claims, expires)`` where *expires* is the ``exp`` instant.

    Raises:
        ValidationError: If the caller sends a reserved claim, or the merged
            claims violate the role schema.
    """
    errors = check_reserved(caller_claims, CALLER)
    if errors:
        raise ValidationError(errors)

    claims = merge_patch(role.defaults.value or {}, caller_claims)
    claims = merge_patch(claims, role.overrides.value or {})

    if not role.schema.is_empty:
        custom = {key: value for key, value in claims.items() if key not in RESERVED_CLAIMS}
        errors = validate(custom, role.schema.value)
        if errors:
            raise ValidationError(errors)

    if now is None:
        now = datetime.now(timezone.utc)
    # Drop sub-second precision so exp - iat == ttl exactly.
    now = now.replace(microsecond=0)
    expires = now + timedelta(seconds=role.ttl)

    claims["jti"] = str(uuid.uuid4())
    claims["iat"] = int(now.timestamp())
    claims["exp"] = int(expires.timestamp())
    return claims, expires
