"""
Reserved-claim policy for role ``defaults``, role ``overrides`` and the
claims a caller sends with a sign request.

``iat``, ``exp``, ``nbf`` and ``jti`` are computed when a token is signed, so
no claim source may set them.  ``iss`` is issuer policy: it may be
pinned through ``overrides`` but never offered as a caller-replaceable
default.  ``aud`` may appear in both, as a string or a list of strings.
Callers may set neither ``iss`` nor ``aud``; those belong to the role.

The policy is written as JSON Schema so violations share the message shape
produced by :mod:`issuer_app.schema`.
"""

from __future__ import annotations

from typing import Any

from .schema import validate

DEFAULTS = "defaults"
OVERRIDES = "overrides"
CALLER = "caller"

COMPUTED_CLAIMS = ("iat", "exp", "nbf", "jti")
ROLE_CLAIMS = ("iss", "aud")
RESERVED_CLAIMS = (*ROLE_CLAIMS, *COMPUTED_CLAIMS)

_AUDIENCE = {
    "anyOf": [
        {"type": "string"},
        {"type": "array", "items": {"type": "string"}},
    ]
}

POLICY_SCHEMAS: dict[str, dict[str, Any]] = {
    DEFAULTS: {
        "title": "Defaults",
        "type": "object",
        "properties": {"aud": _AUDIENCE},
        "propertyNames": {"not": {"enum": ["iss", *COMPUTED_CLAIMS]}},
    },
    OVERRIDES: {
        "title": "Overrides",
        "type": "object",
        "properties": {"aud": _AUDIENCE, "iss": {"type": "string"}},
        "propertyNames": {"not": {"enum": list(COMPUTED_CLAIMS)}},
    },
    CALLER: {
        "title": "Claims",
        "type": "object",
        "propertyNames": {"not": {"enum": list(RESERVED_CLAIMS)}},
    },
}


def check_reserved(document: Any, source: str) -> list[str]:
    """
    Return the policy violations of *document* for the given claim source.

    Args:
        document: Parsed claim fragment; ``None`` is treated as empty.
        source: ``"defaults"``, ``"overrides"`` or ``"caller"``.

    Raises:
        ValueError: If *source* is not a known claim source.
    """
    try:
        policy = POLICY_SCHEMAS[source]
    except KeyError:
        raise ValueError(f"unknown claim source: {source!r}") from None
    if document is None:
        return []
    return validate(document, policy)
