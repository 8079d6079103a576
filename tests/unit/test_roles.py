"""
Unit tests for the role registry.

Key Concepts Demonstrated:
- Validation before mutation (rejected writes leave no trace)
- Exact round-trip of the JSON text fields
- Aggregated, sorted error lists across several checks
"""

from __future__ import annotations

import pytest

from issuer_app.errors import NotFoundError, ValidationError
from issuer_app.roles import RoleRegistry, parse_ttl

pytestmark = pytest.mark.unit


def test_read_unknown_role_raises_not_found(registry):
    # Act & Assert
    with pytest.raises(NotFoundError):
        registry.read_role("never-written")


def test_empty_role_reads_back_with_placeholders(registry):
    """Test that unset documents read back as empty strings and ttl defaults to 3600."""
    # Act
    registry.write_role("role0")

    # Assert
    assert registry.read_role("role0").to_dict() == {
        "defaults": "",
        "name": "role0",
        "overrides": "",
        "schema": "",
        "ttl": 3600,
    }


def test_write_preserves_exact_json_text(registry):
    """Test that key order and whitespace of the submitted JSON survive storage."""
    # Arrange
    fields = {
        "defaults": '{"foo":"bar"}',
        "overrides": '{"bar":"baz"}',
        "schema": '{"required":["foo", "bar"]}',
    }

    # Act
    registry.write_role("foo", **fields)
    role = registry.read_role("foo")

    # Assert
    assert role.defaults.raw == '{"foo":"bar"}'
    assert role.overrides.raw == '{"bar":"baz"}'
    assert role.schema.raw == '{"required":["foo", "bar"]}'
    assert role.schema.value == {"required": ["foo", "bar"]}


def test_repeated_write_is_idempotent(registry):
    # Arrange
    fields = {"defaults": '{"aud":["https://example.com"]}', "ttl": 120}

    # Act
    registry.write_role("same", **fields)
    first = registry.read_role("same").to_dict()
    registry.write_role("same", **fields)
    second = registry.read_role("same").to_dict()

    # Assert
    assert first == second


def test_rejected_write_persists_nothing(registry):
    # Act
    with pytest.raises(ValidationError) as exc_info:
        registry.write_role("bad", defaults='{"nbf":1264,"exp":464645,"iat":469,"iss":"foo"}')

    # Assert
    assert exc_info.value.messages == [
        '/exp: "exp" cannot match schema',
        '/iat: "iat" cannot match schema',
        '/iss: "iss" cannot match schema',
        '/nbf: "nbf" cannot match schema',
    ]
    with pytest.raises(NotFoundError):
        registry.read_role("bad")


def test_rejected_replace_keeps_previous_role(registry):
    # Arrange
    registry.write_role("keep", defaults='{"scopes":["a"]}')

    # Act
    with pytest.raises(ValidationError):
        registry.write_role("keep", overrides='{"exp":1}')

    # Assert
    assert registry.read_role("keep").defaults.raw == '{"scopes":["a"]}'


def test_issuer_asymmetry(registry):
    """Test that iss is rejected in defaults but accepted in overrides."""
    # Act & Assert
    with pytest.raises(ValidationError) as exc_info:
        registry.write_role("iss-default", defaults='{"iss":"https://example.net"}')
    assert exc_info.value.messages == ['/iss: "iss" cannot match schema']

    registry.write_role("iss-override", overrides='{"iss":"https://example.net"}')
    assert registry.read_role("iss-override").overrides.value == {"iss": "https://example.net"}


def test_invalid_schema_document_is_rejected(registry):
    # Act
    with pytest.raises(ValidationError) as exc_info:
        registry.write_role("bad-schema", schema='{"type":"xyz"}')

    # Assert
    assert exc_info.value.messages == ['/type: "xyz" did Not match any specified AnyOf schemas']


def test_schema_with_unresolvable_ref_is_rejected_before_storage(registry):
    """Test that a schema whose $ref points nowhere never reaches the sign path."""
    # Act
    with pytest.raises(ValidationError) as exc_info:
        registry.write_role("dangling", schema='{"$ref":"#/definitions/missing"}')

    # Assert
    assert exc_info.value.messages == ['/$ref: unresolvable $ref "#/definitions/missing"']
    with pytest.raises(NotFoundError):
        registry.read_role("dangling")


def test_errors_from_all_checks_are_merged_and_sorted(registry):
    # Act
    with pytest.raises(ValidationError) as exc_info:
        registry.write_role(
            "many",
            defaults='{"iat":1}',
            overrides='{"exp":1}',
            schema='{"type":"xyz"}',
        )

    # Assert
    assert exc_info.value.messages == [
        '/exp: "exp" cannot match schema',
        '/iat: "iat" cannot match schema',
        '/type: "xyz" did Not match any specified AnyOf schemas',
    ]


def test_malformed_json_is_reported_per_field(registry):
    # Act
    with pytest.raises(ValidationError) as exc_info:
        registry.write_role("broken", defaults="{oops", schema="[")

    # Assert
    messages = exc_info.value.messages
    assert len(messages) == 2
    assert messages[0].startswith("defaults: invalid JSON document")
    assert messages[1].startswith("schema: invalid JSON document")


def test_document_fields_must_be_strings(registry):
    # Act
    with pytest.raises(ValidationError) as exc_info:
        registry.write_role("nested", defaults={"scopes": ["a"]})

    # Assert
    assert exc_info.value.messages == ["defaults: must be a JSON-encoded string"]


@pytest.mark.parametrize("name", ["", "-leading", "trailing-", "has space", "a/b"])
def test_invalid_role_names_are_rejected(registry, name):
    # Act & Assert
    with pytest.raises(ValidationError):
        registry.write_role(name)


@pytest.mark.parametrize(
    ("ttl", "expected"),
    [(None, 3600), (0, 3600), (-5, 3600), (60, 60), ("15m", 900), ("2h", 7200), (10**6, 86400)],
)
def test_ttl_is_normalised(registry, ttl, expected):
    # Act
    role = registry.write_role("ttl-role", ttl=ttl)

    # Assert
    assert role.ttl == expected
    assert registry.read_role("ttl-role").ttl == expected


def test_invalid_ttl_is_rejected(registry):
    # Act
    with pytest.raises(ValidationError) as exc_info:
        registry.write_role("ttl-role", ttl="soon")

    # Assert
    assert exc_info.value.messages == ["ttl: invalid duration: 'soon'"]


def test_registry_limits_come_from_constructor(storage):
    # Arrange
    registry = RoleRegistry(storage, default_ttl=300, max_ttl=600)

    # Act & Assert
    assert registry.write_role("short").ttl == 300
    assert registry.write_role("capped", ttl=3600).ttl == 600


def test_list_and_delete_roles(registry):
    # Arrange
    for name in ("beta", "alpha"):
        registry.write_role(name)

    # Act
    listed = registry.list_roles()
    registry.delete_role("alpha")
    registry.delete_role("missing")

    # Assert
    assert listed == ["alpha", "beta"]
    assert registry.list_roles() == ["beta"]


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", None), (None, None), (30, 30), ("30", 30), ("30s", 30), ("1d", 86400), (5.0, 5)],
)
def test_parse_ttl(value, expected):
    # Act & Assert
    assert parse_ttl(value) == expected


@pytest.mark.parametrize("value", [True, "1w", "1.5h", 2.5, []])
def test_parse_ttl_rejects_garbage(value):
    # Act & Assert
    with pytest.raises(ValueError):
        parse_ttl(value)
