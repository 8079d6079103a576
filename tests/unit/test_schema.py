"""
Unit tests for JSON Schema validation and error rendering.

Key Concepts Demonstrated:
- Exact-string assertions on client-visible error messages
- Meta-schema validation of user supplied schemas
"""

from __future__ import annotations

import pytest

from issuer_app.schema import check_schema, json_pointer, validate

pytestmark = pytest.mark.unit

SCOPES_SCHEMA = {
    "properties": {
        "scopes": {
            "type": "array",
            "items": {
                "type": "string",
                "enum": ["https://example.com/scope-a", "https://example.com/scope-b"],
            },
        }
    }
}


@pytest.mark.parametrize("schema", [None, {}])
def test_empty_schema_accepts_anything(schema):
    """Test that a missing or empty schema places no constraint."""
    # Act
    errors = validate({"anything": [1, 2, 3]}, schema)

    # Assert
    assert errors == []


def test_rejected_property_names_use_cannot_match_wording():
    """Test that propertyNames violations name the offending key as the path."""
    # Arrange
    schema = {"propertyNames": {"not": {"enum": ["iat", "exp"]}}}

    # Act
    errors = validate({"exp": 1, "iat": 2, "sub": "x"}, schema)

    # Assert
    assert errors == [
        '/exp: "exp" cannot match schema',
        '/iat: "iat" cannot match schema',
    ]


def test_failed_any_of_uses_fixed_wording():
    """Test that anyOf failures render the JSON value and the literal 'did Not match'."""
    # Arrange
    schema = {"properties": {"aud": {"anyOf": [{"type": "string"}, {"type": "array"}]}}}

    # Act
    errors = validate({"aud": True}, schema)

    # Assert
    assert errors == ["/aud: true did Not match any specified AnyOf schemas"]


def test_enum_violation_lists_allowed_values():
    """Test that enum failures point at the array element and list the choices."""
    # Act
    errors = validate({"scopes": ["https://example.com/scope-c"]}, SCOPES_SCHEMA)

    # Assert
    assert errors == [
        '/scopes/0: "https://example.com/scope-c" should be one of '
        '["https://example.com/scope-a", "https://example.com/scope-b"]'
    ]


def test_other_violations_fall_back_to_library_message():
    """Test that remaining keywords keep the jsonschema message behind the pointer."""
    # Act
    errors = validate({}, {"required": ["scopes"]})

    # Assert
    assert errors == ["/: 'scopes' is a required property"]


def test_errors_are_sorted_by_path():
    """Test that several failures come back in a deterministic order."""
    # Arrange
    schema = {"properties": {"b": {"type": "string"}, "a": {"type": "string"}}}

    # Act
    errors = validate({"b": 1, "a": 2}, schema)

    # Assert
    assert [error.split(":")[0] for error in errors] == ["/a", "/b"]


def test_check_schema_rejects_unknown_type():
    """Test that a schema with an invalid type keyword fails meta-validation at /type."""
    # Act
    errors = check_schema({"type": "xyz"})

    # Assert
    assert errors == ['/type: "xyz" did Not match any specified AnyOf schemas']


def test_check_schema_accepts_valid_schema():
    """Test that a well-formed schema passes meta-validation."""
    # Act & Assert
    assert check_schema(SCOPES_SCHEMA) == []


def test_check_schema_rejects_non_object_document():
    """Test that a schema that is neither an object nor a boolean is rejected."""
    # Act
    errors = check_schema([1, 2])

    # Assert
    assert len(errors) == 1
    assert errors[0].startswith("/: ")


def test_check_schema_reports_unresolvable_refs():
    """Test that every $ref that points nowhere is reported at its own location."""
    # Arrange
    schema = {
        "definitions": {"scope": {"type": "string"}},
        "properties": {
            "scopes": {"type": "array", "items": {"$ref": "#/definitions/scope"}},
            "tier": {"$ref": "#/definitions/tier"},
        },
    }

    # Act
    errors = check_schema(schema)

    # Assert
    assert errors == ['/properties/tier/$ref: unresolvable $ref "#/definitions/tier"']


def test_check_schema_follows_nested_ids():
    """Test that refs relative to a nested $id resolve against that id."""
    # Arrange
    schema = {
        "$id": "https://example.com/root.json",
        "properties": {
            "item": {
                "$id": "item.json",
                "definitions": {"name": {"type": "string"}},
                "properties": {"name": {"$ref": "#/definitions/name"}},
            }
        },
    }

    # Act & Assert
    assert check_schema(schema) == []


def test_check_schema_ignores_ref_lookalikes_in_data_keywords():
    # Act & Assert
    assert check_schema({"enum": [{"$ref": "#/nowhere"}]}) == []


def test_validate_reports_unresolvable_ref_instead_of_raising():
    """Test that a schema that was never checked still yields a message, not an exception."""
    # Act
    errors = validate({"tier": "gold"}, {"properties": {"tier": {"$ref": "#/definitions/tier"}}})

    # Assert
    assert len(errors) == 1
    assert errors[0].startswith("/: unresolvable $ref")
    assert "definitions/tier" in errors[0]


def test_json_pointer_escapes_reserved_characters():
    """Test RFC 6901 escaping of '~' and '/'."""
    # Act & Assert
    assert json_pointer(["a/b", "c~d", 0]) == "/a~1b/c~0d/0"
    assert json_pointer([]) == "/"
