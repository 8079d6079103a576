"""
JSON Schema validation with path-qualified error messages.

Wraps the ``jsonschema`` library so that every violation is rendered as a
single line of the form ``"<json pointer>: <message>"``.  The messages for
rejected property names and failed ``anyOf`` branches use a fixed wording
that API clients match on verbatim::

    /exp: "exp" cannot match schema
    /aud: true did Not match any specified AnyOf schemas

All functions return plain lists of strings, sorted, so callers can merge
results from several checks and still produce a deterministic response.
"""

from __future__ import annotations

import json
from typing import Any

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import ValidationError as SchemaViolation
from jsonschema.validators import validator_for
from referencing import Registry
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT7, specification_with

# Keywords whose values are instance data rather than subschemas.
_DATA_KEYWORDS = frozenset({"const", "default", "enum", "examples"})


def json_pointer(path: Any) -> str:
    """Render a sequence of keys/indices as an RFC 6901 JSON pointer."""
    parts = [str(part).replace("~", "~0").replace("/", "~1") for part in path]
    if not parts:
        return "/"
    return "/" + "/".join(parts)


def _rejected_property_name(error: SchemaViolation) -> bool:
    """True when *error* was produced while checking an object's key names."""
    schema_path = list(error.relative_schema_path)
    for index, keyword in enumerate(schema_path):
        # "properties" -> "propertyNames" would be a property literally
        # called propertyNames, not the keyword.
        if keyword == "propertyNames" and (
            index == 0 or schema_path[index - 1] not in ("properties", "definitions", "$defs")
        ):
            return True
    return False


def format_error(error: SchemaViolation) -> str:
    """Render one ``jsonschema`` violation as ``"<pointer>: <message>"``."""
    if _rejected_property_name(error):
        name = error.instance
        pointer = json_pointer([*error.absolute_path, name])
        return f"{pointer}: {json.dumps(name)} cannot match schema"

    pointer = json_pointer(error.absolute_path)
    if error.validator == "anyOf":
        return f"{pointer}: {json.dumps(error.instance)} did Not match any specified AnyOf schemas"
    if error.validator == "enum":
        choices = ", ".join(json.dumps(choice) for choice in error.validator_value)
        return f"{pointer}: {json.dumps(error.instance)} should be one of [{choices}]"
    return f"{pointer}: {error.message}"


def _validator_class(schema: Any) -> type:
    """Pick the draft declared by ``$schema``, defaulting to Draft 7."""
    if not isinstance(schema, (dict, bool)):
        return Draft7Validator
    return validator_for(schema, default=Draft7Validator)


def check_schema(schema: Any) -> list[str]:
    """
    Validate a schema document against its meta-schema.

    Args:
        schema: A parsed JSON Schema document.

    Returns:
        Sorted violation messages; empty when the schema is well formed.
    """
    validator_class = _validator_class(schema)
    meta_validator = validator_class(validator_class.META_SCHEMA)
    errors = [format_error(error) for error in meta_validator.iter_errors(schema)]
    if not errors:
        errors = _unresolvable_refs(schema)
    return sorted(errors)


def _unresolvable_refs(schema: Any) -> list[str]:
    """Report every ``$ref`` in *schema* that does not resolve."""
    dialect = schema.get("$schema", "") if isinstance(schema, dict) else ""
    specification = specification_with(dialect, default=DRAFT7)
    root = specification.create_resource(schema)
    base_uri = root.id() or ""
    resolver = Registry().with_resource(base_uri, root).crawl().resolver(base_uri=base_uri)

    errors: list[str] = []

    def walk(node: Any, path: list[Any], resolver: Any) -> None:
        if isinstance(node, list):
            for index, item in enumerate(node):
                walk(item, [*path, index], resolver)
            return
        if not isinstance(node, dict):
            return
        if isinstance(specification.id_of(node), str):
            resolver = resolver.in_subresource(specification.create_resource(node))
        ref = node.get("$ref")
        if isinstance(ref, str):
            try:
                resolver.lookup(ref)
            except Unresolvable:
                pointer = json_pointer([*path, "$ref"])
                errors.append(f"{pointer}: unresolvable $ref {json.dumps(ref)}")
        for key, value in node.items():
            if key not in _DATA_KEYWORDS:
                walk(value, [*path, key], resolver)

    walk(schema, [], resolver)
    return errors


def validate(document: Any, schema: Any) -> list[str]:
    """
    Validate *document* against *schema*.

    An empty or missing schema places no constraint on the document.  The
    schema is assumed to have passed :func:`check_schema` already.

    Returns:
        Sorted violation messages, one per failing location.
    """
    if schema is None or schema == {}:
        return []
    validator_class = _validator_class(schema)
    validator = validator_class(schema, format_checker=FormatChecker())
    try:
        return sorted(format_error(error) for error in validator.iter_errors(document))
    except Unresolvable as exc:
        return [f"/: unresolvable $ref {json.dumps(getattr(exc, 'ref', ''))}"]
