"""
Text formats for descriptors and values.

Two renderings of the same tagged dict form (see types.py):
- YAML: human-facing; used for CLI editing, `get` output and history diffs
- JSON: compact storage form written to the database

Example YAML definition:
    custom:
      name: text
      born: integer
      aliases:
        array: text

Example YAML value:
    custom:
      name:
        text: Alice
      born:
        integer: 1990
      aliases:
        array: []

Invariants:
    - load_x(dump_x(obj)) == obj for every descriptor and value, except
      that a NaN float comes back as a NaN float which, like any NaN,
      compares unequal to itself
    - Dumps are deterministic (sorted keys), so diffs only show real changes
"""

from __future__ import annotations

import json

import yaml

from .types import SchemaFormatError, TypeDescriptor, Value


def dump_definition(definition: TypeDescriptor) -> str:
    """Render a descriptor as a YAML document."""
    return _dump_yaml(definition.to_dict())


def load_definition(text: str) -> TypeDescriptor:
    """Parse a YAML document into a descriptor.

    Raises:
        SchemaFormatError: If the document is not valid YAML or not a descriptor
    """
    return TypeDescriptor.from_dict(_load_yaml(text))


def dump_value(value: Value) -> str:
    """Render a value as a YAML document."""
    return _dump_yaml(value.to_dict())


def load_value(text: str) -> Value:
    """Parse a YAML document into a value.

    An empty document is the null value.

    Raises:
        SchemaFormatError: If the document is not valid YAML or not a value
    """
    return Value.from_dict(_load_yaml(text))


def definition_to_json(definition: TypeDescriptor) -> str:
    return json.dumps(definition.to_dict(), sort_keys=True, separators=(",", ":"))


def definition_from_json(text: str) -> TypeDescriptor:
    return TypeDescriptor.from_dict(_load_json(text))


def value_to_json(value: Value) -> str:
    return json.dumps(value.to_dict(), sort_keys=True, separators=(",", ":"))


def value_from_json(text: str) -> Value:
    return Value.from_dict(_load_json(text))


def _dump_yaml(data: object) -> str:
    return yaml.safe_dump(
        data,
        sort_keys=True,
        default_flow_style=False,
        allow_unicode=True,
    )


def _load_yaml(text: str) -> object:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SchemaFormatError(f"Invalid YAML: {e}") from e


def _load_json(text: str) -> object:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaFormatError(f"Invalid JSON: {e}") from e
