"""
Schema module for the world engine.

This module provides the attribute schema language:
- Type descriptors (the shape of data) and values (the data itself)
- Validation of values against descriptors
- YAML and JSON text formats for both

Invariants:
    - Descriptors and values are closed, recursive, structurally comparable
    - Every descriptor and value round-trips through both text formats
"""

from .format import (
    definition_from_json,
    definition_to_json,
    dump_definition,
    dump_value,
    load_definition,
    load_value,
    value_from_json,
    value_to_json,
)
from .types import DataKind, SchemaFormatError, TypeDescriptor, Value
from .validate import validate, validation_errors

__all__ = [
    # Types
    "DataKind",
    "TypeDescriptor",
    "Value",
    "SchemaFormatError",
    # Validation
    "validate",
    "validation_errors",
    # Formats
    "dump_definition",
    "load_definition",
    "dump_value",
    "load_value",
    "definition_to_json",
    "definition_from_json",
    "value_to_json",
    "value_from_json",
]
