"""
Value validation against type descriptors.

This module provides:
- validate: pass/fail check of a value against a descriptor
- validation_errors: the same walk, collecting one message per offending path

Rules:
    - NULL passes anywhere when allow_null is set
    - Primitive descriptors require the exact same value kind (no coercion)
    - ARRAY requires an array whose every item validates against the element
    - CUSTOM requires a custom value whose every present key is declared in the
      descriptor and validates against it; declared keys missing from the
      value are NOT reported

Invariants:
    - Validation is pure and terminates (finite structural recursion)
    - validate(...) is True exactly when validation_errors(...) is empty
"""

from __future__ import annotations

from .types import DataKind, TypeDescriptor, Value


def validate(value: Value, descriptor: TypeDescriptor, allow_null: bool) -> bool:
    """Check a value against a descriptor.

    Args:
        value: Value to check
        descriptor: Shape the value must have
        allow_null: Whether NULL is accepted at any depth

    Returns:
        True if the value conforms
    """
    return not validation_errors(value, descriptor, allow_null)


def validation_errors(
    value: Value,
    descriptor: TypeDescriptor,
    allow_null: bool,
    path: str = "$",
) -> list[str]:
    """Collect validation messages for a value.

    Args:
        value: Value to check
        descriptor: Shape the value must have
        allow_null: Whether NULL is accepted at any depth
        path: Location of value, used as message prefix

    Returns:
        List of messages; empty if the value conforms
    """
    if value.kind == DataKind.NULL and allow_null:
        return []

    if value.kind != descriptor.kind:
        return [f"{path}: expected {descriptor.kind.value}, got {value.kind.value}"]

    if descriptor.kind == DataKind.ARRAY:
        assert descriptor.element is not None
        errors: list[str] = []
        for i, item in enumerate(value.value):
            errors.extend(validation_errors(item, descriptor.element, allow_null, f"{path}[{i}]"))
        return errors

    if descriptor.kind == DataKind.CUSTOM:
        assert descriptor.fields is not None
        errors = []
        for name, field_value in value.value.items():
            field_path = f"{path}.{name}"
            field_descriptor = descriptor.fields.get(name)
            if field_descriptor is None:
                errors.append(f"{field_path}: field is not declared in the definition")
                continue
            errors.extend(validation_errors(field_value, field_descriptor, allow_null, field_path))
        return errors

    return []
