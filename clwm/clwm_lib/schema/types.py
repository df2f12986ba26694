"""
Core type definitions for the attribute schema language.

This module defines the two parallel recursive models:
- TypeDescriptor: the shape a value must have (a data type definition)
- Value: an actual piece of data (an attribute's payload)

Both are closed tagged unions keyed by DataKind. Primitive variants carry
no children; ARRAY carries one element descriptor (or a list of values);
CUSTOM carries a mapping of field name to descriptor (or value).

Invariants:
    - NULL is a Value kind only, never a descriptor kind
    - Primitive payloads are never coerced (a bool is not an integer)
    - INTEGER and NOUN_REFERENCE payloads fit a signed 64-bit integer
    - Both models are finite literal trees, built by construction
    - Equality is structural

How to change safely:
    - New kinds must be added to DataKind, to_dict/from_dict and the validator
    - Never rename the serialized tag strings, stored data depends on them

Example:
    >>> person = TypeDescriptor.custom({
    ...     "name": TypeDescriptor.primitive(DataKind.TEXT),
    ...     "tags": TypeDescriptor.array(TypeDescriptor.primitive(DataKind.TEXT)),
    ... })
    >>> alice = Value.custom({"name": Value.text("Alice"), "tags": Value.array([])})
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class SchemaFormatError(ValueError):
    """A serialized descriptor or value is malformed."""

    pass


class DataKind(Enum):
    """Variant tags shared by descriptors and values.

    The enum value doubles as the serialized tag.
    """

    NULL = "null"
    TEXT = "text"
    LONG_TEXT = "long_text"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    NOUN_REFERENCE = "noun_reference"
    ARRAY = "array"
    CUSTOM = "custom"

    @classmethod
    def from_str(cls, value: str) -> DataKind:
        """Convert a serialized tag to a DataKind.

        Raises:
            SchemaFormatError: If value is not a known tag
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise SchemaFormatError(f"Invalid data kind '{value}'. Valid kinds: {valid}")

    @property
    def is_primitive(self) -> bool:
        return self in PRIMITIVE_KINDS


PRIMITIVE_KINDS = frozenset(
    {
        DataKind.TEXT,
        DataKind.LONG_TEXT,
        DataKind.BOOLEAN,
        DataKind.INTEGER,
        DataKind.FLOAT,
        DataKind.NOUN_REFERENCE,
    }
)


@dataclass(frozen=True)
class TypeDescriptor:
    """Definition of the shape of a piece of attribute data.

    Attributes:
        kind: Variant tag (never NULL)
        element: Element descriptor, set only for ARRAY
        fields: Field name to descriptor, set only for CUSTOM

    Invariants:
        - ARRAY requires element and forbids fields
        - CUSTOM requires fields (possibly empty) and forbids element
        - Primitive kinds carry neither
    """

    kind: DataKind
    element: TypeDescriptor | None = None
    fields: Mapping[str, TypeDescriptor] | None = None

    def __post_init__(self) -> None:
        """Validate descriptor shape."""
        if self.kind == DataKind.NULL:
            raise SchemaFormatError("null is not a valid type descriptor kind")
        if self.kind == DataKind.ARRAY:
            if self.element is None:
                raise SchemaFormatError("array descriptor requires an element descriptor")
            if self.fields is not None:
                raise SchemaFormatError("array descriptor cannot have fields")
        elif self.kind == DataKind.CUSTOM:
            if self.fields is None:
                raise SchemaFormatError("custom descriptor requires fields")
            if self.element is not None:
                raise SchemaFormatError("custom descriptor cannot have an element")
            # Own copy, callers keep no handle on the stored mapping
            object.__setattr__(self, "fields", dict(self.fields))
        elif self.element is not None or self.fields is not None:
            raise SchemaFormatError(f"{self.kind.value} descriptor cannot have children")

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def primitive(cls, kind: DataKind) -> TypeDescriptor:
        if not kind.is_primitive:
            raise SchemaFormatError(f"{kind.value} is not a primitive kind")
        return cls(kind=kind)

    @classmethod
    def array(cls, element: TypeDescriptor) -> TypeDescriptor:
        return cls(kind=DataKind.ARRAY, element=element)

    @classmethod
    def custom(cls, fields: Mapping[str, TypeDescriptor]) -> TypeDescriptor:
        return cls(kind=DataKind.CUSTOM, fields=fields)

    def to_dict(self) -> Any:
        """Convert to the plain serializable form.

        Primitives become their tag string, containers a single-key dict.
        """
        if self.kind == DataKind.ARRAY:
            assert self.element is not None
            return {DataKind.ARRAY.value: self.element.to_dict()}
        if self.kind == DataKind.CUSTOM:
            assert self.fields is not None
            return {
                DataKind.CUSTOM.value: {name: d.to_dict() for name, d in self.fields.items()}
            }
        return self.kind.value

    @classmethod
    def from_dict(cls, data: Any) -> TypeDescriptor:
        """Create from the plain serializable form.

        Raises:
            SchemaFormatError: If data is not a valid descriptor
        """
        if isinstance(data, str):
            return cls.primitive(DataKind.from_str(data))

        tag, payload = _single_entry(data, "type descriptor")
        kind = DataKind.from_str(tag)
        if kind == DataKind.ARRAY:
            return cls.array(cls.from_dict(payload))
        if kind == DataKind.CUSTOM:
            if payload is None:
                payload = {}
            if not isinstance(payload, Mapping):
                raise SchemaFormatError("custom descriptor fields must be a mapping")
            return cls.custom({_field_name(k): cls.from_dict(v) for k, v in payload.items()})
        raise SchemaFormatError(f"{tag} descriptor must be written as a plain string")


@dataclass(frozen=True)
class Value:
    """A piece of attribute data.

    Attributes:
        kind: Variant tag
        value: Python payload; None for NULL, str for TEXT/LONG_TEXT,
            bool for BOOLEAN, int for INTEGER/NOUN_REFERENCE, float for FLOAT,
            tuple of Value for ARRAY, dict of str to Value for CUSTOM

    Example:
        >>> Value.integer(30) == Value.integer(30)
        True
        >>> Value.integer(30) == Value.float(30.0)
        False
    """

    kind: DataKind
    value: Any = None

    def __post_init__(self) -> None:
        """Validate that the payload has the Python type the kind requires."""
        kind, value = self.kind, self.value
        if kind == DataKind.NULL:
            if value is not None:
                raise SchemaFormatError("null value cannot carry a payload")
        elif kind in (DataKind.TEXT, DataKind.LONG_TEXT):
            if not isinstance(value, str):
                raise SchemaFormatError(f"{kind.value} value must be a string")
        elif kind == DataKind.BOOLEAN:
            if not isinstance(value, bool):
                raise SchemaFormatError("boolean value must be a bool")
        elif kind in (DataKind.INTEGER, DataKind.NOUN_REFERENCE):
            if not isinstance(value, int) or isinstance(value, bool):
                raise SchemaFormatError(f"{kind.value} value must be an integer")
            if not INT64_MIN <= value <= INT64_MAX:
                raise SchemaFormatError(f"{kind.value} value {value} does not fit in 64 bits")
        elif kind == DataKind.FLOAT:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise SchemaFormatError("float value must be a number")
            try:
                object.__setattr__(self, "value", float(value))
            except OverflowError as e:
                raise SchemaFormatError("float value is out of range") from e
        elif kind == DataKind.ARRAY:
            if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
                raise SchemaFormatError("array value must be a sequence of values")
            items = tuple(value)
            if not all(isinstance(item, Value) for item in items):
                raise SchemaFormatError("array items must be values")
            object.__setattr__(self, "value", items)
        elif kind == DataKind.CUSTOM:
            if not isinstance(value, Mapping):
                raise SchemaFormatError("custom value must be a mapping")
            if not all(isinstance(v, Value) for v in value.values()):
                raise SchemaFormatError("custom fields must be values")
            object.__setattr__(self, "value", dict(value))

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def null(cls) -> Value:
        return cls(DataKind.NULL)

    @classmethod
    def text(cls, value: str) -> Value:
        return cls(DataKind.TEXT, value)

    @classmethod
    def long_text(cls, value: str) -> Value:
        return cls(DataKind.LONG_TEXT, value)

    @classmethod
    def boolean(cls, value: bool) -> Value:
        return cls(DataKind.BOOLEAN, value)

    @classmethod
    def integer(cls, value: int) -> Value:
        return cls(DataKind.INTEGER, value)

    @classmethod
    def float(cls, value: float) -> Value:
        return cls(DataKind.FLOAT, value)

    @classmethod
    def noun_reference(cls, noun_id: int) -> Value:
        return cls(DataKind.NOUN_REFERENCE, noun_id)

    @classmethod
    def array(cls, items: Sequence[Value]) -> Value:
        return cls(DataKind.ARRAY, items)

    @classmethod
    def custom(cls, fields: Mapping[str, Value]) -> Value:
        return cls(DataKind.CUSTOM, fields)

    @property
    def is_null(self) -> bool:
        return self.kind == DataKind.NULL

    def to_dict(self) -> Any:
        """Convert to the tagged serializable form (None for NULL)."""
        if self.kind == DataKind.NULL:
            return None
        if self.kind == DataKind.ARRAY:
            return {DataKind.ARRAY.value: [item.to_dict() for item in self.value]}
        if self.kind == DataKind.CUSTOM:
            return {
                DataKind.CUSTOM.value: {name: v.to_dict() for name, v in self.value.items()}
            }
        return {self.kind.value: self.value}

    @classmethod
    def from_dict(cls, data: Any) -> Value:
        """Create from the tagged serializable form.

        Raises:
            SchemaFormatError: If data is not a valid value
        """
        if data is None:
            return cls.null()

        tag, payload = _single_entry(data, "value")
        kind = DataKind.from_str(tag)
        if kind == DataKind.NULL:
            return cls.null()
        if kind == DataKind.ARRAY:
            if payload is None:
                payload = []
            if not isinstance(payload, list):
                raise SchemaFormatError("array value must be a list")
            return cls.array([cls.from_dict(item) for item in payload])
        if kind == DataKind.CUSTOM:
            if payload is None:
                payload = {}
            if not isinstance(payload, Mapping):
                raise SchemaFormatError("custom value must be a mapping")
            return cls.custom({_field_name(k): cls.from_dict(v) for k, v in payload.items()})
        if kind == DataKind.FLOAT and isinstance(payload, str):
            # YAML and JSON writers may spell non-finite floats as strings
            try:
                payload = float(payload)
            except ValueError as e:
                raise SchemaFormatError(f"invalid float value {payload!r}") from e
        return cls(kind, payload)

    def __repr__(self) -> str:
        if self.kind == DataKind.NULL:
            return "Value.null()"
        return f"Value.{self.kind.value}({self.value!r})"


def _single_entry(data: Any, what: str) -> tuple[str, Any]:
    """Unpack a one-key tagged mapping into (tag, payload)."""
    if not isinstance(data, Mapping) or len(data) != 1:
        raise SchemaFormatError(f"{what} must be a mapping with exactly one kind tag, got {data!r}")
    ((tag, payload),) = data.items()
    if not isinstance(tag, str):
        raise SchemaFormatError(f"{what} kind tag must be a string, got {tag!r}")
    return tag, payload


def _field_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise SchemaFormatError(f"custom field names must be non-empty strings, got {name!r}")
    return name
