"""
Unit tests for the schema type model.

Tests cover:
- DataKind parsing
- TypeDescriptor construction rules and dict form
- Value payload checks and dict form
- Structural equality
"""

import pytest

from clwm.clwm_lib.schema import DataKind, SchemaFormatError, TypeDescriptor, Value


class TestDataKind:
    """Tests for DataKind."""

    def test_from_str(self):
        """Serialized tags map back to kinds."""
        assert DataKind.from_str("long_text") == DataKind.LONG_TEXT
        assert DataKind.from_str("noun_reference") == DataKind.NOUN_REFERENCE

    def test_from_str_invalid(self):
        """Unknown tags are rejected."""
        with pytest.raises(SchemaFormatError, match="Invalid data kind"):
            DataKind.from_str("decimal")

    def test_is_primitive(self):
        """Only leaf kinds are primitive."""
        assert DataKind.INTEGER.is_primitive
        assert not DataKind.ARRAY.is_primitive
        assert not DataKind.CUSTOM.is_primitive
        assert not DataKind.NULL.is_primitive


class TestTypeDescriptor:
    """Tests for TypeDescriptor."""

    def test_primitive(self):
        """Primitive descriptor has no children."""
        d = TypeDescriptor.primitive(DataKind.TEXT)
        assert d.kind == DataKind.TEXT
        assert d.element is None
        assert d.fields is None

    def test_primitive_rejects_container_kind(self):
        """Container kinds cannot be primitive."""
        with pytest.raises(SchemaFormatError):
            TypeDescriptor.primitive(DataKind.ARRAY)

    def test_null_is_not_a_descriptor(self):
        """NULL cannot describe a type."""
        with pytest.raises(SchemaFormatError):
            TypeDescriptor(DataKind.NULL)

    def test_array_requires_element(self):
        """Array descriptor needs an element."""
        with pytest.raises(SchemaFormatError):
            TypeDescriptor(DataKind.ARRAY)

    def test_custom_requires_fields(self):
        """Custom descriptor needs a field mapping."""
        with pytest.raises(SchemaFormatError):
            TypeDescriptor(DataKind.CUSTOM)

    def test_primitive_cannot_have_children(self):
        """Primitive descriptor rejects element or fields."""
        with pytest.raises(SchemaFormatError):
            TypeDescriptor(DataKind.TEXT, element=TypeDescriptor.primitive(DataKind.TEXT))

    def test_custom_copies_fields(self):
        """Mutating the caller's mapping does not change the descriptor."""
        fields = {"name": TypeDescriptor.primitive(DataKind.TEXT)}
        d = TypeDescriptor.custom(fields)
        fields["age"] = TypeDescriptor.primitive(DataKind.INTEGER)
        assert list(d.fields) == ["name"]

    def test_structural_equality(self):
        """Descriptors compare by structure."""
        a = TypeDescriptor.array(TypeDescriptor.custom({"x": TypeDescriptor.primitive(DataKind.FLOAT)}))
        b = TypeDescriptor.array(TypeDescriptor.custom({"x": TypeDescriptor.primitive(DataKind.FLOAT)}))
        c = TypeDescriptor.array(TypeDescriptor.custom({"x": TypeDescriptor.primitive(DataKind.INTEGER)}))
        assert a == b
        assert a != c

    def test_to_dict(self):
        """Descriptor dict form uses tag strings."""
        d = TypeDescriptor.custom(
            {
                "name": TypeDescriptor.primitive(DataKind.TEXT),
                "tags": TypeDescriptor.array(TypeDescriptor.primitive(DataKind.TEXT)),
            }
        )
        assert d.to_dict() == {"custom": {"name": "text", "tags": {"array": "text"}}}

    def test_from_dict(self):
        """Descriptor parses from its dict form."""
        d = TypeDescriptor.from_dict({"array": {"custom": {"friend": "noun_reference"}}})
        assert d == TypeDescriptor.array(
            TypeDescriptor.custom({"friend": TypeDescriptor.primitive(DataKind.NOUN_REFERENCE)})
        )

    def test_from_dict_empty_custom(self):
        """Custom with no fields parses as empty."""
        assert TypeDescriptor.from_dict({"custom": None}) == TypeDescriptor.custom({})

    def test_from_dict_rejects_tagged_primitive(self):
        """Primitive written as a tag mapping is rejected."""
        with pytest.raises(SchemaFormatError, match="plain string"):
            TypeDescriptor.from_dict({"integer": None})

    def test_from_dict_rejects_multiple_tags(self):
        """Mapping with several tags is rejected."""
        with pytest.raises(SchemaFormatError, match="exactly one kind tag"):
            TypeDescriptor.from_dict({"array": "text", "custom": {}})


class TestValue:
    """Tests for Value."""

    def test_constructors(self):
        """Constructors set kind and payload."""
        assert Value.text("a").kind == DataKind.TEXT
        assert Value.long_text("a").kind == DataKind.LONG_TEXT
        assert Value.boolean(True).value is True
        assert Value.integer(3).value == 3
        assert Value.noun_reference(7).kind == DataKind.NOUN_REFERENCE
        assert Value.null().is_null

    def test_float_widens_int(self):
        """Float constructor widens an int."""
        v = Value.float(2)
        assert isinstance(v.value, float)
        assert v.value == 2.0

    def test_bool_is_not_an_integer(self):
        """A bool is not an integer payload."""
        with pytest.raises(SchemaFormatError):
            Value.integer(True)

    def test_text_requires_string(self):
        """Text payload must be a string."""
        with pytest.raises(SchemaFormatError):
            Value.text(3)

    def test_array_items_must_be_values(self):
        """Array items must be values."""
        with pytest.raises(SchemaFormatError):
            Value.array([1, 2])

    def test_integer_and_float_differ(self):
        """Same number, different variant: not equal."""
        assert Value.integer(30) != Value.float(30.0)
        assert Value.text("a") != Value.long_text("a")

    def test_structural_equality(self):
        """Values compare by structure."""
        a = Value.custom({"tags": Value.array([Value.text("x")]), "n": Value.null()})
        b = Value.custom({"n": Value.null(), "tags": Value.array([Value.text("x")])})
        assert a == b

    def test_to_dict(self):
        """Value dict form is tagged."""
        v = Value.custom({"age": Value.integer(30), "nick": Value.null()})
        assert v.to_dict() == {"custom": {"age": {"integer": 30}, "nick": None}}

    def test_from_dict(self):
        """Value parses from its dict form."""
        v = Value.from_dict({"array": [{"float": 1.5}, None]})
        assert v == Value.array([Value.float(1.5), Value.null()])

    def test_from_dict_float_string(self):
        """Float payload may be a numeric string."""
        assert Value.from_dict({"float": "2.5"}) == Value.float(2.5)

    def test_from_dict_bad_payload(self):
        """Payload of the wrong type is rejected."""
        with pytest.raises(SchemaFormatError):
            Value.from_dict({"boolean": "yes"})

    def test_from_dict_empty_field_name(self):
        """Empty field name is rejected."""
        with pytest.raises(SchemaFormatError, match="field names"):
            Value.from_dict({"custom": {"": {"text": "x"}}})

    def test_repr(self):
        """Repr names the constructor."""
        assert repr(Value.null()) == "Value.null()"
        assert repr(Value.integer(3)) == "Value.integer(3)"

    def test_unhashable(self):
        """Values are unhashable."""
        with pytest.raises(TypeError):
            hash(Value.integer(1))

    @pytest.mark.parametrize("kind", [DataKind.INTEGER, DataKind.NOUN_REFERENCE])
    def test_64_bit_bounds(self, kind):
        """Payloads at the signed 64-bit limits are kept, one past is rejected."""
        assert Value(kind, 2**63 - 1).value == 2**63 - 1
        assert Value(kind, -(2**63)).value == -(2**63)
        with pytest.raises(SchemaFormatError, match="64 bits"):
            Value(kind, 2**63)
        with pytest.raises(SchemaFormatError, match="64 bits"):
            Value(kind, -(2**63) - 1)

    def test_from_dict_oversized_integer(self):
        """Oversized integer payload is rejected on parse."""
        with pytest.raises(SchemaFormatError):
            Value.from_dict({"integer": 2**70})

    def test_float_out_of_range(self):
        """An int too large for a float is a format error, not OverflowError."""
        with pytest.raises(SchemaFormatError, match="out of range"):
            Value.float(10**400)
