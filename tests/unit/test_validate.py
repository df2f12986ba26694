"""
Unit tests for value validation.

Tests cover:
- Primitive kind matching without coercion
- Null handling
- Arrays and custom records, recursively
- The permissive rule for custom fields missing from a value
"""

import pytest

from clwm.clwm_lib.schema import DataKind, TypeDescriptor, Value, validate, validation_errors

TEXT = TypeDescriptor.primitive(DataKind.TEXT)
INTEGER = TypeDescriptor.primitive(DataKind.INTEGER)
FLOAT = TypeDescriptor.primitive(DataKind.FLOAT)


class TestPrimitives:
    """Tests for primitive descriptors."""

    @pytest.mark.parametrize(
        "value,kind",
        [
            (Value.text("a"), DataKind.TEXT),
            (Value.long_text("a"), DataKind.LONG_TEXT),
            (Value.boolean(False), DataKind.BOOLEAN),
            (Value.integer(1), DataKind.INTEGER),
            (Value.float(1.0), DataKind.FLOAT),
            (Value.noun_reference(1), DataKind.NOUN_REFERENCE),
        ],
    )
    def test_matching_kind(self, value, kind):
        """Same primitive kind validates."""
        assert validate(value, TypeDescriptor.primitive(kind), allow_null=False)

    def test_no_coercion(self):
        """An integer never satisfies a float descriptor, nor text a long text one."""
        assert not validate(Value.integer(30), FLOAT, allow_null=False)
        assert not validate(Value.text("a"), TypeDescriptor.primitive(DataKind.LONG_TEXT), False)
        assert not validate(Value.integer(3), TypeDescriptor.primitive(DataKind.NOUN_REFERENCE), False)

    def test_error_message(self):
        """Mismatch message names path and kinds."""
        assert validation_errors(Value.integer(30), FLOAT, allow_null=True) == [
            "$: expected float, got integer"
        ]


class TestNull:
    """Tests for null handling."""

    def test_null_allowed(self):
        """Null passes when allowed."""
        assert validate(Value.null(), INTEGER, allow_null=True)

    def test_null_not_allowed(self):
        """Null fails when not allowed."""
        assert not validate(Value.null(), INTEGER, allow_null=False)

    def test_null_allowed_inside_containers(self):
        """Null passes inside arrays and custom fields."""
        d = TypeDescriptor.custom({"xs": TypeDescriptor.array(INTEGER)})
        v = Value.custom({"xs": Value.array([Value.integer(1), Value.null()])})
        assert validate(v, d, allow_null=True)
        assert not validate(v, d, allow_null=False)


class TestArray:
    """Tests for array descriptors."""

    def test_every_element_checked(self):
        """Each array element is checked."""
        d = TypeDescriptor.array(TEXT)
        assert validate(Value.array([Value.text("a"), Value.text("b")]), d, False)
        errors = validation_errors(Value.array([Value.text("a"), Value.integer(2)]), d, False)
        assert errors == ["$[1]: expected text, got integer"]

    def test_empty_array(self):
        """Empty array validates."""
        assert validate(Value.array([]), TypeDescriptor.array(TEXT), False)

    def test_non_array_value(self):
        """Non-array value fails an array descriptor."""
        assert not validate(Value.text("a"), TypeDescriptor.array(TEXT), False)

    def test_nested_arrays(self):
        """Nested arrays are checked recursively."""
        d = TypeDescriptor.array(TypeDescriptor.array(INTEGER))
        v = Value.array([Value.array([Value.integer(1)]), Value.array([Value.float(1.0)])])
        assert validation_errors(v, d, False) == ["$[1][0]: expected integer, got float"]


class TestCustom:
    """Tests for custom record descriptors."""

    PERSON = TypeDescriptor.custom({"name": TEXT, "age": INTEGER})

    def test_valid(self):
        """Custom value with declared fields validates."""
        v = Value.custom({"name": Value.text("Alice"), "age": Value.integer(30)})
        assert validate(v, self.PERSON, False)

    def test_undeclared_field(self):
        """Undeclared field is reported."""
        v = Value.custom({"name": Value.text("Alice"), "height": Value.float(1.7)})
        assert validation_errors(v, self.PERSON, False) == [
            "$.height: field is not declared in the definition"
        ]

    def test_missing_field_is_not_flagged(self):
        """Declared fields absent from the value are accepted."""
        assert validate(Value.custom({"name": Value.text("Alice")}), self.PERSON, False)
        assert validate(Value.custom({}), self.PERSON, False)

    def test_wrong_field_kind(self):
        """Field of the wrong kind is reported."""
        v = Value.custom({"age": Value.text("thirty")})
        assert validation_errors(v, self.PERSON, False) == ["$.age: expected integer, got text"]

    def test_non_custom_value(self):
        """Non-custom value fails a custom descriptor."""
        assert not validate(Value.array([]), self.PERSON, False)

    def test_deep_nesting(self):
        """Errors deep in the tree carry the full path."""
        d = TypeDescriptor.custom(
            {"pets": TypeDescriptor.array(TypeDescriptor.custom({"name": TEXT}))}
        )
        v = Value.custom(
            {"pets": Value.array([Value.custom({"name": Value.integer(1)})])}
        )
        assert validation_errors(v, d, True) == ["$.pets[0].name: expected text, got integer"]
