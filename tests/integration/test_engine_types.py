"""
Integration tests for World Engine mutations on nouns and types.

Tests cover:
- Noun type creation, renaming and uniqueness
- Noun creation and update against existing noun types
- Data type versioning (append-only)
- Attribute type creation and update
- Rejected mutations leaving the store untouched
"""

import pytest

from clwm.clwm_lib.errors import (
    AttributeTypeAlreadyExistsError,
    AttributeTypeHasNoIdError,
    AttributeTypeNotFoundError,
    DataTypeAlreadyExistsError,
    DataTypeNotFoundError,
    NounHasNoIdError,
    NounNotFoundError,
    NounTypeAlreadyExistsError,
    NounTypeHasNoIdError,
    NounTypeNotFoundError,
)
from clwm.clwm_lib.model import AttributeType, Noun, NounType
from clwm.clwm_lib.schema import DataKind, TypeDescriptor

INTEGER = TypeDescriptor.primitive(DataKind.INTEGER)
FLOAT = TypeDescriptor.primitive(DataKind.FLOAT)


class TestNounTypes:
    """Tests for noun type operations."""

    @pytest.mark.asyncio
    async def test_create(self, engine):
        """Create noun type stores name and metadata."""
        person = await engine.new_noun_type("Person", "people I know")
        assert person.id is not None
        assert person.type_name == "Person"
        assert person.metadata == "people I know"
        assert person.last_changed is not None

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, engine, row_counts):
        """Duplicate type name is rejected."""
        await engine.new_noun_type("Person")
        before = row_counts()
        with pytest.raises(NounTypeAlreadyExistsError) as exc_info:
            await engine.new_noun_type("Person")
        assert exc_info.value.noun_type == "Person"
        assert row_counts() == before

    @pytest.mark.asyncio
    async def test_update(self, engine):
        """Update renames and changes metadata."""
        person = await engine.new_noun_type("Person")
        updated = await engine.update_noun_type(
            NounType(id=person.id, type_name="Human", metadata="renamed")
        )
        assert updated.id == person.id
        assert updated.type_name == "Human"
        assert (await engine.get_noun_type(person.id)).metadata == "renamed"

    @pytest.mark.asyncio
    async def test_update_keeps_nouns_attached(self, engine):
        """Renaming a type carries its nouns."""
        person = await engine.new_noun_type("Person")
        alice = await engine.new_noun("Alice", "Person")
        await engine.update_noun_type(NounType(id=person.id, type_name="Human"))
        assert (await engine.get_noun(alice.id)).noun_type == "Human"

    @pytest.mark.asyncio
    async def test_update_without_id(self, engine):
        """Update without id is rejected."""
        with pytest.raises(NounTypeHasNoIdError):
            await engine.update_noun_type(NounType(type_name="Person"))

    @pytest.mark.asyncio
    async def test_update_unknown(self, engine):
        """Update of an unknown type is rejected."""
        with pytest.raises(NounTypeNotFoundError):
            await engine.update_noun_type(NounType(id=99, type_name="Person"))

    @pytest.mark.asyncio
    async def test_rename_onto_existing(self, engine):
        """Rename onto an existing name is rejected."""
        await engine.new_noun_type("Person")
        place = await engine.new_noun_type("Place")
        with pytest.raises(NounTypeAlreadyExistsError):
            await engine.update_noun_type(NounType(id=place.id, type_name="Person"))

    @pytest.mark.asyncio
    async def test_metadata_only_update(self, engine):
        """Keeping the name while changing metadata is allowed."""
        person = await engine.new_noun_type("Person")
        updated = await engine.update_noun_type(
            NounType(id=person.id, type_name="Person", metadata="same name")
        )
        assert updated.metadata == "same name"


class TestNouns:
    """Tests for noun operations."""

    @pytest.mark.asyncio
    async def test_create_and_unknown_type(self, engine, row_counts):
        """Alice is created; a noun of an undefined type is rejected."""
        await engine.new_noun_type("Person")
        alice = await engine.new_noun("Alice", "Person")
        assert alice.id is not None
        assert alice.noun_type == "Person"

        before = row_counts()
        with pytest.raises(NounTypeNotFoundError):
            await engine.new_noun("Casper", "Ghost")
        assert row_counts() == before

    @pytest.mark.asyncio
    async def test_names_are_not_unique(self, engine):
        """Noun names may repeat."""
        await engine.new_noun_type("Person")
        a = await engine.new_noun("Alex", "Person")
        b = await engine.new_noun("Alex", "Person")
        assert a.id != b.id

    @pytest.mark.asyncio
    async def test_update(self, engine):
        """Update changes name, type and metadata."""
        await engine.new_noun_type("Person")
        await engine.new_noun_type("Robot")
        alice = await engine.new_noun("Alice", "Person")
        updated = await engine.update_noun(
            Noun(id=alice.id, name="Alice B", noun_type="Robot", metadata="upgraded")
        )
        assert updated.name == "Alice B"
        assert updated.noun_type == "Robot"
        assert updated.metadata == "upgraded"

    @pytest.mark.asyncio
    async def test_update_without_id(self, engine):
        """Update without id is rejected."""
        with pytest.raises(NounHasNoIdError):
            await engine.update_noun(Noun(name="Alice", noun_type="Person"))

    @pytest.mark.asyncio
    async def test_update_unknown(self, engine):
        """Update of an unknown noun is rejected."""
        await engine.new_noun_type("Person")
        with pytest.raises(NounNotFoundError):
            await engine.update_noun(Noun(id=5, name="Alice", noun_type="Person"))

    @pytest.mark.asyncio
    async def test_update_to_unknown_type(self, engine):
        """Update to an unknown type is rejected."""
        await engine.new_noun_type("Person")
        alice = await engine.new_noun("Alice", "Person")
        with pytest.raises(NounTypeNotFoundError):
            await engine.update_noun(Noun(id=alice.id, name="Alice", noun_type="Ghost"))
        assert (await engine.get_noun(alice.id)).noun_type == "Person"


class TestDataTypes:
    """Tests for data type operations."""

    @pytest.mark.asyncio
    async def test_create_is_version_one(self, engine):
        """New data type starts at version 1."""
        age = await engine.new_data_type("Age", INTEGER)
        assert age.version == 1
        assert age.definition == INTEGER
        assert age.system_defined is False
        assert age.change_date is not None

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, engine):
        """Creating an existing data type is rejected."""
        await engine.new_data_type("Age", INTEGER)
        await engine.update_data_type("Age", FLOAT)
        with pytest.raises(DataTypeAlreadyExistsError):
            await engine.new_data_type("Age", FLOAT)

    @pytest.mark.asyncio
    async def test_update_unknown(self, engine):
        """Updating an unknown data type is rejected."""
        with pytest.raises(DataTypeNotFoundError):
            await engine.update_data_type("Age", FLOAT)

    @pytest.mark.asyncio
    async def test_version_monotonicity(self, engine):
        """N updates after creation leave N+1 versions, all fetchable."""
        await engine.new_data_type("Age", INTEGER)
        definitions = [INTEGER]
        for n in range(4):
            d = TypeDescriptor.array(definitions[-1])
            definitions.append(d)
            stored = await engine.update_data_type("Age", d)
            assert stored.version == n + 2

        assert (await engine.get_data_type("Age")).version == 5
        for version, definition in enumerate(definitions, start=1):
            assert (await engine.get_data_type("Age", version)).definition == definition

    @pytest.mark.asyncio
    async def test_update_never_mutates_old_rows(self, engine, count_rows):
        """Update appends a row and keeps the old one."""
        await engine.new_data_type("Age", INTEGER)
        await engine.update_data_type("Age", FLOAT)
        assert count_rows("data_type") == 2
        assert (await engine.get_data_type("Age", 1)).definition == INTEGER

    @pytest.mark.asyncio
    async def test_system_defined_carried_over(self, engine):
        """system_defined carries over to new versions."""
        await engine.new_data_type("Text", TypeDescriptor.primitive(DataKind.TEXT), system_defined=True)
        v2 = await engine.update_data_type("Text", TypeDescriptor.primitive(DataKind.LONG_TEXT))
        assert v2.system_defined is True


class TestAttributeTypes:
    """Tests for attribute type operations."""

    @pytest.mark.asyncio
    async def test_create(self, engine):
        """Create attribute type stores its fields."""
        await engine.new_data_type("Age", INTEGER)
        age = await engine.new_attribute_type("age", "Age", multiple_allowed=False, metadata="years")
        assert age.id is not None
        assert age.data_type == "Age"
        assert age.multiple_allowed is False

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, engine):
        """Duplicate attribute name is rejected."""
        await engine.new_data_type("Age", INTEGER)
        await engine.new_attribute_type("age", "Age")
        with pytest.raises(AttributeTypeAlreadyExistsError):
            await engine.new_attribute_type("age", "Age")

    @pytest.mark.asyncio
    async def test_unknown_data_type(self, engine, row_counts):
        """Unknown data type is rejected."""
        before = row_counts()
        with pytest.raises(DataTypeNotFoundError):
            await engine.new_attribute_type("age", "Age")
        assert row_counts() == before

    @pytest.mark.asyncio
    async def test_update(self, engine):
        """Update renames and changes multiplicity."""
        await engine.new_data_type("Age", INTEGER)
        age = await engine.new_attribute_type("age", "Age")
        updated = await engine.update_attribute_type(
            AttributeType(id=age.id, attribute_name="years", data_type="Age", multiple_allowed=True)
        )
        assert updated.attribute_name == "years"
        assert updated.multiple_allowed is True

    @pytest.mark.asyncio
    async def test_update_keeps_data_type(self, engine):
        """Update keeps the original data type."""
        await engine.new_data_type("Age", INTEGER)
        await engine.new_data_type("Height", FLOAT)
        age = await engine.new_attribute_type("age", "Age")
        updated = await engine.update_attribute_type(
            AttributeType(id=age.id, attribute_name="age", data_type="Height")
        )
        assert updated.data_type == "Age"

    @pytest.mark.asyncio
    async def test_update_without_id(self, engine):
        """Update without id is rejected."""
        with pytest.raises(AttributeTypeHasNoIdError):
            await engine.update_attribute_type(AttributeType(attribute_name="age", data_type="Age"))

    @pytest.mark.asyncio
    async def test_update_unknown(self, engine):
        """Update of an unknown type is rejected."""
        with pytest.raises(AttributeTypeNotFoundError):
            await engine.update_attribute_type(
                AttributeType(id=3, attribute_name="age", data_type="Age")
            )

    @pytest.mark.asyncio
    async def test_rename_onto_existing(self, engine):
        """Rename onto an existing name is rejected."""
        await engine.new_data_type("Age", INTEGER)
        await engine.new_attribute_type("age", "Age")
        other = await engine.new_attribute_type("other", "Age")
        with pytest.raises(AttributeTypeAlreadyExistsError):
            await engine.update_attribute_type(
                AttributeType(id=other.id, attribute_name="age", data_type="Age")
            )
