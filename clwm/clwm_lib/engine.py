"""
World Engine: transactional mutations with diff-based history.

Every mutation follows the same template:
    1. Open a transaction (which opens a change set)
    2. Run integrity checks; the first failure rolls back and raises
    3. Persist the record
    4. Persist one history row with a patch per textual field
    5. Commit and return the stored record

Invariants:
    - No entity write reaches the store without its paired history row
    - A rejected mutation writes nothing (its change set is rolled back)
    - Data type rows are never updated; a new version is a new row
    - Attribute type id and parents are fixed once an attribute exists
    - Reads run in their own transaction, which is always rolled back

How to change safely:
    - Keep every check ahead of the first write
    - New mutable fields need a diff_<field> column and a patch here
    - Raise the specific ClwmError subclass, never a generic one
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from .diff import make_patch
from .errors import (
    AttributeHasNoIdError,
    AttributeNotFoundError,
    AttributeTypeAlreadyExistsError,
    AttributeTypeDoesNotAllowMultipleError,
    AttributeTypeHasNoIdError,
    AttributeTypeIdImmutableError,
    AttributeTypeNotFoundError,
    ClwmError,
    DataDoesNotMatchDefinitionError,
    DataTypeAlreadyExistsError,
    DataTypeNotFoundError,
    DataTypeVersionNotFoundError,
    NounHasNoIdError,
    NounNotFoundError,
    NounTypeAlreadyExistsError,
    NounTypeHasNoIdError,
    NounTypeNotFoundError,
    ParentAttributeIdImmutableError,
    ParentMustBeSetError,
    ParentMustNotBeBothSetError,
    ParentNounIdImmutableError,
)
from .model import (
    Attribute,
    AttributeHistory,
    AttributeType,
    AttributeTypeHistory,
    DataType,
    Noun,
    NounHistory,
    NounType,
    NounTypeHistory,
)
from .populate import populate_attribute, populate_noun
from .schema import TypeDescriptor, Value, dump_value, validation_errors
from .storage import Storage, Transaction

logger = logging.getLogger(__name__)


class HistoryKind(Enum):
    """Entities that keep a change history."""

    NOUN = "noun"
    NOUN_TYPE = "noun-type"
    ATTRIBUTE_TYPE = "attribute-type"
    ATTRIBUTE = "attribute"

    @classmethod
    def from_str(cls, value: str) -> HistoryKind:
        """Convert a name such as "noun-type" or "noun_type" to a HistoryKind.

        Raises:
            ValueError: If value names no history kind
        """
        normalized = value.lower().replace("_", "-")
        for kind in cls:
            if kind.value == normalized:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid history kind '{value}'. Valid kinds: {valid}")


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def _version_text(version: int | None) -> str:
    return "" if version is None else str(version)


class WorldEngine:
    """Orchestrates every read and write against a world's storage.

    Example:
        >>> engine = WorldEngine(storage)
        >>> await engine.new_noun_type("Person")
        >>> alice = await engine.new_noun("Alice", "Person")
    """

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    @asynccontextmanager
    async def _transaction(self, change_source: str) -> AsyncIterator[Transaction]:
        """Open a write transaction; commit on success, roll back on error."""
        txn = await self.storage.create_transaction(change_source)
        try:
            yield txn
        except ClwmError as e:
            if not txn.is_finalized:
                await txn.rollback()
            logger.warning(
                f"Rejected {change_source}: {e.message}",
                extra={"change_source": change_source, "error_code": e.code},
            )
            raise
        except BaseException:
            if not txn.is_finalized:
                await txn.rollback()
            raise
        await txn.commit()
        logger.info(
            f"Committed {change_source}",
            extra={"change_source": change_source, "change_set_id": txn.change_set_id},
        )

    @asynccontextmanager
    async def _read(self, change_source: str) -> AsyncIterator[Transaction]:
        """Open a read transaction that is always rolled back."""
        txn = await self.storage.create_read_transaction(change_source)
        try:
            yield txn
        finally:
            if not txn.is_finalized:
                await txn.rollback()

    # =========================================================================
    # Noun types
    # =========================================================================

    async def new_noun_type(self, type_name: str, metadata: str = "") -> NounType:
        """Create a noun type.

        Raises:
            NounTypeAlreadyExistsError: If type_name is taken
        """
        async with self._transaction("new noun type") as txn:
            if await txn.find_noun_type_by_type_name(type_name):
                raise NounTypeAlreadyExistsError(type_name)

            stored = await txn.new_noun_type(NounType(type_name=type_name, metadata=metadata))
            await txn.new_noun_type_history(
                NounTypeHistory(
                    noun_type_id=stored.id,
                    diff_type_name=make_patch("", stored.type_name),
                    diff_metadata=make_patch("", stored.metadata),
                )
            )
        return stored

    async def update_noun_type(self, noun_type: NounType) -> NounType:
        """Replace the name and metadata of a noun type.

        Raises:
            NounTypeHasNoIdError: If noun_type.id is None
            NounTypeNotFoundError: If no noun type has that id
            NounTypeAlreadyExistsError: If renamed onto another noun type's name
        """
        if noun_type.id is None:
            raise NounTypeHasNoIdError()

        async with self._transaction("update noun type") as txn:
            old = await txn.find_noun_type_by_id(noun_type.id)
            if old is None:
                raise NounTypeNotFoundError(noun_type.id)
            if noun_type.type_name != old.type_name:
                clashes = await txn.find_noun_type_by_type_name(noun_type.type_name)
                if any(c.id != old.id for c in clashes):
                    raise NounTypeAlreadyExistsError(noun_type.type_name)

            stored = await txn.update_noun_type(noun_type)
            await txn.new_noun_type_history(
                NounTypeHistory(
                    noun_type_id=stored.id,
                    diff_type_name=make_patch(old.type_name, stored.type_name),
                    diff_metadata=make_patch(old.metadata, stored.metadata),
                )
            )
        return stored

    # =========================================================================
    # Nouns
    # =========================================================================

    async def new_noun(self, name: str, noun_type: str, metadata: str = "") -> Noun:
        """Create a noun.

        Raises:
            NounTypeNotFoundError: If noun_type names no noun type
        """
        async with self._transaction("new noun") as txn:
            if not await txn.find_noun_type_by_type_name(noun_type):
                raise NounTypeNotFoundError(noun_type)

            stored = await txn.new_noun(Noun(name=name, noun_type=noun_type, metadata=metadata))
            await txn.new_noun_history(
                NounHistory(
                    noun_id=stored.id,
                    diff_name=make_patch("", stored.name),
                    diff_noun_type=make_patch("", stored.noun_type),
                    diff_metadata=make_patch("", stored.metadata),
                )
            )
        return stored

    async def update_noun(self, noun: Noun) -> Noun:
        """Replace the name, noun type and metadata of a noun.

        Raises:
            NounHasNoIdError: If noun.id is None
            NounNotFoundError: If no noun has that id
            NounTypeNotFoundError: If noun.noun_type names no noun type
        """
        if noun.id is None:
            raise NounHasNoIdError()

        async with self._transaction("update noun") as txn:
            old = await txn.find_noun_by_id(noun.id)
            if old is None:
                raise NounNotFoundError(noun.id)
            if not await txn.find_noun_type_by_type_name(noun.noun_type):
                raise NounTypeNotFoundError(noun.noun_type)

            stored = await txn.update_noun(noun)
            await txn.new_noun_history(
                NounHistory(
                    noun_id=stored.id,
                    diff_name=make_patch(old.name, stored.name),
                    diff_noun_type=make_patch(old.noun_type, stored.noun_type),
                    diff_metadata=make_patch(old.metadata, stored.metadata),
                )
            )
        return stored

    # =========================================================================
    # Data types
    # =========================================================================

    async def new_data_type(
        self,
        name: str,
        definition: TypeDescriptor,
        system_defined: bool = False,
    ) -> DataType:
        """Create version 1 of a data type.

        Raises:
            DataTypeAlreadyExistsError: If any version of name exists
        """
        async with self._transaction("new data type") as txn:
            if await txn.find_data_type_latest_by_name(name) is not None:
                raise DataTypeAlreadyExistsError(name)

            stored = await txn.new_data_type(
                DataType(name=name, definition=definition, system_defined=system_defined, version=1)
            )
        return stored

    async def update_data_type(self, name: str, definition: TypeDescriptor) -> DataType:
        """Append a new version of a data type.

        Earlier versions stay resolvable; attributes pinned to them are
        untouched.

        Raises:
            DataTypeNotFoundError: If no version of name exists
        """
        async with self._transaction("update data type") as txn:
            latest = await txn.find_data_type_latest_by_name(name)
            if latest is None:
                raise DataTypeNotFoundError(name)

            stored = await txn.new_data_type(
                DataType(
                    name=name,
                    definition=definition,
                    system_defined=latest.system_defined,
                    version=latest.version + 1,
                )
            )
        return stored

    # =========================================================================
    # Attribute types
    # =========================================================================

    async def new_attribute_type(
        self,
        attribute_name: str,
        data_type: str,
        multiple_allowed: bool = False,
        metadata: str = "",
    ) -> AttributeType:
        """Create an attribute type.

        Raises:
            AttributeTypeAlreadyExistsError: If attribute_name is taken
            DataTypeNotFoundError: If data_type names no data type
        """
        async with self._transaction("new attribute type") as txn:
            if await txn.find_attribute_type_by_name(attribute_name):
                raise AttributeTypeAlreadyExistsError(attribute_name)
            if await txn.find_data_type_latest_by_name(data_type) is None:
                raise DataTypeNotFoundError(data_type)

            stored = await txn.new_attribute_type(
                AttributeType(
                    attribute_name=attribute_name,
                    data_type=data_type,
                    multiple_allowed=multiple_allowed,
                    metadata=metadata,
                )
            )
            await txn.new_attribute_type_history(
                AttributeTypeHistory(
                    attribute_type_id=stored.id,
                    diff_attribute_name=make_patch("", stored.attribute_name),
                    diff_multiple_allowed=make_patch("", _bool_text(stored.multiple_allowed)),
                    diff_metadata=make_patch("", stored.metadata),
                )
            )
        return stored

    async def update_attribute_type(self, attribute_type: AttributeType) -> AttributeType:
        """Replace the name, multiple_allowed flag and metadata of an attribute type.

        The data type name is fixed at creation and is kept as stored.

        Raises:
            AttributeTypeHasNoIdError: If attribute_type.id is None
            AttributeTypeNotFoundError: If no attribute type has that id
            AttributeTypeAlreadyExistsError: If renamed onto another attribute type's name
        """
        if attribute_type.id is None:
            raise AttributeTypeHasNoIdError()

        async with self._transaction("update attribute type") as txn:
            old = await txn.find_attribute_type_by_id(attribute_type.id)
            if old is None:
                raise AttributeTypeNotFoundError(attribute_type.id)
            if attribute_type.attribute_name != old.attribute_name:
                clashes = await txn.find_attribute_type_by_name(attribute_type.attribute_name)
                if any(c.id != old.id for c in clashes):
                    raise AttributeTypeAlreadyExistsError(attribute_type.attribute_name)

            stored = await txn.update_attribute_type(
                dataclasses.replace(attribute_type, data_type=old.data_type)
            )
            await txn.new_attribute_type_history(
                AttributeTypeHistory(
                    attribute_type_id=stored.id,
                    diff_attribute_name=make_patch(old.attribute_name, stored.attribute_name),
                    diff_multiple_allowed=make_patch(
                        _bool_text(old.multiple_allowed), _bool_text(stored.multiple_allowed)
                    ),
                    diff_metadata=make_patch(old.metadata, stored.metadata),
                )
            )
        return stored

    # =========================================================================
    # Attributes
    # =========================================================================

    async def new_attribute(
        self,
        attribute_type_id: int,
        data: Value,
        data_type_version: int,
        parent_noun_id: int | None = None,
        parent_attribute_id: int | None = None,
        metadata: str = "",
    ) -> Attribute:
        """Attach a validated value to a noun or to another attribute.

        Exactly one of parent_noun_id / parent_attribute_id must be given.

        Raises:
            AttributeTypeNotFoundError: If attribute_type_id is unknown
            ParentMustNotBeBothSetError: If both parents are given
            ParentMustBeSetError: If neither parent is given
            NounNotFoundError: If the parent noun is unknown
            AttributeNotFoundError: If the parent attribute is unknown
            AttributeTypeDoesNotAllowMultipleError: If the parent already holds
                an attribute of a single-valued type
            DataTypeVersionNotFoundError: If data_type_version is unknown
            DataDoesNotMatchDefinitionError: If data fails validation
        """
        async with self._transaction("new attribute") as txn:
            attribute_type = await txn.find_attribute_type_by_id(attribute_type_id)
            if attribute_type is None:
                raise AttributeTypeNotFoundError(attribute_type_id)

            if parent_noun_id is not None and parent_attribute_id is not None:
                raise ParentMustNotBeBothSetError()
            if parent_noun_id is None and parent_attribute_id is None:
                raise ParentMustBeSetError()

            if parent_noun_id is not None:
                if await txn.find_noun_by_id(parent_noun_id) is None:
                    raise NounNotFoundError(parent_noun_id)
                if not attribute_type.multiple_allowed:
                    siblings = await txn.find_attribute_by_parent_noun_id_and_attribute_type_id(
                        parent_noun_id, attribute_type_id
                    )
                    if siblings:
                        raise AttributeTypeDoesNotAllowMultipleError(attribute_type.attribute_name)
            else:
                if await txn.find_attribute_by_id(parent_attribute_id) is None:
                    raise AttributeNotFoundError(parent_attribute_id)
                if not attribute_type.multiple_allowed:
                    siblings = await txn.find_attribute_by_parent_attribute_id_and_attribute_type_id(
                        parent_attribute_id, attribute_type_id
                    )
                    if siblings:
                        raise AttributeTypeDoesNotAllowMultipleError(attribute_type.attribute_name)

            await self._check_data(txn, attribute_type, data, data_type_version)

            stored = await txn.new_attribute(
                Attribute(
                    attribute_type_id=attribute_type_id,
                    parent_noun_id=parent_noun_id,
                    parent_attribute_id=parent_attribute_id,
                    data=data,
                    data_type_version=data_type_version,
                    metadata=metadata,
                )
            )
            await txn.new_attribute_history(
                AttributeHistory(
                    attribute_id=stored.id,
                    diff_data=make_patch("", dump_value(stored.data)),
                    diff_data_type_version=make_patch("", _version_text(stored.data_type_version)),
                    diff_metadata=make_patch("", stored.metadata),
                )
            )
        return stored

    async def update_attribute(self, attribute: Attribute) -> Attribute:
        """Replace the data, data type version and metadata of an attribute.

        The attribute type and parents must match the stored record.

        Raises:
            AttributeHasNoIdError: If attribute.id is None
            AttributeNotFoundError: If no attribute has that id
            AttributeTypeIdImmutableError: If attribute_type_id differs
            ParentNounIdImmutableError: If parent_noun_id differs
            ParentAttributeIdImmutableError: If parent_attribute_id differs
            DataTypeVersionNotFoundError: If data_type_version is unknown
            DataDoesNotMatchDefinitionError: If data fails validation
        """
        if attribute.id is None:
            raise AttributeHasNoIdError()

        async with self._transaction("update attribute") as txn:
            old = await txn.find_attribute_by_id(attribute.id)
            if old is None:
                raise AttributeNotFoundError(attribute.id)
            if attribute.attribute_type_id != old.attribute_type_id:
                raise AttributeTypeIdImmutableError()
            if attribute.parent_noun_id != old.parent_noun_id:
                raise ParentNounIdImmutableError()
            if attribute.parent_attribute_id != old.parent_attribute_id:
                raise ParentAttributeIdImmutableError()

            attribute_type = await txn.find_attribute_type_by_id(old.attribute_type_id)
            if attribute_type is None:
                raise AttributeTypeNotFoundError(old.attribute_type_id)
            await self._check_data(txn, attribute_type, attribute.data, attribute.data_type_version)

            stored = await txn.update_attribute(attribute)
            await txn.new_attribute_history(
                AttributeHistory(
                    attribute_id=stored.id,
                    diff_data=make_patch(dump_value(old.data), dump_value(stored.data)),
                    diff_data_type_version=make_patch(
                        _version_text(old.data_type_version),
                        _version_text(stored.data_type_version),
                    ),
                    diff_metadata=make_patch(old.metadata, stored.metadata),
                )
            )
        return stored

    async def _check_data(
        self,
        txn: Transaction,
        attribute_type: AttributeType,
        data: Value,
        data_type_version: int,
    ) -> None:
        data_type = await txn.find_data_type_by_name_and_version(
            attribute_type.data_type, data_type_version
        )
        if data_type is None:
            raise DataTypeVersionNotFoundError(attribute_type.data_type, data_type_version)
        errors = validation_errors(data, data_type.definition, allow_null=True)
        if errors:
            raise DataDoesNotMatchDefinitionError(errors)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_noun(self, noun_id: int, populate: bool = False) -> Noun:
        """Fetch a noun, optionally with its attribute tree.

        Raises:
            NounNotFoundError: If no noun has that id
        """
        async with self._read("get noun") as txn:
            noun = await txn.find_noun_by_id(noun_id)
            if noun is None:
                raise NounNotFoundError(noun_id)
            if populate:
                await populate_noun(txn, noun)
        logger.debug("Fetched noun", extra={"noun_id": noun_id, "populate": populate})
        return noun

    async def find_nouns(self, name: str | None = None, noun_type: str | None = None) -> list[Noun]:
        """List nouns, filtered by name substring and/or exact noun type."""
        async with self._read("find nouns") as txn:
            if name is not None:
                nouns = await txn.find_noun_by_name(name)
                if noun_type is not None:
                    nouns = [n for n in nouns if n.noun_type == noun_type]
            elif noun_type is not None:
                nouns = await txn.find_noun_by_noun_type(noun_type)
            else:
                nouns = await txn.find_noun_by_all()
        logger.debug("Found nouns", extra={"count": len(nouns)})
        return nouns

    async def get_noun_type(self, noun_type_id: int) -> NounType:
        """Raises NounTypeNotFoundError if no noun type has that id."""
        async with self._read("get noun type") as txn:
            noun_type = await txn.find_noun_type_by_id(noun_type_id)
        if noun_type is None:
            raise NounTypeNotFoundError(noun_type_id)
        return noun_type

    async def find_noun_types(self, type_name: str | None = None) -> list[NounType]:
        async with self._read("find noun types") as txn:
            if type_name is not None:
                return await txn.find_noun_type_by_type_name(type_name)
            return await txn.find_noun_type_by_all()

    async def get_data_type(self, name: str, version: int | None = None) -> DataType:
        """Fetch the latest version of a data type, or a specific one.

        Raises:
            DataTypeNotFoundError: If no version of name exists
            DataTypeVersionNotFoundError: If the requested version does not exist
        """
        async with self._read("get data type") as txn:
            latest = await txn.find_data_type_latest_by_name(name)
            if latest is None:
                raise DataTypeNotFoundError(name)
            if version is None:
                return latest
            data_type = await txn.find_data_type_by_name_and_version(name, version)
        if data_type is None:
            raise DataTypeVersionNotFoundError(name, version)
        return data_type

    async def find_data_types(
        self, name: str | None = None, all_versions: bool = False
    ) -> list[DataType]:
        """List data types; latest version only unless all_versions is set."""
        async with self._read("find data types") as txn:
            if name is not None:
                if all_versions:
                    return await txn.find_data_type_all_by_name(name)
                latest = await txn.find_data_type_latest_by_name(name)
                return [latest] if latest else []
            if all_versions:
                return await txn.find_data_type_all_by_all()
            return await txn.find_data_type_latest_by_all()

    async def get_attribute_type(self, attribute_type_id: int) -> AttributeType:
        """Raises AttributeTypeNotFoundError if no attribute type has that id."""
        async with self._read("get attribute type") as txn:
            attribute_type = await txn.find_attribute_type_by_id(attribute_type_id)
        if attribute_type is None:
            raise AttributeTypeNotFoundError(attribute_type_id)
        return attribute_type

    async def find_attribute_types(
        self, name: str | None = None, data_type: str | None = None
    ) -> list[AttributeType]:
        async with self._read("find attribute types") as txn:
            if name is not None:
                found = await txn.find_attribute_type_by_name(name)
                if data_type is not None:
                    found = [t for t in found if t.data_type == data_type]
                return found
            if data_type is not None:
                return await txn.find_attribute_type_by_data_type(data_type)
            return await txn.find_attribute_type_by_all()

    async def get_attribute(self, attribute_id: int, populate: bool = False) -> Attribute:
        """Fetch an attribute, optionally with its child tree.

        Raises:
            AttributeNotFoundError: If no attribute has that id
        """
        async with self._read("get attribute") as txn:
            attribute = await txn.find_attribute_by_id(attribute_id)
            if attribute is None:
                raise AttributeNotFoundError(attribute_id)
            if populate:
                await populate_attribute(txn, attribute)
        logger.debug("Fetched attribute", extra={"attribute_id": attribute_id, "populate": populate})
        return attribute

    async def find_attributes(
        self,
        parent_noun_id: int | None = None,
        parent_attribute_id: int | None = None,
        attribute_type_id: int | None = None,
    ) -> list[Attribute]:
        """List direct attributes of a parent, optionally of one type.

        Raises:
            ParentMustNotBeBothSetError: If both parents are given
        """
        if parent_noun_id is not None and parent_attribute_id is not None:
            raise ParentMustNotBeBothSetError()

        async with self._read("find attributes") as txn:
            if parent_noun_id is not None:
                if attribute_type_id is not None:
                    return await txn.find_attribute_by_parent_noun_id_and_attribute_type_id(
                        parent_noun_id, attribute_type_id
                    )
                return await txn.find_attribute_by_parent_noun_id(parent_noun_id)
            if parent_attribute_id is not None:
                if attribute_type_id is not None:
                    return await txn.find_attribute_by_parent_attribute_id_and_attribute_type_id(
                        parent_attribute_id, attribute_type_id
                    )
                return await txn.find_attribute_by_parent_attribute_id(parent_attribute_id)
            attributes = await txn.find_attribute_by_all()
        if attribute_type_id is not None:
            attributes = [a for a in attributes if a.attribute_type_id == attribute_type_id]
        return attributes

    async def get_history(self, kind: HistoryKind, record_id: int) -> list[Any]:
        """Return the history rows of one record, oldest first.

        Raises:
            NounNotFoundError, NounTypeNotFoundError, AttributeTypeNotFoundError,
            AttributeNotFoundError: If the record does not exist
        """
        async with self._read("get history") as txn:
            if kind == HistoryKind.NOUN:
                if await txn.find_noun_by_id(record_id) is None:
                    raise NounNotFoundError(record_id)
                return await txn.find_noun_history_by_noun_id(record_id)
            if kind == HistoryKind.NOUN_TYPE:
                if await txn.find_noun_type_by_id(record_id) is None:
                    raise NounTypeNotFoundError(record_id)
                return await txn.find_noun_type_history_by_noun_type_id(record_id)
            if kind == HistoryKind.ATTRIBUTE_TYPE:
                if await txn.find_attribute_type_by_id(record_id) is None:
                    raise AttributeTypeNotFoundError(record_id)
                return await txn.find_attribute_type_history_by_attribute_type_id(record_id)
            if await txn.find_attribute_by_id(record_id) is None:
                raise AttributeNotFoundError(record_id)
            return await txn.find_attribute_history_by_attribute_id(record_id)
