"""
Persistent record types for the world engine.

Entities:
- NounType: a named category of nouns
- Noun: a user-defined entity, tagged with a noun type
- DataType: one version of a named type descriptor (append-only)
- AttributeType: a named kind of attribute bound to a data type name
- Attribute: a validated value attached to a noun or to another attribute

History:
- NounHistory, NounTypeHistory, AttributeTypeHistory, AttributeHistory:
  one row per mutation, holding a textual patch per field

Invariants:
    - id and last_changed are assigned by storage, never by the engine
    - An Attribute has exactly one of parent_noun_id / parent_attribute_id
    - DataType rows are never updated; a new version is a new row
    - attributes (Noun) and children (Attribute) are transient and are
      excluded from equality
    - Timestamps are Unix milliseconds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .schema import TypeDescriptor, Value


@dataclass
class NounType:
    """A named category of nouns.

    Attributes:
        type_name: Unique, non-empty name
        metadata: Free text
        id: Storage-assigned identifier
        last_changed: Time of last write (Unix ms)
    """

    type_name: str
    metadata: str = ""
    id: int | None = None
    last_changed: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type_name": self.type_name,
            "metadata": self.metadata,
            "last_changed": self.last_changed,
        }


@dataclass
class Noun:
    """A user-defined entity.

    Attributes:
        name: Display name (not unique)
        noun_type: type_name of an existing NounType
        metadata: Free text
        id: Storage-assigned identifier
        last_changed: Time of last write (Unix ms)
        attributes: Populated attribute tree, None until populated
    """

    name: str
    noun_type: str
    metadata: str = ""
    id: int | None = None
    last_changed: int | None = None
    attributes: list[Attribute] | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "noun_type": self.noun_type,
            "metadata": self.metadata,
            "last_changed": self.last_changed,
        }
        if self.attributes is not None:
            result["attributes"] = [a.to_dict() for a in self.attributes]
        return result


@dataclass
class DataType:
    """One version of a named data type.

    Attributes:
        name: Data type name, shared by all versions
        definition: Shape of values of this version
        system_defined: Whether the type ships with the tool
        version: 1 for the first row, previous max + 1 afterwards
        change_date: Time this version was written (Unix ms)
    """

    name: str
    definition: TypeDescriptor
    system_defined: bool = False
    version: int | None = None
    change_date: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "system_defined": self.system_defined,
            "definition": self.definition.to_dict(),
            "change_date": self.change_date,
        }


@dataclass
class AttributeType:
    """A named kind of attribute.

    Attributes:
        attribute_name: Unique name
        data_type: Name of the DataType whose versions shape the values
        multiple_allowed: Whether one parent may hold several of these
        metadata: Free text
        id: Storage-assigned identifier
        last_changed: Time of last write (Unix ms)
    """

    attribute_name: str
    data_type: str
    multiple_allowed: bool = False
    metadata: str = ""
    id: int | None = None
    last_changed: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "attribute_name": self.attribute_name,
            "data_type": self.data_type,
            "multiple_allowed": self.multiple_allowed,
            "metadata": self.metadata,
            "last_changed": self.last_changed,
        }


@dataclass
class Attribute:
    """A value attached to a noun or to another attribute.

    Attributes:
        attribute_type_id: AttributeType this value is an instance of
        data: The value itself
        data_type_version: DataType version the data was validated against
        metadata: Free text
        parent_noun_id: Owning noun (exclusive with parent_attribute_id)
        parent_attribute_id: Owning attribute (exclusive with parent_noun_id)
        id: Storage-assigned identifier
        last_changed: Time of last write (Unix ms)
        children: Populated child attributes, None until populated
    """

    attribute_type_id: int
    data: Value
    data_type_version: int
    metadata: str = ""
    parent_noun_id: int | None = None
    parent_attribute_id: int | None = None
    id: int | None = None
    last_changed: int | None = None
    children: list[Attribute] | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "attribute_type_id": self.attribute_type_id,
            "parent_noun_id": self.parent_noun_id,
            "parent_attribute_id": self.parent_attribute_id,
            "data_type_version": self.data_type_version,
            "data": self.data.to_dict(),
            "metadata": self.metadata,
            "last_changed": self.last_changed,
        }
        if self.children is not None:
            result["children"] = [c.to_dict() for c in self.children]
        return result


@dataclass
class NounTypeHistory:
    noun_type_id: int
    diff_type_name: str
    diff_metadata: str
    change_set_id: int | None = None
    change_date: int | None = None
    id: int | None = None


@dataclass
class NounHistory:
    noun_id: int
    diff_name: str
    diff_noun_type: str
    diff_metadata: str
    change_set_id: int | None = None
    change_date: int | None = None
    id: int | None = None


@dataclass
class AttributeTypeHistory:
    attribute_type_id: int
    diff_attribute_name: str
    diff_multiple_allowed: str
    diff_metadata: str
    change_set_id: int | None = None
    change_date: int | None = None
    id: int | None = None


@dataclass
class AttributeHistory:
    attribute_id: int
    diff_data: str
    diff_data_type_version: str
    diff_metadata: str
    change_set_id: int | None = None
    change_date: int | None = None
    id: int | None = None


@dataclass(frozen=True)
class ChangeSet:
    """Grouping of all history rows written by one transaction.

    Attributes:
        id: Storage-assigned identifier
        change_source: Human-readable label of what opened the transaction
        change_date: Time the transaction was opened (Unix ms)
    """

    id: int
    change_source: str
    change_date: int
