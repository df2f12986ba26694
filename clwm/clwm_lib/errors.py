"""
Error types for the world engine.

This module defines every domain error raised by the engine:
- ClwmError: Base exception carrying a message, a stable code and details
- NotFoundError / AlreadyExistsError / HasNoIdError: lookup and identity failures
- ParentError: attribute parent reference rules
- ImmutableFieldError: attempted change of a fixed attribute field

Invariants:
    - Each failing integrity check maps to exactly one error class
    - Codes are stable strings so callers can discriminate without isinstance
    - Storage/infrastructure failures are NOT ClwmError (see storage.base)

How to change safely:
    - Add new error classes, never reuse an existing code for a new meaning
    - Keep messages one line; the CLI prints them verbatim
"""

from __future__ import annotations

from typing import Any


class ClwmError(Exception):
    """Base exception for all world engine domain errors.

    Attributes:
        message: Human-readable, single line
        code: Error code for programmatic handling
        details: Additional error context
    """

    code = "CLWM_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}


class NotFoundError(ClwmError):
    """A referenced record could not be resolved."""


class AlreadyExistsError(ClwmError):
    """A record with the same unique name already exists."""


class HasNoIdError(ClwmError):
    """An update was requested for a record that was never persisted."""


class ParentError(ClwmError):
    """An attribute's parent references are inconsistent."""


class ImmutableFieldError(ClwmError):
    """An attribute field that is fixed at creation was changed."""


class WorldFileError(ClwmError):
    """The world descriptor file is missing or malformed."""

    code = "WORLD_FILE_ERROR"


# Nouns and noun types


class NounNotFoundError(NotFoundError):
    code = "NOUN_NOT_FOUND"

    def __init__(self, noun_id: int | None = None) -> None:
        super().__init__(
            "the provided noun could not be found",
            details={"noun_id": noun_id},
        )
        self.noun_id = noun_id


class NounTypeNotFoundError(NotFoundError):
    code = "NOUN_TYPE_NOT_FOUND"

    def __init__(self, noun_type: str | int | None = None) -> None:
        super().__init__(
            "the provided noun type could not be found",
            details={"noun_type": noun_type},
        )
        self.noun_type = noun_type


class NounTypeAlreadyExistsError(AlreadyExistsError):
    code = "NOUN_TYPE_ALREADY_EXISTS"

    def __init__(self, noun_type: str) -> None:
        super().__init__(
            f"the noun type {noun_type!r} already exists",
            details={"noun_type": noun_type},
        )
        self.noun_type = noun_type


class NounHasNoIdError(HasNoIdError):
    code = "NOUN_HAS_NO_ID"

    def __init__(self) -> None:
        super().__init__("the provided noun has no id")


class NounTypeHasNoIdError(HasNoIdError):
    code = "NOUN_TYPE_HAS_NO_ID"

    def __init__(self) -> None:
        super().__init__("the provided noun type has no id")


# Data types


class DataTypeAlreadyExistsError(AlreadyExistsError):
    code = "DATA_TYPE_ALREADY_EXISTS"

    def __init__(self, data_type: str) -> None:
        super().__init__(
            f"the data type {data_type!r} already exists",
            details={"data_type": data_type},
        )
        self.data_type = data_type


class DataTypeNotFoundError(NotFoundError):
    code = "DATA_TYPE_NOT_FOUND"

    def __init__(self, data_type: str | None = None) -> None:
        super().__init__(
            "the provided data type could not be found",
            details={"data_type": data_type},
        )
        self.data_type = data_type


class DataTypeVersionNotFoundError(NotFoundError):
    code = "DATA_TYPE_VERSION_NOT_FOUND"

    def __init__(self, data_type: str | None = None, version: int | None = None) -> None:
        super().__init__(
            "the provided data type version could not be found",
            details={"data_type": data_type, "version": version},
        )
        self.data_type = data_type
        self.version = version


class DataDoesNotMatchDefinitionError(ClwmError):
    """Attribute data failed validation against its pinned definition.

    Attributes:
        errors: Validation messages, one per offending path
    """

    code = "DATA_DOES_NOT_MATCH_DEFINITION"

    def __init__(self, errors: list[str] | None = None) -> None:
        super().__init__(
            "the provided data does not match the data type definition",
            details={"errors": errors or []},
        )
        self.errors = errors or []


# Attribute types


class AttributeTypeAlreadyExistsError(AlreadyExistsError):
    code = "ATTRIBUTE_TYPE_ALREADY_EXISTS"

    def __init__(self, attribute_type: str) -> None:
        super().__init__(
            f"the attribute type {attribute_type!r} already exists",
            details={"attribute_type": attribute_type},
        )
        self.attribute_type = attribute_type


class AttributeTypeHasNoIdError(HasNoIdError):
    code = "ATTRIBUTE_TYPE_HAS_NO_ID"

    def __init__(self) -> None:
        super().__init__("the provided attribute type has no id")


class AttributeTypeNotFoundError(NotFoundError):
    code = "ATTRIBUTE_TYPE_NOT_FOUND"

    def __init__(self, attribute_type_id: int | None = None) -> None:
        super().__init__(
            "the provided attribute type could not be found",
            details={"attribute_type_id": attribute_type_id},
        )
        self.attribute_type_id = attribute_type_id


class AttributeTypeDoesNotAllowMultipleError(ClwmError):
    code = "ATTRIBUTE_TYPE_DOES_NOT_ALLOW_MULTIPLE"

    def __init__(self, attribute_type: str) -> None:
        super().__init__(
            f"the attribute type {attribute_type!r} does not allow multiple attributes",
            details={"attribute_type": attribute_type},
        )
        self.attribute_type = attribute_type


# Attributes


class ParentMustBeSetError(ParentError):
    code = "PARENT_MUST_BE_SET"

    def __init__(self) -> None:
        super().__init__("the parent noun id or parent attribute id must be set")


class ParentMustNotBeBothSetError(ParentError):
    code = "PARENT_MUST_NOT_BE_BOTH_SET"

    def __init__(self) -> None:
        super().__init__("the parent noun id and parent attribute id must not both be set")


class AttributeNotFoundError(NotFoundError):
    code = "ATTRIBUTE_NOT_FOUND"

    def __init__(self, attribute_id: int | None = None) -> None:
        super().__init__(
            "the provided attribute could not be found",
            details={"attribute_id": attribute_id},
        )
        self.attribute_id = attribute_id


class AttributeHasNoIdError(HasNoIdError):
    code = "ATTRIBUTE_HAS_NO_ID"

    def __init__(self) -> None:
        super().__init__("the provided attribute has no id")


class AttributeTypeIdImmutableError(ImmutableFieldError):
    code = "ATTRIBUTE_TYPE_ID_IMMUTABLE"

    def __init__(self) -> None:
        super().__init__(
            "the provided attribute type id does not match the attribute type id of the attribute"
        )


class ParentNounIdImmutableError(ImmutableFieldError):
    code = "PARENT_NOUN_ID_IMMUTABLE"

    def __init__(self) -> None:
        super().__init__(
            "the provided parent noun id does not match the parent noun id of the attribute"
        )


class ParentAttributeIdImmutableError(ImmutableFieldError):
    code = "PARENT_ATTRIBUTE_ID_IMMUTABLE"

    def __init__(self) -> None:
        super().__init__(
            "the provided parent attribute id does not match the parent attribute id of the attribute"
        )
