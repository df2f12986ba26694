"""
Unit tests for attribute tree population.

Tests cover:
- Nested trees assembled from parent lookups
- Sibling failures settling before the error propagates
"""

import asyncio

import pytest

from clwm.clwm_lib.model import Attribute, Noun
from clwm.clwm_lib.populate import populate_attribute, populate_noun
from clwm.clwm_lib.schema import Value
from clwm.clwm_lib.storage import StorageError


def _attribute(attribute_id: int, **parent) -> Attribute:
    return Attribute(
        id=attribute_id,
        attribute_type_id=1,
        data=Value.integer(attribute_id),
        data_type_version=1,
        **parent,
    )


class FakeTransaction:
    """Serves a fixed tree; lookups under failing_parent raise."""

    def __init__(self, tree: dict[int, list[int]], failing_parent: int | None = None) -> None:
        self.tree = tree
        self.failing_parent = failing_parent
        self.finished: list[int] = []

    async def find_attribute_by_parent_noun_id(self, noun_id: int) -> list[Attribute]:
        return [_attribute(i, parent_noun_id=noun_id) for i in self.tree.get(0, [])]

    async def find_attribute_by_parent_attribute_id(self, attribute_id: int) -> list[Attribute]:
        if attribute_id == self.failing_parent:
            raise StorageError("lookup failed")
        await asyncio.sleep(0.01)
        self.finished.append(attribute_id)
        children = self.tree.get(attribute_id, [])
        return [_attribute(i, parent_attribute_id=attribute_id) for i in children]


class TestPopulate:
    """Tests for populate_noun and populate_attribute."""

    @pytest.mark.asyncio
    async def test_nested_tree(self):
        """Children keep lookup order at every depth."""
        txn = FakeTransaction({0: [1, 2], 1: [3]})
        noun = await populate_noun(txn, Noun(id=1, name="Alice", noun_type="Person"))
        assert [a.id for a in noun.attributes] == [1, 2]
        assert [c.id for c in noun.attributes[0].children] == [3]
        assert noun.attributes[0].children[0].children == []
        assert noun.attributes[1].children == []

    @pytest.mark.asyncio
    async def test_attribute_without_children(self):
        """Leaf attribute gets an empty child list."""
        txn = FakeTransaction({})
        attribute = await populate_attribute(txn, _attribute(7, parent_noun_id=1))
        assert attribute.children == []

    @pytest.mark.asyncio
    async def test_failure_waits_for_siblings(self):
        """Siblings of a failed lookup finish before the error surfaces."""
        txn = FakeTransaction({0: [1, 2, 3]}, failing_parent=2)
        with pytest.raises(StorageError, match="lookup failed"):
            await populate_noun(txn, Noun(id=1, name="Alice", noun_type="Person"))
        assert sorted(txn.finished) == [1, 3]
