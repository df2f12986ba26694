"""
Attribute tree population.

Loads the full attribute subtree under a noun or an attribute into the
transient Noun.attributes / Attribute.children fields.

Invariants:
    - Siblings are fetched with one query, then populated concurrently
    - Every sibling task has finished before populate returns or raises;
      the first failure is re-raised after the rest settle
    - The transaction is borrowed, never committed or rolled back here
    - Attributes form a forest (one parent each), so recursion terminates
"""

from __future__ import annotations

import asyncio

from .model import Attribute, Noun
from .storage import Transaction


async def populate_noun(txn: Transaction, noun: Noun) -> Noun:
    """Attach the attribute tree of a persisted noun.

    Args:
        txn: Open transaction, shared with concurrent sub-tasks
        noun: Noun with an id

    Returns:
        The same noun, with attributes populated
    """
    children = await txn.find_attribute_by_parent_noun_id(noun.id)
    noun.attributes = await _populate_all(txn, children)
    return noun


async def populate_attribute(txn: Transaction, attribute: Attribute) -> Attribute:
    """Attach the child attribute tree of a persisted attribute."""
    children = await txn.find_attribute_by_parent_attribute_id(attribute.id)
    attribute.children = await _populate_all(txn, children)
    return attribute


async def _populate_all(txn: Transaction, children: list[Attribute]) -> list[Attribute]:
    results = await asyncio.gather(
        *(populate_attribute(txn, c) for c in children), return_exceptions=True
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)
