"""
clwm core library.

A personal world-modeling store: typed nouns, versioned data types, validated
attributes and a diff-based change history for every mutation.

Modules:
- schema: type descriptors, values, validator, text formats
- model: persistent record types
- engine: the World Engine (transactional mutations and reads)
- populate: attribute tree population
- storage: storage protocols and the SQLite backend
- world_file: world descriptor loading and creation
"""

from ._version import __version__

__all__ = ["__version__"]
