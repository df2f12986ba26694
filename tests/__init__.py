"""
clwm test suite.

This package contains:
- unit/: Unit tests (schema language, formats, diffing, config, world file)
- integration/: Integration tests (SQLite storage, World Engine, CLI)
"""
