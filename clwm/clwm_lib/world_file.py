"""
World descriptor file.

A world is described by a small YAML document naming the storage backend and
its locator:

    data_interface: sqlite
    url: sqlite:world.db

Invariants:
    - data_interface is always a known StorageBackend
    - Loading never opens the database; open_world does
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .errors import WorldFileError
from .storage import StorageBackend, create_storage

if TYPE_CHECKING:
    from .config import ClwmConfig
    from .engine import WorldEngine

logger = logging.getLogger(__name__)

DEFAULT_WORLD_FILE = "world.clwm"


@dataclass(frozen=True)
class WorldFile:
    """Parsed world descriptor.

    Attributes:
        url: Storage locator
        data_interface: Storage backend kind
    """

    url: str
    data_interface: StorageBackend = StorageBackend.SQLITE

    def to_dict(self) -> dict[str, Any]:
        return {"data_interface": self.data_interface.value, "url": self.url}

    @classmethod
    def from_dict(cls, data: Any) -> WorldFile:
        """Build a descriptor from its parsed document.

        Raises:
            WorldFileError: If a key is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise WorldFileError("world file must be a mapping")
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise WorldFileError("world file has no 'url'")
        interface = data.get("data_interface")
        if not isinstance(interface, str):
            raise WorldFileError("world file has no 'data_interface'")
        try:
            backend = StorageBackend.from_str(interface)
        except ValueError as e:
            raise WorldFileError(str(e)) from e
        return cls(url=url, data_interface=backend)

    @classmethod
    def load(cls, path: str | Path) -> WorldFile:
        """Read a descriptor from disk.

        Raises:
            WorldFileError: If the file is missing or malformed
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise WorldFileError(f"cannot read world file {path}: {e.strerror or e}") from e
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise WorldFileError(f"world file {path} is not valid YAML: {e}") from e
        return cls.from_dict(data)

    def save(self, path: str | Path) -> None:
        """Write the descriptor to disk, replacing any existing file."""
        path = Path(path)
        try:
            path.write_text(
                yaml.safe_dump(self.to_dict(), sort_keys=True, default_flow_style=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise WorldFileError(f"cannot write world file {path}: {e.strerror or e}") from e


async def create_world(
    data_interface: StorageBackend,
    url: str,
    filename: str | Path = DEFAULT_WORLD_FILE,
    config: ClwmConfig | None = None,
) -> WorldFile:
    """Write a world descriptor and initialize its empty store.

    Args:
        data_interface: Storage backend kind
        url: Storage locator
        filename: Descriptor path
        config: Configuration (storage tuning)

    Returns:
        The descriptor that was written
    """
    world_file = WorldFile(url=url, data_interface=data_interface)
    storage = create_storage(world_file, config.storage if config else None)
    await storage.init()
    world_file.save(filename)
    logger.info(
        "Created world",
        extra={"world_file": str(filename), "url": url, "data_interface": data_interface.value},
    )
    return world_file


async def open_world(path: str | Path, config: ClwmConfig | None = None) -> WorldEngine:
    """Load a descriptor, initialize its storage and return an engine for it."""
    from .engine import WorldEngine

    world_file = WorldFile.load(path)
    storage = create_storage(world_file, config.storage if config else None)
    await storage.init()
    logger.debug("Opened world", extra={"world_file": str(path), "url": world_file.url})
    return WorldEngine(storage)
