"""
Configuration management for the world engine and CLI.

Settings come from environment variables; the world descriptor file (see
world_file.py) only names the storage backend and its locator.

Invariants:
    - All settings have defaults suitable for interactive local use
    - Loading never touches the filesystem or the database

How to change safely:
    - Add new settings with defaults that keep existing behavior
    - Keep environment variable names prefixed with CLWM_
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

LOG_FORMATS = ("text", "json")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class StorageConfig:
    """SQLite storage configuration.

    Attributes:
        busy_timeout_ms: SQLite busy timeout in milliseconds
        wal_mode: Enable SQLite WAL journal mode
    """

    busy_timeout_ms: int = 5000
    wal_mode: bool = True

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            busy_timeout_ms=int(os.getenv("CLWM_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            wal_mode=_env_bool("CLWM_SQLITE_WAL_MODE", "true"),
        )


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (text, json)
    """

    log_level: str = "WARNING"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> LoggingConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("CLWM_LOG_LEVEL", "WARNING"),
            log_format=os.getenv("CLWM_LOG_FORMAT", "text").lower(),
        )


@dataclass(frozen=True)
class ClwmConfig:
    """Complete configuration.

    Attributes:
        world_file: Default world descriptor path
        editor: Command used to edit definitions and data
        storage: Storage configuration
        logging: Logging configuration
    """

    world_file: str = "world.clwm"
    editor: str = "vi"
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> ClwmConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If a setting is invalid
        """
        config = cls(
            world_file=os.getenv("CLWM_WORLD_FILE", "world.clwm"),
            editor=os.getenv("VISUAL") or os.getenv("EDITOR") or "vi",
            storage=StorageConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.logging.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid CLWM_LOG_FORMAT '{self.logging.log_format}'. "
                f"Must be one of: {', '.join(LOG_FORMATS)}"
            )
        if self.storage.busy_timeout_ms <= 0:
            raise ValueError("CLWM_SQLITE_BUSY_TIMEOUT_MS must be positive")
        if not self.world_file:
            raise ValueError("CLWM_WORLD_FILE cannot be empty")


def setup_logging(config: ClwmConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Complete configuration
    """
    level = getattr(logging, config.logging.log_level.upper(), logging.WARNING)

    if config.logging.log_format == "json":
        formatter = logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
        )
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
    logger.debug(
        "Logging configured",
        extra={"log_level": config.logging.log_level, "log_format": config.logging.log_format},
    )
