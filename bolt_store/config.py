# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Typed storage configuration and environment-variable loading."""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


class EnvConfigProvider:
    """Configuration provider that reads from environment variables."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, key: str, default: Any = None) -> Any:
        return self._environ.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._environ.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self._environ.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            return default


@dataclass
class InMemoryDriverConfig:
    """The in-memory driver takes no options."""


@dataclass
class SqliteDriverConfig:
    """Options for the SQLite driver.

    Attributes:
        path: Database file path, or ":memory:" for a private database per open
        timeout: Seconds to wait on a locked database
    """

    path: str = "bolt.db"
    timeout: float = 5.0


@dataclass
class MongoDriverConfig:
    """Options for the MongoDB driver."""

    host: str = "localhost"
    port: int = 27017
    database: str = "bolt"
    username: Optional[str] = None
    password: Optional[str] = None
    server_selection_timeout_ms: int = 5000


DriverConfig = Union[InMemoryDriverConfig, SqliteDriverConfig, MongoDriverConfig]


@dataclass
class StorageConfig:
    """Selects a storage engine driver and carries its options.

    Attributes:
        engine_type: Driver name ("inmemory", "sqlite" or "mongodb")
        driver: Driver-specific configuration
    """

    engine_type: str
    driver: DriverConfig


def load_storage_config(provider: Optional[EnvConfigProvider] = None) -> StorageConfig:
    """Build a StorageConfig from environment variables.

    Reads BOLT_STORAGE_ENGINE (default "sqlite") and the driver's variables:
    BOLT_SQLITE_PATH, BOLT_SQLITE_TIMEOUT for SQLite and BOLT_MONGO_HOST,
    BOLT_MONGO_PORT, BOLT_MONGO_DATABASE, BOLT_MONGO_USERNAME,
    BOLT_MONGO_PASSWORD for MongoDB.

    Raises:
        ValueError: If BOLT_STORAGE_ENGINE names an unknown driver
    """
    provider = provider or EnvConfigProvider()
    engine_type = str(provider.get("BOLT_STORAGE_ENGINE", "sqlite")).lower()

    if engine_type == "inmemory":
        driver: DriverConfig = InMemoryDriverConfig()
    elif engine_type == "sqlite":
        driver = SqliteDriverConfig(
            path=provider.get("BOLT_SQLITE_PATH", "bolt.db"),
            timeout=provider.get_float("BOLT_SQLITE_TIMEOUT", 5.0),
        )
    elif engine_type == "mongodb":
        driver = MongoDriverConfig(
            host=provider.get("BOLT_MONGO_HOST", "localhost"),
            port=provider.get_int("BOLT_MONGO_PORT", 27017),
            database=provider.get("BOLT_MONGO_DATABASE", "bolt"),
            username=provider.get("BOLT_MONGO_USERNAME"),
            password=provider.get("BOLT_MONGO_PASSWORD"),
        )
    else:
        raise ValueError(
            f"Unknown BOLT_STORAGE_ENGINE: {engine_type}. Supported drivers: inmemory, mongodb, sqlite"
        )

    return StorageConfig(engine_type=engine_type, driver=driver)
