# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Factory for creating storage engines and opened collections."""

from __future__ import annotations

import logging
from typing import Callable, Mapping

from .collection import Collection
from .config import (
    DriverConfig,
    InMemoryDriverConfig,
    MongoDriverConfig,
    SqliteDriverConfig,
    StorageConfig,
    load_storage_config,
)
from .inmemory_storage_engine import InMemoryStorageEngine
from .mongo_storage_engine import MongoStorageEngine
from .sqlite_storage_engine import SqliteStorageEngine
from .storage_engine import StorageEngine

logger = logging.getLogger(__name__)


def _build_inmemory(config: DriverConfig) -> StorageEngine:
    if not isinstance(config, InMemoryDriverConfig):
        raise TypeError("driver config must be InMemoryDriverConfig")
    return InMemoryStorageEngine.from_config(config)


def _build_sqlite(config: DriverConfig) -> StorageEngine:
    if not isinstance(config, SqliteDriverConfig):
        raise TypeError("driver config must be SqliteDriverConfig")
    return SqliteStorageEngine.from_config(config)


def _build_mongodb(config: DriverConfig) -> StorageEngine:
    if not isinstance(config, MongoDriverConfig):
        raise TypeError("driver config must be MongoDriverConfig")
    return MongoStorageEngine.from_config(config)


_DRIVERS: Mapping[str, Callable[[DriverConfig], StorageEngine]] = {
    "inmemory": _build_inmemory,
    "sqlite": _build_sqlite,
    "mongodb": _build_mongodb,
}


def create_storage_engine(config: StorageConfig) -> StorageEngine:
    """Create a storage engine from a typed config.

    Args:
        config: StorageConfig naming the driver and its options.

    Returns:
        StorageEngine instance.

    Raises:
        ValueError: If config is missing or engine_type is unknown.
        TypeError: If the driver config does not belong to the named driver.
    """
    if config is None:
        raise ValueError("storage engine config is required")

    engine_type = str(config.engine_type).lower()
    try:
        builder = _DRIVERS[engine_type]
    except KeyError as exc:
        supported = ", ".join(sorted(_DRIVERS))
        raise ValueError(
            f"Unknown storage engine driver: {engine_type}. Supported drivers: {supported}"
        ) from exc

    logger.debug("Creating %s storage engine", engine_type)
    return builder(config.driver)


async def open_collection(
    name: str,
    config: StorageConfig | None = None,
    engine: StorageEngine | None = None,
) -> Collection:
    """Create a collection handle and open it.

    Args:
        name: Collection name.
        config: Storage config; read from the environment when neither
                config nor engine is given.
        engine: Existing engine to share between collections. Takes
                precedence over config.

    Returns:
        An opened Collection.

    Raises:
        StorageUnavailableError: If the collection cannot be opened.
    """
    if engine is None:
        engine = create_storage_engine(config or load_storage_config())

    collection = Collection(name, engine)
    await collection.open()
    return collection
