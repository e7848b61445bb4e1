# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""bolt-store: an embedded document store.

One named collection per handle, backed by a transactional storage engine,
with equality queries, shallow updates, field sums and a match/group
aggregation pipeline.
"""

__version__ = "0.1.0"

from .collection import Collection, FanOutPolicy, FanOutResult, fan_out
from .config import (
    EnvConfigProvider,
    InMemoryDriverConfig,
    MongoDriverConfig,
    SqliteDriverConfig,
    StorageConfig,
    load_storage_config,
)
from .factory import create_storage_engine, open_collection
from .inmemory_storage_engine import InMemoryStorageEngine
from .mongo_storage_engine import MongoStorageEngine
from .pipeline import GroupStage, MatchStage, parse_pipeline, run_pipeline
from .query import matches, validate_query
from .sqlite_storage_engine import SqliteStorageEngine
from .storage_engine import (
    BoltStoreError,
    BulkWriteError,
    DocumentNotFoundError,
    InvalidDocumentError,
    InvalidPipelineError,
    InvalidQueryError,
    InvalidUpdateError,
    StorageConnection,
    StorageEngine,
    StorageError,
    StorageReadError,
    StorageTransaction,
    StorageUnavailableError,
    StorageWriteError,
    TransactionMode,
)
from .update import merge, validate_patch

__all__ = [
    # Version
    "__version__",
    # Collection
    "Collection",
    "open_collection",
    "FanOutPolicy",
    "FanOutResult",
    "fan_out",
    # Storage Engines
    "StorageEngine",
    "StorageConnection",
    "StorageTransaction",
    "TransactionMode",
    "InMemoryStorageEngine",
    "SqliteStorageEngine",
    "MongoStorageEngine",
    "create_storage_engine",
    # Configuration
    "EnvConfigProvider",
    "StorageConfig",
    "InMemoryDriverConfig",
    "SqliteDriverConfig",
    "MongoDriverConfig",
    "load_storage_config",
    # Query, update and aggregation
    "matches",
    "validate_query",
    "merge",
    "validate_patch",
    "MatchStage",
    "GroupStage",
    "parse_pipeline",
    "run_pipeline",
    # Exceptions
    "BoltStoreError",
    "StorageError",
    "StorageUnavailableError",
    "StorageReadError",
    "StorageWriteError",
    "DocumentNotFoundError",
    "BulkWriteError",
    "InvalidDocumentError",
    "InvalidQueryError",
    "InvalidUpdateError",
    "InvalidPipelineError",
]
