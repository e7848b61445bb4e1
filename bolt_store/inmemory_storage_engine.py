# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""In-memory storage engine for testing and local development."""

import copy
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from .storage_engine import (
    DocumentNotFoundError,
    StorageConnection,
    StorageEngine,
    StorageTransaction,
    StorageUnavailableError,
    StorageWriteError,
    TransactionMode,
)

logger = logging.getLogger(__name__)


class _MemoryCollection:
    """Records of one collection plus its id counter."""

    def __init__(self):
        self.records: dict[int, dict[str, Any]] = {}
        self.last_id = 0


class InMemoryTransaction(StorageTransaction):
    """Transaction over a process-local collection.

    Each primitive is applied immediately; there is no rollback.
    """

    def __init__(self, name: str, collection: _MemoryCollection, mode: TransactionMode):
        super().__init__(mode)
        self._name = name
        self._collection = collection

    async def insert(self, doc: dict[str, Any]) -> int:
        self._ensure_writable()
        if "_id" in doc:
            raise StorageWriteError("Document must not carry an _id; ids are assigned on insert")

        self._collection.last_id += 1
        doc_id = self._collection.last_id

        # Make a deep copy to avoid external mutations affecting stored data
        doc_copy = copy.deepcopy(doc)
        doc_copy["_id"] = doc_id
        self._collection.records[doc_id] = doc_copy
        logger.debug("InMemoryStorageEngine: inserted document %s into %s", doc_id, self._name)
        return doc_id

    async def read_all(self) -> list[dict[str, Any]]:
        results = [
            copy.deepcopy(self._collection.records[doc_id])
            for doc_id in sorted(self._collection.records)
        ]
        logger.debug(
            "InMemoryStorageEngine: read %d documents from %s", len(results), self._name
        )
        return results

    async def replace(self, doc: dict[str, Any]) -> None:
        self._ensure_writable()
        doc_id = doc.get("_id")
        if doc_id not in self._collection.records:
            raise DocumentNotFoundError(f"Document {doc_id} not found in collection {self._name}")

        self._collection.records[doc_id] = copy.deepcopy(doc)
        logger.debug("InMemoryStorageEngine: replaced document %s in %s", doc_id, self._name)

    async def delete(self, doc_id: int) -> None:
        self._ensure_writable()
        if doc_id not in self._collection.records:
            raise DocumentNotFoundError(f"Document {doc_id} not found in collection {self._name}")

        del self._collection.records[doc_id]
        logger.debug("InMemoryStorageEngine: deleted document %s from %s", doc_id, self._name)


class InMemoryConnection(StorageConnection):
    """Connection to a collection held by an InMemoryStorageEngine."""

    def __init__(self, name: str, collection: _MemoryCollection):
        super().__init__(name)
        self._collection = collection
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def transaction(
        self, mode: TransactionMode = TransactionMode.READ_ONLY
    ) -> AsyncIterator[StorageTransaction]:
        if self._closed:
            raise StorageUnavailableError(f"Connection to {self.name} is closed")
        yield InMemoryTransaction(self.name, self._collection, mode)

    async def close(self) -> None:
        self._closed = True
        logger.debug("InMemoryStorageEngine: closed connection to %s", self.name)


class InMemoryStorageEngine(StorageEngine):
    """In-memory storage engine implementation for testing.

    Collections live as long as the engine instance, so closing and reopening
    a connection keeps the data and the id counter.
    """

    @classmethod
    def from_config(cls, driver_config: Any = None) -> "InMemoryStorageEngine":
        """Create an InMemoryStorageEngine; the in-memory driver has no options."""
        return cls()

    def __init__(self):
        self.collections: dict[str, _MemoryCollection] = {}

    async def open(self, name: str) -> StorageConnection:
        if name not in self.collections:
            self.collections[name] = _MemoryCollection()
            logger.info("InMemoryStorageEngine: created collection %s", name)
        return InMemoryConnection(name, self.collections[name])
