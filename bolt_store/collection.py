# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Collection handle exposing document operations over a storage engine."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Iterable, Mapping
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .pipeline import parse_pipeline, run_pipeline
from .query import filter_documents, is_number, matches, validate_query
from .storage_engine import (
    BulkWriteError,
    InvalidDocumentError,
    StorageConnection,
    StorageEngine,
    StorageReadError,
    StorageTransaction,
    StorageUnavailableError,
    StorageWriteError,
    TransactionMode,
)
from .update import merge, validate_patch

logger = logging.getLogger(__name__)


class FanOutPolicy(str, Enum):
    """How a bulk operation reports failures of its individual writes.

    COLLECT_ALL lets every write finish and then raises BulkWriteError if any
    failed. FAIL_FAST cancels writes that have not completed yet and raises
    the first failure once the operation's transaction has been committed, so
    writes already applied are kept on every engine.
    """

    COLLECT_ALL = "collect_all"
    FAIL_FAST = "fail_fast"


@dataclass
class FanOutResult:
    """Per-position results and failures of a fan-out.

    ``failure`` holds the error that stopped a FAIL_FAST fan-out.
    """

    results: list[Any] = field(default_factory=list)
    errors: list[tuple[int, BaseException]] = field(default_factory=list)
    failure: Exception | None = None

    def raise_for_errors(self, operation: str) -> None:
        if self.failure is not None:
            raise self.failure
        if self.errors:
            raise BulkWriteError(operation, self.results, self.errors)


async def fan_out(operations: Iterable[Awaitable[Any]], policy: FanOutPolicy) -> FanOutResult:
    """Run the operations concurrently under the given failure policy.

    Failures are recorded on the result, never raised; callers raise them with
    ``raise_for_errors`` after leaving any enclosing transaction.
    """
    tasks = [asyncio.ensure_future(op) for op in operations]
    if not tasks:
        return FanOutResult()

    if policy is FanOutPolicy.FAIL_FAST:
        try:
            return FanOutResult(results=list(await asyncio.gather(*tasks)))
        except BaseException as e:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if not isinstance(e, Exception):
                raise
            return FanOutResult(failure=e)

    outcome = FanOutResult()
    for index, result in enumerate(await asyncio.gather(*tasks, return_exceptions=True)):
        if isinstance(result, Exception):
            outcome.results.append(None)
            outcome.errors.append((index, result))
        elif isinstance(result, BaseException):
            raise result
        else:
            outcome.results.append(result)
    return outcome


def _validate_document(doc: Any) -> dict[str, Any]:
    if not isinstance(doc, Mapping):
        raise InvalidDocumentError(f"Document must be a mapping, got {type(doc).__name__}")
    for key in doc:
        if not isinstance(key, str):
            raise InvalidDocumentError(f"Document field names must be strings, got {key!r}")
    if "_id" in doc:
        raise InvalidDocumentError("Document must not carry an _id; ids are assigned on insert")
    return dict(doc)


class Collection:
    """Handle on one named collection.

    Construction performs no I/O. The connection is opened by ``open()`` or
    lazily by the first operation, and reopened once if it has been lost.

    Example:
        >>> from bolt_store import Collection, InMemoryStorageEngine
        >>>
        >>> users = Collection("users", InMemoryStorageEngine())
        >>> await users.open()
        >>> await users.insert_one({"name": "Alice", "age": 25})
        1
        >>> await users.find({"age": 25})
        [{'_id': 1, 'name': 'Alice', 'age': 25}]
    """

    def __init__(self, name: str, engine: StorageEngine):
        if not isinstance(name, str) or not name:
            raise ValueError("Collection name must be a non-empty string")

        self.name = name
        self.engine = engine
        self._connection: StorageConnection | None = None
        self._open_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._connection is not None and not self._connection.closed

    async def open(self) -> "Collection":
        """Open the collection, creating it on first use. Idempotent.

        Raises:
            StorageUnavailableError: If the storage engine cannot be reached
        """
        async with self._open_lock:
            if self.is_open:
                return self
            self._connection = await self.engine.open(self.name)
            logger.info("Collection %s: opened", self.name)
        return self

    async def close(self) -> None:
        """Release the connection; the next operation reopens it."""
        async with self._open_lock:
            connection, self._connection = self._connection, None
        if connection is not None and not connection.closed:
            await connection.close()
            logger.info("Collection %s: closed", self.name)

    async def __aenter__(self) -> "Collection":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _ensure_open(self) -> StorageConnection:
        if not self.is_open:
            logger.warning("Collection %s: not open, opening", self.name)
            await self.open()
        return self._connection

    async def _drop_connection(self, connection: StorageConnection) -> None:
        async with self._open_lock:
            if self._connection is connection:
                self._connection = None
        if not connection.closed:
            try:
                await connection.close()
            except Exception as e:
                logger.warning("Collection %s: failed to close stale connection - %s", self.name, e)

    @asynccontextmanager
    async def _transaction(
        self, mode: TransactionMode = TransactionMode.READ_ONLY
    ) -> AsyncIterator[StorageTransaction]:
        """Yield a transaction for one logical operation.

        A connection reported lost when the transaction begins is reopened
        once before giving up.
        """
        async with AsyncExitStack() as stack:
            connection = await self._ensure_open()
            try:
                txn = await stack.enter_async_context(connection.transaction(mode))
            except StorageUnavailableError as e:
                logger.warning("Collection %s: connection lost (%s), reopening", self.name, e)
                await self._drop_connection(connection)
                connection = await self._ensure_open()
                txn = await stack.enter_async_context(connection.transaction(mode))
            yield txn

    async def _read_for_write(self, txn: StorageTransaction) -> list[dict[str, Any]]:
        try:
            return await txn.read_all()
        except StorageReadError as e:
            raise StorageWriteError(f"Failed to read documents from {self.name} for writing") from e

    async def insert_one(self, doc: Mapping[str, Any]) -> int:
        """Insert a document and return the ``_id`` assigned by the engine.

        Raises:
            InvalidDocumentError: If the document is malformed or carries an ``_id``
            StorageWriteError: If the insert fails
        """
        doc = _validate_document(doc)
        async with self._transaction(TransactionMode.READ_WRITE) as txn:
            return await txn.insert(doc)

    async def insert_many(
        self,
        docs: Iterable[Mapping[str, Any]],
        policy: FanOutPolicy = FanOutPolicy.COLLECT_ALL,
    ) -> list[int]:
        """Insert each document independently and concurrently.

        Returns:
            Assigned ids in input order. Ids need not be contiguous or follow
            input order.

        Raises:
            BulkWriteError: Under COLLECT_ALL, if any insert failed
        """
        docs = list(docs)
        outcome = await fan_out((self.insert_one(doc) for doc in docs), policy)
        outcome.raise_for_errors("insert_many")
        logger.debug("Collection %s: inserted %d documents", self.name, len(docs))
        return outcome.results

    async def find_one(self, query: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """Return the first matching document in read order, or None."""
        query = validate_query(query)
        async with self._transaction(TransactionMode.READ_ONLY) as txn:
            documents = await txn.read_all()

        for doc in documents:
            if matches(doc, query):
                return doc
        return None

    async def find(self, query: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Return all matching documents in read order."""
        query = validate_query(query)
        async with self._transaction(TransactionMode.READ_ONLY) as txn:
            documents = await txn.read_all()

        results = filter_documents(documents, query)
        logger.debug(
            "Collection %s: find with %s returned %d documents", self.name, query, len(results)
        )
        return results

    async def update(
        self,
        query: Mapping[str, Any] | None,
        patch: Mapping[str, Any],
        policy: FanOutPolicy = FanOutPolicy.COLLECT_ALL,
    ) -> list[dict[str, Any]]:
        """Merge the patch into every matching document and write each back.

        Returns:
            The updated documents in match order

        Raises:
            InvalidQueryError, InvalidUpdateError: On malformed input
            StorageWriteError: If reading the documents fails
            BulkWriteError: Under COLLECT_ALL, if any write failed; writes that
                succeeded are kept
            Exception: Under FAIL_FAST, the first write failure, raised after
                the writes that succeeded have been committed
        """
        query = validate_query(query)
        patch = validate_patch(patch)
        async with self._transaction(TransactionMode.READ_WRITE) as txn:
            matched = filter_documents(await self._read_for_write(txn), query)
            updated = [merge(doc, patch) for doc in matched]
            outcome = await fan_out((self._replace(txn, doc) for doc in updated), policy)

        outcome.raise_for_errors("update")
        logger.debug("Collection %s: updated %d documents", self.name, len(updated))
        return outcome.results

    @staticmethod
    async def _replace(txn: StorageTransaction, doc: dict[str, Any]) -> dict[str, Any]:
        await txn.replace(doc)
        return doc

    async def delete(
        self,
        query: Mapping[str, Any] | None,
        policy: FanOutPolicy = FanOutPolicy.COLLECT_ALL,
    ) -> int:
        """Delete every matching document and return how many were deleted.

        Raises:
            StorageWriteError: If reading the documents fails
            BulkWriteError: Under COLLECT_ALL, if any delete failed; deletes
                that succeeded are kept
        """
        query = validate_query(query)
        async with self._transaction(TransactionMode.READ_WRITE) as txn:
            matched = filter_documents(await self._read_for_write(txn), query)
            outcome = await fan_out((txn.delete(doc["_id"]) for doc in matched), policy)

        outcome.raise_for_errors("delete")
        logger.debug("Collection %s: deleted %d documents", self.name, len(matched))
        return len(matched)

    async def sum(self, field: str, query: Mapping[str, Any] | None = None) -> int | float:
        """Add up ``field`` over the matching documents.

        Missing, boolean and non-numeric values count as 0.
        """
        query = validate_query(query)
        async with self._transaction(TransactionMode.READ_ONLY) as txn:
            documents = await txn.read_all()

        total: int | float = 0
        for doc in filter_documents(documents, query):
            value = doc.get(field)
            if is_number(value):
                total += value
        return total

    async def aggregate(self, pipeline: Any) -> list[dict[str, Any]]:
        """Run an aggregation pipeline over one snapshot of the collection.

        Raises:
            InvalidPipelineError: If a stage is unknown or malformed
            StorageReadError: If reading the documents fails
        """
        stages = parse_pipeline(pipeline)
        async with self._transaction(TransactionMode.READ_ONLY) as txn:
            documents = await txn.read_all()

        results = run_pipeline(documents, stages)
        logger.debug(
            "Collection %s: aggregation with %d stages returned %d documents",
            self.name, len(stages), len(results),
        )
        return results
