# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""SQLite storage engine implementation.

Each collection is a table with an ``AUTOINCREMENT`` integer primary key, so
ids grow monotonically and are never reused, even after deletes. Document
bodies are stored as JSON text without the ``_id`` field.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from .storage_engine import (
    DocumentNotFoundError,
    StorageConnection,
    StorageEngine,
    StorageReadError,
    StorageTransaction,
    StorageUnavailableError,
    StorageWriteError,
    TransactionMode,
)

logger = logging.getLogger(__name__)


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class SqliteTransaction(StorageTransaction):
    """Transaction over one SQLite table."""

    def __init__(self, conn: aiosqlite.Connection, name: str, mode: TransactionMode):
        super().__init__(mode)
        self._conn = conn
        self._name = name
        self._table = _quote_identifier(name)

    async def insert(self, doc: dict[str, Any]) -> int:
        self._ensure_writable()
        if "_id" in doc:
            raise StorageWriteError("Document must not carry an _id; ids are assigned on insert")

        try:
            body = json.dumps(doc)
            cursor = await self._conn.execute(
                f"INSERT INTO {self._table} (body) VALUES (?)", (body,)
            )
            doc_id = cursor.lastrowid
            await cursor.close()
        except (aiosqlite.Error, TypeError, ValueError) as e:
            logger.error("SqliteStorageEngine: insert failed - %s", e, exc_info=True)
            raise StorageWriteError(f"Failed to insert document into {self._name}") from e

        logger.debug("SqliteStorageEngine: inserted document %s into %s", doc_id, self._name)
        return doc_id

    async def read_all(self) -> list[dict[str, Any]]:
        try:
            rows = await self._conn.execute_fetchall(
                f"SELECT _id, body FROM {self._table} ORDER BY _id"
            )
            results = []
            for doc_id, body in rows:
                doc = {"_id": doc_id}
                doc.update(json.loads(body))
                results.append(doc)
        except (aiosqlite.Error, ValueError) as e:
            logger.error("SqliteStorageEngine: read_all failed - %s", e, exc_info=True)
            raise StorageReadError(f"Failed to read documents from {self._name}") from e

        logger.debug("SqliteStorageEngine: read %d documents from %s", len(results), self._name)
        return results

    async def replace(self, doc: dict[str, Any]) -> None:
        self._ensure_writable()
        doc_id = doc.get("_id")
        body_fields = {key: value for key, value in doc.items() if key != "_id"}

        try:
            cursor = await self._conn.execute(
                f"UPDATE {self._table} SET body = ? WHERE _id = ?",
                (json.dumps(body_fields), doc_id),
            )
            rowcount = cursor.rowcount
            await cursor.close()
        except (aiosqlite.Error, TypeError, ValueError) as e:
            logger.error("SqliteStorageEngine: replace failed - %s", e, exc_info=True)
            raise StorageWriteError(f"Failed to replace document {doc_id} in {self._name}") from e

        if rowcount == 0:
            raise DocumentNotFoundError(f"Document {doc_id} not found in collection {self._name}")
        logger.debug("SqliteStorageEngine: replaced document %s in %s", doc_id, self._name)

    async def delete(self, doc_id: int) -> None:
        self._ensure_writable()
        try:
            cursor = await self._conn.execute(
                f"DELETE FROM {self._table} WHERE _id = ?", (doc_id,)
            )
            rowcount = cursor.rowcount
            await cursor.close()
        except aiosqlite.Error as e:
            logger.error("SqliteStorageEngine: delete failed - %s", e, exc_info=True)
            raise StorageWriteError(f"Failed to delete document {doc_id} from {self._name}") from e

        if rowcount == 0:
            raise DocumentNotFoundError(f"Document {doc_id} not found in collection {self._name}")
        logger.debug("SqliteStorageEngine: deleted document %s from %s", doc_id, self._name)


class SqliteConnection(StorageConnection):
    """Connection to one collection table.

    Transactions on the shared connection are serialized with a lock.
    """

    def __init__(self, name: str, conn: aiosqlite.Connection):
        super().__init__(name)
        self._conn = conn
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def transaction(
        self, mode: TransactionMode = TransactionMode.READ_ONLY
    ) -> AsyncIterator[StorageTransaction]:
        async with self._lock:
            if self._closed:
                raise StorageUnavailableError(f"Connection to {self.name} is closed")

            writable = mode is TransactionMode.READ_WRITE
            try:
                await self._conn.execute("BEGIN IMMEDIATE" if writable else "BEGIN DEFERRED")
            except (aiosqlite.Error, ValueError) as e:
                logger.error("SqliteStorageEngine: begin failed - %s", e, exc_info=True)
                raise StorageUnavailableError(f"Failed to begin transaction on {self.name}") from e

            try:
                yield SqliteTransaction(self._conn, self.name, mode)
            except BaseException:
                try:
                    await self._conn.execute("ROLLBACK")
                except (aiosqlite.Error, ValueError) as e:
                    logger.error("SqliteStorageEngine: rollback failed - %s", e, exc_info=True)
                else:
                    logger.debug("SqliteStorageEngine: rolled back transaction on %s", self.name)
                raise

            try:
                await self._conn.execute("COMMIT")
            except aiosqlite.Error as e:
                logger.error("SqliteStorageEngine: commit failed - %s", e, exc_info=True)
                raise StorageWriteError(f"Failed to commit transaction on {self.name}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._conn.close()
        logger.info("SqliteStorageEngine: closed connection to %s", self.name)


class SqliteStorageEngine(StorageEngine):
    """Persistent storage engine backed by a single SQLite file."""

    @classmethod
    def from_config(cls, driver_config: Any) -> "SqliteStorageEngine":
        """Create a SqliteStorageEngine from configuration.

        Args:
            driver_config: Configuration object with path and timeout attributes.

        Returns:
            Configured SqliteStorageEngine instance
        """
        path = getattr(driver_config, "path", None)
        timeout = getattr(driver_config, "timeout", None)

        return cls(path=path, timeout=timeout if timeout is not None else 5.0)

    def __init__(self, path: str | None = None, timeout: float = 5.0):
        """Initialize the SQLite storage engine.

        Args:
            path: Database file path, or ":memory:" (required)
            timeout: Seconds to wait on a locked database

        Raises:
            ValueError: If path is not provided
        """
        if not path:
            raise ValueError(
                "SQLite path is required. "
                "Provide a database file path or ':memory:'."
            )

        self.path = path
        self.timeout = timeout

    async def open(self, name: str) -> StorageConnection:
        try:
            conn = await aiosqlite.connect(self.path, timeout=self.timeout, isolation_level=None)
        except (aiosqlite.Error, OSError) as e:
            logger.error("SqliteStorageEngine: connection failed - %s", e, exc_info=True)
            raise StorageUnavailableError(f"Failed to open SQLite database at {self.path}") from e

        try:
            await conn.execute(
                f"CREATE TABLE IF NOT EXISTS {_quote_identifier(name)} ("
                "_id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "body TEXT NOT NULL)"
            )
        except aiosqlite.Error as e:
            await conn.close()
            logger.error("SqliteStorageEngine: create collection failed - %s", e, exc_info=True)
            raise StorageUnavailableError(f"Failed to create collection {name} in {self.path}") from e

        logger.info("SqliteStorageEngine: opened collection %s in %s", name, self.path)
        return SqliteConnection(name, conn)
