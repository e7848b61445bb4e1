# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""MongoDB storage engine implementation."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, PyMongoError

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

COUNTERS_COLLECTION = "__bolt_counters"


class MongoTransaction(StorageTransaction):
    """Transaction over one MongoDB collection.

    Every primitive is a single-document operation, which MongoDB applies
    atomically. Integer ids come from a per-collection counter document.
    """

    def __init__(self, database: Any, name: str, mode: TransactionMode):
        super().__init__(mode)
        self._database = database
        self._name = name

    async def _next_id(self) -> int:
        counter = await self._database[COUNTERS_COLLECTION].find_one_and_update(
            {"_id": self._name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    async def insert(self, doc: dict[str, Any]) -> int:
        self._ensure_writable()
        if "_id" in doc:
            raise StorageWriteError("Document must not carry an _id; ids are assigned on insert")

        try:
            doc_id = await self._next_id()
            record = {"_id": doc_id}
            record.update(doc)
            await self._database[self._name].insert_one(record)
        except PyMongoError as e:
            logger.error("MongoStorageEngine: insert failed - %s", e, exc_info=True)
            raise StorageWriteError(f"Failed to insert document into {self._name}") from e

        logger.debug("MongoStorageEngine: inserted document %s into %s", doc_id, self._name)
        return doc_id

    async def read_all(self) -> list[dict[str, Any]]:
        try:
            cursor = self._database[self._name].find({}, sort=[("_id", 1)])
            results = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("MongoStorageEngine: read_all failed - %s", e, exc_info=True)
            raise StorageReadError(f"Failed to read documents from {self._name}") from e

        logger.debug("MongoStorageEngine: read %d documents from %s", len(results), self._name)
        return results

    async def replace(self, doc: dict[str, Any]) -> None:
        self._ensure_writable()
        doc_id = doc.get("_id")
        try:
            result = await self._database[self._name].replace_one({"_id": doc_id}, doc)
        except PyMongoError as e:
            logger.error("MongoStorageEngine: replace failed - %s", e, exc_info=True)
            raise StorageWriteError(f"Failed to replace document {doc_id} in {self._name}") from e

        if result.matched_count == 0:
            raise DocumentNotFoundError(f"Document {doc_id} not found in collection {self._name}")
        logger.debug("MongoStorageEngine: replaced document %s in %s", doc_id, self._name)

    async def delete(self, doc_id: int) -> None:
        self._ensure_writable()
        try:
            result = await self._database[self._name].delete_one({"_id": doc_id})
        except PyMongoError as e:
            logger.error("MongoStorageEngine: delete failed - %s", e, exc_info=True)
            raise StorageWriteError(f"Failed to delete document {doc_id} from {self._name}") from e

        if result.deleted_count == 0:
            raise DocumentNotFoundError(f"Document {doc_id} not found in collection {self._name}")
        logger.debug("MongoStorageEngine: deleted document %s from %s", doc_id, self._name)


class MongoConnection(StorageConnection):
    """Connection to one MongoDB collection."""

    def __init__(self, name: str, client: Any, database: Any):
        super().__init__(name)
        self.client = client
        self.database = database

    @property
    def closed(self) -> bool:
        return self.client is None

    @asynccontextmanager
    async def transaction(
        self, mode: TransactionMode = TransactionMode.READ_ONLY
    ) -> AsyncIterator[StorageTransaction]:
        if self.database is None:
            raise StorageUnavailableError("Not connected to MongoDB")
        yield MongoTransaction(self.database, self.name, mode)

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("MongoStorageEngine: disconnected from %s", self.name)


class MongoStorageEngine(StorageEngine):
    """MongoDB storage engine implementation."""

    @classmethod
    def from_config(cls, driver_config: Any) -> "MongoStorageEngine":
        """Create a MongoStorageEngine from configuration.

        Args:
            driver_config: Configuration object with host, port, database, username,
                password and server_selection_timeout_ms attributes.

        Returns:
            Configured MongoStorageEngine instance
        """
        kwargs = {}
        timeout_ms = getattr(driver_config, "server_selection_timeout_ms", None)
        if timeout_ms is not None:
            kwargs["serverSelectionTimeoutMS"] = timeout_ms

        return cls(
            host=getattr(driver_config, "host", None),
            port=getattr(driver_config, "port", None),
            username=getattr(driver_config, "username", None),
            password=getattr(driver_config, "password", None),
            database=getattr(driver_config, "database", None),
            **kwargs,
        )

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        database: str | None = None,
        **kwargs
    ):
        """Initialize MongoDB storage engine.

        Args:
            host: MongoDB host (required)
            port: MongoDB port (required)
            username: MongoDB username (optional)
            password: MongoDB password (optional)
            database: Database name (required)
            **kwargs: Additional MongoDB client options

        Raises:
            ValueError: If required parameters (host, port, database) are not provided
        """
        if not host:
            raise ValueError(
                "MongoDB host is required. "
                "Provide the MongoDB server hostname or IP address."
            )
        if port is None:
            raise ValueError(
                "MongoDB port is required. "
                "Provide the MongoDB server port number."
            )
        if not database:
            raise ValueError(
                "MongoDB database is required. "
                "Provide the database name to use."
            )

        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.database_name = database
        self.client_options = kwargs

    def _create_client(self) -> Any:
        from motor.motor_asyncio import AsyncIOMotorClient

        connection_params = {
            "host": self.host,
            "port": self.port,
        }

        if self.username and self.password:
            connection_params["username"] = self.username
            connection_params["password"] = self.password
            if "authSource" not in self.client_options:
                connection_params["authSource"] = "admin"

        connection_params.update(self.client_options)
        return AsyncIOMotorClient(**connection_params)

    async def _ping(self, client: Any) -> None:
        await client.admin.command("ping")

    async def open(self, name: str) -> StorageConnection:
        client = None
        try:
            client = self._create_client()
            await self._ping(client)
        except ConnectionFailure as e:
            if client is not None:
                client.close()
            logger.error("MongoStorageEngine: connection failed - %s", e, exc_info=True)
            raise StorageUnavailableError(f"Failed to connect to MongoDB at {self.host}:{self.port}") from e
        except Exception as e:
            if client is not None:
                client.close()
            logger.error("MongoStorageEngine: unexpected error during connect - %s", e, exc_info=True)
            raise StorageUnavailableError(f"Unexpected error connecting to MongoDB: {str(e)}") from e

        logger.info(
            "MongoStorageEngine: connected to %s:%s/%s (collection %s)",
            self.host, self.port, self.database_name, name,
        )
        return MongoConnection(name, client, client[self.database_name])
