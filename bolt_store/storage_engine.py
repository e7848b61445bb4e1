# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Abstract storage engine interface consumed by the collection handle."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Any


class BoltStoreError(Exception):
    """Base exception for all bolt-store errors."""
    pass


class StorageError(BoltStoreError):
    """Base exception for storage engine errors."""
    pass


class StorageUnavailableError(StorageError):
    """Exception raised when the storage engine cannot be opened or reached."""
    pass


class StorageReadError(StorageError):
    """Exception raised when reading the document set fails."""
    pass


class StorageWriteError(StorageError):
    """Exception raised when an insert, replace or delete fails."""
    pass


class DocumentNotFoundError(StorageWriteError):
    """Exception raised when a keyed write targets a missing document."""
    pass


class BulkWriteError(StorageWriteError):
    """Exception raised when one or more writes of a bulk operation failed.

    Attributes:
        results: Per-input result, ``None`` where the write failed
        errors: List of ``(index, exception)`` pairs for the failed writes
    """

    def __init__(self, operation: str, results: list[Any], errors: list[tuple[int, BaseException]]):
        self.operation = operation
        self.results = results
        self.errors = errors
        super().__init__(
            f"{operation}: {len(errors)} of {len(results)} writes failed"
        )


class InvalidDocumentError(BoltStoreError):
    """Exception raised when a document to insert is malformed."""
    pass


class InvalidQueryError(BoltStoreError):
    """Exception raised when a query is not a flat equality mapping."""
    pass


class InvalidUpdateError(BoltStoreError):
    """Exception raised when an update patch is malformed."""
    pass


class InvalidPipelineError(BoltStoreError):
    """Exception raised when an aggregation pipeline is malformed."""
    pass


class TransactionMode(str, Enum):
    """Access mode requested for a storage transaction."""

    READ_ONLY = "readonly"
    READ_WRITE = "readwrite"


class StorageTransaction(ABC):
    """A transaction scoped to one logical collection operation."""

    def __init__(self, mode: TransactionMode):
        self.mode = mode

    def _ensure_writable(self) -> None:
        if self.mode is not TransactionMode.READ_WRITE:
            raise StorageWriteError("Cannot write in a read-only transaction")

    @abstractmethod
    async def insert(self, doc: dict[str, Any]) -> int:
        """Insert a document and return its engine-assigned ``_id``.

        Raises:
            StorageWriteError: If the insert fails
        """
        pass

    @abstractmethod
    async def read_all(self) -> list[dict[str, Any]]:
        """Return every document in the collection in ascending ``_id`` order.

        Raises:
            StorageReadError: If the read fails
        """
        pass

    @abstractmethod
    async def replace(self, doc: dict[str, Any]) -> None:
        """Replace the stored document that has the same ``_id``.

        Raises:
            DocumentNotFoundError: If no document has that ``_id``
            StorageWriteError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, doc_id: int) -> None:
        """Delete a document by its ``_id``.

        Raises:
            DocumentNotFoundError: If no document has that ``_id``
            StorageWriteError: If the delete fails
        """
        pass


class StorageConnection(ABC):
    """An open handle on one named collection."""

    def __init__(self, name: str):
        self.name = name

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the connection has been closed or lost."""
        pass

    @abstractmethod
    def transaction(
        self, mode: TransactionMode = TransactionMode.READ_ONLY
    ) -> AbstractAsyncContextManager[StorageTransaction]:
        """Begin a transaction.

        The returned async context manager commits on normal exit and rolls
        back on exception where the engine supports it.

        Raises:
            StorageUnavailableError: If the connection is gone
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        pass


class StorageEngine(ABC):
    """Abstract base class for storage engine drivers."""

    @abstractmethod
    async def open(self, name: str) -> StorageConnection:
        """Open the named collection, creating it on first use.

        The collection uses ``_id`` as an auto-incrementing primary key.

        Raises:
            StorageUnavailableError: If the engine cannot be reached
        """
        pass
