# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Tests for SqliteStorageEngine."""

import asyncio
from unittest.mock import AsyncMock, patch

import aiosqlite
import pytest

from bolt_store import (
    Collection,
    DocumentNotFoundError,
    FanOutPolicy,
    SqliteDriverConfig,
    SqliteStorageEngine,
    StorageUnavailableError,
    StorageWriteError,
    TransactionMode,
)
from bolt_store.sqlite_storage_engine import SqliteTransaction


class TestSqliteStorageEngineInit:
    """Tests for SqliteStorageEngine construction."""

    def test_path_required(self):
        with pytest.raises(ValueError, match="path is required"):
            SqliteStorageEngine(path=None)

    def test_from_config(self):
        engine = SqliteStorageEngine.from_config(SqliteDriverConfig(path="data.db", timeout=2.5))

        assert engine.path == "data.db"
        assert engine.timeout == 2.5


@pytest.mark.asyncio
class TestSqliteStorageEngine:
    """Tests for the SQLite engine primitives."""

    async def test_insert_and_read(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")

        async with connection.transaction(TransactionMode.READ_WRITE) as txn:
            first = await txn.insert({"name": "Alice", "age": 25, "tags": ["a"]})
            second = await txn.insert({"name": "Bob", "score": 1.5, "active": True, "x": None})

        async with connection.transaction() as txn:
            docs = await txn.read_all()
        await connection.close()

        assert (first, second) == (1, 2)
        assert docs == [
            {"_id": 1, "name": "Alice", "age": 25, "tags": ["a"]},
            {"_id": 2, "name": "Bob", "score": 1.5, "active": True, "x": None},
        ]

    async def test_ids_not_reused_after_delete(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")

        async with connection.transaction(TransactionMode.READ_WRITE) as txn:
            await txn.insert({"n": 1})
            doc_id = await txn.insert({"n": 2})
            await txn.delete(doc_id)
            next_id = await txn.insert({"n": 3})
        await connection.close()

        assert next_id == 3

    async def test_replace_and_delete_unknown_id(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")

        async with connection.transaction(TransactionMode.READ_WRITE) as txn:
            with pytest.raises(DocumentNotFoundError):
                await txn.replace({"_id": 9, "n": 1})
            with pytest.raises(DocumentNotFoundError):
                await txn.delete(9)
        await connection.close()

    async def test_replace_keeps_id_out_of_body(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")

        async with connection.transaction(TransactionMode.READ_WRITE) as txn:
            doc_id = await txn.insert({"n": 1})
            await txn.replace({"_id": doc_id, "n": 2})
            docs = await txn.read_all()
        await connection.close()

        assert docs == [{"_id": 1, "n": 2}]

    async def test_unserializable_document(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")

        async with connection.transaction(TransactionMode.READ_WRITE) as txn:
            with pytest.raises(StorageWriteError):
                await txn.insert({"blob": object()})
        await connection.close()

    async def test_rollback_on_exception(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")

        with pytest.raises(RuntimeError):
            async with connection.transaction(TransactionMode.READ_WRITE) as txn:
                await txn.insert({"n": 1})
                raise RuntimeError("abort")

        async with connection.transaction() as txn:
            docs = await txn.read_all()
        await connection.close()

        assert docs == []

    async def test_failed_rollback_keeps_original_error(self, tmp_path, monkeypatch):
        """Test that a rollback failure does not mask the error that aborted the transaction."""
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")

        with pytest.raises(RuntimeError, match="abort"):
            async with connection.transaction(TransactionMode.READ_WRITE) as txn:
                await txn.insert({"n": 1})
                monkeypatch.setattr(
                    connection._conn,
                    "execute",
                    AsyncMock(side_effect=aiosqlite.OperationalError("disk I/O error")),
                )
                raise RuntimeError("abort")

        monkeypatch.undo()
        await connection.close()

    async def test_read_only_transaction_rejects_writes(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")

        async with connection.transaction(TransactionMode.READ_ONLY) as txn:
            with pytest.raises(StorageWriteError, match="read-only"):
                await txn.insert({"n": 1})
        await connection.close()

    async def test_closed_connection_is_unavailable(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open("users")
        await connection.close()

        assert connection.closed is True
        with pytest.raises(StorageUnavailableError):
            async with connection.transaction():
                pass

    async def test_open_unreachable_path(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "missing" / "dir" / "bolt.db"))

        with pytest.raises(StorageUnavailableError):
            await engine.open("users")

    async def test_collection_names_are_quoted(self, tmp_path):
        engine = SqliteStorageEngine(path=str(tmp_path / "bolt.db"))
        connection = await engine.open('odd "name"; drop')

        async with connection.transaction(TransactionMode.READ_WRITE) as txn:
            assert await txn.insert({"n": 1}) == 1
        await connection.close()


@pytest.mark.asyncio
class TestSqliteCollection:
    """Collection behavior on the persistent engine."""

    async def test_data_persists_across_handles(self, tmp_path):
        path = str(tmp_path / "bolt.db")

        async with Collection("users", SqliteStorageEngine(path=path)) as users:
            await users.insert_one({"name": "Alice", "age": 25})
            await users.insert_many([{"name": "Bob", "age": 30}, {"name": "Charlie", "age": 35}])

        async with Collection("users", SqliteStorageEngine(path=path)) as users:
            assert await users.find({"age": 30}) == [{"_id": 2, "name": "Bob", "age": 30}]
            assert await users.sum("age") == 90

    async def test_update_delete_aggregate(self, sqlite_users):
        await sqlite_users.insert_many([{"k": "a", "v": 1}, {"k": "b", "v": 2}, {"k": "a", "v": 3}])

        updated = await sqlite_users.update({"k": "a"}, {"seen": True})
        assert [doc["_id"] for doc in updated] == [1, 3]

        groups = await sqlite_users.aggregate([
            {"$match": {"seen": True}},
            {"$group": {"_id": "k", "v": 1}},
        ])
        assert groups == [{"_id": "a", "v": 4}]

        assert await sqlite_users.delete({"k": "a"}) == 2
        assert await sqlite_users.find({}) == [{"_id": 2, "k": "b", "v": 2}]

    async def test_update_fail_fast_keeps_applied_writes(self, sqlite_users):
        """Test that FAIL_FAST does not roll back replaces that already succeeded."""
        await sqlite_users.insert_one({"k": "a", "n": 1})
        await sqlite_users.insert_one({"k": "a", "n": 2})
        original_replace = SqliteTransaction.replace

        async def slow_failing_replace(self, doc):
            if doc["n"] == 2:
                await asyncio.sleep(0.05)
                raise StorageWriteError("boom")
            await original_replace(self, doc)

        with patch.object(SqliteTransaction, "replace", slow_failing_replace):
            with pytest.raises(StorageWriteError, match="boom"):
                await sqlite_users.update({"k": "a"}, {"v": 1}, policy=FanOutPolicy.FAIL_FAST)

        assert await sqlite_users.find({"n": 1, "v": 1}) == [{"_id": 1, "k": "a", "n": 1, "v": 1}]
        assert await sqlite_users.find({"n": 2}) == [{"_id": 2, "k": "a", "n": 2}]

    async def test_delete_fail_fast_keeps_applied_deletes(self, sqlite_users):
        await sqlite_users.insert_one({"k": "a", "n": 1})
        await sqlite_users.insert_one({"k": "a", "n": 2})
        original_delete = SqliteTransaction.delete

        async def slow_failing_delete(self, doc_id):
            if doc_id == 2:
                await asyncio.sleep(0.05)
                raise StorageWriteError("boom")
            await original_delete(self, doc_id)

        with patch.object(SqliteTransaction, "delete", slow_failing_delete):
            with pytest.raises(StorageWriteError, match="boom"):
                await sqlite_users.delete({"k": "a"}, policy=FanOutPolicy.FAIL_FAST)

        assert await sqlite_users.find({}) == [{"_id": 2, "k": "a", "n": 2}]
