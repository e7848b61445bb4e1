# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Shared fixtures for bolt-store tests."""

import pytest
import pytest_asyncio

from bolt_store import Collection, InMemoryStorageEngine, SqliteStorageEngine


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that need a running MongoDB server")


@pytest.fixture
def engine():
    """Fresh in-memory storage engine."""
    return InMemoryStorageEngine()


@pytest_asyncio.fixture
async def users(engine):
    """Opened in-memory 'users' collection."""
    collection = Collection("users", engine)
    await collection.open()
    yield collection
    await collection.close()


@pytest_asyncio.fixture
async def sqlite_users(tmp_path):
    """Opened 'users' collection in a temporary SQLite file."""
    collection = Collection("users", SqliteStorageEngine(path=str(tmp_path / "bolt.db")))
    await collection.open()
    yield collection
    await collection.close()
