# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Tests for environment-based storage configuration."""

import pytest

from bolt_store import (
    EnvConfigProvider,
    InMemoryDriverConfig,
    MongoDriverConfig,
    SqliteDriverConfig,
    load_storage_config,
)


class TestEnvConfigProvider:
    """Tests for EnvConfigProvider."""

    def test_get(self):
        provider = EnvConfigProvider({"A": "1"})

        assert provider.get("A") == "1"
        assert provider.get("B", "x") == "x"

    def test_get_int(self):
        provider = EnvConfigProvider({"PORT": "27018", "BAD": "x"})

        assert provider.get_int("PORT") == 27018
        assert provider.get_int("BAD", 5) == 5
        assert provider.get_int("MISSING", 7) == 7

    def test_get_float(self):
        provider = EnvConfigProvider({"T": "2.5", "BAD": "x"})

        assert provider.get_float("T") == 2.5
        assert provider.get_float("BAD", 1.0) == 1.0


class TestLoadStorageConfig:
    """Tests for load_storage_config()."""

    def test_sqlite_driver_defaults_to_file(self):
        """Test that the SQLite driver persists to a file unless told otherwise."""
        assert SqliteDriverConfig() == SqliteDriverConfig(path="bolt.db", timeout=5.0)

    def test_defaults_to_sqlite(self):
        config = load_storage_config(EnvConfigProvider({}))

        assert config.engine_type == "sqlite"
        assert config.driver == SqliteDriverConfig(path="bolt.db", timeout=5.0)

    def test_sqlite_settings(self):
        config = load_storage_config(EnvConfigProvider({
            "BOLT_STORAGE_ENGINE": "SQLite",
            "BOLT_SQLITE_PATH": "/data/app.db",
            "BOLT_SQLITE_TIMEOUT": "1.5",
        }))

        assert config.engine_type == "sqlite"
        assert config.driver == SqliteDriverConfig(path="/data/app.db", timeout=1.5)

    def test_inmemory(self):
        config = load_storage_config(EnvConfigProvider({"BOLT_STORAGE_ENGINE": "inmemory"}))

        assert config.driver == InMemoryDriverConfig()

    def test_mongodb_settings(self):
        config = load_storage_config(EnvConfigProvider({
            "BOLT_STORAGE_ENGINE": "mongodb",
            "BOLT_MONGO_HOST": "mongo",
            "BOLT_MONGO_PORT": "27018",
            "BOLT_MONGO_DATABASE": "app",
            "BOLT_MONGO_USERNAME": "user",
            "BOLT_MONGO_PASSWORD": "secret",
        }))

        assert config.driver == MongoDriverConfig(
            host="mongo", port=27018, database="app", username="user", password="secret"
        )

    def test_mongodb_defaults(self):
        config = load_storage_config(EnvConfigProvider({"BOLT_STORAGE_ENGINE": "mongodb"}))

        assert config.driver == MongoDriverConfig()

    def test_unknown_engine(self):
        with pytest.raises(ValueError, match="Unknown BOLT_STORAGE_ENGINE"):
            load_storage_config(EnvConfigProvider({"BOLT_STORAGE_ENGINE": "redis"}))

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("BOLT_STORAGE_ENGINE", "inmemory")

        assert load_storage_config().engine_type == "inmemory"
