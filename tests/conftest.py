"""
Shared pytest fixtures for polydb tests.

This module provides:
- Settings cache isolation
- Real SQLite database files for the relational end-to-end tests
- ``PluginConfig`` builders

Network engines (MongoDB, Redis, Elasticsearch) are tested against
``unittest.mock`` clients; their tests ``importorskip`` the driver.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest

from polydb.core.models import Credentials, PluginConfig, Record
from polydb.core.settings import PolyDBSettings, clear_settings_cache


def make_config(db_type: str, database: str = "", **advanced: str) -> PluginConfig:
    """Build a ``PluginConfig`` with advanced options as keyword arguments."""
    return PluginConfig(
        credentials=Credentials(
            type=db_type,
            hostname="localhost",
            username="tester",
            password="secret",
            database=database,
            advanced=tuple(Record(key=key.replace("_", " "), value=value) for key, value in advanced.items()),
        )
    )


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Every test starts from default settings, unaffected by the developer's env."""
    for name in (
        "POLYDB_CONNECT_TIMEOUT",
        "POLYDB_QUERY_TIMEOUT",
        "POLYDB_REDIS_SCAN_LIMIT",
        "POLYDB_ELASTICSEARCH_MAX_WINDOW",
        "POLYDB_ELASTICSEARCH_SQL_ROW_LIMIT",
        "POLYDB_GRAPH_SAMPLE_SIZE",
        "POLYDB_LOG_LEVEL",
        "POLYDB_LOG_JSON",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> PolyDBSettings:
    return PolyDBSettings(_env_file=None)


@pytest.fixture
def config_for():
    """``config_for("sqlite", path, Port="5433")`` builder."""
    return make_config


# =============================================================================
# SQLite
# =============================================================================


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    """An empty SQLite database file."""
    path = tmp_path / "polydb.db"
    sqlite3.connect(path).close()
    return path


@pytest.fixture
def users_db(sqlite_path: Path) -> Path:
    """``users(id int primary key, name text)`` with Alice and Bob."""
    conn = sqlite3.connect(sqlite_path)
    conn.execute("CREATE TABLE users (id int primary key, name text)")
    conn.executemany("INSERT INTO users VALUES (?, ?)", [(1, "Alice"), (2, "Bob")])
    conn.commit()
    conn.close()
    return sqlite_path


@pytest.fixture
def users_config(users_db: Path) -> PluginConfig:
    return make_config("sqlite", str(users_db))


@pytest.fixture
def shop_db(sqlite_path: Path) -> Path:
    """Schema exercising every relationship shape.

    - ``orders.customer_id`` -> ``customers``: ManyToOne / OneToMany
    - ``profiles.customer_id`` UNIQUE -> ``customers``: OneToOne
    - ``order_tags``: pure join table between ``orders`` and ``tags``
    - ``notes.order_ref`` -> ``orders.code`` (not unique): Unknown
    """
    conn = sqlite3.connect(sqlite_path)
    conn.executescript(
        """
        CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT NOT NULL);
        CREATE TABLE profiles (
            id INTEGER PRIMARY KEY,
            customer_id INTEGER NOT NULL,
            bio TEXT,
            UNIQUE (customer_id),
            FOREIGN KEY (customer_id) REFERENCES customers (id)
        );
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            code TEXT,
            customer_id INTEGER REFERENCES customers (id),
            total NUMERIC
        );
        CREATE TABLE tags (id INTEGER PRIMARY KEY, label TEXT);
        CREATE TABLE order_tags (
            order_id INTEGER NOT NULL REFERENCES orders (id),
            tag_id INTEGER NOT NULL REFERENCES tags (id),
            PRIMARY KEY (order_id, tag_id)
        );
        CREATE TABLE notes (
            id INTEGER PRIMARY KEY,
            order_ref TEXT REFERENCES orders (code),
            body TEXT
        );
        """
    )
    conn.close()
    return sqlite_path


@pytest.fixture
def shop_config(shop_db: Path) -> PluginConfig:
    return make_config("sqlite", str(shop_db))
