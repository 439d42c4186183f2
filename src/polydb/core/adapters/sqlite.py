"""SQLite adapter.

Uses the stdlib ``sqlite3`` driver through SQLAlchemy, so it is always
available.  ``Credentials.database`` is the database file path; the file
must already exist (``:memory:`` is accepted for throwaway use).

SQLite has no schemas: ``get_all_schemas`` returns ``[]`` and the schema
argument of every other operation is ignored.  ``get_databases`` returns
the path of the open database file.
"""

from __future__ import annotations

import datetime as dt
import os
from decimal import Decimal
from typing import Any

from sqlalchemy.engine import URL, Connection

from polydb.core.models import PluginConfig

from .base import operation
from .relational import RelationalAdapter
from .types import DatabaseType

_TABLES = """
SELECT name, type AS "Type"
FROM sqlite_master
WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'
ORDER BY name
"""

_COLUMNS = """
SELECT m.name, p.name, p.type
FROM sqlite_master m
JOIN pragma_table_info(m.name) p
WHERE m.type IN ('table', 'view') AND m.name NOT LIKE 'sqlite_%'{table_filter}
ORDER BY m.name, p.cid
"""


class SQLiteAdapter(RelationalAdapter):
    """
    SQLite adapter.

    Suitable for:
    - Development and testing
    - Embedded and single-file databases
    """

    db_type = DatabaseType.SQLITE

    def url(self, config: PluginConfig) -> URL:
        path = config.credentials.database
        if not path:
            raise FileNotFoundError("SQLite database path is empty")
        if path != ":memory:" and not os.path.exists(path):
            raise FileNotFoundError(f"SQLite database file not found: {path}")
        return URL.create("sqlite", database=path)

    def connect_args(self, config: PluginConfig) -> dict[str, Any]:
        # sqlite3 has no statement timeout; this is the busy-lock wait
        return {"timeout": self.query_timeout(config), "check_same_thread": False}

    def on_connect(self, conn: Connection, config: PluginConfig) -> None:
        if config.advanced_flag("Foreign Keys", default=True):
            conn.exec_driver_sql("PRAGMA foreign_keys = ON")

    def bind_value(self, value: Any) -> Any:
        # sqlite3 binds neither Decimal nor (since 3.12, without warnings) dates
        if isinstance(value, Decimal):
            return str(value)
        # CURRENT_TIMESTAMP stores "YYYY-MM-DD HH:MM:SS"
        if isinstance(value, dt.datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, (dt.date, dt.time)):
            return value.isoformat()
        return super().bind_value(value)

    def inspector_schema(self, schema: str) -> str | None:
        return None

    # ── Catalog ──────────────────────────────────────────────────

    def databases_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]]:
        return "SELECT file FROM pragma_database_list WHERE name = 'main'", {}

    def tables_query(self, config: PluginConfig, schema: str) -> tuple[str, dict[str, Any]]:
        return _TABLES, {}

    def columns_query(
        self, config: PluginConfig, schema: str, table: str | None = None
    ) -> tuple[str, dict[str, Any]]:
        if table is None:
            return _COLUMNS.format(table_filter=""), {}
        return _COLUMNS.format(table_filter=" AND m.name = :table"), {"table": table}

    @operation("get_databases")
    def get_databases(self, config: PluginConfig) -> list[str]:
        with self._scope(config, "get_databases") as conn:
            files = self._names(conn, config, self.databases_query(config))
        # in-memory databases report an empty file name
        return [name or config.credentials.database for name in files]


__all__ = [
    "SQLiteAdapter",
]
