"""Oracle adapter.

Uses ``oracledb`` (python-oracledb), the driver that supersedes
``cx_Oracle``, through SQLAlchemy (``oracle+oracledb``).  Requires
Oracle 12c or newer for ``OFFSET … FETCH NEXT`` pagination.

Install the driver::

    pip install oracledb
    # or:  pip install polydb-core[oracle]

``Credentials.database`` is the service name (``Service Name`` in the
advanced options overrides it).  Schemas are users; an empty schema
means the connecting user.
"""

from __future__ import annotations

import math
from typing import Any

from sqlalchemy.engine import URL, Connection

from polydb.core.models import PluginConfig

from .relational import RelationalAdapter
from .types import DatabaseType

# bind names must not be reserved words (TABLE, SCHEMA …)
_TABLES = """
SELECT table_name,
       'TABLE' AS "Type",
       COALESCE(num_rows, 0) AS "Count"
FROM all_tables
WHERE owner = :owner
ORDER BY table_name
"""

_COLUMNS = """
SELECT table_name, column_name, data_type
FROM all_tab_columns
WHERE owner = :owner{table_filter}
ORDER BY table_name, column_id
"""


class OracleAdapter(RelationalAdapter):
    """Oracle database adapter."""

    db_type = DatabaseType.ORACLE
    driver_module = "oracledb"
    driver_package = "oracledb"

    def _owner(self, config: PluginConfig, schema: str) -> str:
        return schema or config.credentials.username.upper()

    def url(self, config: PluginConfig) -> URL:
        credentials = config.credentials
        service = config.advanced("Service Name") or credentials.database or "XEPDB1"
        return URL.create(
            "oracle+oracledb",
            username=credentials.username or None,
            password=credentials.password or None,
            host=credentials.hostname or "localhost",
            port=config.port(1521),
            query={"service_name": service},
        )

    def connect_args(self, config: PluginConfig) -> dict[str, Any]:
        return {"tcp_connect_timeout": float(self.connect_timeout(config))}

    def on_connect(self, conn: Connection, config: PluginConfig) -> None:
        conn.connection.driver_connection.call_timeout = math.ceil(self.query_timeout(config) * 1000)

    def type_name(self, type_code: Any) -> str:
        name = super().type_name(type_code)
        return name.removeprefix("DB_TYPE_")

    def bind_value(self, value: Any) -> Any:
        # no SQL BOOLEAN before 23ai
        if isinstance(value, bool):
            return int(value)
        return super().bind_value(value)

    def reflection_name(self, conn: Connection, name: str) -> str:
        return conn.dialect.normalize_name(name)

    def catalog_name(self, conn: Connection, name: str) -> str:
        return conn.dialect.denormalize_name(name)

    def inspector_schema(self, schema: str) -> str | None:
        if not schema:
            return None
        return schema.lower() if schema.isupper() else schema

    # ── Catalog ──────────────────────────────────────────────────

    def databases_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]]:
        return "SELECT SYS_CONTEXT('USERENV', 'DB_NAME') FROM DUAL", {}

    def schemas_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]]:
        return (
            "SELECT username FROM all_users WHERE oracle_maintained = 'N' ORDER BY username",
            {},
        )

    def tables_query(self, config: PluginConfig, schema: str) -> tuple[str, dict[str, Any]]:
        return _TABLES, {"owner": self._owner(config, schema)}

    def columns_query(
        self, config: PluginConfig, schema: str, table: str | None = None
    ) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {"owner": self._owner(config, schema)}
        if table is None:
            return _COLUMNS.format(table_filter=""), params
        params["tbl"] = table
        return _COLUMNS.format(table_filter=" AND table_name = :tbl"), params


__all__ = [
    "OracleAdapter",
]
