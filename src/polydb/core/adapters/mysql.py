"""MySQL and MariaDB adapters.

Uses ``mysql.connector`` from the ``mysql-connector-python`` package
through SQLAlchemy (``mysql+mysqlconnector``).

Install the driver::

    pip install mysql-connector-python
    # or:  pip install polydb-core[mysql]

In MySQL a schema *is* a database, so ``get_databases`` and
``get_all_schemas`` return the same list and an empty schema argument
falls back to ``Credentials.database``.

DDL statements (``add_storage_unit``) commit implicitly on MySQL; the
surrounding transaction cannot roll them back.
"""

from __future__ import annotations

import importlib
import math
from typing import Any

from sqlalchemy.engine import URL, Connection

from polydb.core.models import PluginConfig

from .relational import RelationalAdapter
from .types import DatabaseType

_SCHEMATA = (
    "SELECT schema_name FROM information_schema.schemata "
    "WHERE schema_name NOT IN ('information_schema', 'mysql', 'performance_schema', 'sys') "
    "ORDER BY schema_name"
)

_TABLES = """
SELECT table_name,
       table_type AS `Type`,
       COALESCE(data_length + index_length, 0) AS `Total Size`,
       COALESCE(table_rows, 0) AS `Count`
FROM information_schema.tables
WHERE table_schema = :schema
ORDER BY table_name
"""

_COLUMNS = """
SELECT table_name, column_name, data_type
FROM information_schema.columns
WHERE table_schema = :schema{table_filter}
ORDER BY table_name, ordinal_position
"""


class MySQLAdapter(RelationalAdapter):
    """MySQL adapter (``REGEXP`` available in filters)."""

    db_type = DatabaseType.MYSQL
    driver_module = "mysql.connector"
    driver_package = "mysql-connector-python"

    def _schema(self, config: PluginConfig, schema: str) -> str:
        return schema or config.credentials.database

    def url(self, config: PluginConfig) -> URL:
        credentials = config.credentials
        return URL.create(
            "mysql+mysqlconnector",
            username=credentials.username or None,
            password=credentials.password or None,
            host=credentials.hostname or "localhost",
            port=config.port(3306),
            database=credentials.database or None,
        )

    def connect_args(self, config: PluginConfig) -> dict[str, Any]:
        args: dict[str, Any] = {
            "connection_timeout": max(1, math.ceil(self.connect_timeout(config))),
        }
        if (config.advanced("SSL Mode") or "").lower() in ("disable", "disabled"):
            args["ssl_disabled"] = True
        return args

    def on_connect(self, conn: Connection, config: PluginConfig) -> None:
        # applies to SELECT statements only
        conn.exec_driver_sql(
            f"SET SESSION MAX_EXECUTION_TIME = {int(self.query_timeout(config) * 1000)}"
        )

    def type_name(self, type_code: Any) -> str:
        if isinstance(type_code, int):
            field_type = importlib.import_module("mysql.connector").FieldType
            return field_type.get_info(type_code) or str(type_code)
        return super().type_name(type_code)

    # ── Catalog ──────────────────────────────────────────────────

    def databases_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]]:
        return _SCHEMATA, {}

    def schemas_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]]:
        return _SCHEMATA, {}

    def tables_query(self, config: PluginConfig, schema: str) -> tuple[str, dict[str, Any]]:
        return _TABLES, {"schema": self._schema(config, schema)}

    def columns_query(
        self, config: PluginConfig, schema: str, table: str | None = None
    ) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {"schema": self._schema(config, schema)}
        if table is None:
            return _COLUMNS.format(table_filter=""), params
        params["table"] = table
        return _COLUMNS.format(table_filter=" AND table_name = :table"), params


class MariaDBAdapter(MySQLAdapter):
    """MariaDB adapter: MySQL wire protocol and catalog, own timeout variable."""

    db_type = DatabaseType.MARIADB

    def on_connect(self, conn: Connection, config: PluginConfig) -> None:
        conn.exec_driver_sql(f"SET SESSION max_statement_time = {self.query_timeout(config):g}")


__all__ = [
    "MySQLAdapter",
    "MariaDBAdapter",
]
