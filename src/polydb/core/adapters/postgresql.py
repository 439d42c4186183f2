"""PostgreSQL adapter.

Uses ``psycopg2`` through SQLAlchemy (``postgresql+psycopg2``).

Install the driver::

    pip install psycopg2-binary
    # or:  pip install polydb-core[postgresql]

Advanced options: ``Port`` (default 5432), ``SSL Mode`` (libpq
``sslmode``, default ``prefer``).  The per-call timeout becomes both the
libpq ``connect_timeout`` and the session ``statement_timeout``.
"""

from __future__ import annotations

import math
from typing import Any

from sqlalchemy.engine import URL

from polydb.core.models import PluginConfig

from .relational import RelationalAdapter
from .types import DatabaseType

# psycopg2 reports result column types as pg_type OIDs
_PG_TYPES = {
    16: "bool",
    17: "bytea",
    18: "char",
    20: "int8",
    21: "int2",
    23: "int4",
    25: "text",
    114: "json",
    700: "float4",
    701: "float8",
    1042: "bpchar",
    1043: "varchar",
    1082: "date",
    1083: "time",
    1114: "timestamp",
    1184: "timestamptz",
    1186: "interval",
    1266: "timetz",
    1700: "numeric",
    2950: "uuid",
    3802: "jsonb",
}

_TABLES = """
SELECT t.table_name,
       t.table_type AS "Type",
       COALESCE(pg_size_pretty(pg_total_relation_size(s.relid)), '') AS "Total Size",
       COALESCE(s.n_live_tup, 0) AS "Count"
FROM information_schema.tables t
LEFT JOIN pg_stat_user_tables s
       ON s.schemaname = t.table_schema AND s.relname = t.table_name
WHERE t.table_schema = :schema
ORDER BY t.table_name
"""

_COLUMNS = """
SELECT table_name, column_name, data_type
FROM information_schema.columns
WHERE table_schema = :schema{table_filter}
ORDER BY table_name, ordinal_position
"""


class PostgreSQLAdapter(RelationalAdapter):
    """PostgreSQL adapter (``ILIKE`` available in filters)."""

    db_type = DatabaseType.POSTGRESQL
    driver_module = "psycopg2"
    driver_package = "psycopg2-binary"

    def url(self, config: PluginConfig) -> URL:
        credentials = config.credentials
        return URL.create(
            "postgresql+psycopg2",
            username=credentials.username or None,
            password=credentials.password or None,
            host=credentials.hostname or "localhost",
            port=config.port(5432),
            database=credentials.database or "postgres",
        )

    def connect_args(self, config: PluginConfig) -> dict[str, Any]:
        statement_ms = int(self.query_timeout(config) * 1000)
        return {
            "connect_timeout": max(1, math.ceil(self.connect_timeout(config))),
            "sslmode": config.advanced("SSL Mode", "prefer"),
            "options": f"-c statement_timeout={statement_ms}",
        }

    def type_name(self, type_code: Any) -> str:
        if isinstance(type_code, int):
            return _PG_TYPES.get(type_code, str(type_code))
        return super().type_name(type_code)

    # ── Catalog ──────────────────────────────────────────────────

    def databases_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]]:
        return (
            "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname",
            {},
        )

    def schemas_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]]:
        return (
            "SELECT schema_name FROM information_schema.schemata "
            "WHERE schema_name NOT LIKE 'pg\\_%' AND schema_name <> 'information_schema' "
            "ORDER BY schema_name",
            {},
        )

    def tables_query(self, config: PluginConfig, schema: str) -> tuple[str, dict[str, Any]]:
        return _TABLES, {"schema": schema or "public"}

    def columns_query(
        self, config: PluginConfig, schema: str, table: str | None = None
    ) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {"schema": schema or "public"}
        if table is None:
            return _COLUMNS.format(table_filter=""), params
        params["table"] = table
        return _COLUMNS.format(table_filter=" AND table_name = :table"), params

    def inspector_schema(self, schema: str) -> str | None:
        return schema or "public"


__all__ = [
    "PostgreSQLAdapter",
]
