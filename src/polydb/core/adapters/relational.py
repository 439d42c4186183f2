"""Relational adapter base - shared SQL toolkit on SQLAlchemy Core.

Manifesto:
    PostgreSQL, MySQL/MariaDB, SQLite and Oracle differ in their system
    catalogs, identifier quoting and pagination syntax.  They do not differ
    in how a filtered page is fetched, how a row is inserted or how a
    foreign key is classified.  This base owns the second list; a dialect
    adapter supplies only the first.

    - **Per-call engine:** ``create_engine(..., poolclass=NullPool)``, one
      connection per operation through the Connection Scope Helper
    - **Bound values only:** ``text()`` with named binds, never formatting
    - **Live metadata:** column types come from the catalog on every call
      and drive value coercion before anything is sent

Architecture::

    RelationalAdapter (this module)
        │  url() / connect_args() / on_connect()      ← dialect adapter
        │  databases_query() / schemas_query()        ← dialect adapter
        │  tables_query() / columns_query()           ← dialect adapter
        │  type_name() / bind_value()                 ← dialect adapter
        │
        ├── get_storage_units   tables + grouped columns
        ├── get_rows            SELECT * … WHERE … ORDER BY pk … page
        ├── add_row / update_storage_unit / delete_row
        ├── add_storage_unit    CREATE TABLE (types validated)
        ├── raw_execute         exec_driver_sql in one transaction
        ├── get_graph           Inspector keys → graph.build_graph
        └── chat                provider passthrough → raw_execute

Guardrails:
    ❌ DON'T: ``f"WHERE {col} = '{value}'"``
    ✅ DO: ``compile_where()`` / named binds

    ❌ DON'T: Read first and ``conn.begin()`` afterwards (autobegin conflict)
    ✅ DO: Open the transaction before the first statement of a write

Tags:
    polydb, relational, sqlalchemy, crud, introspection, pagination

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
import re
import uuid
from abc import abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import URL, Connection
from sqlalchemy.pool import NullPool

from polydb.core.coercion import TypeFamily, coerce, to_display, type_family
from polydb.core.connection import connection_scope
from polydb.core.dialect import Dialect, get_dialect
from polydb.core.errors import MalformedInputError, PolyDBError
from polydb.core.filters import WhereCondition
from polydb.core.logging import get_logger
from polydb.core.models import (
    ChatMessage,
    Column,
    GraphUnit,
    PluginConfig,
    Record,
    RowsResult,
    StorageUnit,
)
from polydb.core.protocols import ChatProvider, ChatRequest

from .base import DatabaseAdapter, import_driver, operation
from .graph import ForeignKey, TableKeys, build_graph
from .sql_filter import compile_where, resolve_column

logger = get_logger(__name__)

# Column types accepted in DDL: a name plus optional (n) or (p, s)
_DDL_TYPE = re.compile(r"^[A-Za-z][A-Za-z0-9_ ]*(\(\s*\d+\s*(,\s*\d+\s*)?\))?$")

_UNORDERABLE = frozenset({TypeFamily.JSON, TypeFamily.BINARY})


class RelationalAdapter(DatabaseAdapter):
    """
    Base class for SQL-family adapters.

    Subclasses set ``db_type``, ``driver_module`` / ``driver_package`` and
    implement the catalog queries.  Catalog queries return ``(sql, params)``
    for ``text()``; the first selected column is always the name, any
    further columns of ``tables_query`` become labelled attributes.
    """

    driver_module: str = ""
    driver_package: str = ""

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.db_type.value)

    # ── Dialect hooks ────────────────────────────────────────────

    @abstractmethod
    def url(self, config: PluginConfig) -> URL:
        """SQLAlchemy URL for the credentials."""
        ...

    def connect_args(self, config: PluginConfig) -> dict[str, Any]:
        """Keyword arguments passed to the DBAPI ``connect()``."""
        return {}

    def on_connect(self, conn: Connection, config: PluginConfig) -> None:
        """Per-connection session setup (timeouts, pragmas)."""

    @abstractmethod
    def databases_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]]:
        ...

    def schemas_query(self, config: PluginConfig) -> tuple[str, dict[str, Any]] | None:
        """Schema listing; ``None`` for engines without schemas."""
        return None

    @abstractmethod
    def tables_query(self, config: PluginConfig, schema: str) -> tuple[str, dict[str, Any]]:
        ...

    @abstractmethod
    def columns_query(
        self, config: PluginConfig, schema: str, table: str | None = None
    ) -> tuple[str, dict[str, Any]]:
        """Rows of ``(table, column, type)`` in ordinal order."""
        ...

    def type_name(self, type_code: Any) -> str:
        """Name for a DBAPI ``cursor.description`` type code."""
        if type_code is None:
            return ""
        name = getattr(type_code, "name", None)
        return str(name) if name else str(type_code)

    def bind_value(self, value: Any) -> Any:
        """Adapt a coerced value to something the driver can bind."""
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value

    def reflection_name(self, conn: Connection, name: str) -> str:
        """Catalog name → name the SQLAlchemy inspector expects."""
        return name

    def catalog_name(self, conn: Connection, name: str) -> str:
        """Inspector-reported name → catalog name."""
        return name

    def inspector_schema(self, schema: str) -> str | None:
        return schema or None

    # ── Connection ───────────────────────────────────────────────

    def _require_driver(self) -> None:
        if self.driver_module:
            import_driver(self.driver_module, self.driver_package or self.driver_module)

    def _connect(self, config: PluginConfig) -> Connection:
        self._require_driver()
        engine = create_engine(
            self.url(config),
            poolclass=NullPool,
            connect_args=self.connect_args(config),
        )
        try:
            conn = engine.connect()
        except Exception:
            engine.dispose()
            raise
        try:
            self.on_connect(conn, config)
            # writes call conn.begin(); no autobegun transaction may remain
            if conn.in_transaction():
                conn.commit()
        except Exception:
            conn.close()
            engine.dispose()
            raise
        return conn

    @staticmethod
    def _release(conn: Connection) -> None:
        engine = conn.engine
        try:
            conn.close()
        finally:
            engine.dispose()

    @contextmanager
    def _scope(self, config: PluginConfig, operation_name: str) -> Iterator[Connection]:
        with connection_scope(
            config,
            self._connect,
            release=self._release,
            engine=self.name,
            operation_name=operation_name,
        ) as conn:
            yield conn

    def _ping(self, config: PluginConfig) -> None:
        with self._scope(config, "is_available") as conn:
            conn.exec_driver_sql(self.dialect.ping_query()).fetchall()

    # ── SQL helpers ──────────────────────────────────────────────

    def _ident(self, name: str) -> str:
        """Quoted identifier, safe inside ``text()`` (colons escaped)."""
        return self.dialect.quote_identifier(name).replace(":", "\\:")

    def _table(self, schema: str, table: str) -> str:
        return self.dialect.qualify(schema, table).replace(":", "\\:")

    def _names(self, conn: Connection, config: PluginConfig, query: tuple[str, dict[str, Any]]) -> list[str]:
        sql, params = query
        return [str(row[0]) for row in conn.execute(text(sql), params)]

    def _columns(
        self, conn: Connection, config: PluginConfig, schema: str, table: str | None = None
    ) -> dict[str, list[Column]]:
        sql, params = self.columns_query(config, schema, table)
        grouped: dict[str, list[Column]] = {}
        for row in conn.execute(text(sql), params):
            grouped.setdefault(str(row[0]), []).append(Column(name=str(row[1]), type=str(row[2] or "")))
        return grouped

    def _column_types(self, conn: Connection, config: PluginConfig, schema: str, table: str) -> dict[str, str]:
        columns = self._columns(conn, config, schema, table).get(table)
        if not columns:
            raise MalformedInputError(
                f"Unknown storage unit: {table!r}", field=table
            ).with_context(schema=schema or None, storage_unit=table)
        return {column.name: column.type for column in columns}

    def _primary_key(self, conn: Connection, schema: str, table: str) -> list[str]:
        inspector = inspect(conn)
        pk = inspector.get_pk_constraint(
            self.reflection_name(conn, table), schema=self.inspector_schema(schema)
        )
        return [self.catalog_name(conn, name) for name in pk.get("constrained_columns") or []]

    def _coerce(self, value: str, column: str, type_name: str) -> Any:
        if value == "" and type_family(type_name) is not TypeFamily.TEXT:
            return None
        return self.bind_value(coerce(value, type_name, field=column))

    def _resolve(self, key: str, columns: Mapping[str, str], table: str) -> str:
        column = resolve_column(key, columns)
        if column is None:
            raise MalformedInputError(f"Unknown column {key!r} in {table!r}", field=key).with_context(
                storage_unit=table
            )
        return column

    def _record_values(self, values: list[Record], columns: Mapping[str, str], table: str) -> dict[str, str]:
        if not values:
            raise MalformedInputError(f"No values given for {table!r}").with_context(storage_unit=table)
        return {self._resolve(record.key, columns, table): record.value for record in values}

    def _match_clause(
        self,
        key_columns: list[str],
        record: Mapping[str, str],
        columns: Mapping[str, str],
        params: dict[str, Any],
    ) -> str:
        parts = []
        for column in key_columns:
            value = self._coerce(record[column], column, columns[column])
            if value is None:
                parts.append(f"{self._ident(column)} IS NULL")
            else:
                name = f"k{len(params)}"
                params[name] = value
                parts.append(f"{self._ident(column)} = :{name}")
        return " AND ".join(parts)

    def _address(
        self,
        conn: Connection,
        schema: str,
        table: str,
        record: Mapping[str, str],
        columns: Mapping[str, str],
        exclude: set[str] = frozenset(),
    ) -> list[str]:
        """Columns that identify the row: the PK when given, else the other values."""
        pk = self._primary_key(conn, schema, table)
        if pk and all(column in record for column in pk) and not (set(pk) & exclude):
            return pk
        candidates = [c for c in record if c not in exclude]
        comparable = [c for c in candidates if type_family(columns[c]) not in _UNORDERABLE]
        key = comparable or candidates
        if not key:
            raise MalformedInputError(
                f"Cannot address a row in {table!r}: no identifying values given"
            ).with_context(storage_unit=table)
        return key

    # ── Introspection ────────────────────────────────────────────

    @operation("get_databases")
    def get_databases(self, config: PluginConfig) -> list[str]:
        with self._scope(config, "get_databases") as conn:
            return self._names(conn, config, self.databases_query(config))

    @operation("get_all_schemas")
    def get_all_schemas(self, config: PluginConfig) -> list[str]:
        query = self.schemas_query(config)
        if query is None:
            return []
        with self._scope(config, "get_all_schemas") as conn:
            return self._names(conn, config, query)

    def _storage_units(self, conn: Connection, config: PluginConfig, schema: str) -> list[StorageUnit]:
        sql, params = self.tables_query(config, schema)
        result = conn.execute(text(sql), params)
        labels = list(result.keys())[1:]
        tables = [(str(row[0]), list(row[1:])) for row in result]
        columns = self._columns(conn, config, schema)

        units = []
        for name, values in tables:
            attributes = [Record(key=label, value=to_display(value)) for label, value in zip(labels, values)]
            attributes.extend(
                Record(key=column.name, value=column.type, extra={"kind": "column"})
                for column in columns.get(name, [])
            )
            units.append(StorageUnit(name=name, attributes=attributes))
        return units

    @operation("get_storage_units")
    def get_storage_units(self, config: PluginConfig, schema: str) -> list[StorageUnit]:
        with self._scope(config, "get_storage_units") as conn:
            return self._storage_units(conn, config, schema)

    @operation("get_rows")
    def get_rows(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        where: WhereCondition | None = None,
        page_size: int = 100,
        page_offset: int = 0,
    ) -> RowsResult:
        self._check_page(page_size, page_offset)
        self._check_filter(where)
        with self._scope(config, "get_rows") as conn:
            columns = self._column_types(conn, config, schema, storage_unit)
            where_sql, params = compile_where(where, columns, self.dialect, bind=self.bind_value)

            order = self._primary_key(conn, schema, storage_unit) or [
                name for name, type_name in columns.items() if type_family(type_name) not in _UNORDERABLE
            ]
            sql = f"SELECT * FROM {self._table(schema, storage_unit)}"
            if where_sql:
                sql += f" WHERE {where_sql}"
            if order:
                sql += " ORDER BY " + ", ".join(self._ident(name) for name in order)
            sql += " " + self.dialect.paginate(":page_limit", ":page_offset")
            params.update(page_limit=page_size, page_offset=page_offset)

            result = conn.execute(text(sql), params)
            names = list(result.keys())
            rows = [[to_display(value) for value in row] for row in result]

        logger.debug("rows_fetched", engine=self.name, storage_unit=storage_unit, count=len(rows))
        return RowsResult(
            columns=[Column(name=name, type=columns.get(name, "")) for name in names],
            rows=rows,
            disable_update=False,
        )

    # ── Mutations ────────────────────────────────────────────────

    @operation("add_storage_unit")
    def add_storage_unit(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        fields: list[Record],
    ) -> bool:
        if not fields:
            raise MalformedInputError(f"No fields given for {storage_unit!r}")

        definitions = []
        primary = []
        for record in fields:
            type_name = record.value.strip()
            if not _DDL_TYPE.match(type_name) or not self.dialect.supports_column_type(type_name):
                raise MalformedInputError(
                    f"Unsupported column type {record.value!r} for {self.name}",
                    field=record.key,
                    value=record.value,
                )
            definition = f"{self.dialect.quote_identifier(record.key)} {type_name}"
            nullable = record.get_extra("nullable")
            if nullable is not None and not record.flag("nullable"):
                definition += " NOT NULL"
            definitions.append(definition)
            if record.flag("primary"):
                primary.append(self.dialect.quote_identifier(record.key))
        if primary:
            definitions.append(f"PRIMARY KEY ({', '.join(primary)})")

        ddl = f"CREATE TABLE {self.dialect.qualify(schema, storage_unit)} ({', '.join(definitions)})"
        with self._scope(config, "add_storage_unit") as conn, conn.begin():
            conn.exec_driver_sql(ddl)
        logger.info("storage_unit_created", engine=self.name, storage_unit=storage_unit)
        return True

    @operation("add_row")
    def add_row(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
    ) -> bool:
        with self._scope(config, "add_row") as conn, conn.begin():
            columns = self._column_types(conn, config, schema, storage_unit)
            record = self._record_values(values, columns, storage_unit)
            params = {f"v{i}": self._coerce(value, column, columns[column]) for i, (column, value) in enumerate(record.items())}
            sql = (
                f"INSERT INTO {self._table(schema, storage_unit)} "
                f"({', '.join(self._ident(column) for column in record)}) "
                f"VALUES ({', '.join(':' + name for name in params)})"
            )
            conn.execute(text(sql), params)
        return True

    @operation("update_storage_unit")
    def update_storage_unit(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
        updated_columns: list[str],
    ) -> bool:
        with self._scope(config, "update_storage_unit") as conn, conn.begin():
            columns = self._column_types(conn, config, schema, storage_unit)
            record = self._record_values(values, columns, storage_unit)
            updated = [self._resolve(name, columns, storage_unit) for name in updated_columns]
            if not updated:
                raise MalformedInputError("No updated columns given", field="updated_columns")
            for column in updated:
                if column not in record:
                    raise MalformedInputError(f"No value given for updated column {column!r}", field=column)

            params: dict[str, Any] = {}
            assignments = []
            for i, column in enumerate(updated):
                params[f"s{i}"] = self._coerce(record[column], column, columns[column])
                assignments.append(f"{self._ident(column)} = :s{i}")
            key = self._address(conn, schema, storage_unit, record, columns, exclude=set(updated))
            match = self._match_clause(key, record, columns, params)

            sql = f"UPDATE {self._table(schema, storage_unit)} SET {', '.join(assignments)} WHERE {match}"
            result = conn.execute(text(sql), params)
            return result.rowcount > 0

    @operation("delete_row")
    def delete_row(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
    ) -> bool:
        with self._scope(config, "delete_row") as conn, conn.begin():
            columns = self._column_types(conn, config, schema, storage_unit)
            record = self._record_values(values, columns, storage_unit)
            params: dict[str, Any] = {}
            key = self._address(conn, schema, storage_unit, record, columns)
            match = self._match_clause(key, record, columns, params)
            result = conn.execute(text(f"DELETE FROM {self._table(schema, storage_unit)} WHERE {match}"), params)
            return result.rowcount > 0

    # ── Raw SQL ──────────────────────────────────────────────────

    @operation("raw_execute")
    def raw_execute(self, config: PluginConfig, query: str) -> RowsResult:
        if not query or not query.strip():
            raise MalformedInputError("Query must not be empty", field="query")
        with self._scope(config, "raw_execute") as conn, conn.begin():
            result = conn.exec_driver_sql(query)
            if not result.returns_rows:
                return RowsResult(
                    columns=[Column(name="rows_affected", type="int")],
                    rows=[[str(result.rowcount)]],
                    disable_update=True,
                )
            description = result.cursor.description or []
            columns = [Column(name=str(entry[0]), type=self.type_name(entry[1])) for entry in description]
            rows = [[to_display(value) for value in row] for row in result]
        return RowsResult(columns=columns, rows=rows, disable_update=True)

    # ── Graph ────────────────────────────────────────────────────

    def _table_keys(self, conn: Connection, inspector: Any, schema: str, unit: StorageUnit) -> TableKeys:
        name = self.reflection_name(conn, unit.name)
        own_schema = self.inspector_schema(schema)

        def restore(cols: list[str]) -> tuple[str, ...]:
            return tuple(self.catalog_name(conn, c) for c in cols if c)

        pk = inspector.get_pk_constraint(name, schema=own_schema).get("constrained_columns") or []
        unique_sets = [
            frozenset(restore(uc.get("column_names") or []))
            for uc in inspector.get_unique_constraints(name, schema=own_schema)
        ]
        unique_sets.extend(
            frozenset(restore(ix.get("column_names") or []))
            for ix in inspector.get_indexes(name, schema=own_schema)
            if ix.get("unique")
        )

        foreign_keys = []
        for fk in inspector.get_foreign_keys(name, schema=own_schema):
            target = self.catalog_name(conn, fk["referred_table"])
            referred_schema = fk.get("referred_schema")
            if referred_schema and own_schema and referred_schema != own_schema:
                target = f"{self.catalog_name(conn, referred_schema)}.{target}"
            foreign_keys.append(
                ForeignKey(
                    columns=restore(fk.get("constrained_columns") or []),
                    referred_table=target,
                    referred_columns=restore(fk.get("referred_columns") or []),
                )
            )

        return TableKeys(
            name=unit.name,
            columns=tuple(r.key for r in unit.attributes if r.get_extra("kind") == "column"),
            primary_key=restore(pk),
            unique_sets=tuple(s for s in unique_sets if s),
            foreign_keys=tuple(foreign_keys),
        )

    @operation("get_graph")
    def get_graph(self, config: PluginConfig, schema: str) -> list[GraphUnit]:
        with self._scope(config, "get_graph") as conn:
            units = self._storage_units(conn, config, schema)
            inspector = inspect(conn)
            tables = [self._table_keys(conn, inspector, schema, unit) for unit in units]
        return build_graph(units, tables)

    # ── Chat ─────────────────────────────────────────────────────

    @operation("chat")
    def chat(
        self,
        config: PluginConfig,
        schema: str,
        query: str,
        provider: ChatProvider,
        previous_conversation: str = "",
    ) -> list[ChatMessage]:
        request = ChatRequest(
            engine=self.name,
            schema=schema,
            query=query,
            storage_units=self.get_storage_units(config, schema),
            previous_conversation=previous_conversation,
        )
        messages = []
        for reply in provider.complete(request):
            if reply.type != "sql":
                messages.append(ChatMessage(type=reply.type or "message", text=reply.text))
                continue
            try:
                result = self.raw_execute(config, reply.text)
            except PolyDBError as exc:
                logger.warning("chat_query_failed", engine=self.name, error=exc.message)
                messages.append(ChatMessage(type="error", text=exc.message))
            else:
                messages.append(ChatMessage(type="sql", text=reply.text, result=result))
        return messages

    # ── Discovery ────────────────────────────────────────────────

    def get_supported_operators(self) -> frozenset[str]:
        return self.dialect.operators

    def get_supported_column_types(self) -> list[str]:
        return list(self.dialect.column_types)


__all__ = [
    "RelationalAdapter",
]
