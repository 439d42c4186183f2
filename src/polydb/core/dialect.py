"""SQL dialect abstraction for the relational adapters.

Provides a ``Dialect`` protocol and concrete implementations for every
supported SQL engine.  The relational adapter base uses ``Dialect``
methods to produce SQL fragments (quoted identifiers, pagination,
connectivity probes) and to validate filter operators and DDL column
types without referencing any specific database driver.

Manifesto:
    The generic row/filter/DDL code in ``adapters/relational.py`` must
    be identical for PostgreSQL, MySQL/MariaDB, SQLite and Oracle.
    Everything that differs between them in that code path lives here.

    - **One interface:** Dialect protocol for all SQL fragments
    - **Zero coupling:** No driver imports
    - **Validation lists:** supported operators and column types per engine

Architecture::

    ┌──────────┐ ┌──────────────┐ ┌──────────────┐ ┌────────────────┐
    │ SQLite   │ │ PostgreSQL   │ │ MySQL/Maria  │ │ Oracle         │
    │ "ident"  │ │ "ident"      │ │ `ident`      │ │ "IDENT"        │
    │ LIMIT ·  │ │ LIMIT ·      │ │ LIMIT ·      │ │ OFFSET · ROWS  │
    │ OFFSET · │ │ OFFSET ·     │ │ OFFSET ·     │ │ FETCH NEXT ·   │
    │ SELECT 1 │ │ SELECT 1     │ │ SELECT 1     │ │ … FROM DUAL    │
    └──────────┘ └──────────────┘ └──────────────┘ └────────────────┘

Examples:
    >>> from polydb.core.dialect import get_dialect
    >>> d = get_dialect("mysql")
    >>> d.quote_identifier("order")
    '`order`'
    >>> d.qualify("shop", "order")
    '`shop`.`order`'
    >>> get_dialect("oracle").paginate(":page_limit", ":page_offset")
    'OFFSET :page_offset ROWS FETCH NEXT :page_limit ROWS ONLY'

Guardrails:
    ❌ DON'T: Concatenate unquoted identifiers into SQL
    ✅ DO: Use ``quote_identifier`` / ``qualify``

    ❌ DON'T: Interpolate values into SQL
    ✅ DO: Bind them; pagination takes placeholder names, not numbers

Tags:
    dialect, sql, quoting, pagination, polydb, multi-backend

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from polydb.core.filters import CORE_OPERATORS, Operator


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every fragment method returns a string that is valid for the target
    database and safe to splice into a statement.
    """

    @property
    def name(self) -> str:
        """Dialect name (e.g. ``'sqlite'``)."""
        ...

    def quote_identifier(self, identifier: str) -> str:
        """Quote one identifier, escaping embedded quote characters."""
        ...

    def qualify(self, schema: str | None, table: str) -> str:
        """Quoted ``schema.table``; just the table when ``schema`` is empty."""
        ...

    def paginate(self, limit_param: str, offset_param: str) -> str:
        """Pagination clause using the given bind placeholders."""
        ...

    def ping_query(self) -> str:
        """Cheapest statement that proves the connection works."""
        ...

    @property
    def operators(self) -> frozenset[str]:
        """Filter operators this dialect accepts."""
        ...

    @property
    def column_types(self) -> tuple[str, ...]:
        """Column types accepted by ``add_storage_unit`` DDL."""
        ...

    def supports_column_type(self, type_name: str) -> bool:
        """Whether ``type_name`` is in ``column_types`` (parameters ignored)."""
        ...


class _BaseDialect:
    """Shared implementation; subclasses set quote char and lists."""

    _name = ""
    _quote = '"'
    _extra_operators: frozenset[str] = frozenset()
    _column_types: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self._name

    def quote_identifier(self, identifier: str) -> str:
        q = self._quote
        return f"{q}{identifier.replace(q, q + q)}{q}"

    def qualify(self, schema: str | None, table: str) -> str:
        if schema:
            return f"{self.quote_identifier(schema)}.{self.quote_identifier(table)}"
        return self.quote_identifier(table)

    def paginate(self, limit_param: str, offset_param: str) -> str:
        return f"LIMIT {limit_param} OFFSET {offset_param}"

    def ping_query(self) -> str:
        return "SELECT 1"

    @property
    def operators(self) -> frozenset[str]:
        return CORE_OPERATORS | self._extra_operators

    @property
    def column_types(self) -> tuple[str, ...]:
        return self._column_types

    def supports_column_type(self, type_name: str) -> bool:
        """Case-insensitive check on the base type name (``VARCHAR(20)`` → ``VARCHAR``)."""
        base = type_name.strip().upper().split("(", 1)[0].strip()
        return base in {t.upper() for t in self._column_types}

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SQLiteDialect(_BaseDialect):
    """SQLite dialect: ``"ident"`` quoting, ``LIMIT/OFFSET``."""

    _name = "sqlite"
    _column_types = (
        "INTEGER", "INT", "BIGINT", "SMALLINT", "REAL", "DOUBLE", "FLOAT",
        "NUMERIC", "DECIMAL", "BOOLEAN", "TEXT", "VARCHAR", "CHAR", "BLOB",
        "DATE", "DATETIME", "TIMESTAMP", "JSON",
    )

    def qualify(self, schema: str | None, table: str) -> str:
        # Attached-database prefixes are not exposed as schemas
        return self.quote_identifier(table)


class PostgreSQLDialect(_BaseDialect):
    """PostgreSQL dialect: ``"ident"`` quoting, ``ILIKE`` extra."""

    _name = "postgresql"
    _extra_operators = frozenset({Operator.ILIKE.value})
    _column_types = (
        "SMALLINT", "INTEGER", "BIGINT", "SERIAL", "BIGSERIAL", "SMALLSERIAL",
        "DECIMAL", "NUMERIC", "REAL", "DOUBLE PRECISION", "MONEY",
        "CHAR", "CHARACTER", "VARCHAR", "CHARACTER VARYING", "TEXT",
        "BYTEA", "BOOLEAN", "DATE", "TIME", "TIMETZ", "TIMESTAMP", "TIMESTAMPTZ",
        "INTERVAL", "UUID", "JSON", "JSONB", "XML", "INET", "CIDR", "MACADDR",
    )


class MySQLDialect(_BaseDialect):
    """MySQL / MariaDB dialect: backtick quoting, ``REGEXP`` extra."""

    _name = "mysql"
    _quote = "`"
    _extra_operators = frozenset({Operator.REGEXP.value})
    _column_types = (
        "TINYINT", "SMALLINT", "MEDIUMINT", "INT", "INTEGER", "BIGINT",
        "DECIMAL", "NUMERIC", "FLOAT", "DOUBLE", "BIT", "BOOLEAN", "BOOL",
        "CHAR", "VARCHAR", "TINYTEXT", "TEXT", "MEDIUMTEXT", "LONGTEXT",
        "BINARY", "VARBINARY", "BLOB", "MEDIUMBLOB", "LONGBLOB",
        "DATE", "TIME", "DATETIME", "TIMESTAMP", "YEAR", "JSON", "ENUM", "SET",
    )


class OracleDialect(_BaseDialect):
    """Oracle dialect: ``"IDENT"`` quoting, ``OFFSET … FETCH NEXT`` (12c+)."""

    _name = "oracle"
    _column_types = (
        "NUMBER", "INTEGER", "FLOAT", "BINARY_FLOAT", "BINARY_DOUBLE",
        "CHAR", "NCHAR", "VARCHAR2", "NVARCHAR2", "CLOB", "NCLOB", "BLOB",
        "RAW", "DATE", "TIMESTAMP", "INTERVAL", "JSON",
    )

    def paginate(self, limit_param: str, offset_param: str) -> str:
        return f"OFFSET {offset_param} ROWS FETCH NEXT {limit_param} ROWS ONLY"

    def ping_query(self) -> str:
        return "SELECT 1 FROM DUAL"


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, _BaseDialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "mysql": MySQLDialect(),
    "mariadb": MySQLDialect(),
    "oracle": OracleDialect(),
}


def get_dialect(db_type: str) -> _BaseDialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower() if isinstance(db_type, str) else db_type.value
    if key not in _DIALECTS:
        raise ValueError(f"Unknown dialect '{db_type}'. Supported: {sorted(_DIALECTS)}")
    return _DIALECTS[key]


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "MySQLDialect",
    "OracleDialect",
    "get_dialect",
]
