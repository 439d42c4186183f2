"""Database types and identifier parsing."""

from __future__ import annotations

from enum import Enum

from polydb.core.errors import UnsupportedTypeError


class DatabaseType(str, Enum):
    """Supported database types (fixed enumeration)."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"
    ORACLE = "oracle"
    MONGODB = "mongodb"
    REDIS = "redis"
    ELASTICSEARCH = "elasticsearch"

    @property
    def is_relational(self) -> bool:
        return self in RELATIONAL_TYPES


RELATIONAL_TYPES = frozenset(
    {
        DatabaseType.POSTGRESQL,
        DatabaseType.MYSQL,
        DatabaseType.MARIADB,
        DatabaseType.SQLITE,
        DatabaseType.ORACLE,
    }
)

_ALIASES: dict[str, DatabaseType] = {
    "postgres": DatabaseType.POSTGRESQL,
    "pg": DatabaseType.POSTGRESQL,
    "sqlite3": DatabaseType.SQLITE,
    "mongo": DatabaseType.MONGODB,
    "elastic": DatabaseType.ELASTICSEARCH,
}


def parse_database_type(value: DatabaseType | str) -> DatabaseType:
    """Resolve an engine identifier (case-insensitive, aliases allowed).

    Raises:
        UnsupportedTypeError: ``value`` names no supported engine.
    """
    if isinstance(value, DatabaseType):
        return value
    key = str(value).strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return DatabaseType(key)
    except ValueError:
        raise UnsupportedTypeError(str(value), [t.value for t in DatabaseType]) from None


__all__ = [
    "DatabaseType",
    "RELATIONAL_TYPES",
    "parse_database_type",
]
