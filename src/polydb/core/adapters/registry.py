"""Engine registry - database type to adapter dispatch.

Manifesto:
    Consumers should never hard-code adapter class names.  The registry
    maps each ``DatabaseType`` to the one adapter instance serving it.
    It is filled once at bootstrap, frozen, and read-only afterwards, so
    lookups from concurrent callers need no locking.

Features:
    - Ordered ``(DatabaseType, adapter)`` pairs, append-only until ``freeze()``
    - ``choose()`` accepts enum members or case-insensitive strings/aliases
    - ``create_default_registry()`` builds the eight-engine registry
    - ``default_registry()`` process-wide instance, built once

Tags:
    polydb, database, registry, dispatch, immutable-after-init

Doc-Types:
    api-reference
"""

from __future__ import annotations

import functools

from polydb.core.errors import ConfigError, UnsupportedTypeError
from polydb.core.logging import get_logger
from polydb.core.settings import PolyDBSettings

from .base import DatabaseAdapter
from .elasticsearch import ElasticsearchAdapter
from .mongodb import MongoDBAdapter
from .mysql import MariaDBAdapter, MySQLAdapter
from .oracle import OracleAdapter
from .postgresql import PostgreSQLAdapter
from .redis import RedisAdapter
from .sqlite import SQLiteAdapter
from .types import DatabaseType, parse_database_type

logger = get_logger(__name__)


class EngineRegistry:
    """
    Lookup table from database type to adapter.

    Registration order is preserved (``engines()`` lists types in the
    order they were registered).  A type may be registered only once.
    """

    def __init__(self) -> None:
        self._entries: tuple[tuple[DatabaseType, DatabaseAdapter], ...] = ()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, db_type: DatabaseType | str, adapter: DatabaseAdapter) -> None:
        """Append an adapter for ``db_type``.

        Raises:
            ConfigError: The registry is frozen or the type is already registered.
            UnsupportedTypeError: ``db_type`` is not a known engine type.
        """
        if self._frozen:
            raise ConfigError("Engine registry is frozen; register adapters before first use")
        parsed = parse_database_type(db_type)
        if any(existing == parsed for existing, _ in self._entries):
            raise ConfigError(f"Adapter already registered for {parsed.value}")
        self._entries = (*self._entries, (parsed, adapter))

    def freeze(self) -> EngineRegistry:
        """Make the registry read-only. Returns ``self`` for chaining."""
        self._frozen = True
        logger.debug("registry_frozen", engines=[t.value for t, _ in self._entries])
        return self

    def choose(self, db_type: DatabaseType | str) -> DatabaseAdapter:
        """Adapter for ``db_type``.

        Never constructs or connects anything.

        Raises:
            UnsupportedTypeError: Unknown or unregistered type.
        """
        parsed = parse_database_type(db_type)
        for registered, adapter in self._entries:
            if registered == parsed:
                return adapter
        raise UnsupportedTypeError(str(db_type), [t.value for t in self.engines()])

    def engines(self) -> list[DatabaseType]:
        """Registered types in registration order."""
        return [db_type for db_type, _ in self._entries]

    def __contains__(self, db_type: object) -> bool:
        try:
            parsed = parse_database_type(db_type)  # type: ignore[arg-type]
        except UnsupportedTypeError:
            return False
        return parsed in self.engines()

    def __len__(self) -> int:
        return len(self._entries)


def create_default_registry(settings: PolyDBSettings | None = None) -> EngineRegistry:
    """Build and freeze a registry holding every supported engine."""
    registry = EngineRegistry()
    registry.register(DatabaseType.POSTGRESQL, PostgreSQLAdapter(settings))
    registry.register(DatabaseType.MYSQL, MySQLAdapter(settings))
    registry.register(DatabaseType.MARIADB, MariaDBAdapter(settings))
    registry.register(DatabaseType.SQLITE, SQLiteAdapter(settings))
    registry.register(DatabaseType.ORACLE, OracleAdapter(settings))
    registry.register(DatabaseType.MONGODB, MongoDBAdapter(settings))
    registry.register(DatabaseType.REDIS, RedisAdapter(settings))
    registry.register(DatabaseType.ELASTICSEARCH, ElasticsearchAdapter(settings))
    return registry.freeze()


@functools.lru_cache(maxsize=1)
def default_registry() -> EngineRegistry:
    """Process-wide frozen registry (built on first call)."""
    return create_default_registry()


__all__ = [
    "EngineRegistry",
    "create_default_registry",
    "default_registry",
]
