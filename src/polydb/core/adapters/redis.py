"""Redis adapter.

Uses ``redis`` (redis-py).  Install the driver::

    pip install redis
    # or:  pip install polydb-core[redis]

Every key is a storage unit.  Its rows depend on the key type:

    ┌────────┬───────────────────┬──────────────────────────────┐
    │ type   │ columns           │ notes                        │
    ├────────┼───────────────────┼──────────────────────────────┤
    │ string │ value             │ one row                      │
    │ hash   │ field, value      │ sorted by field              │
    │ list   │ index, value      │ list order                   │
    │ set    │ value             │ sorted; not updatable        │
    │ zset   │ member, score     │ score order                  │
    └────────┴───────────────────┴──────────────────────────────┘

Degraded path: Redis has no server-side predicates over values, so
``get_rows`` reads at most ``redis_scan_limit`` elements of the key,
evaluates the filter in process (:func:`polydb.core.filters.evaluate`)
and pages the matches.  When the key holds more elements than the
limit, the result covers only the elements read and
``redis_scan_truncated`` is logged.  ``get_storage_units`` is bounded
the same way.

``Credentials.database`` is the numeric database index (default 0).
There are no schemas; the schema argument is ignored.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from polydb.core.errors import MalformedInputError
from polydb.core.filters import (
    AndCondition,
    AtomicCondition,
    Operator,
    OrCondition,
    WhereCondition,
    evaluate,
)
from polydb.core.logging import get_logger
from polydb.core.models import (
    Column,
    PluginConfig,
    Record,
    RowsResult,
    StorageUnit,
    records_to_dict,
)

from .base import DatabaseAdapter, import_driver, operation
from .types import DatabaseType

logger = get_logger(__name__)

_COLUMNS: dict[str, list[Column]] = {
    "string": [Column(name="value", type="string")],
    "hash": [Column(name="field", type="string"), Column(name="value", type="string")],
    "list": [Column(name="index", type="int"), Column(name="value", type="string")],
    "set": [Column(name="value", type="string")],
    "zset": [Column(name="member", type="string"), Column(name="score", type="double")],
}

_SIZE_COMMANDS = {
    "string": "strlen",
    "hash": "hlen",
    "list": "llen",
    "set": "scard",
    "zset": "zcard",
}


def _typed(condition: WhereCondition, types: dict[str, str]) -> WhereCondition:
    """Fill in ``column_type`` of atomics from the key type's columns."""
    if isinstance(condition, AtomicCondition):
        if condition.column_type or condition.key not in types:
            return condition
        return dataclasses.replace(condition, column_type=types[condition.key])
    if isinstance(condition, AndCondition):
        return AndCondition(tuple(_typed(child, types) for child in condition.children))
    if isinstance(condition, OrCondition):
        return OrCondition(tuple(_typed(child, types) for child in condition.children))
    return condition


def _lookup(values: list[Record], name: str) -> str | None:
    for record in values:
        if record.key.lower() == name:
            return record.value
    return None


def _require(values: list[Record], name: str) -> str:
    value = _lookup(values, name)
    if value is None:
        raise MalformedInputError(f"Missing value for {name!r}", field=name)
    return value


def _score(raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise MalformedInputError(f"Score must be a number, got {raw!r}", field="score", value=raw, cause=exc) from exc


def _index(raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise MalformedInputError(f"Index must be an integer, got {raw!r}", field="index", value=raw, cause=exc) from exc


class RedisAdapter(DatabaseAdapter):
    """Redis adapter: keys as storage units, key contents as rows."""

    db_type = DatabaseType.REDIS

    # ── Connection ───────────────────────────────────────────────

    def _connect(self, config: PluginConfig) -> Any:
        redis = import_driver("redis", "redis")
        credentials = config.credentials
        db = credentials.database or "0"
        if not db.isdigit():
            raise MalformedInputError(f"Redis database must be a numeric index, got {db!r}", field="database")
        return redis.Redis(
            host=credentials.hostname or "localhost",
            port=config.port(6379),
            db=int(db),
            username=credentials.username or None,
            password=credentials.password or None,
            ssl=config.advanced_flag("TLS"),
            socket_connect_timeout=self.connect_timeout(config),
            socket_timeout=self.query_timeout(config),
            decode_responses=True,
        )

    def _scope(self, config: PluginConfig, operation_name: str):
        exceptions = import_driver("redis.exceptions", "redis")
        return self._client_scope(
            config,
            operation_name,
            self._connect,
            unavailable=(exceptions.ConnectionError, exceptions.TimeoutError),
        )

    def _ping(self, config: PluginConfig) -> None:
        with self._scope(config, "is_available") as client:
            client.ping()

    def _key_type(self, client: Any, key: str) -> str:
        key_type = client.type(key)
        if key_type == "none":
            raise MalformedInputError(f"Unknown storage unit: {key!r}", field=key).with_context(storage_unit=key)
        if key_type not in _COLUMNS:
            raise MalformedInputError(f"Unsupported Redis key type {key_type!r}", field=key)
        return key_type

    # ── Introspection ────────────────────────────────────────────

    @operation("get_databases")
    def get_databases(self, config: PluginConfig) -> list[str]:
        with self._scope(config, "get_databases") as client:
            keyspace = client.info("keyspace")
        indexes = sorted(int(name[2:]) for name in keyspace if name.startswith("db"))
        return [str(index) for index in indexes]

    @operation("get_all_schemas")
    def get_all_schemas(self, config: PluginConfig) -> list[str]:
        return []

    @operation("get_storage_units")
    def get_storage_units(self, config: PluginConfig, schema: str) -> list[StorageUnit]:
        limit = self.settings.redis_scan_limit
        with self._scope(config, "get_storage_units") as client:
            keys: list[str] = []
            for key in client.scan_iter(count=min(limit, 1000)):
                if len(keys) >= limit:
                    logger.warning("redis_scan_truncated", engine=self.name, limit=limit, scope="keys")
                    break
                keys.append(key)
            keys.sort()

            pipe = client.pipeline(transaction=False)
            for key in keys:
                pipe.type(key)
            types = pipe.execute()

            pipe = client.pipeline(transaction=False)
            for key, key_type in zip(keys, types):
                getattr(pipe, _SIZE_COMMANDS.get(key_type, "exists"))(key)
            sizes = pipe.execute()

        return [
            StorageUnit(
                name=key,
                attributes=[Record(key="Type", value=key_type), Record(key="Size", value=str(size))],
            )
            for key, key_type, size in zip(keys, types, sizes)
        ]

    def _read(self, client: Any, key: str, key_type: str) -> list[list[str]]:
        """Read at most ``redis_scan_limit`` elements of ``key`` as rows."""
        limit = self.settings.redis_scan_limit
        if key_type == "string":
            value = client.get(key)
            return [[value if value is not None else ""]]

        total = getattr(client, _SIZE_COMMANDS[key_type])(key)
        if total > limit:
            logger.warning("redis_scan_truncated", engine=self.name, storage_unit=key, limit=limit, total=total)

        if key_type == "list":
            return [[str(i), value] for i, value in enumerate(client.lrange(key, 0, limit - 1))]
        if key_type == "zset":
            return [
                [member, repr(float(score))]
                for member, score in client.zrange(key, 0, limit - 1, withscores=True)
            ]

        items: list[Any] = []
        scan = client.hscan_iter(key, count=min(limit, 1000)) if key_type == "hash" else client.sscan_iter(key, count=min(limit, 1000))
        for item in scan:
            if len(items) >= limit:
                break
            items.append(item)
        if key_type == "hash":
            return [[field, value] for field, value in sorted(items)]
        return [[member] for member in sorted(items)]

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
        with self._scope(config, "get_rows") as client:
            key_type = self._key_type(client, storage_unit)
            rows = self._read(client, storage_unit, key_type)

        columns = _COLUMNS[key_type]
        if where is not None:
            names = [column.name for column in columns]
            typed = _typed(where, {column.name: column.type for column in columns})
            rows = [row for row in rows if evaluate(typed, dict(zip(names, row)))]
        return RowsResult(
            columns=list(columns),
            rows=rows[page_offset : page_offset + page_size],
            disable_update=key_type == "set",
        )

    def get_supported_operators(self) -> frozenset[str]:
        return frozenset(op.value for op in Operator)

    def get_supported_column_types(self) -> list[str]:
        return ["string"]

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
            raise MalformedInputError("A Redis hash needs at least one field", field="fields")
        with self._scope(config, "add_storage_unit") as client:
            if client.exists(storage_unit):
                raise MalformedInputError(f"Key already exists: {storage_unit!r}", field=storage_unit)
            client.hset(storage_unit, mapping=records_to_dict(fields))
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
        with self._scope(config, "add_row") as client:
            key_type = self._key_type(client, storage_unit)
            if key_type == "string":
                return bool(client.set(storage_unit, _require(values, "value")))
            if key_type == "hash":
                client.hset(storage_unit, _require(values, "field"), _require(values, "value"))
            elif key_type == "list":
                client.rpush(storage_unit, _require(values, "value"))
            elif key_type == "set":
                client.sadd(storage_unit, _require(values, "value"))
            else:
                client.zadd(storage_unit, {_require(values, "member"): _score(_require(values, "score"))})
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
        with self._scope(config, "update_storage_unit") as client:
            key_type = self._key_type(client, storage_unit)
            if key_type == "set":
                raise self._unsupported("update_storage_unit")
            if key_type == "string":
                return bool(client.set(storage_unit, _require(values, "value")))
            if key_type == "hash":
                client.hset(storage_unit, _require(values, "field"), _require(values, "value"))
            elif key_type == "list":
                client.lset(storage_unit, _index(_require(values, "index")), _require(values, "value"))
            else:
                client.zadd(storage_unit, {_require(values, "member"): _score(_require(values, "score"))}, xx=True)
        return True

    @operation("delete_row")
    def delete_row(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
    ) -> bool:
        with self._scope(config, "delete_row") as client:
            key_type = self._key_type(client, storage_unit)
            if key_type == "string":
                removed = client.delete(storage_unit)
            elif key_type == "hash":
                removed = client.hdel(storage_unit, _require(values, "field"))
            elif key_type == "list":
                removed = client.lrem(storage_unit, 1, _require(values, "value"))
            elif key_type == "set":
                removed = client.srem(storage_unit, _require(values, "value"))
            else:
                removed = client.zrem(storage_unit, _require(values, "member"))
        return removed > 0


__all__ = [
    "RedisAdapter",
]
