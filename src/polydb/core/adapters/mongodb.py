"""MongoDB adapter.

Uses ``pymongo``.  Install the driver::

    pip install pymongo
    # or:  pip install polydb-core[mongodb]

Mapping onto the Capability Contract:

    ┌───────────────────┬─────────────────────────────────────────────────┐
    │ databases/schemas │ database names (system databases hidden)        │
    │ storage units     │ collections + sampled field types               │
    │ rows              │ one ``document`` column, Extended JSON (relaxed)│
    │ filter            │ ``$and``/``$or`` over ``$eq``…``$regex``        │
    │ graph             │ DBRef / ``<unit>_id`` / ``<unit>Id`` inference  │
    │ raw_execute, chat │ unsupported                                     │
    └───────────────────┴─────────────────────────────────────────────────┘

Filter values are coerced with the atomic node's ``column_type`` when the
caller gives one, else with the type sampled for that field.  Fields that
appear in no sampled document are compared as strings.
"""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal
from typing import Any

from polydb.core.coercion import coerce
from polydb.core.errors import MalformedFilterError, MalformedInputError
from polydb.core.filters import (
    CORE_OPERATORS,
    AndCondition,
    AtomicCondition,
    Operator,
    OrCondition,
    WhereCondition,
    like_to_regex,
)
from polydb.core.logging import get_logger
from polydb.core.models import (
    Column,
    GraphUnit,
    PluginConfig,
    Record,
    RowsResult,
    StorageUnit,
)

from .base import DatabaseAdapter, import_driver, operation
from .graph import graph_from_references, reference_target
from .types import DatabaseType

logger = get_logger(__name__)

DOCUMENT_COLUMN = "document"

_SYSTEM_DATABASES = frozenset({"admin", "local", "config"})

# sampled BSON type → coercion type name
_COERCE_AS = {
    "int": "int",
    "long": "bigint",
    "double": "double",
    "decimal": "decimal",
    "bool": "boolean",
    "date": "timestamp",
    "string": "text",
    "object": "json",
    "array": "json",
}

_COMPARISONS = {
    Operator.EQ.value: "$eq",
    Operator.NE.value: "$ne",
    Operator.LT.value: "$lt",
    Operator.LTE.value: "$lte",
    Operator.GT.value: "$gt",
    Operator.GTE.value: "$gte",
}

_BSON_TYPES = [
    "double", "string", "object", "array", "binData", "objectId", "bool",
    "date", "null", "regex", "int", "timestamp", "long", "decimal",
]

_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")


def _bson():
    return import_driver("bson", "pymongo")


def bson_type(value: Any) -> str:
    """BSON type alias of a decoded value (``objectId``, ``string`` …)."""
    bson = _bson()
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int" if -(2**31) <= value < 2**31 else "long"
    if isinstance(value, float):
        return "double"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dt.datetime):
        return "date"
    if isinstance(value, bson.ObjectId):
        return "objectId"
    if isinstance(value, bson.DBRef):
        return "dbRef"
    if isinstance(value, bson.Decimal128):
        return "decimal"
    if isinstance(value, (bytes, bson.Binary)):
        return "binData"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


def _to_bson(value: Any) -> Any:
    if isinstance(value, Decimal):
        return _bson().Decimal128(value)
    if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
        return dt.datetime.combine(value, dt.time())
    return value


def _field_value(key: str, raw: str, type_name: str | None) -> Any:
    """Coerce one boundary string for a document field."""
    bson = _bson()
    if type_name == "objectId" or (not type_name and key == "_id" and _OBJECT_ID.match(raw)):
        if not bson.ObjectId.is_valid(raw):
            raise MalformedInputError(f"Not a valid ObjectId: {raw!r}", field=key, value=raw)
        return bson.ObjectId(raw)
    if not type_name:
        return raw
    return _to_bson(coerce(raw, _COERCE_AS.get(type_name, type_name), field=key))


def to_mongo_filter(condition: WhereCondition | None, field_types: dict[str, str]) -> dict[str, Any]:
    """Translate a filter tree into a MongoDB query document."""
    if condition is None:
        return {}
    if isinstance(condition, AndCondition):
        return {"$and": [to_mongo_filter(child, field_types) for child in condition.children]}
    if isinstance(condition, OrCondition):
        return {"$or": [to_mongo_filter(child, field_types) for child in condition.children]}
    if not isinstance(condition, AtomicCondition):
        raise MalformedFilterError(f"Unknown condition node: {condition!r}")

    node = condition
    op = node.operator
    type_name = node.column_type or field_types.get(node.key)

    def value(raw: str) -> Any:
        try:
            return _field_value(node.key, raw, type_name)
        except MalformedInputError as exc:
            raise MalformedFilterError(
                f"Filter value does not match field type {type_name!r}: {node.describe()}",
                field=node.key,
                value=node.describe(),
                cause=exc,
            ) from exc

    if op in _COMPARISONS:
        return {node.key: {_COMPARISONS[op]: value(node.value)}}
    if op == Operator.IN.value:
        return {node.key: {"$in": [value(v) for v in node.values()]}}
    if op == Operator.NOT_IN.value:
        return {node.key: {"$nin": [value(v) for v in node.values()]}}
    if op == Operator.IS_NULL.value:
        return {node.key: {"$eq": None}}
    if op == Operator.IS_NOT_NULL.value:
        return {node.key: {"$ne": None}}
    if op == Operator.LIKE.value:
        return {node.key: {"$regex": like_to_regex(node.value).pattern, "$options": "s"}}
    if op == Operator.NOT_LIKE.value:
        return {node.key: {"$not": like_to_regex(node.value)}}
    if op == Operator.REGEXP.value:
        return {node.key: {"$regex": node.value}}
    raise MalformedFilterError(
        f"Operator {op!r} is not supported by mongodb: {node.describe()}",
        field=node.key,
        value=node.describe(),
    )


class MongoDBAdapter(DatabaseAdapter):
    """MongoDB adapter: collections as storage units, documents as rows."""

    db_type = DatabaseType.MONGODB

    # ── Connection ───────────────────────────────────────────────

    def _connect(self, config: PluginConfig) -> Any:
        pymongo = import_driver("pymongo", "pymongo")
        credentials = config.credentials
        connect_ms = int(self.connect_timeout(config) * 1000)
        options: dict[str, Any] = {
            "serverSelectionTimeoutMS": connect_ms,
            "connectTimeoutMS": connect_ms,
            "socketTimeoutMS": int(self.query_timeout(config) * 1000),
        }
        uri = config.advanced("URL")
        if uri:
            return pymongo.MongoClient(uri, **options)
        if credentials.username:
            options["username"] = credentials.username
            options["password"] = credentials.password
            options["authSource"] = config.advanced("Auth Source", "admin")
        if config.advanced_flag("TLS"):
            options["tls"] = True
        return pymongo.MongoClient(
            host=credentials.hostname or "localhost",
            port=config.port(27017),
            **options,
        )

    def _scope(self, config: PluginConfig, operation_name: str):
        errors = import_driver("pymongo.errors", "pymongo")
        return self._client_scope(
            config,
            operation_name,
            self._connect,
            unavailable=(errors.ConnectionFailure,),
        )

    def _ping(self, config: PluginConfig) -> None:
        with self._scope(config, "is_available") as client:
            client.admin.command("ping")

    # ── Introspection ────────────────────────────────────────────

    def _database_names(self, config: PluginConfig, operation_name: str) -> list[str]:
        with self._scope(config, operation_name) as client:
            names = client.list_database_names()
        return sorted(name for name in names if name not in _SYSTEM_DATABASES)

    @operation("get_databases")
    def get_databases(self, config: PluginConfig) -> list[str]:
        return self._database_names(config, "get_databases")

    @operation("get_all_schemas")
    def get_all_schemas(self, config: PluginConfig) -> list[str]:
        # a MongoDB database is the schema-level namespace
        return self._database_names(config, "get_all_schemas")

    def _sample(self, collection: Any) -> list[dict[str, Any]]:
        return list(collection.find().sort("_id", 1).limit(self.settings.graph_sample_size))

    def _field_types(self, documents: list[dict[str, Any]]) -> dict[str, str]:
        types: dict[str, str] = {}
        for document in documents:
            for key, value in document.items():
                if value is not None:
                    types.setdefault(key, bson_type(value))
        return types

    def _storage_units(self, client: Any, schema: str) -> list[StorageUnit]:
        db = client[schema]
        units = []
        for spec in sorted(db.list_collections(), key=lambda s: s["name"]):
            name = spec["name"]
            if name.startswith("system."):
                continue
            kind = spec.get("type", "collection")
            attributes = [Record(key="Type", value=kind)]
            if kind == "collection":
                collection = db[name]
                attributes.append(Record(key="Count", value=str(collection.estimated_document_count())))
                attributes.extend(
                    Record(key=field, value=type_name, extra={"kind": "field"})
                    for field, type_name in self._field_types(self._sample(collection)).items()
                )
            units.append(StorageUnit(name=name, attributes=attributes))
        return units

    @operation("get_storage_units")
    def get_storage_units(self, config: PluginConfig, schema: str) -> list[StorageUnit]:
        with self._scope(config, "get_storage_units") as client:
            return self._storage_units(client, schema)

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
        json_util = import_driver("bson.json_util", "pymongo")
        with self._scope(config, "get_rows") as client:
            collection = client[schema][storage_unit]
            field_types = self._field_types(self._sample(collection)) if where is not None else {}
            query = to_mongo_filter(where, field_types)
            cursor = collection.find(query).sort("_id", 1).skip(page_offset).limit(page_size)
            rows = [
                [json_util.dumps(document, json_options=json_util.RELAXED_JSON_OPTIONS)]
                for document in cursor
            ]
        return RowsResult(columns=[Column(name=DOCUMENT_COLUMN, type="Document")], rows=rows)

    def get_supported_operators(self) -> frozenset[str]:
        return CORE_OPERATORS | {Operator.REGEXP.value}

    def get_supported_column_types(self) -> list[str]:
        return list(_BSON_TYPES)

    # ── Mutations ────────────────────────────────────────────────

    def _document(self, values: list[Record]) -> dict[str, Any]:
        """Document from a ``document`` JSON record or from typed field records."""
        if not values:
            raise MalformedInputError("No values given")
        json_util = import_driver("bson.json_util", "pymongo")
        for record in values:
            if record.key.lower() == DOCUMENT_COLUMN:
                try:
                    document = json_util.loads(record.value)
                except (ValueError, TypeError) as exc:
                    raise MalformedInputError(
                        f"Document is not valid Extended JSON: {exc}", field=record.key, cause=exc
                    ) from exc
                if not isinstance(document, dict):
                    raise MalformedInputError("Document must be a JSON object", field=record.key)
                return document
        return {record.key: _field_value(record.key, record.value, record.get_extra("type")) for record in values}

    @operation("add_storage_unit")
    def add_storage_unit(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        fields: list[Record],
    ) -> bool:
        options: dict[str, Any] = {}
        typed = {record.key: record.value for record in fields if record.value}
        for key, type_name in typed.items():
            if type_name not in _BSON_TYPES:
                raise MalformedInputError(f"Unknown BSON type {type_name!r}", field=key, value=type_name)
        if typed:
            options["validator"] = {
                "$jsonSchema": {
                    "bsonType": "object",
                    "properties": {key: {"bsonType": type_name} for key, type_name in typed.items()},
                }
            }
        with self._scope(config, "add_storage_unit") as client:
            client[schema].create_collection(storage_unit, **options)
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
        document = self._document(values)
        with self._scope(config, "add_row") as client:
            result = client[schema][storage_unit].insert_one(document)
        return result.acknowledged

    @operation("update_storage_unit")
    def update_storage_unit(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
        updated_columns: list[str],
    ) -> bool:
        document = self._document(values)
        if "_id" not in document:
            raise MalformedInputError("Updating a document requires its _id", field="_id")
        doc_id = document.pop("_id")
        whole = any(record.key.lower() == DOCUMENT_COLUMN for record in values)
        with self._scope(config, "update_storage_unit") as client:
            collection = client[schema][storage_unit]
            if whole:
                result = collection.replace_one({"_id": doc_id}, document)
            else:
                missing = [c for c in updated_columns if c not in document]
                if not updated_columns or missing:
                    raise MalformedInputError(f"No value given for updated fields {missing}", field="updated_columns")
                result = collection.update_one(
                    {"_id": doc_id}, {"$set": {c: document[c] for c in updated_columns}}
                )
        return result.matched_count > 0

    @operation("delete_row")
    def delete_row(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
    ) -> bool:
        document = self._document(values)
        query = {"_id": document["_id"]} if "_id" in document else document
        with self._scope(config, "delete_row") as client:
            result = client[schema][storage_unit].delete_one(query)
        return result.deleted_count > 0

    # ── Graph ────────────────────────────────────────────────────

    @operation("get_graph")
    def get_graph(self, config: PluginConfig, schema: str) -> list[GraphUnit]:
        bson = _bson()
        with self._scope(config, "get_graph") as client:
            units = self._storage_units(client, schema)
            names = [unit.name for unit in units]
            references: dict[str, set[str]] = {}
            for name in names:
                targets = references.setdefault(name, set())
                for document in self._sample(client[schema][name]):
                    for key, value in document.items():
                        refs = value if isinstance(value, list) else [value]
                        dbrefs = [ref.collection for ref in refs if isinstance(ref, bson.DBRef)]
                        if dbrefs:
                            targets.update(dbrefs)
                        elif key != "_id":
                            target = reference_target(key, names)
                            if target:
                                targets.add(target)
        return graph_from_references(units, references)


__all__ = [
    "MongoDBAdapter",
    "bson_type",
    "to_mongo_filter",
]
