"""Elasticsearch adapter.

Uses the official ``elasticsearch`` client (8.x).  Install the driver::

    pip install "elasticsearch>=8"
    # or:  pip install polydb-core[elasticsearch]

Mapping onto the Capability Contract:

    ┌───────────────────┬─────────────────────────────────────────────────┐
    │ databases/schemas │ none (``[]``); the schema argument is ignored   │
    │ storage units     │ indices (hidden ``.`` indices skipped) + fields │
    │ rows              │ one ``document`` column: ``{"_id", **_source}`` │
    │ filter            │ ``bool`` query DSL                              │
    │ graph             │ ``<unit>_id`` / ``<unit>Id`` field inference    │
    │ raw_execute       │ Elasticsearch SQL                               │
    │ chat              │ unsupported                                     │
    └───────────────────┴─────────────────────────────────────────────────┘

Pagination: every page is read inside a point in time sorted by
``_shard_doc``.  Pages that end inside ``elasticsearch_max_window`` use
``from``/``size``; deeper pages walk the same order with ``search_after``
in window-sized batches, so any offset works without raising
``index.max_result_window``.

SQL results follow their cursor up to ``elasticsearch_sql_row_limit`` rows.

Writes use ``refresh="wait_for"`` so a following ``get_rows`` sees them.
"""

from __future__ import annotations

import json
from typing import Any

from polydb.core.coercion import TypeFamily, coerce, to_display, type_family
from polydb.core.errors import (
    MalformedFilterError,
    MalformedInputError,
    UnavailableError,
)
from polydb.core.filters import (
    CORE_OPERATORS,
    AndCondition,
    AtomicCondition,
    Operator,
    OrCondition,
    WhereCondition,
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

_KEEP_ALIVE = "1m"

_FIELD_TYPES = [
    "text", "keyword", "long", "integer", "short", "byte", "double", "float",
    "half_float", "scaled_float", "boolean", "date", "date_nanos", "ip",
    "binary", "object", "nested", "geo_point",
]

_RANGES = {
    Operator.LT.value: "lt",
    Operator.LTE.value: "lte",
    Operator.GT.value: "gt",
    Operator.GTE.value: "gte",
}


def _json_value(key: str, raw: str, type_name: str | None) -> Any:
    """Coerce one boundary string into a JSON-safe value for ``type_name``."""
    # an index "date" holds full timestamps as well as calendar dates
    if type_name == "date":
        type_name = "timestamp"
    family = type_family(type_name)
    value = coerce(raw, type_name, field=key)
    if family in (TypeFamily.DATE, TypeFamily.TIMESTAMP, TypeFamily.TIME, TypeFamily.UUID):
        # validated above; the index parses its own date formats
        return raw
    if family is TypeFamily.DECIMAL:
        return float(value)
    if family is TypeFamily.BINARY:
        return raw
    return value


def like_to_wildcard(pattern: str) -> str:
    """SQL ``LIKE`` pattern → Elasticsearch wildcard pattern."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append("*")
        elif char == "_":
            parts.append("?")
        elif char in "*?\\":
            parts.append("\\" + char)
        else:
            parts.append(char)
    return "".join(parts)


def _must_not(clause: dict[str, Any]) -> dict[str, Any]:
    return {"bool": {"must_not": [clause]}}


def keyword_field(field: str, field_types: dict[str, str]) -> str | None:
    """The ``keyword`` sub-field holding the untokenised value of a ``text`` field."""
    if field_types.get(f"{field}.keyword") == "keyword":
        return f"{field}.keyword"
    prefix = f"{field}."
    for name, type_name in field_types.items():
        if name.startswith(prefix) and "." not in name[len(prefix):] and type_name == "keyword":
            return name
    return None


def to_es_query(condition: WhereCondition | None, field_types: dict[str, str]) -> dict[str, Any]:
    """Translate a filter tree into a ``bool`` query.

    Every field must be in ``field_types`` (or carry an explicit
    ``column_type``).  Comparisons on an analysed ``text`` field run against
    its ``keyword`` sub-field, so they match whole values exactly; a ``text``
    field without one only supports the null checks.
    """
    if condition is None:
        return {"match_all": {}}
    if isinstance(condition, AndCondition):
        return {"bool": {"must": [to_es_query(child, field_types) for child in condition.children]}}
    if isinstance(condition, OrCondition):
        return {
            "bool": {
                "should": [to_es_query(child, field_types) for child in condition.children],
                "minimum_should_match": 1,
            }
        }
    if not isinstance(condition, AtomicCondition):
        raise MalformedFilterError(f"Unknown condition node: {condition!r}")

    node = condition
    op = node.operator
    field = node.key
    type_name = node.column_type or field_types.get(field) or ("keyword" if field == "_id" else None)
    if type_name is None:
        raise MalformedFilterError(f"Unknown field {field!r}: {node.describe()}", field=field, value=node.describe())

    if op == Operator.IS_NULL.value:
        return _must_not({"exists": {"field": field}})
    if op == Operator.IS_NOT_NULL.value:
        return {"exists": {"field": field}}

    if type_name == "text":
        exact = keyword_field(field, field_types)
        if exact is None:
            raise MalformedFilterError(
                f"Text field {field!r} has no keyword sub-field to compare against: {node.describe()}",
                field=field,
                value=node.describe(),
            )
        field, type_name = exact, "keyword"

    def value(raw: str) -> Any:
        try:
            return _json_value(node.key, raw, type_name)
        except MalformedInputError as exc:
            raise MalformedFilterError(
                f"Filter value does not match field type {type_name!r}: {node.describe()}",
                field=node.key,
                value=node.describe(),
                cause=exc,
            ) from exc

    if op == Operator.EQ.value:
        return {"term": {field: value(node.value)}}
    if op == Operator.NE.value:
        return _must_not({"term": {field: value(node.value)}})
    if op in _RANGES:
        return {"range": {field: {_RANGES[op]: value(node.value)}}}
    if op in (Operator.IN.value, Operator.NOT_IN.value):
        terms = {"terms": {field: [value(v) for v in node.values()]}}
        return terms if op == Operator.IN.value else _must_not(terms)
    if op in (Operator.LIKE.value, Operator.NOT_LIKE.value, Operator.ILIKE.value):
        wildcard: dict[str, Any] = {"value": like_to_wildcard(node.value)}
        if op == Operator.ILIKE.value:
            wildcard["case_insensitive"] = True
        clause = {"wildcard": {field: wildcard}}
        return _must_not(clause) if op == Operator.NOT_LIKE.value else clause
    if op == Operator.REGEXP.value:
        return {"regexp": {field: {"value": node.value}}}
    raise MalformedFilterError(
        f"Operator {op!r} is not supported by elasticsearch: {node.describe()}",
        field=node.key,
        value=node.describe(),
    )


def flatten_properties(properties: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Mapping ``properties`` → ``{"dotted.field": type}``.

    ``keyword`` multi-fields (``name.keyword`` under a ``text`` field) are
    listed as fields of their own.
    """
    fields: dict[str, str] = {}
    for name, spec in properties.items():
        path = f"{prefix}{name}"
        if "properties" in spec:
            if spec.get("type") == "nested":
                fields[path] = "nested"
            fields.update(flatten_properties(spec["properties"], prefix=f"{path}."))
            continue
        fields[path] = spec.get("type", "object")
        for sub_name, sub_spec in spec.get("fields", {}).items():
            if sub_spec.get("type") == "keyword":
                fields[f"{path}.{sub_name}"] = "keyword"
    return fields


class ElasticsearchAdapter(DatabaseAdapter):
    """Elasticsearch adapter: indices as storage units, documents as rows."""

    db_type = DatabaseType.ELASTICSEARCH

    # ── Connection ───────────────────────────────────────────────

    def _connect(self, config: PluginConfig) -> Any:
        elasticsearch = import_driver("elasticsearch", "elasticsearch")
        credentials = config.credentials
        url = config.advanced("URL")
        if not url:
            scheme = "https" if config.advanced_flag("TLS") else "http"
            url = f"{scheme}://{credentials.hostname or 'localhost'}:{config.port(9200)}"
        options: dict[str, Any] = {
            "request_timeout": self.query_timeout(config),
            "verify_certs": config.advanced_flag("Verify Certs", True),
        }
        api_key = config.advanced("API Key")
        if api_key:
            options["api_key"] = api_key
        elif credentials.username:
            options["basic_auth"] = (credentials.username, credentials.password)
        return elasticsearch.Elasticsearch(url, **options)

    def _scope(self, config: PluginConfig, operation_name: str):
        elasticsearch = import_driver("elasticsearch", "elasticsearch")
        return self._client_scope(
            config,
            operation_name,
            self._connect,
            unavailable=(elasticsearch.ConnectionError, elasticsearch.ConnectionTimeout),
        )

    def _ping(self, config: PluginConfig) -> None:
        with self._scope(config, "is_available") as client:
            if not client.ping():
                raise UnavailableError(f"{self.name} did not answer ping")

    @staticmethod
    def _not_found() -> type[Exception]:
        return import_driver("elasticsearch", "elasticsearch").NotFoundError

    # ── Introspection ────────────────────────────────────────────

    @operation("get_databases")
    def get_databases(self, config: PluginConfig) -> list[str]:
        return []

    @operation("get_all_schemas")
    def get_all_schemas(self, config: PluginConfig) -> list[str]:
        return []

    def _mappings(self, client: Any, indices: list[str]) -> dict[str, dict[str, str]]:
        if not indices:
            return {}
        response = client.indices.get_mapping(index=",".join(indices))
        return {
            name: flatten_properties(body.get("mappings", {}).get("properties", {}))
            for name, body in response.items()
        }

    def _field_types(self, client: Any, index: str) -> dict[str, str]:
        try:
            return self._mappings(client, [index]).get(index, {})
        except self._not_found() as exc:
            raise MalformedInputError(
                f"Unknown storage unit: {index!r}", field=index, cause=exc
            ).with_context(storage_unit=index) from exc

    def _storage_units(self, client: Any) -> list[StorageUnit]:
        rows = client.cat.indices(format="json", h="index,health,docs.count,store.size", bytes="b")
        visible = sorted(
            (row for row in rows if not row["index"].startswith(".")),
            key=lambda row: row["index"],
        )
        mappings = self._mappings(client, [row["index"] for row in visible])
        units = []
        for row in visible:
            name = row["index"]
            attributes = [
                Record(key="Type", value="index"),
                Record(key="Health", value=row.get("health") or ""),
                Record(key="Count", value=row.get("docs.count") or "0"),
                Record(key="Total Size", value=row.get("store.size") or "0"),
            ]
            attributes.extend(
                Record(key=field, value=type_name, extra={"kind": "field"})
                for field, type_name in mappings.get(name, {}).items()
            )
            units.append(StorageUnit(name=name, attributes=attributes))
        return units

    @operation("get_storage_units")
    def get_storage_units(self, config: PluginConfig, schema: str) -> list[StorageUnit]:
        with self._scope(config, "get_storage_units") as client:
            return self._storage_units(client)

    def _page(
        self, client: Any, index: str, query: dict[str, Any], page_size: int, page_offset: int
    ) -> list[dict[str, Any]]:
        """Read one page inside a point in time sorted by ``_shard_doc``.

        Pages ending inside the window use ``from``/``size``; deeper pages walk
        the same order with ``search_after``, so pages stitch together across
        the window boundary.
        """
        window = self.settings.elasticsearch_max_window
        pit_id = client.open_point_in_time(index=index, keep_alive=_KEEP_ALIVE)["id"]
        hits: list[dict[str, Any]] = []
        try:
            if page_offset + page_size <= window:
                response = client.search(
                    pit={"id": pit_id, "keep_alive": _KEEP_ALIVE},
                    query=query,
                    from_=page_offset,
                    size=page_size,
                    sort=[{"_shard_doc": "asc"}],
                )
                pit_id = response.get("pit_id", pit_id)
                return response["hits"]["hits"]

            logger.debug("deep_pagination", engine=self.name, storage_unit=index, offset=page_offset)
            skip = page_offset
            search_after = None
            while len(hits) < page_size:
                wanted = skip + page_size - len(hits)
                body: dict[str, Any] = {
                    "pit": {"id": pit_id, "keep_alive": _KEEP_ALIVE},
                    "query": query,
                    "size": min(window, wanted),
                    "sort": [{"_shard_doc": "asc"}],
                }
                if search_after is not None:
                    body["search_after"] = search_after
                response = client.search(**body)
                pit_id = response.get("pit_id", pit_id)
                batch = response["hits"]["hits"]
                if not batch:
                    break
                search_after = batch[-1]["sort"]
                if skip >= len(batch):
                    skip -= len(batch)
                    continue
                hits.extend(batch[skip:])
                skip = 0
        finally:
            client.close_point_in_time(id=pit_id)
        return hits[:page_size]

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
            field_types = self._field_types(client, storage_unit)
            query = to_es_query(where, field_types)
            hits = self._page(client, storage_unit, query, page_size, page_offset)
        rows = [[json.dumps({"_id": hit["_id"], **hit.get("_source", {})}, default=str)] for hit in hits]
        return RowsResult(columns=[Column(name=DOCUMENT_COLUMN, type="Document")], rows=rows)

    def get_supported_operators(self) -> frozenset[str]:
        return CORE_OPERATORS | {Operator.ILIKE.value, Operator.REGEXP.value}

    def get_supported_column_types(self) -> list[str]:
        return list(_FIELD_TYPES)

    # ── Mutations ────────────────────────────────────────────────

    def _document(self, values: list[Record], field_types: dict[str, str]) -> dict[str, Any]:
        """Document from a ``document`` JSON record or from field records."""
        if not values:
            raise MalformedInputError("No values given")
        for record in values:
            if record.key.lower() == DOCUMENT_COLUMN:
                try:
                    document = json.loads(record.value)
                except ValueError as exc:
                    raise MalformedInputError(
                        f"Document is not valid JSON: {exc}", field=record.key, cause=exc
                    ) from exc
                if not isinstance(document, dict):
                    raise MalformedInputError("Document must be a JSON object", field=record.key)
                return document
        return {
            record.key: record.value
            if record.key == "_id"
            else _json_value(record.key, record.value, record.get_extra("type") or field_types.get(record.key))
            for record in values
        }

    @operation("add_storage_unit")
    def add_storage_unit(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        fields: list[Record],
    ) -> bool:
        properties = {}
        for record in fields:
            if record.value not in _FIELD_TYPES:
                raise MalformedInputError(
                    f"Unknown field type {record.value!r}", field=record.key, value=record.value
                )
            properties[record.key] = {"type": record.value}
        with self._scope(config, "add_storage_unit") as client:
            response = client.indices.create(index=storage_unit, mappings={"properties": properties})
        logger.info("storage_unit_created", engine=self.name, storage_unit=storage_unit)
        return bool(response.get("acknowledged"))

    @operation("add_row")
    def add_row(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
    ) -> bool:
        with self._scope(config, "add_row") as client:
            document = self._document(values, self._field_types(client, storage_unit))
            doc_id = document.pop("_id", None)
            response = client.index(index=storage_unit, id=doc_id, document=document, refresh="wait_for")
        return response["result"] in ("created", "updated")

    @operation("update_storage_unit")
    def update_storage_unit(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
        updated_columns: list[str],
    ) -> bool:
        whole = any(record.key.lower() == DOCUMENT_COLUMN for record in values)
        with self._scope(config, "update_storage_unit") as client:
            document = self._document(values, self._field_types(client, storage_unit))
            if "_id" not in document:
                raise MalformedInputError("Updating a document requires its _id", field="_id")
            doc_id = str(document.pop("_id"))
            if whole:
                if not client.exists(index=storage_unit, id=doc_id):
                    return False
                client.index(index=storage_unit, id=doc_id, document=document, refresh="wait_for")
                return True
            missing = [c for c in updated_columns if c not in document]
            if not updated_columns or missing:
                raise MalformedInputError(f"No value given for updated fields {missing}", field="updated_columns")
            try:
                client.update(
                    index=storage_unit,
                    id=doc_id,
                    doc={c: document[c] for c in updated_columns},
                    refresh="wait_for",
                )
            except self._not_found():
                return False
        return True

    @operation("delete_row")
    def delete_row(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
    ) -> bool:
        document = self._document(values, {})
        if "_id" not in document:
            raise MalformedInputError("Deleting a document requires its _id", field="_id")
        with self._scope(config, "delete_row") as client:
            try:
                response = client.delete(index=storage_unit, id=str(document["_id"]), refresh="wait_for")
            except self._not_found():
                return False
        return response["result"] == "deleted"

    # ── Graph ────────────────────────────────────────────────────

    @operation("get_graph")
    def get_graph(self, config: PluginConfig, schema: str) -> list[GraphUnit]:
        with self._scope(config, "get_graph") as client:
            units = self._storage_units(client)
        names = [unit.name for unit in units]
        references: dict[str, set[str]] = {}
        for unit in units:
            targets = references.setdefault(unit.name, set())
            for record in unit.attributes:
                if record.get_extra("kind") != "field" or record.key == "_id":
                    continue
                target = reference_target(record.key, names)
                if target:
                    targets.add(target)
        return graph_from_references(units, references)

    # ── Raw query ────────────────────────────────────────────────

    @operation("raw_execute")
    def raw_execute(self, config: PluginConfig, query: str) -> RowsResult:
        if not query or not query.strip():
            raise MalformedInputError("Query is empty", field="query")
        limit = self.settings.elasticsearch_sql_row_limit
        with self._scope(config, "raw_execute") as client:
            response = client.sql.query(query=query, fetch_size=min(limit, self.settings.elasticsearch_max_window))
            columns = [Column(name=column["name"], type=column["type"]) for column in response["columns"]]
            raw_rows = list(response["rows"])
            cursor = response.get("cursor")
            while cursor and len(raw_rows) < limit:
                response = client.sql.query(cursor=cursor)
                raw_rows.extend(response["rows"])
                cursor = response.get("cursor")
            if cursor or len(raw_rows) > limit:
                logger.warning("raw_result_truncated", engine=self.name, limit=limit)
            if cursor:
                client.sql.clear_cursor(cursor=cursor)
        rows = [[to_display(value) for value in row] for row in raw_rows[:limit]]
        return RowsResult(columns=columns, rows=rows, disable_update=True)


__all__ = [
    "ElasticsearchAdapter",
    "flatten_properties",
    "keyword_field",
    "like_to_wildcard",
    "to_es_query",
]
