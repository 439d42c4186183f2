"""
Request-scoped data model shared by every adapter.

Every entity here is built at the start of a call (from caller input or
live introspection), consumed by one adapter, and discarded on return.
Nothing is cached and nothing survives across requests; the engines are
the only persistent state.

Values cross the adapter boundary as strings.  Adapters coerce them to
native types (see :mod:`polydb.core.coercion`) right before comparison
or persistence.

Tags:
    polydb, models, dataclasses, rows, storage-unit, graph

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from polydb.core.errors import MalformedInputError


@dataclass(frozen=True)
class Record:
    """Key/value pair used for attributes, row fields and field definitions.

    ``extra`` carries string attributes that do not fit the pair, e.g.
    ``{"primary": "true", "nullable": "false"}`` for a column definition
    or ``{"type": "int"}`` for a typed document field.
    """

    key: str
    value: str
    extra: Mapping[str, str] = field(default_factory=dict)

    def flag(self, name: str) -> bool:
        """Truthiness of a string flag in ``extra`` (``true``/``1``/``yes``)."""
        raw = _lookup(self.extra, name)
        return raw is not None and raw.strip().lower() in ("true", "1", "yes", "y")

    def get_extra(self, name: str, default: str | None = None) -> str | None:
        value = _lookup(self.extra, name)
        return default if value is None else value


def _lookup(mapping: Mapping[str, str], name: str) -> str | None:
    if name in mapping:
        return mapping[name]
    lowered = name.lower()
    for key, value in mapping.items():
        if key.lower() == lowered:
            return value
    return None


def records_to_dict(records: list[Record] | tuple[Record, ...]) -> dict[str, str]:
    """Flatten records into an ordered ``{key: value}`` dict."""
    return {record.key: record.value for record in records}


@dataclass(frozen=True)
class Credentials:
    """Connection parameters for one engine instance.

    Opaque to the core beyond being handed to the adapter's connector.
    ``port`` of ``None`` means the engine's default port.  ``advanced``
    holds engine specific knobs such as ``SSL Mode`` or ``Service Name``;
    a ``Port`` record there is honoured when ``port`` is unset.
    """

    type: str
    hostname: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    database: str = ""
    port: int | None = None
    advanced: tuple[Record, ...] = ()
    is_profile: bool = False


@dataclass(frozen=True)
class PluginConfig:
    """Per-call wrapper around :class:`Credentials`.

    Passed by value into every adapter operation and never mutated.

    Attributes:
        credentials: Connection parameters.
        options: Per-call advanced connection flags; override
            ``credentials.advanced`` entries with the same key.
        timeout: Seconds the caller is willing to wait. Propagated into the
            native driver (connect, socket, statement and request timeouts).
            ``None`` means the configured defaults.
    """

    credentials: Credentials
    options: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None

    def advanced(self, key: str, default: str | None = None) -> str | None:
        """Look up an advanced option, per-call options first."""
        value = _lookup(self.options, key)
        if value is not None:
            return value
        for record in self.credentials.advanced:
            if record.key.lower() == key.lower():
                return record.value
        return default

    def advanced_int(self, key: str, default: int) -> int:
        raw = self.advanced(key)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError as exc:
            raise MalformedInputError(
                f"Advanced option {key!r} must be an integer, got {raw!r}",
                field=key,
                value=raw,
                cause=exc,
            ) from exc

    def port(self, default: int) -> int:
        """Server port.

        A per-call ``Port`` option wins, then ``credentials.port``, then an
        advanced ``Port`` record, then ``default``.
        """
        if _lookup(self.options, "Port") is None and self.credentials.port is not None:
            return self.credentials.port
        return self.advanced_int("Port", default)

    def advanced_flag(self, key: str, default: bool = False) -> bool:
        raw = self.advanced(key)
        if raw is None or raw == "":
            return default
        return raw.strip().lower() in ("true", "1", "yes", "y", "enabled")


@dataclass(frozen=True)
class Column:
    """Column metadata: name plus the engine's type name."""

    name: str
    type: str


@dataclass(frozen=True)
class StorageUnit:
    """A table, collection, index or key namespace plus descriptive attributes."""

    name: str
    attributes: list[Record] = field(default_factory=list)

    def attribute(self, key: str) -> str | None:
        for record in self.attributes:
            if record.key == key:
                return record.value
        return None


@dataclass(frozen=True)
class RowsResult:
    """Uniform tabular result.

    ``disable_update`` is set when rows cannot be written back in place,
    e.g. results of a raw query or a join rather than one addressable unit.
    """

    columns: list[Column] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    disable_update: bool = False


class GraphUnitRelationshipType(str, Enum):
    """Cardinality of an edge between two storage units."""

    ONE_TO_ONE = "OneToOne"
    ONE_TO_MANY = "OneToMany"
    MANY_TO_ONE = "ManyToOne"
    MANY_TO_MANY = "ManyToMany"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class GraphUnitRelationship:
    """Outbound edge naming the related unit."""

    name: str
    relationship_type: GraphUnitRelationshipType


@dataclass(frozen=True)
class GraphUnit:
    """A storage unit with its outbound relationships."""

    unit: StorageUnit
    relations: list[GraphUnitRelationship] = field(default_factory=list)


@dataclass(frozen=True)
class ChatMessage:
    """One reply in an AI-assisted query conversation.

    ``type`` is ``"message"`` for prose, ``"sql"`` for an executed query
    (with ``result``), or ``"error"`` when the suggested query failed.
    """

    type: str
    text: str
    result: RowsResult | None = None


def to_plain(value: Any) -> Any:
    """Convert models to JSON-friendly structures (CLI output, logging)."""
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "__dataclass_fields__"):
        return {name: to_plain(getattr(value, name)) for name in value.__dataclass_fields__}
    if isinstance(value, Mapping):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


__all__ = [
    "Record",
    "records_to_dict",
    "Credentials",
    "PluginConfig",
    "Column",
    "StorageUnit",
    "RowsResult",
    "GraphUnitRelationshipType",
    "GraphUnitRelationship",
    "GraphUnit",
    "ChatMessage",
    "to_plain",
]
