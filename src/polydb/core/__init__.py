"""polydb core -- engine-agnostic database access primitives.

Manifesto:
    A multi-engine database client needs the same few things whatever it
    talks to: a vocabulary for rows, columns and storage units, a filter
    tree that means the same on every engine, an error taxonomy callers
    can route on, and a guarantee that every connection opened is closed.
    ``polydb.core`` holds those pieces; ``polydb.core.adapters`` holds the
    eight engines built on them.

Architecture::

    Layer 1 -- Types & Errors
        models.py          Record, Credentials, PluginConfig, RowsResult, GraphUnit
        errors.py          PolyDBError taxonomy (Unavailable, Unsupported, ...)
        coercion.py        boundary strings <-> native values
        filters.py         WhereCondition tree (atomic / And / Or)
        protocols.py       ChatProvider protocol

    Layer 2 -- Infrastructure
        settings.py        PolyDBSettings (pydantic-settings, POLYDB_ env)
        logging.py         structlog configuration
        connection.py      connection_scope / with_connection
        dialect.py         SQL quoting, pagination and operator sets

    Layer 3 -- Engines
        adapters/          Capability Contract + eight adapters + registry

Tags:
    polydb, core, database, multi-engine

Doc-Types:
    package-overview, architecture-map
"""

from polydb.core.connection import connection_scope, with_connection
from polydb.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    ExecutionFailureError,
    MalformedFilterError,
    MalformedInputError,
    PolyDBError,
    UnavailableError,
    UnsupportedOperationError,
    UnsupportedTypeError,
    ValidationError,
)
from polydb.core.filters import (
    AndCondition,
    AtomicCondition,
    Operator,
    OrCondition,
    WhereCondition,
)
from polydb.core.logging import configure_logging, get_logger
from polydb.core.models import (
    ChatMessage,
    Column,
    Credentials,
    GraphUnit,
    GraphUnitRelationship,
    GraphUnitRelationshipType,
    PluginConfig,
    Record,
    RowsResult,
    StorageUnit,
)
from polydb.core.settings import PolyDBSettings, get_settings

__all__ = [
    # Models
    "Record",
    "Credentials",
    "PluginConfig",
    "Column",
    "StorageUnit",
    "RowsResult",
    "GraphUnit",
    "GraphUnitRelationship",
    "GraphUnitRelationshipType",
    "ChatMessage",
    # Filters
    "Operator",
    "WhereCondition",
    "AtomicCondition",
    "AndCondition",
    "OrCondition",
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "PolyDBError",
    "UnavailableError",
    "UnsupportedOperationError",
    "ValidationError",
    "MalformedFilterError",
    "MalformedInputError",
    "ExecutionFailureError",
    "ConfigError",
    "UnsupportedTypeError",
    # Infrastructure
    "PolyDBSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "connection_scope",
    "with_connection",
]
