"""Database adapter base class - the Capability Contract.

Manifesto:
    A caller holding a ``DatabaseAdapter`` must be able to call every
    operation on every engine.  When an engine cannot meaningfully do
    something (a relationship graph over Redis keys, SQL against
    MongoDB) it says so with ``UnsupportedOperationError``; it never
    returns an empty list that looks like "no data".

Features:
    - Abstract ``get_databases`` / ``get_all_schemas`` /
      ``get_storage_units`` / ``get_rows`` and the ``_ping`` probe
    - Default implementations of every optional operation that raise
      ``UnsupportedOperationError``
    - ``operation()`` decorator: per-call log binding and error context
    - Paging and timeout helpers shared by all adapters

Tags:
    polydb, database, abstract-base, adapter-pattern, capability-contract

Doc-Types:
    api-reference
"""

from __future__ import annotations

import functools
import importlib
import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from types import ModuleType
from typing import Any, TypeVar

from polydb.core.connection import close_connection, connection_scope
from polydb.core.errors import (
    ConfigError,
    ExecutionFailureError,
    MalformedInputError,
    PolyDBError,
    UnavailableError,
    UnsupportedOperationError,
)
from polydb.core.filters import CORE_OPERATORS, WhereCondition, validate_operators
from polydb.core.logging import LogContext, get_logger
from polydb.core.models import (
    ChatMessage,
    GraphUnit,
    PluginConfig,
    Record,
    RowsResult,
    StorageUnit,
)
from polydb.core.protocols import ChatProvider
from polydb.core.settings import PolyDBSettings, get_settings

from .types import DatabaseType

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_CONTEXT_ARGS = ("schema", "storage_unit")


def operation(name: str) -> Callable[[F], F]:
    """Wrap an adapter method as a named Capability Contract operation.

    Binds ``engine`` and ``operation`` to the log events, stamps them (plus
    ``schema`` / ``storage_unit`` when the method takes them) onto any
    escaping ``PolyDBError`` and converts stray exceptions into
    ``ExecutionFailureError``.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(self: DatabaseAdapter, *args: Any, **kwargs: Any) -> Any:
            context: dict[str, Any] = {"engine": self.name, "operation": name}
            try:
                bound = signature.bind_partial(self, *args, **kwargs)
            except TypeError:
                bound = None
            if bound is not None:
                for key in _CONTEXT_ARGS:
                    if bound.arguments.get(key):
                        context[key] = bound.arguments[key]

            with LogContext(**context):
                logger.debug("operation_started")
                try:
                    result = func(self, *args, **kwargs)
                except PolyDBError as exc:
                    exc.with_default_context(**context)
                    logger.warning(
                        "operation_failed",
                        error_type=type(exc).__name__,
                        category=exc.category.value,
                        error=exc.message,
                    )
                    raise
                except Exception as exc:
                    logger.error("operation_failed", error_type=type(exc).__name__, error=str(exc))
                    raise ExecutionFailureError(
                        f"{name} failed on {self.name}: {exc}", cause=exc
                    ).with_context(**context) from exc
                logger.debug("operation_completed")
                return result

        return wrapper  # type: ignore[return-value]

    return decorator


def import_driver(module_name: str, package: str) -> ModuleType:
    """Import an optional driver or raise ``ConfigError`` with the install hint."""
    try:
        return importlib.import_module(module_name)
    except ImportError:
        raise ConfigError(
            f"{module_name} is required. Install with: pip install {package}"
        ) from None


class DatabaseAdapter(ABC):
    """
    Abstract base class for engine adapters.

    Adapters are stateless dispatch targets: everything a call needs comes
    in through ``PluginConfig``, and each call opens and releases its own
    connection.  One instance is shared by all callers of its engine.
    """

    db_type: DatabaseType

    def __init__(self, settings: PolyDBSettings | None = None):
        self._settings = settings

    @property
    def name(self) -> str:
        """Engine name used in logs and error context."""
        return self.db_type.value

    @property
    def settings(self) -> PolyDBSettings:
        return self._settings if self._settings is not None else get_settings()

    # ── Timeouts ─────────────────────────────────────────────────

    def query_timeout(self, config: PluginConfig) -> float:
        """Seconds a statement may run: the caller's timeout or the default."""
        return config.timeout if config.timeout is not None else self.settings.query_timeout

    def connect_timeout(self, config: PluginConfig) -> float:
        """Seconds a connect may take, never longer than the caller's timeout."""
        if config.timeout is None:
            return self.settings.connect_timeout
        return min(config.timeout, self.settings.connect_timeout)

    # ── Availability ─────────────────────────────────────────────

    def is_available(self, config: PluginConfig) -> bool:
        """Lightweight connectivity probe. Never raises."""
        try:
            self._ping(config)
        except Exception as exc:
            logger.debug("engine_unavailable", engine=self.name, error=str(exc))
            return False
        return True

    @abstractmethod
    def _ping(self, config: PluginConfig) -> None:
        """Raise if the engine cannot be reached."""
        ...

    # ── Introspection ────────────────────────────────────────────

    @abstractmethod
    def get_databases(self, config: PluginConfig) -> list[str]:
        """Top-level namespaces (databases, keyspaces)."""
        ...

    @abstractmethod
    def get_all_schemas(self, config: PluginConfig) -> list[str]:
        """Schemas; engines without the concept return ``[]``."""
        ...

    @abstractmethod
    def get_storage_units(self, config: PluginConfig, schema: str) -> list[StorageUnit]:
        """Tables, collections, indices or keys in ``schema``."""
        ...

    @abstractmethod
    def get_rows(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        where: WhereCondition | None = None,
        page_size: int = 100,
        page_offset: int = 0,
    ) -> RowsResult:
        """One filtered page of rows, offset/limit addressed."""
        ...

    # ── Optional operations ──────────────────────────────────────

    @operation("add_storage_unit")
    def add_storage_unit(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        fields: list[Record],
    ) -> bool:
        raise self._unsupported("add_storage_unit")

    @operation("update_storage_unit")
    def update_storage_unit(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
        updated_columns: list[str],
    ) -> bool:
        raise self._unsupported("update_storage_unit")

    @operation("add_row")
    def add_row(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
    ) -> bool:
        raise self._unsupported("add_row")

    @operation("delete_row")
    def delete_row(
        self,
        config: PluginConfig,
        schema: str,
        storage_unit: str,
        values: list[Record],
    ) -> bool:
        raise self._unsupported("delete_row")

    @operation("get_graph")
    def get_graph(self, config: PluginConfig, schema: str) -> list[GraphUnit]:
        raise self._unsupported("get_graph")

    @operation("raw_execute")
    def raw_execute(self, config: PluginConfig, query: str) -> RowsResult:
        raise self._unsupported("raw_execute")

    @operation("chat")
    def chat(
        self,
        config: PluginConfig,
        schema: str,
        query: str,
        provider: ChatProvider,
        previous_conversation: str = "",
    ) -> list[ChatMessage]:
        raise self._unsupported("chat")

    # ── Discovery ────────────────────────────────────────────────

    def get_supported_operators(self) -> frozenset[str]:
        """Filter operators ``get_rows`` accepts."""
        return CORE_OPERATORS

    def get_supported_column_types(self) -> list[str]:
        """Field types ``add_storage_unit`` accepts (empty when schemaless)."""
        return []

    # ── Helpers ──────────────────────────────────────────────────

    @contextmanager
    def _client_scope(
        self,
        config: PluginConfig,
        operation_name: str,
        connector: Callable[[PluginConfig], Any],
        *,
        unavailable: tuple[type[BaseException], ...] = (),
        release: Callable[[Any], None] = close_connection,
    ) -> Iterator[Any]:
        """Connection scope for client-object drivers.

        Driver exceptions listed in ``unavailable`` (lost connection, server
        selection timeout) surface as ``UnavailableError`` instead of
        ``ExecutionFailureError``.
        """
        with connection_scope(
            config,
            connector,
            release=release,
            engine=self.name,
            operation_name=operation_name,
        ) as client:
            try:
                yield client
            except unavailable as exc:
                raise UnavailableError(
                    f"Lost connection to {self.name}: {exc}", cause=exc
                ).with_context(engine=self.name, operation=operation_name) from exc

    def _unsupported(self, operation_name: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"{operation_name} is not supported for {self.name}"
        ).with_context(engine=self.name, operation=operation_name)

    @staticmethod
    def _check_page(page_size: int, page_offset: int) -> None:
        if page_size <= 0:
            raise MalformedInputError(
                f"page_size must be positive, got {page_size}", field="page_size", value=page_size
            )
        if page_offset < 0:
            raise MalformedInputError(
                f"page_offset must not be negative, got {page_offset}",
                field="page_offset",
                value=page_offset,
            )

    def _check_filter(self, where: WhereCondition | None) -> None:
        """Reject operators this engine does not advertise, before any I/O."""
        validate_operators(where, self.get_supported_operators())

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


__all__ = [
    "DatabaseAdapter",
    "import_driver",
    "operation",
]
