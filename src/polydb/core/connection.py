"""
Connection Scope Helper - acquire, operate, release.

Every adapter operation opens its own connection, uses it, and gives it
back, whatever happens in between.  This module is the single place that
guarantees the "gives it back" part, so adapters never manage raw
connection lifetime themselves.

Architecture:
    ::

        with_connection(config, connector, operation)
            │
            ├── connector(config) ──✗──► UnavailableError (cause chained)
            │
            ├── operation(conn)   ──✗──► PolyDBError passes through
            │                     ──✗──► other Exception → ExecutionFailureError
            │                     ──✗──► BaseException (cancel) passes through
            │
            └── finally: release(conn)  (errors logged, never mask the original)

Examples:
    >>> def connect(config):
    ...     return sqlite3.connect(config.credentials.database)
    >>> with_connection(config, connect, lambda conn: conn.execute("SELECT 1").fetchone())
    (1,)

    >>> with connection_scope(config, connect, engine="sqlite") as conn:
    ...     conn.execute("SELECT 1")

Tags:
    polydb, connection, resource-management, cleanup

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from polydb.core.errors import ExecutionFailureError, PolyDBError, UnavailableError
from polydb.core.logging import get_logger
from polydb.core.models import PluginConfig

logger = get_logger(__name__)

C = TypeVar("C")
T = TypeVar("T")


def close_connection(conn: Any) -> None:
    """Default release: call ``close()`` when the connection has one."""
    close = getattr(conn, "close", None)
    if callable(close):
        close()


def _acquire(
    config: PluginConfig,
    connector: Callable[[PluginConfig], C],
    engine: str | None,
    operation_name: str | None,
) -> C:
    try:
        return connector(config)
    except PolyDBError:
        raise
    except Exception as exc:
        raise UnavailableError(
            f"Cannot connect to {engine or config.credentials.type}: {exc}",
            cause=exc,
        ).with_context(engine=engine or config.credentials.type, operation=operation_name) from exc


def _release(conn: Any, release: Callable[[Any], None], engine: str | None) -> None:
    try:
        release(conn)
    except Exception:
        logger.warning("connection_release_failed", engine=engine, exc_info=True)
    else:
        logger.debug("connection_released", engine=engine)


@contextmanager
def connection_scope(
    config: PluginConfig,
    connector: Callable[[PluginConfig], C],
    *,
    release: Callable[[C], None] = close_connection,
    engine: str | None = None,
    operation_name: str | None = None,
) -> Iterator[C]:
    """Context-manager form of :func:`with_connection`."""
    conn = _acquire(config, connector, engine, operation_name)
    logger.debug("connection_acquired", engine=engine, operation=operation_name)
    try:
        yield conn
    except PolyDBError:
        raise
    except Exception as exc:
        raise ExecutionFailureError(
            f"{operation_name or 'operation'} failed on {engine or config.credentials.type}: {exc}",
            cause=exc,
        ).with_context(engine=engine or config.credentials.type, operation=operation_name) from exc
    finally:
        _release(conn, release, engine)


def with_connection(
    config: PluginConfig,
    connector: Callable[[PluginConfig], C],
    operation: Callable[[C], T],
    *,
    release: Callable[[C], None] = close_connection,
    engine: str | None = None,
    operation_name: str | None = None,
) -> T:
    """Open a connection, run ``operation`` on it, always release it.

    Args:
        config: Per-call plugin configuration handed to ``connector``.
        connector: Opens a connection (or client) from the config.
        operation: Receives the connection and returns the result.
        release: Closes the connection. Defaults to ``conn.close()``.
        engine: Engine name for error context and logs.
        operation_name: Operation name for error context and logs.

    Raises:
        UnavailableError: ``connector`` failed.
        ExecutionFailureError: ``operation`` raised a non-polydb exception.
    """
    with connection_scope(
        config,
        connector,
        release=release,
        engine=engine,
        operation_name=operation_name,
    ) as conn:
        return operation(conn)


__all__ = [
    "close_connection",
    "connection_scope",
    "with_connection",
]
