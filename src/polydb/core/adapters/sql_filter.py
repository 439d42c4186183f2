"""
WhereCondition → parameterised SQL.

Compiles a filter tree into a boolean SQL expression with named bind
parameters (``:w0``, ``:w1`` …) for SQLAlchemy ``text()``.  Values are
never formatted into the statement.

Every atomic node is checked against the table's live column metadata
before anything reaches the engine:

* the column must exist (exact name, else a unique case-insensitive match),
* the operator must be in the dialect's operator set,
* the value must coerce to the column's declared type.

Any violation raises ``MalformedFilterError`` carrying the offending
fragment, so the caller sees ``age > 'abc'`` rather than a driver error.

Examples:
    >>> sql, params = compile_where(
    ...     or_(atomic("name", "=", "Bob"), atomic("id", "IN", "1,3")),
    ...     {"id": "int", "name": "text"},
    ...     get_dialect("sqlite"),
    ... )
    >>> sql
    '("name" = :w0 OR "id" IN (:w1, :w2))'
    >>> params
    {'w0': 'Bob', 'w1': 1, 'w2': 3}

Tags:
    polydb, sql, filter, parameter-binding, injection-safe

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from polydb.core.coercion import coerce
from polydb.core.dialect import Dialect
from polydb.core.errors import MalformedFilterError, MalformedInputError
from polydb.core.filters import (
    LIST_OPERATORS,
    NULL_OPERATORS,
    AndCondition,
    AtomicCondition,
    Operator,
    OrCondition,
    WhereCondition,
)

_PATTERN_OPERATORS = frozenset(
    {
        Operator.LIKE.value,
        Operator.NOT_LIKE.value,
        Operator.ILIKE.value,
        Operator.REGEXP.value,
    }
)


def resolve_column(key: str, columns: Mapping[str, str]) -> str | None:
    """Real column name for ``key``: exact match, else a unique case-insensitive one."""
    if key in columns:
        return key
    matches = [name for name in columns if name.lower() == key.lower()]
    return matches[0] if len(matches) == 1 else None


class SQLFilterCompiler:
    """Single-use compiler; collects bind parameters while walking the tree."""

    def __init__(
        self,
        columns: Mapping[str, str],
        dialect: Dialect,
        *,
        bind: Callable[[Any], Any] | None = None,
        prefix: str = "w",
    ):
        self._columns = columns
        self._dialect = dialect
        self._bind = bind or (lambda value: value)
        self._prefix = prefix
        self.params: dict[str, Any] = {}

    def compile(self, condition: WhereCondition) -> str:
        if isinstance(condition, AtomicCondition):
            return self._atomic(condition)
        if isinstance(condition, (AndCondition, OrCondition)):
            joiner = " AND " if isinstance(condition, AndCondition) else " OR "
            return "(" + joiner.join(self.compile(child) for child in condition.children) + ")"
        raise MalformedFilterError(f"Unknown condition node: {condition!r}")

    def _param(self, value: Any) -> str:
        name = f"{self._prefix}{len(self.params)}"
        self.params[name] = self._bind(value)
        return f":{name}"

    def _coerce(self, node: AtomicCondition, column_type: str, value: str) -> Any:
        try:
            return coerce(value, column_type, field=node.key)
        except MalformedInputError as exc:
            raise MalformedFilterError(
                f"Filter value does not match column type {column_type!r}: {node.describe()}",
                field=node.key,
                value=node.describe(),
                cause=exc,
            ) from exc

    def _atomic(self, node: AtomicCondition) -> str:
        column = resolve_column(node.key, self._columns)
        if column is None:
            raise MalformedFilterError(
                f"Unknown column in filter: {node.describe()}",
                field=node.key,
                value=node.describe(),
            )
        if node.operator not in self._dialect.operators:
            raise MalformedFilterError(
                f"Operator {node.operator!r} is not supported by {self._dialect.name}: {node.describe()}",
                field=node.key,
                value=node.describe(),
            )

        # text() treats ":name" as a bind
        quoted = self._dialect.quote_identifier(column).replace(":", "\\:")
        column_type = self._columns[column]
        op = node.operator

        if op in NULL_OPERATORS:
            return f"{quoted} {op}"
        if op in _PATTERN_OPERATORS:
            return f"{quoted} {op} {self._param(node.value)}"
        if op in LIST_OPERATORS:
            items = node.values()
            if not items:
                raise MalformedFilterError(
                    f"{op} requires at least one value: {node.describe()}",
                    field=node.key,
                    value=node.describe(),
                )
            placeholders = ", ".join(
                self._param(self._coerce(node, column_type, item)) for item in items
            )
            return f"{quoted} {op} ({placeholders})"
        return f"{quoted} {op} {self._param(self._coerce(node, column_type, node.value))}"


def compile_where(
    condition: WhereCondition | None,
    columns: Mapping[str, str],
    dialect: Dialect,
    *,
    bind: Callable[[Any], Any] | None = None,
) -> tuple[str, dict[str, Any]]:
    """Compile ``condition`` into ``(sql, params)``; ``("", {})`` when there is none.

    Args:
        condition: Filter tree or ``None``.
        columns: ``{column name: declared type}`` from introspection.
        dialect: Target dialect (quoting and operator set).
        bind: Optional hook adapting coerced values for the driver.
    """
    if condition is None:
        return "", {}
    compiler = SQLFilterCompiler(columns, dialect, bind=bind)
    return compiler.compile(condition), compiler.params


__all__ = [
    "SQLFilterCompiler",
    "compile_where",
    "resolve_column",
]
