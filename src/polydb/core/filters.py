"""
Filter Model - the engine-agnostic ``WhereCondition`` tree.

A condition is one of three immutable node types:

* :class:`AtomicCondition`: one ``key operator value`` predicate, plus
  the caller's idea of the column type (used by engines that have no
  catalog to consult).
* :class:`AndCondition` / :class:`OrCondition`: non-empty groups of
  child conditions.

Every adapter receives the same tree and translates it to its native
filter construct: parameterised SQL, a MongoDB query document, an
Elasticsearch ``bool`` query.  Engines without server-side predicates
(Redis) call :func:`evaluate` on each scanned row instead.

Architecture:
    ::

        WhereCondition
        ├── AtomicCondition(key, operator, value, column_type)
        ├── AndCondition(children=(…,))   non-empty
        └── OrCondition(children=(…,))    non-empty

        from_dict()  ← API-layer shape {"Type": "And", "And": {"Children": […]}}
        evaluate()   → client-side predicate over a {column: str} row

Examples:
    >>> where = and_(atomic("name", "=", "Bob"), atomic("id", ">", "1", "int"))
    >>> evaluate(where, {"id": "2", "name": "Bob"})
    True
    >>> list(where.atomics())[0].key
    'name'

Guardrails:
    ❌ DON'T: Build a group with no children
    ✅ DO: Pass ``where=None`` for "no filter"

    ❌ DON'T: Format values into SQL strings
    ✅ DO: Let the adapter bind them as parameters

Tags:
    polydb, filter, where, predicate, condition-tree

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from polydb.core.coercion import TypeFamily, coerce, type_family
from polydb.core.errors import MalformedFilterError, MalformedInputError


class Operator(str, Enum):
    """Canonical operator vocabulary shared by all adapters."""

    EQ = "="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"
    # Dialect extras; only accepted where an adapter advertises them
    ILIKE = "ILIKE"
    REGEXP = "REGEXP"


CORE_OPERATORS: frozenset[str] = frozenset(
    op.value for op in Operator if op not in (Operator.ILIKE, Operator.REGEXP)
)

_ALIASES = {"<>": "!=", "==": "=", "EQ": "=", "NE": "!=", "NOT_IN": "NOT IN"}

NULL_OPERATORS: frozenset[str] = frozenset({Operator.IS_NULL.value, Operator.IS_NOT_NULL.value})
LIST_OPERATORS: frozenset[str] = frozenset({Operator.IN.value, Operator.NOT_IN.value})


def normalize_operator(operator: str) -> str:
    """Upper-case, collapse whitespace and resolve aliases (``<>`` → ``!=``)."""
    op = " ".join(operator.strip().upper().split())
    op = _ALIASES.get(op, op)
    valid = {o.value for o in Operator}
    if op not in valid:
        raise MalformedFilterError(f"Unknown filter operator: {operator!r}", field=operator)
    return op


class WhereCondition:
    """Base class for filter tree nodes."""

    def atomics(self) -> Iterator[AtomicCondition]:
        """Yield every atomic predicate in the tree, depth first."""
        raise NotImplementedError


@dataclass(frozen=True)
class AtomicCondition(WhereCondition):
    """Single predicate: ``key operator value``.

    For ``IN``/``NOT IN`` the value is a comma separated list; for
    ``IS NULL``/``IS NOT NULL`` it is ignored.
    """

    key: str
    operator: str
    value: str = ""
    column_type: str = ""

    def __post_init__(self) -> None:
        if not self.key or not self.key.strip():
            raise MalformedFilterError("Atomic condition requires a column key")
        object.__setattr__(self, "operator", normalize_operator(self.operator))

    def atomics(self) -> Iterator[AtomicCondition]:
        yield self

    def values(self) -> list[str]:
        """Value split for list operators, single-item list otherwise."""
        if self.operator in LIST_OPERATORS:
            return [part.strip() for part in self.value.split(",") if part.strip() != ""]
        return [self.value]

    def describe(self) -> str:
        """Human readable fragment for error messages."""
        if self.operator in NULL_OPERATORS:
            return f"{self.key} {self.operator}"
        return f"{self.key} {self.operator} {self.value!r}"


@dataclass(frozen=True)
class _GroupCondition(WhereCondition):
    children: tuple[WhereCondition, ...]

    def __post_init__(self) -> None:
        children = tuple(self.children)
        if not children:
            raise MalformedFilterError(f"{type(self).__name__} requires at least one child condition")
        for child in children:
            if not isinstance(child, WhereCondition):
                raise MalformedFilterError(f"Invalid child condition: {child!r}")
        object.__setattr__(self, "children", children)

    def atomics(self) -> Iterator[AtomicCondition]:
        for child in self.children:
            yield from child.atomics()


@dataclass(frozen=True)
class AndCondition(_GroupCondition):
    """All children must hold."""


@dataclass(frozen=True)
class OrCondition(_GroupCondition):
    """At least one child must hold."""


# -- Builders ---------------------------------------------------------------


def atomic(key: str, operator: str, value: str = "", column_type: str = "") -> AtomicCondition:
    return AtomicCondition(key=key, operator=operator, value=value, column_type=column_type)


def and_(*children: WhereCondition) -> AndCondition:
    return AndCondition(children=children)


def or_(*children: WhereCondition) -> OrCondition:
    return OrCondition(children=children)


def _get(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    lowered = key.lower()
    for k, v in data.items():
        if isinstance(k, str) and k.lower() == lowered:
            return v
    return None


def from_dict(data: Mapping[str, Any] | None) -> WhereCondition | None:
    """Parse the API-layer representation of a condition tree.

    Accepts ``{"Type": "Atomic", "Atomic": {"Key", "Operator", "Value",
    "ColumnType"}}`` and ``{"Type": "And"|"Or", "And"|"Or": {"Children": [...]}}``
    with keys in any case.  ``None`` or an empty mapping mean no filter.
    """
    if not data:
        return None
    if not isinstance(data, Mapping):
        raise MalformedFilterError(f"Condition must be an object, got {type(data).__name__}")

    kind = str(_get(data, "type") or "").strip().lower()
    if kind == "atomic":
        body = _get(data, "atomic")
        if not isinstance(body, Mapping):
            raise MalformedFilterError("Atomic condition is missing its 'Atomic' body")
        return atomic(
            key=str(_get(body, "key") or ""),
            operator=str(_get(body, "operator") or ""),
            value="" if _get(body, "value") is None else str(_get(body, "value")),
            column_type=str(_get(body, "columnType") or _get(body, "column_type") or ""),
        )
    if kind in ("and", "or"):
        body = _get(data, kind)
        children_raw = _get(body, "children") if isinstance(body, Mapping) else None
        if not isinstance(children_raw, list):
            raise MalformedFilterError(f"{kind.capitalize()} condition requires a 'Children' list")
        children = [child for child in (from_dict(c) for c in children_raw) if child is not None]
        return AndCondition(tuple(children)) if kind == "and" else OrCondition(tuple(children))
    raise MalformedFilterError(f"Unknown condition type: {kind or data!r}")


def to_dict(condition: WhereCondition) -> dict[str, Any]:
    """Inverse of :func:`from_dict`."""
    if isinstance(condition, AtomicCondition):
        return {
            "Type": "Atomic",
            "Atomic": {
                "Key": condition.key,
                "Operator": condition.operator,
                "Value": condition.value,
                "ColumnType": condition.column_type,
            },
        }
    if isinstance(condition, (AndCondition, OrCondition)):
        kind = "And" if isinstance(condition, AndCondition) else "Or"
        return {"Type": kind, kind: {"Children": [to_dict(c) for c in condition.children]}}
    raise MalformedFilterError(f"Unknown condition node: {condition!r}")


def validate_operators(condition: WhereCondition | None, supported: frozenset[str]) -> None:
    """Raise ``MalformedFilterError`` for any operator outside ``supported``."""
    if condition is None:
        return
    for node in condition.atomics():
        if node.operator not in supported:
            raise MalformedFilterError(
                f"Operator {node.operator!r} is not supported here",
                field=node.key,
                value=node.describe(),
            )


# -- Client-side evaluation -------------------------------------------------


def like_to_regex(pattern: str, *, case_insensitive: bool = False) -> re.Pattern[str]:
    """Translate a SQL ``LIKE`` pattern (``%``, ``_``) into an anchored regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.DOTALL | (re.IGNORECASE if case_insensitive else 0)
    return re.compile("^" + "".join(parts) + "$", flags)


def _coerce_for_filter(node: AtomicCondition, value: str) -> Any:
    try:
        return coerce(value, node.column_type, field=node.key)
    except MalformedInputError as exc:
        raise MalformedFilterError(
            f"Filter value does not match column type {node.column_type!r}: {node.describe()}",
            field=node.key,
            value=value,
            cause=exc,
        ) from exc


def _comparable(node: AtomicCondition, raw: str) -> Any:
    """Coerce a stored row value; rows that do not parse compare as text."""
    if type_family(node.column_type) is TypeFamily.TEXT:
        return raw
    try:
        return coerce(raw, node.column_type)
    except MalformedInputError:
        return raw


def _evaluate_atomic(node: AtomicCondition, row: Mapping[str, str]) -> bool:
    if node.key not in row:
        raise MalformedFilterError(
            f"Unknown column in filter: {node.key!r}",
            field=node.key,
            value=node.describe(),
        )
    raw = row[node.key]
    op = node.operator

    if op == Operator.IS_NULL.value:
        return raw is None or raw == ""
    if op == Operator.IS_NOT_NULL.value:
        return raw is not None and raw != ""
    if raw is None:
        return False
    if op in (Operator.LIKE.value, Operator.NOT_LIKE.value, Operator.ILIKE.value):
        matched = bool(like_to_regex(node.value, case_insensitive=op == Operator.ILIKE.value).match(raw))
        return not matched if op == Operator.NOT_LIKE.value else matched
    if op == Operator.REGEXP.value:
        try:
            return re.search(node.value, raw) is not None
        except re.error as exc:
            raise MalformedFilterError(
                f"Invalid regular expression: {node.value!r}", field=node.key, cause=exc
            ) from exc

    left = _comparable(node, raw)
    if op in LIST_OPERATORS:
        options = [_coerce_for_filter(node, v) for v in node.values()]
        found = left in options
        return found if op == Operator.IN.value else not found

    right = _coerce_for_filter(node, node.value)
    try:
        if op == Operator.EQ.value:
            return left == right
        if op == Operator.NE.value:
            return left != right
        if op == Operator.LT.value:
            return left < right
        if op == Operator.LTE.value:
            return left <= right
        if op == Operator.GT.value:
            return left > right
        if op == Operator.GTE.value:
            return left >= right
    except TypeError:
        # row value did not parse as the column type
        return False
    raise MalformedFilterError(f"Operator {op!r} cannot be evaluated", field=node.key)


def evaluate(condition: WhereCondition | None, row: Mapping[str, str]) -> bool:
    """Evaluate a condition tree against one row of boundary strings.

    Used by adapters whose engine has no server-side predicates.  Filter
    values are coerced with the atomic node's ``column_type``; a value
    that does not parse raises ``MalformedFilterError``.
    """
    if condition is None:
        return True
    if isinstance(condition, AtomicCondition):
        return _evaluate_atomic(condition, row)
    if isinstance(condition, AndCondition):
        return all(evaluate(child, row) for child in condition.children)
    if isinstance(condition, OrCondition):
        return any(evaluate(child, row) for child in condition.children)
    raise MalformedFilterError(f"Unknown condition node: {condition!r}")


__all__ = [
    "Operator",
    "CORE_OPERATORS",
    "NULL_OPERATORS",
    "LIST_OPERATORS",
    "normalize_operator",
    "WhereCondition",
    "AtomicCondition",
    "AndCondition",
    "OrCondition",
    "atomic",
    "and_",
    "or_",
    "from_dict",
    "to_dict",
    "validate_operators",
    "like_to_regex",
    "evaluate",
]
