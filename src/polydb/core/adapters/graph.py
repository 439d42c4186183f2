"""
Relationship-graph classification.

Pure functions: the adapters reflect keys (SQL) or sample reference
fields (documents, search indices) and hand plain data to this module,
which decides the cardinality of every edge.  Nothing here talks to a
database, so the rules are tested directly.

Relational rules, per foreign key ``child(cols) → parent(ref_cols)``:

    ┌───────────────────────────────────────────┬─────────────────────────────┐
    │ shape                                     │ edges                       │
    ├───────────────────────────────────────────┼─────────────────────────────┤
    │ cols unique in child AND ref_cols unique  │ child ↔ parent  OneToOne    │
    │ ref_cols unique in parent only            │ child → parent  ManyToOne   │
    │                                           │ parent → child  OneToMany   │
    │ table = exactly two FKs, nothing else,    │ A ↔ B  ManyToMany           │
    │ not referenced by anything                │ (join table hidden)         │
    │ anything else                             │ child → parent  Unknown     │
    └───────────────────────────────────────────┴─────────────────────────────┘

Document rules: a field holding a ``DBRef``, or named ``<unit>_id`` /
``<unit>Id`` where ``<unit>`` (or its plural) is another storage unit,
is a ``ManyToOne`` reference with the inverse ``OneToMany``.

Tags:
    polydb, graph, foreign-key, cardinality, join-table

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from polydb.core.models import (
    GraphUnit,
    GraphUnitRelationship,
    GraphUnitRelationshipType,
    StorageUnit,
)

RT = GraphUnitRelationshipType


@dataclass(frozen=True)
class ForeignKey:
    """One reflected foreign key; empty ``referred_columns`` means the parent's PK."""

    columns: tuple[str, ...]
    referred_table: str
    referred_columns: tuple[str, ...] = ()


@dataclass(frozen=True)
class TableKeys:
    """Key structure of one table as reflected from the catalog."""

    name: str
    columns: tuple[str, ...]
    primary_key: tuple[str, ...] = ()
    unique_sets: tuple[frozenset[str], ...] = ()
    foreign_keys: tuple[ForeignKey, ...] = field(default_factory=tuple)

    def identifying_sets(self) -> list[frozenset[str]]:
        """Primary key plus unique constraints/indexes."""
        sets = [s for s in self.unique_sets if s]
        if self.primary_key:
            sets.append(frozenset(self.primary_key))
        return sets

    def is_unique(self, columns: Iterable[str]) -> bool:
        """Whether ``columns`` cover some unique key (so they identify one row)."""
        cols = frozenset(columns)
        return bool(cols) and any(key <= cols for key in self.identifying_sets())


class _Edges:
    """Ordered, de-duplicated edge lists per unit."""

    def __init__(self) -> None:
        self._edges: dict[str, list[GraphUnitRelationship]] = {}

    def add(self, source: str, target: str, kind: GraphUnitRelationshipType) -> None:
        edges = self._edges.setdefault(source, [])
        edge = GraphUnitRelationship(name=target, relationship_type=kind)
        if edge not in edges:
            edges.append(edge)

    def get(self, source: str) -> list[GraphUnitRelationship]:
        return list(self._edges.get(source, []))


def find_join_tables(tables: Iterable[TableKeys]) -> set[str]:
    """Tables made solely of two foreign keys that nothing references."""
    tables = list(tables)
    referenced = {
        fk.referred_table
        for table in tables
        for fk in table.foreign_keys
        if fk.referred_table != table.name
    }
    joins = set()
    for table in tables:
        if len(table.foreign_keys) != 2 or table.name in referenced:
            continue
        first, second = (frozenset(fk.columns) for fk in table.foreign_keys)
        if not first or not second or first & second:
            continue
        if first | second == frozenset(table.columns):
            joins.add(table.name)
    return joins


def classify_foreign_keys(tables: Iterable[TableKeys]) -> tuple[dict[str, list[GraphUnitRelationship]], set[str]]:
    """Classify every foreign key in ``tables``.

    Returns:
        ``({unit: relationships}, join_table_names)``. Join tables have no
        entry of their own; their targets get ``ManyToMany`` edges instead.
    """
    tables = list(tables)
    by_name = {table.name: table for table in tables}
    joins = find_join_tables(tables)
    edges = _Edges()

    for table in tables:
        if table.name in joins:
            a, b = (fk.referred_table for fk in table.foreign_keys)
            edges.add(a, b, RT.MANY_TO_MANY)
            edges.add(b, a, RT.MANY_TO_MANY)
            continue

        for fk in table.foreign_keys:
            parent = by_name.get(fk.referred_table)
            if parent is None:
                edges.add(table.name, fk.referred_table, RT.UNKNOWN)
                continue
            referred = fk.referred_columns or parent.primary_key
            parent_unique = parent.is_unique(referred)
            child_unique = table.is_unique(fk.columns)
            if parent_unique and child_unique:
                edges.add(table.name, parent.name, RT.ONE_TO_ONE)
                edges.add(parent.name, table.name, RT.ONE_TO_ONE)
            elif parent_unique:
                edges.add(table.name, parent.name, RT.MANY_TO_ONE)
                edges.add(parent.name, table.name, RT.ONE_TO_MANY)
            else:
                edges.add(table.name, parent.name, RT.UNKNOWN)

    return {table.name: edges.get(table.name) for table in tables if table.name not in joins}, joins


def build_graph(units: Iterable[StorageUnit], tables: Iterable[TableKeys]) -> list[GraphUnit]:
    """Attach classified edges to ``units``, dropping pure join tables."""
    relations, joins = classify_foreign_keys(tables)
    return [
        GraphUnit(unit=unit, relations=relations.get(unit.name, []))
        for unit in units
        if unit.name not in joins
    ]


# ── Reference-field inference (documents, search indices) ─────────────

_SNAKE_REF = re.compile(r"^(?P<base>.+?)_id$", re.IGNORECASE)
_CAMEL_REF = re.compile(r"^(?P<base>.+?[a-z0-9])Id$")


def _candidates(base: str) -> list[str]:
    base = base.lower()
    return [base, base + "s", base + "es", base[:-1] + "ies" if base.endswith("y") else base]


def reference_target(field_name: str, unit_names: Iterable[str]) -> str | None:
    """Storage unit referenced by a ``<unit>_id`` / ``<unit>Id`` field, if any."""
    leaf = field_name.rsplit(".", 1)[-1]
    match = _SNAKE_REF.match(leaf) or _CAMEL_REF.match(leaf)
    if match is None:
        return None
    lookup = {name.lower(): name for name in unit_names}
    for candidate in _candidates(match.group("base")):
        if candidate in lookup:
            return lookup[candidate]
    return None


def graph_from_references(
    units: Iterable[StorageUnit],
    references: Mapping[str, Iterable[str]],
) -> list[GraphUnit]:
    """Graph from inferred references ``{unit: referenced units}``."""
    units = list(units)
    known = {unit.name for unit in units}
    edges = _Edges()
    for source, targets in references.items():
        for target in targets:
            if target not in known or target == source:
                continue
            edges.add(source, target, RT.MANY_TO_ONE)
            edges.add(target, source, RT.ONE_TO_MANY)
    return [GraphUnit(unit=unit, relations=edges.get(unit.name)) for unit in units]


__all__ = [
    "ForeignKey",
    "TableKeys",
    "find_join_tables",
    "classify_foreign_keys",
    "build_graph",
    "reference_target",
    "graph_from_references",
]
