"""Tests for ``polydb.core.dialect``."""

from __future__ import annotations

import pytest

from polydb.core.dialect import (
    Dialect,
    MySQLDialect,
    OracleDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
)


class TestQuoting:
    def test_double_quotes_escape_embedded(self):
        assert PostgreSQLDialect().quote_identifier('we"ird') == '"we""ird"'

    def test_mysql_backticks(self):
        d = MySQLDialect()
        assert d.quote_identifier("order") == "`order`"
        assert d.quote_identifier("a`b") == "`a``b`"

    def test_qualify_with_schema(self):
        assert PostgreSQLDialect().qualify("public", "users") == '"public"."users"'

    def test_qualify_without_schema(self):
        assert OracleDialect().qualify("", "USERS") == '"USERS"'

    def test_sqlite_ignores_schema(self):
        assert SQLiteDialect().qualify("main", "users") == '"users"'


class TestFragments:
    def test_limit_offset(self):
        assert SQLiteDialect().paginate(":l", ":o") == "LIMIT :l OFFSET :o"

    def test_oracle_fetch_next(self):
        d = OracleDialect()
        assert d.paginate(":l", ":o") == "OFFSET :o ROWS FETCH NEXT :l ROWS ONLY"
        assert d.ping_query() == "SELECT 1 FROM DUAL"

    def test_default_ping(self):
        assert MySQLDialect().ping_query() == "SELECT 1"


class TestOperatorsAndTypes:
    def test_engine_specific_operators(self):
        assert "ILIKE" in PostgreSQLDialect().operators
        assert "ILIKE" not in SQLiteDialect().operators
        assert "REGEXP" in MySQLDialect().operators
        assert "REGEXP" not in OracleDialect().operators
        assert "LIKE" in OracleDialect().operators

    @pytest.mark.parametrize(
        ("dialect", "type_name", "supported"),
        [
            (PostgreSQLDialect(), "varchar(20)", True),
            (PostgreSQLDialect(), "double precision", True),
            (PostgreSQLDialect(), "NUMBER", False),
            (OracleDialect(), "VARCHAR2(100)", True),
            (MySQLDialect(), "jsonb", False),
            (SQLiteDialect(), "text", True),
        ],
    )
    def test_supports_column_type(self, dialect, type_name, supported):
        assert dialect.supports_column_type(type_name) is supported


class TestGetDialect:
    def test_lookup(self):
        assert isinstance(get_dialect("SQLite"), SQLiteDialect)
        assert isinstance(get_dialect("mariadb"), MySQLDialect)

    def test_protocol(self):
        assert isinstance(get_dialect("postgresql"), Dialect)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown dialect"):
            get_dialect("db2")
