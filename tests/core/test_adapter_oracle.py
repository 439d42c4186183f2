"""Tests for ``polydb.core.adapters.oracle``."""

from __future__ import annotations

import sys
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from polydb.core.adapters.oracle import OracleAdapter
from polydb.core.errors import ConfigError


@pytest.fixture
def adapter(settings):
    return OracleAdapter(settings)


class TestUrl:
    def test_service_name_from_database(self, adapter, config_for):
        url = adapter.url(config_for("oracle", "ORCLPDB1"))
        assert url.drivername == "oracle+oracledb"
        assert url.port == 1521
        assert url.query["service_name"] == "ORCLPDB1"

    def test_service_name_option_wins(self, adapter, config_for):
        url = adapter.url(config_for("oracle", "ignored", Service_Name="SALES", Port="1522"))
        assert url.query["service_name"] == "SALES"
        assert url.port == 1522


class TestSession:
    def test_call_timeout_in_milliseconds(self, adapter, config_for):
        driver_connection = SimpleNamespace(call_timeout=0)
        conn = MagicMock()
        conn.connection.driver_connection = driver_connection
        adapter.on_connect(conn, config_for("oracle"))
        assert driver_connection.call_timeout == 30000

    def test_connect_timeout(self, adapter, config_for):
        assert adapter.connect_args(config_for("oracle")) == {"tcp_connect_timeout": 10.0}


class TestCatalog:
    def test_owner_defaults_to_user(self, adapter, config_for):
        _, params = adapter.tables_query(config_for("oracle"), "")
        assert params == {"owner": "TESTER"}

    def test_columns_bind_avoids_reserved_words(self, adapter, config_for):
        sql, params = adapter.columns_query(config_for("oracle"), "HR", "EMPLOYEES")
        assert ":tbl" in sql
        assert params == {"owner": "HR", "tbl": "EMPLOYEES"}

    def test_inspector_schema(self, adapter):
        assert adapter.inspector_schema("") is None
        assert adapter.inspector_schema("HR") == "hr"
        assert adapter.inspector_schema("MixedCase") == "MixedCase"


class TestValues:
    def test_booleans_bound_as_numbers(self, adapter):
        assert adapter.bind_value(True) == 1
        assert adapter.bind_value("x") == "x"

    def test_type_name_strips_prefix(self, adapter):
        assert adapter.type_name(SimpleNamespace(name="DB_TYPE_VARCHAR")) == "VARCHAR"


class TestDialect:
    def test_fetch_next_pagination(self, adapter):
        assert adapter.dialect.paginate(":page_limit", ":page_offset") == (
            "OFFSET :page_offset ROWS FETCH NEXT :page_limit ROWS ONLY"
        )
        assert "VARCHAR2" in adapter.get_supported_column_types()


class TestDriverMissing:
    def test_config_error(self, adapter, config_for, monkeypatch):
        monkeypatch.setitem(sys.modules, "oracledb", None)
        with pytest.raises(ConfigError, match="pip install oracledb"):
            adapter.get_all_schemas(config_for("oracle"))
