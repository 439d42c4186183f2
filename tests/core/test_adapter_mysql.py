"""Tests for ``polydb.core.adapters.mysql`` -- MySQL and MariaDB."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock

import pytest

from polydb.core.adapters.mysql import MariaDBAdapter, MySQLAdapter
from polydb.core.errors import ConfigError
from polydb.core.models import PluginConfig


@pytest.fixture
def adapter(settings):
    return MySQLAdapter(settings)


class TestUrl:
    def test_defaults(self, adapter, config_for):
        url = adapter.url(config_for("mysql"))
        assert url.drivername == "mysql+mysqlconnector"
        assert url.port == 3306
        assert url.database is None

    def test_database_and_port(self, adapter, config_for):
        url = adapter.url(config_for("mysql", "shop", Port="3307"))
        assert (url.database, url.port) == ("shop", 3307)


class TestConnectArgs:
    def test_timeout(self, adapter, config_for):
        assert adapter.connect_args(config_for("mysql")) == {"connection_timeout": 10}

    def test_ssl_disabled(self, adapter, config_for):
        args = adapter.connect_args(config_for("mysql", SSL_Mode="DISABLED"))
        assert args["ssl_disabled"] is True


class TestSession:
    def test_mysql_max_execution_time(self, adapter, config_for):
        conn = MagicMock()
        adapter.on_connect(conn, config_for("mysql"))
        conn.exec_driver_sql.assert_called_once_with("SET SESSION MAX_EXECUTION_TIME = 30000")

    def test_mariadb_max_statement_time(self, settings, config_for):
        conn = MagicMock()
        config = PluginConfig(credentials=config_for("mariadb").credentials, timeout=1.5)
        MariaDBAdapter(settings).on_connect(conn, config)
        conn.exec_driver_sql.assert_called_once_with("SET SESSION max_statement_time = 1.5")


class TestCatalog:
    def test_schema_falls_back_to_database(self, adapter, config_for):
        _, params = adapter.tables_query(config_for("mysql", "shop"), "")
        assert params == {"schema": "shop"}

    def test_databases_equal_schemas(self, adapter, config_for):
        config = config_for("mysql")
        assert adapter.databases_query(config) == adapter.schemas_query(config)

    def test_columns_for_one_table(self, adapter, config_for):
        sql, params = adapter.columns_query(config_for("mysql"), "shop", "orders")
        assert "table_name = :table" in sql
        assert params == {"schema": "shop", "table": "orders"}


class TestDiscovery:
    def test_regexp_and_backticks(self, adapter):
        assert "REGEXP" in adapter.get_supported_operators()
        assert "ILIKE" not in adapter.get_supported_operators()
        assert adapter.dialect.quote_identifier("order") == "`order`"

    def test_mariadb_shares_dialect(self, settings):
        maria = MariaDBAdapter(settings)
        assert maria.name == "mariadb"
        assert maria.get_supported_operators() == MySQLAdapter(settings).get_supported_operators()


class TestDriverMissing:
    def test_config_error(self, adapter, config_for, monkeypatch):
        monkeypatch.setitem(sys.modules, "mysql.connector", None)
        with pytest.raises(ConfigError, match="mysql-connector-python"):
            adapter.get_storage_units(config_for("mysql"), "shop")
