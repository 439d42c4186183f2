"""Tests for ``polydb.core.adapters.postgresql`` -- URL, session and catalog SQL."""

from __future__ import annotations

import sys

import pytest

from polydb.core.adapters.postgresql import PostgreSQLAdapter
from polydb.core.errors import ConfigError
from polydb.core.models import Credentials, PluginConfig


@pytest.fixture
def adapter(settings):
    return PostgreSQLAdapter(settings)


class TestUrl:
    def test_defaults(self, adapter, config_for):
        url = adapter.url(config_for("postgresql"))
        assert url.drivername == "postgresql+psycopg2"
        assert url.host == "localhost"
        assert url.port == 5432
        assert url.database == "postgres"
        assert url.username == "tester"
        assert url.password == "secret"

    def test_port_and_database(self, adapter, config_for):
        url = adapter.url(config_for("postgresql", "shop", Port="5433"))
        assert url.port == 5433
        assert url.database == "shop"

    def test_credentials_port(self, adapter):
        config = PluginConfig(credentials=Credentials(type="postgresql", port=6543))
        assert adapter.url(config).port == 6543

    def test_per_call_port_option_wins(self, adapter):
        credentials = Credentials(type="postgresql", port=6543)
        assert adapter.url(PluginConfig(credentials=credentials, options={"Port": "7000"})).port == 7000

    def test_password_with_special_characters(self, adapter):
        config = PluginConfig(credentials=Credentials(type="postgresql", username="u", password="p@ss:/word"))
        assert adapter.url(config).password == "p@ss:/word"


class TestConnectArgs:
    def test_timeouts(self, adapter, config_for):
        args = adapter.connect_args(config_for("postgresql"))
        assert args["connect_timeout"] == 10
        assert args["options"] == "-c statement_timeout=30000"
        assert args["sslmode"] == "prefer"

    def test_caller_timeout_caps_both(self, adapter, config_for):
        config = config_for("postgresql", SSL_Mode="require")
        config = PluginConfig(credentials=config.credentials, timeout=2.5)
        args = adapter.connect_args(config)
        assert args["connect_timeout"] == 3
        assert args["options"] == "-c statement_timeout=2500"
        assert args["sslmode"] == "require"


class TestCatalogQueries:
    def test_schema_defaults_to_public(self, adapter, config_for):
        _, params = adapter.tables_query(config_for("postgresql"), "")
        assert params == {"schema": "public"}
        assert adapter.inspector_schema("") == "public"

    def test_columns_for_one_table(self, adapter, config_for):
        sql, params = adapter.columns_query(config_for("postgresql"), "sales", "orders")
        assert "table_name = :table" in sql
        assert params == {"schema": "sales", "table": "orders"}

    def test_schemas_listed(self, adapter, config_for):
        assert adapter.schemas_query(config_for("postgresql")) is not None

    @pytest.mark.parametrize(("code", "name"), [(23, "int4"), (1700, "numeric"), (99999, "99999"), (None, "")])
    def test_type_name(self, adapter, code, name):
        assert adapter.type_name(code) == name


class TestDiscovery:
    def test_ilike_supported(self, adapter):
        assert "ILIKE" in adapter.get_supported_operators()
        assert "JSONB" in adapter.get_supported_column_types()


class TestDriverMissing:
    def test_config_error_with_install_hint(self, adapter, config_for, monkeypatch):
        monkeypatch.setitem(sys.modules, "psycopg2", None)
        with pytest.raises(ConfigError, match="pip install psycopg2-binary"):
            adapter.get_databases(config_for("postgresql"))
        assert adapter.is_available(config_for("postgresql")) is False
