"""
Tests for the polydb CLI (run against real SQLite files).
"""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from polydb.cli.app import app
from polydb.cli.utils import make_config, parse_advanced
from polydb.core.errors import MalformedInputError

runner = CliRunner()


def invoke_json(*args: str) -> object:
    result = runner.invoke(app, [*args, "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestRootApp:
    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "polydb" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("polydb ")

    def test_engines(self):
        entries = invoke_json("engines")
        assert [e["engine"] for e in entries] == [
            "postgresql", "mysql", "mariadb", "sqlite", "oracle", "mongodb", "redis", "elasticsearch",
        ]
        sqlite = next(e for e in entries if e["engine"] == "sqlite")
        assert sqlite["relational"] is True
        assert "ILIKE" not in sqlite["operators"]


class TestSQLiteCommands:
    def test_ping(self, users_db):
        result = runner.invoke(app, ["ping", "-t", "sqlite", "-d", str(users_db)])
        assert result.exit_code == 0
        assert "reachable" in result.output

    def test_ping_missing_file(self, tmp_path):
        result = runner.invoke(app, ["ping", "-t", "sqlite", "-d", str(tmp_path / "nope.db")])
        assert result.exit_code == 1

    def test_units(self, users_db):
        units = invoke_json("units", "-t", "sqlite", "-d", str(users_db))
        assert [u["name"] for u in units] == ["users"]

    def test_units_table(self, users_db):
        result = runner.invoke(app, ["units", "-t", "sqlite", "-d", str(users_db)])
        assert result.exit_code == 0
        assert "users" in result.output

    def test_rows_with_where(self, users_db):
        where = json.dumps({"Type": "Atomic", "Atomic": {"Key": "name", "Operator": "=", "Value": "Bob"}})
        payload = invoke_json("rows", "users", "-t", "sqlite", "-d", str(users_db), "--where", where)
        assert payload["columns"] == [{"name": "id", "type": "int"}, {"name": "name", "type": "text"}]
        assert payload["rows"] == [["2", "Bob"]]
        assert payload["disable_update"] is False

    def test_rows_paging(self, users_db):
        payload = invoke_json("rows", "users", "-t", "sqlite", "-d", str(users_db), "-n", "1", "-o", "1")
        assert payload["rows"] == [["2", "Bob"]]

    def test_rows_table_shows_count(self, users_db):
        result = runner.invoke(app, ["rows", "users", "-t", "sqlite", "-d", str(users_db)])
        assert result.exit_code == 0
        assert "2 row(s)" in result.output

    def test_query(self, users_db):
        payload = invoke_json("query", "SELECT count(*) AS n FROM users", "-t", "sqlite", "-d", str(users_db))
        assert payload["rows"] == [["2"]]
        assert payload["disable_update"] is True

    def test_graph(self, shop_db):
        graph = invoke_json("graph", "-t", "sqlite", "-d", str(shop_db))
        by_name = {node["unit"]["name"]: node["relations"] for node in graph}
        assert "order_tags" not in by_name
        assert {"name": "customers", "relationship_type": "OneToOne"} in by_name["profiles"]

    def test_schemas_empty(self, users_db):
        assert invoke_json("schemas", "-t", "sqlite", "-d", str(users_db)) == []


class TestErrors:
    def test_invalid_where_json(self, users_db):
        result = runner.invoke(app, ["rows", "users", "-t", "sqlite", "-d", str(users_db), "--where", "{oops"])
        assert result.exit_code == 1
        assert "VALIDATION" in result.output

    def test_unknown_column(self, users_db):
        where = json.dumps({"Type": "Atomic", "Atomic": {"Key": "age", "Operator": ">", "Value": "1"}})
        result = runner.invoke(app, ["rows", "users", "-t", "sqlite", "-d", str(users_db), "-w", where])
        assert result.exit_code == 1
        assert "VALIDATION" in result.output

    def test_unknown_engine(self):
        result = runner.invoke(app, ["databases", "-t", "db2"])
        assert result.exit_code == 1
        assert "CONFIG" in result.output

    def test_bad_statement(self, users_db):
        result = runner.invoke(app, ["query", "SELEC 1", "-t", "sqlite", "-d", str(users_db)])
        assert result.exit_code == 1
        assert "DATABASE" in result.output

    def test_missing_file_is_network_error(self, tmp_path):
        result = runner.invoke(app, ["units", "-t", "sqlite", "-d", str(tmp_path / "nope.db")])
        assert result.exit_code == 1
        assert "NETWORK" in result.output


class TestUtils:
    def test_parse_advanced(self):
        records = parse_advanced(["Port=5433", "SSL Mode = require", "Empty="])
        assert [(r.key, r.value) for r in records] == [("Port", "5433"), ("SSL Mode", "require"), ("Empty", "")]

    @pytest.mark.parametrize("pair", ["novalue", "=x"])
    def test_parse_advanced_rejects(self, pair):
        with pytest.raises(MalformedInputError):
            parse_advanced([pair])

    def test_make_config(self):
        config = make_config("redis", host="cache", database="2", advanced=["Port=6380"], timeout=1.0)
        assert config.credentials.hostname == "cache"
        assert config.advanced_int("Port", 6379) == 6380
        assert config.timeout == 1.0

    def test_make_config_port(self):
        config = make_config("redis", port=6390, advanced=["Port=6380"])
        assert config.credentials.port == 6390
        assert config.port(6379) == 6390
