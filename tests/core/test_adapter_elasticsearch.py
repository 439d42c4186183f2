"""Tests for ``polydb.core.adapters.elasticsearch`` against a mocked client."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

elasticsearch = pytest.importorskip("elasticsearch")

from polydb.core.adapters.elasticsearch import (  # noqa: E402
    ElasticsearchAdapter,
    flatten_properties,
    keyword_field,
    like_to_wildcard,
    to_es_query,
)
from polydb.core.errors import (  # noqa: E402
    ExecutionFailureError,
    MalformedFilterError,
    MalformedInputError,
    UnavailableError,
    UnsupportedOperationError,
)
from polydb.core.filters import and_, atomic, or_  # noqa: E402
from polydb.core.models import GraphUnitRelationshipType, Record  # noqa: E402
from polydb.core.settings import PolyDBSettings  # noqa: E402

MAPPING = {
    "users": {
        "mappings": {
            "properties": {
                "name": {"type": "text", "fields": {"keyword": {"type": "keyword", "ignore_above": 256}}},
                "email": {"type": "keyword"},
                "age": {"type": "integer"},
                "joined": {"type": "date"},
                "address": {"properties": {"city": {"type": "keyword"}}},
            }
        }
    }
}


def rec(key: str, value: str, **extra: str) -> Record:
    return Record(key=key, value=value, extra=extra)


def not_found() -> Exception:
    return elasticsearch.NotFoundError("not found", MagicMock(status=404), {})


def hit(doc_id: str, **source) -> dict:
    return {"_id": doc_id, "_source": source, "sort": [doc_id]}


@pytest.fixture
def client():
    client = MagicMock()
    client.indices.get_mapping.return_value = MAPPING
    return client


@pytest.fixture
def make_adapter(client, monkeypatch):
    def build(**overrides):
        adapter = ElasticsearchAdapter(PolyDBSettings(_env_file=None, **overrides))
        monkeypatch.setattr(adapter, "_connect", lambda config: client)
        return adapter

    return build


@pytest.fixture
def adapter(make_adapter):
    return make_adapter()


@pytest.fixture
def config(config_for):
    return config_for("elasticsearch")


class TestHelpers:
    @pytest.mark.parametrize(
        ("pattern", "expected"),
        [("B%", "B*"), ("_ob", "?ob"), ("a*b", "a\\*b"), ("what?", "what\\?")],
    )
    def test_like_to_wildcard(self, pattern, expected):
        assert like_to_wildcard(pattern) == expected

    def test_flatten_properties(self):
        fields = flatten_properties(
            {
                "a": {"type": "keyword"},
                "o": {"properties": {"b": {"type": "long"}}},
                "n": {"type": "nested", "properties": {"c": {"type": "text"}}},
                "t": {"type": "text", "fields": {"raw": {"type": "keyword"}, "en": {"type": "text"}}},
            }
        )
        assert fields == {"a": "keyword", "o.b": "long", "n": "nested", "n.c": "text", "t": "text", "t.raw": "keyword"}

    def test_keyword_field(self):
        types = {"name": "text", "name.keyword": "keyword", "t": "text", "t.raw": "keyword", "bio": "text"}
        assert keyword_field("name", types) == "name.keyword"
        assert keyword_field("t", types) == "t.raw"
        assert keyword_field("bio", types) is None


class TestToEsQuery:
    TYPES = {
        "name": "text",
        "name.keyword": "keyword",
        "bio": "text",
        "email": "keyword",
        "age": "integer",
        "joined": "date",
    }

    def test_match_all(self):
        assert to_es_query(None, self.TYPES) == {"match_all": {}}

    def test_text_comparisons_use_keyword_sub_field(self):
        assert to_es_query(atomic("name", "=", "Bob"), self.TYPES) == {"term": {"name.keyword": "Bob"}}
        assert to_es_query(atomic("name", "!=", "Bob"), self.TYPES) == {
            "bool": {"must_not": [{"term": {"name.keyword": "Bob"}}]}
        }
        assert to_es_query(atomic("name", "IN", "Bob,Eve"), self.TYPES) == {"terms": {"name.keyword": ["Bob", "Eve"]}}
        assert to_es_query(atomic("name", "NOT IN", "Bob"), self.TYPES) == {
            "bool": {"must_not": [{"terms": {"name.keyword": ["Bob"]}}]}
        }
        assert to_es_query(atomic("name", "LIKE", "Bob S%"), self.TYPES) == {
            "wildcard": {"name.keyword": {"value": "Bob S*"}}
        }

    def test_text_null_checks_use_the_field_itself(self):
        assert to_es_query(atomic("bio", "IS NOT NULL"), self.TYPES) == {"exists": {"field": "bio"}}

    @pytest.mark.parametrize("operator", ["=", "IN", "LIKE", ">"])
    def test_text_without_keyword_sub_field_is_rejected(self, operator):
        with pytest.raises(MalformedFilterError, match="keyword"):
            to_es_query(atomic("bio", operator, "x"), self.TYPES)

    def test_unknown_field_is_rejected(self):
        with pytest.raises(MalformedFilterError, match="Unknown field"):
            to_es_query(atomic("nickname", "=", "Bob"), self.TYPES)

    def test_explicit_column_type_allows_unmapped_field(self):
        condition = atomic("nickname", "=", "Bob", column_type="keyword")
        assert to_es_query(condition, self.TYPES) == {"term": {"nickname": "Bob"}}

    def test_document_id(self):
        assert to_es_query(atomic("_id", "IN", "1,2"), self.TYPES) == {"terms": {"_id": ["1", "2"]}}

    def test_equality_on_keyword_is_term(self):
        assert to_es_query(atomic("email", "=", "b@x"), self.TYPES) == {"term": {"email": "b@x"}}

    def test_not_equal(self):
        assert to_es_query(atomic("age", "!=", "3"), self.TYPES) == {"bool": {"must_not": [{"term": {"age": 3}}]}}

    def test_range_typed(self):
        assert to_es_query(atomic("age", ">=", "18"), self.TYPES) == {"range": {"age": {"gte": 18}}}

    def test_date_accepts_timestamp(self):
        query = to_es_query(atomic("joined", "<", "2024-01-31T10:00:00Z"), self.TYPES)
        assert query == {"range": {"joined": {"lt": "2024-01-31T10:00:00Z"}}}

    def test_in_and_not_in(self):
        assert to_es_query(atomic("age", "IN", "1,2"), self.TYPES) == {"terms": {"age": [1, 2]}}
        assert to_es_query(atomic("age", "NOT IN", "1"), self.TYPES) == {
            "bool": {"must_not": [{"terms": {"age": [1]}}]}
        }

    def test_null_checks(self):
        assert to_es_query(atomic("email", "IS NULL"), self.TYPES) == {
            "bool": {"must_not": [{"exists": {"field": "email"}}]}
        }
        assert to_es_query(atomic("email", "IS NOT NULL"), self.TYPES) == {"exists": {"field": "email"}}

    def test_pattern_operators(self):
        assert to_es_query(atomic("email", "LIKE", "b%"), self.TYPES) == {"wildcard": {"email": {"value": "b*"}}}
        assert to_es_query(atomic("email", "ILIKE", "B%"), self.TYPES) == {
            "wildcard": {"email": {"value": "B*", "case_insensitive": True}}
        }
        assert to_es_query(atomic("email", "NOT LIKE", "b%"), self.TYPES) == {
            "bool": {"must_not": [{"wildcard": {"email": {"value": "b*"}}}]}
        }
        assert to_es_query(atomic("email", "REGEXP", "b.*"), self.TYPES) == {"regexp": {"email": {"value": "b.*"}}}

    def test_groups(self):
        query = to_es_query(and_(atomic("age", ">", "1"), or_(atomic("email", "=", "a"), atomic("email", "=", "b"))), self.TYPES)
        assert query == {
            "bool": {
                "must": [
                    {"range": {"age": {"gt": 1}}},
                    {"bool": {"should": [{"term": {"email": "a"}}, {"term": {"email": "b"}}], "minimum_should_match": 1}},
                ]
            }
        }

    def test_value_type_mismatch(self):
        with pytest.raises(MalformedFilterError):
            to_es_query(atomic("age", "<", "young"), self.TYPES)


class TestConnection:
    def test_client_options(self, settings, config_for, monkeypatch):
        created = {}

        def fake(url, **kwargs):
            created.update(kwargs, url=url)
            return MagicMock()

        monkeypatch.setattr(elasticsearch, "Elasticsearch", fake)
        ElasticsearchAdapter(settings)._connect(config_for("elasticsearch", TLS="true", Port="9243"))
        assert created["url"] == "https://localhost:9243"
        assert created["basic_auth"] == ("tester", "secret")
        assert created["verify_certs"] is True
        assert created["request_timeout"] == 30.0

    def test_api_key_wins(self, settings, config_for, monkeypatch):
        created = {}
        monkeypatch.setattr(elasticsearch, "Elasticsearch", lambda url, **kw: created.update(kw, url=url) or MagicMock())
        ElasticsearchAdapter(settings)._connect(config_for("elasticsearch", URL="http://es:9200", API_Key="k"))
        assert created["url"] == "http://es:9200"
        assert created["api_key"] == "k"
        assert "basic_auth" not in created

    def test_ping_false_is_unavailable(self, adapter, client, config):
        client.ping.return_value = False
        assert adapter.is_available(config) is False
        client.ping.return_value = True
        assert adapter.is_available(config) is True

    def test_connection_error(self, adapter, client, config):
        client.cat.indices.side_effect = elasticsearch.ConnectionError("refused")
        with pytest.raises(UnavailableError):
            adapter.get_storage_units(config, "")


class TestIntrospection:
    def test_no_databases_or_schemas(self, adapter, config):
        assert adapter.get_databases(config) == []
        assert adapter.get_all_schemas(config) == []

    def test_storage_units(self, adapter, client, config):
        client.cat.indices.return_value = [
            {"index": "users", "health": "green", "docs.count": "2", "store.size": "512"},
            {"index": ".kibana", "health": "green", "docs.count": "9", "store.size": "1"},
        ]
        units = adapter.get_storage_units(config, "")
        assert [u.name for u in units] == ["users"]
        users = units[0]
        assert users.attribute("Health") == "green"
        assert users.attribute("Count") == "2"
        fields = {r.key: r.value for r in users.attributes if r.get_extra("kind") == "field"}
        assert fields["address.city"] == "keyword"
        client.indices.get_mapping.assert_called_once_with(index="users")


class TestGetRows:
    def test_shallow_page(self, adapter, client, config):
        client.open_point_in_time.return_value = {"id": "pit-1"}
        client.search.return_value = {"pit_id": "pit-2", "hits": {"hits": [hit("1", name="Bob", age=7)]}}
        result = adapter.get_rows(config, "", "users", where=atomic("age", ">", "5"), page_size=10, page_offset=20)
        assert [c.name for c in result.columns] == ["document"]
        assert json.loads(result.rows[0][0]) == {"_id": "1", "name": "Bob", "age": 7}
        client.open_point_in_time.assert_called_once_with(index="users", keep_alive="1m")
        client.search.assert_called_once_with(
            pit={"id": "pit-1", "keep_alive": "1m"},
            query={"range": {"age": {"gt": 5}}},
            from_=20,
            size=10,
            sort=[{"_shard_doc": "asc"}],
        )
        client.close_point_in_time.assert_called_once_with(id="pit-2")

    def test_text_filter_goes_to_keyword_sub_field(self, adapter, client, config):
        client.open_point_in_time.return_value = {"id": "pit-1"}
        client.search.return_value = {"hits": {"hits": []}}
        adapter.get_rows(config, "", "users", where=atomic("name", "=", "Bob"))
        assert client.search.call_args.kwargs["query"] == {"term": {"name.keyword": "Bob"}}

    def test_unmapped_filter_field(self, adapter, client, config):
        with pytest.raises(MalformedFilterError):
            adapter.get_rows(config, "", "users", where=atomic("nickname", "=", "Bob"))
        client.search.assert_not_called()

    @pytest.mark.parametrize("page_size", [1, 2, 3])
    def test_pages_stitch_across_window(self, make_adapter, client, config, page_size):
        adapter = make_adapter(elasticsearch_max_window=2)
        docs = [{"_id": str(n), "_source": {}, "sort": [n]} for n in range(7)]
        client.open_point_in_time.return_value = {"id": "pit"}

        def search(pit, query, size, sort, from_=0, search_after=None):
            assert sort == [{"_shard_doc": "asc"}]
            start = from_ if search_after is None else search_after[0] + 1
            return {"hits": {"hits": docs[start:start + size]}}

        client.search.side_effect = search
        stitched = []
        offset = 0
        while True:
            rows = adapter.get_rows(config, "", "users", page_size=page_size, page_offset=offset).rows
            if not rows:
                break
            stitched.extend(json.loads(row[0])["_id"] for row in rows)
            offset += page_size
        assert stitched == [str(n) for n in range(7)]

    def test_deep_page_uses_point_in_time(self, make_adapter, client, config):
        adapter = make_adapter(elasticsearch_max_window=3)
        client.open_point_in_time.return_value = {"id": "pit-1"}
        client.search.side_effect = [
            {"pit_id": "pit-2", "hits": {"hits": [hit("0"), hit("1"), hit("2")]}},
            {"pit_id": "pit-3", "hits": {"hits": [hit("3"), hit("4"), hit("5")]}},
        ]
        result = adapter.get_rows(config, "", "users", page_size=2, page_offset=4)
        assert [json.loads(row[0])["_id"] for row in result.rows] == ["4", "5"]
        second = client.search.call_args_list[1].kwargs
        assert second["search_after"] == ["2"]
        assert second["pit"]["id"] == "pit-2"
        assert second["sort"] == [{"_shard_doc": "asc"}]
        client.close_point_in_time.assert_called_once_with(id="pit-3")

    def test_deep_page_closes_pit_on_error(self, make_adapter, client, config):
        adapter = make_adapter(elasticsearch_max_window=1)
        client.open_point_in_time.return_value = {"id": "pit-1"}
        client.search.side_effect = RuntimeError("boom")
        with pytest.raises(ExecutionFailureError):
            adapter.get_rows(config, "", "users", page_size=1, page_offset=5)
        client.close_point_in_time.assert_called_once_with(id="pit-1")

    def test_unknown_index(self, adapter, client, config):
        client.indices.get_mapping.side_effect = not_found()
        with pytest.raises(MalformedInputError) as exc_info:
            adapter.get_rows(config, "", "ghosts")
        assert exc_info.value.context.storage_unit == "ghosts"


class TestMutations:
    def test_add_row_typed_fields(self, adapter, client, config):
        client.index.return_value = {"result": "created"}
        assert adapter.add_row(config, "", "users", [rec("_id", "9"), rec("name", "Eve"), rec("age", "5")])
        client.index.assert_called_once_with(
            index="users", id="9", document={"name": "Eve", "age": 5}, refresh="wait_for"
        )

    def test_add_row_document_without_id(self, adapter, client, config):
        client.index.return_value = {"result": "created"}
        adapter.add_row(config, "", "users", [rec("document", '{"name": "Eve"}')])
        client.index.assert_called_once_with(index="users", id=None, document={"name": "Eve"}, refresh="wait_for")

    def test_add_row_bad_value(self, adapter, config):
        with pytest.raises(MalformedInputError):
            adapter.add_row(config, "", "users", [rec("age", "five")])

    def test_update_fields(self, adapter, client, config):
        assert adapter.update_storage_unit(
            config, "", "users", [rec("_id", "9"), rec("age", "6"), rec("name", "Eve")], ["age"]
        )
        client.update.assert_called_once_with(index="users", id="9", doc={"age": 6}, refresh="wait_for")

    def test_update_missing_document(self, adapter, client, config):
        client.update.side_effect = not_found()
        assert adapter.update_storage_unit(config, "", "users", [rec("_id", "9"), rec("age", "6")], ["age"]) is False

    def test_replace_whole_document(self, adapter, client, config):
        client.exists.return_value = True
        assert adapter.update_storage_unit(config, "", "users", [rec("document", '{"_id": "9", "name": "Z"}')], [])
        client.index.assert_called_once_with(index="users", id="9", document={"name": "Z"}, refresh="wait_for")

    def test_replace_missing_document(self, adapter, client, config):
        client.exists.return_value = False
        assert adapter.update_storage_unit(config, "", "users", [rec("document", '{"_id": "9"}')], []) is False
        client.index.assert_not_called()

    def test_delete(self, adapter, client, config):
        client.delete.return_value = {"result": "deleted"}
        assert adapter.delete_row(config, "", "users", [rec("_id", "9")])
        client.delete.side_effect = not_found()
        assert adapter.delete_row(config, "", "users", [rec("_id", "10")]) is False

    def test_delete_requires_id(self, adapter, config):
        with pytest.raises(MalformedInputError):
            adapter.delete_row(config, "", "users", [rec("name", "x")])

    def test_add_storage_unit(self, adapter, client, config):
        client.indices.create.return_value = {"acknowledged": True}
        assert adapter.add_storage_unit(config, "", "events", [rec("at", "date"), rec("kind", "keyword")])
        client.indices.create.assert_called_once_with(
            index="events", mappings={"properties": {"at": {"type": "date"}, "kind": {"type": "keyword"}}}
        )

    def test_add_storage_unit_unknown_type(self, adapter, config):
        with pytest.raises(MalformedInputError):
            adapter.add_storage_unit(config, "", "events", [rec("at", "datetime")])


class TestRawExecute:
    def test_sql_query(self, adapter, client, config):
        client.sql.query.return_value = {
            "columns": [{"name": "name", "type": "text"}, {"name": "age", "type": "integer"}],
            "rows": [["Bob", 7], ["Eve", None]],
        }
        result = adapter.raw_execute(config, "SELECT name, age FROM users")
        assert [(c.name, c.type) for c in result.columns] == [("name", "text"), ("age", "integer")]
        assert result.rows == [["Bob", "7"], ["Eve", ""]]
        assert result.disable_update is True
        client.sql.clear_cursor.assert_not_called()

    def test_cursor_is_followed_to_the_end(self, adapter, client, config):
        client.sql.query.side_effect = [
            {"columns": [{"name": "n", "type": "integer"}], "rows": [[1], [2]], "cursor": "c1"},
            {"rows": [[3], [4]], "cursor": "c2"},
            {"rows": [[5]]},
        ]
        result = adapter.raw_execute(config, "SELECT n FROM numbers")
        assert result.rows == [["1"], ["2"], ["3"], ["4"], ["5"]]
        assert client.sql.query.call_args_list[1].kwargs == {"cursor": "c1"}
        assert client.sql.query.call_args_list[2].kwargs == {"cursor": "c2"}
        client.sql.clear_cursor.assert_not_called()

    def test_cursor_stops_at_row_limit(self, make_adapter, client, config):
        adapter = make_adapter(elasticsearch_sql_row_limit=3)
        client.sql.query.side_effect = [
            {"columns": [{"name": "n", "type": "integer"}], "rows": [[1], [2]], "cursor": "c1"},
            {"rows": [[3], [4]], "cursor": "c2"},
        ]
        result = adapter.raw_execute(config, "SELECT n FROM numbers")
        assert result.rows == [["1"], ["2"], ["3"]]
        assert client.sql.query.call_args_list[0].kwargs["fetch_size"] == 3
        client.sql.clear_cursor.assert_called_once_with(cursor="c2")

    def test_empty_query(self, adapter, config):
        with pytest.raises(MalformedInputError):
            adapter.raw_execute(config, "")

    def test_chat_unsupported(self, adapter, config):
        with pytest.raises(UnsupportedOperationError):
            adapter.chat(config, "", "how many users?", MagicMock())


class TestGraph:
    def test_reference_fields(self, adapter, client, config):
        client.cat.indices.return_value = [{"index": "users"}, {"index": "orders"}]
        client.indices.get_mapping.return_value = {
            "users": {"mappings": {"properties": {"name": {"type": "text"}}}},
            "orders": {"mappings": {"properties": {"userId": {"type": "keyword"}}}},
        }
        graph = {g.unit.name: g.relations for g in adapter.get_graph(config, "")}
        assert [(r.name, r.relationship_type) for r in graph["orders"]] == [
            ("users", GraphUnitRelationshipType.MANY_TO_ONE)
        ]
        assert [(r.name, r.relationship_type) for r in graph["users"]] == [
            ("orders", GraphUnitRelationshipType.ONE_TO_MANY)
        ]
