"""Tests for ``polydb.core.filters`` -- the condition tree."""

from __future__ import annotations

import pytest

from polydb.core.errors import MalformedFilterError
from polydb.core.filters import (
    CORE_OPERATORS,
    AndCondition,
    AtomicCondition,
    Operator,
    OrCondition,
    and_,
    atomic,
    evaluate,
    from_dict,
    like_to_regex,
    or_,
    to_dict,
    validate_operators,
)


class TestNodes:
    def test_operator_normalized(self):
        assert atomic("name", "not  like", "B%").operator == "NOT LIKE"
        assert atomic("id", "<>", "1").operator == "!="
        assert atomic("id", "==", "1").operator == "="

    def test_unknown_operator_rejected(self):
        with pytest.raises(MalformedFilterError):
            atomic("id", "BETWEEN", "1")

    def test_empty_key_rejected(self):
        with pytest.raises(MalformedFilterError):
            atomic(" ", "=", "1")

    def test_empty_group_rejected(self):
        with pytest.raises(MalformedFilterError):
            AndCondition(())
        with pytest.raises(MalformedFilterError):
            or_()

    def test_atomics_depth_first(self):
        tree = and_(atomic("a", "=", "1"), or_(atomic("b", "=", "2"), atomic("c", "=", "3")))
        assert [node.key for node in tree.atomics()] == ["a", "b", "c"]

    def test_list_values(self):
        assert atomic("id", "IN", "1, 2,,3").values() == ["1", "2", "3"]
        assert atomic("id", "=", "1,2").values() == ["1,2"]

    def test_core_operators_exclude_dialect_extras(self):
        assert Operator.ILIKE.value not in CORE_OPERATORS
        assert Operator.REGEXP.value not in CORE_OPERATORS
        assert "IS NOT NULL" in CORE_OPERATORS


class TestDictForm:
    def test_from_dict_atomic(self):
        node = from_dict(
            {"Type": "Atomic", "Atomic": {"Key": "id", "Operator": "=", "Value": "3", "ColumnType": "int"}}
        )
        assert node == AtomicCondition(key="id", operator="=", value="3", column_type="int")

    def test_from_dict_nested_any_case(self):
        tree = from_dict(
            {
                "type": "or",
                "or": {
                    "children": [
                        {"type": "atomic", "atomic": {"key": "name", "operator": "=", "value": "Bob"}},
                        {"type": "atomic", "atomic": {"key": "id", "operator": "IN", "value": "1,3"}},
                    ]
                },
            }
        )
        assert isinstance(tree, OrCondition)
        assert [n.key for n in tree.atomics()] == ["name", "id"]

    def test_empty_means_no_filter(self):
        assert from_dict(None) is None
        assert from_dict({}) is None

    @pytest.mark.parametrize(
        "data",
        [
            {"Type": "Xor"},
            {"Type": "Atomic"},
            {"Type": "And", "And": {"Children": "nope"}},
            {"Type": "And", "And": {"Children": []}},
        ],
    )
    def test_malformed(self, data):
        with pytest.raises(MalformedFilterError):
            from_dict(data)

    def test_to_dict_inverts_from_dict(self):
        tree = and_(atomic("a", "=", "1"), or_(atomic("b", "IS NULL")))
        assert from_dict(to_dict(tree)) == tree


class TestValidateOperators:
    def test_rejects_unsupported(self):
        with pytest.raises(MalformedFilterError):
            validate_operators(atomic("name", "ILIKE", "b%"), CORE_OPERATORS)

    def test_accepts_none(self):
        validate_operators(None, CORE_OPERATORS)


class TestLikeToRegex:
    @pytest.mark.parametrize(
        ("pattern", "text", "matches"),
        [
            ("B%", "Bob", True),
            ("B%", "rob", False),
            ("_ob", "Bob", True),
            ("_ob", "Boob", False),
            ("a.c", "abc", False),
        ],
    )
    def test_patterns(self, pattern, text, matches):
        assert bool(like_to_regex(pattern).match(text)) is matches

    def test_case_insensitive(self):
        assert like_to_regex("b%", case_insensitive=True).match("Bob")


class TestEvaluate:
    ROW = {"id": "2", "name": "Bob", "note": ""}

    def test_none_matches_everything(self):
        assert evaluate(None, self.ROW)

    def test_typed_comparison(self):
        assert evaluate(atomic("id", ">", "10", "int"), {"id": "11"})
        assert not evaluate(atomic("id", ">", "10", "int"), {"id": "9"})
        # untyped compares as text
        assert evaluate(atomic("id", ">", "10"), {"id": "9"})

    def test_in_and_not_in(self):
        assert evaluate(atomic("id", "IN", "1,2", "int"), self.ROW)
        assert not evaluate(atomic("id", "NOT IN", "1,2", "int"), self.ROW)

    def test_null_operators_treat_empty_as_null(self):
        assert evaluate(atomic("note", "IS NULL"), self.ROW)
        assert evaluate(atomic("name", "IS NOT NULL"), self.ROW)

    def test_like_family(self):
        assert evaluate(atomic("name", "LIKE", "B%"), self.ROW)
        assert evaluate(atomic("name", "NOT LIKE", "A%"), self.ROW)
        assert evaluate(atomic("name", "ILIKE", "b%"), self.ROW)
        assert evaluate(atomic("name", "REGEXP", "^B.b$"), self.ROW)

    def test_groups(self):
        tree = or_(atomic("name", "=", "Alice"), and_(atomic("id", "=", "2", "int"), atomic("name", "=", "Bob")))
        assert evaluate(tree, self.ROW)
        assert not evaluate(and_(atomic("name", "=", "Bob"), atomic("id", "=", "3", "int")), self.ROW)

    def test_unknown_column(self):
        with pytest.raises(MalformedFilterError):
            evaluate(atomic("missing", "=", "1"), self.ROW)

    def test_filter_value_must_match_type(self):
        with pytest.raises(MalformedFilterError):
            evaluate(atomic("id", "=", "two", "int"), self.ROW)

    def test_invalid_regex(self):
        with pytest.raises(MalformedFilterError):
            evaluate(atomic("name", "REGEXP", "("), self.ROW)
