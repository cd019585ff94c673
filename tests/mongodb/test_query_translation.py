# tests/mongodb/test_query_translation.py

import re

import pytest
from bson.regex import Regex as BsonRegex
from pymongo import ASCENDING, DESCENDING

from async_resource_storage.base.exceptions import NotImplementedException
from async_resource_storage.base.query import (And, ElemMatch, Equal, Exist,
                                               Expression, GreaterOrEqual,
                                               GreaterThan, In, LowerOrEqual,
                                               LowerThan, NotEqual, NotExist,
                                               NotIn, Or, ProjectionField,
                                               Query, Regex, SortField, Window)
from async_resource_storage.mongodb.query import (apply_window, get_field,
                                                  get_projection, get_query,
                                                  get_sort,
                                                  translate_predicate)


# --- Predicate Compilation ---


def test_id_field_is_mapped():
    assert get_field("id") == "_id"
    assert get_field("name") == "name"
    assert get_field("meta.id") == "meta.id"


def test_empty_predicate_matches_everything():
    assert get_query(Query()) == {}


@pytest.mark.parametrize(
    "expression, expected",
    [
        (Equal("name", "x"), {"name": "x"}),
        (Equal("id", 7), {"_id": 7}),
        (NotEqual("name", "x"), {"name": {"$ne": "x"}}),
        (GreaterThan("age", 1), {"age": {"$gt": 1}}),
        (GreaterOrEqual("age", 1), {"age": {"$gte": 1}}),
        (LowerThan("age", 1), {"age": {"$lt": 1}}),
        (LowerOrEqual("age", 1), {"age": {"$lte": 1}}),
        (In("tag", ("a", "b")), {"tag": {"$in": ["a", "b"]}}),
        (NotIn("tag", ["a"]), {"tag": {"$nin": ["a"]}}),
        (Exist("owner"), {"owner": {"$exists": True}}),
        (NotExist("owner"), {"owner": {"$exists": False}}),
        (Regex("name", re.compile("^ab")), {"name": {"$regex": "^ab"}}),
        (Regex("name", "^ab"), {"name": {"$regex": "^ab"}}),
        (
            Regex("name", re.compile("^ab", re.I)),
            {"name": {"$regex": "^ab", "$options": "i"}},
        ),
        (
            Regex("name", re.compile("^ab.", re.MULTILINE | re.DOTALL | re.I)),
            {"name": {"$regex": "^ab.", "$options": "ims"}},
        ),
    ],
)
def test_single_expression(expression, expected):
    assert translate_predicate([expression]) == expected


def test_negated_regex_uses_not_with_bson_regex():
    translated = translate_predicate([Regex("name", "^ab", negated=True)])
    negation = translated["name"]["$not"]
    assert isinstance(negation, BsonRegex)
    assert negation.pattern == "^ab"
    assert negation.flags == 0


def test_negated_regex_keeps_flags():
    translated = translate_predicate(
        [Regex("name", re.compile("^ab", re.I | re.M), negated=True)]
    )
    negation = translated["name"]["$not"]
    assert negation.pattern == "^ab"
    assert negation.flags & re.IGNORECASE
    assert negation.flags & re.MULTILINE
    assert not negation.flags & re.DOTALL


def test_predicate_expressions_are_merged():
    translated = translate_predicate(
        [Equal("name", "x"), GreaterThan("age", 3), Exist("owner")]
    )
    assert translated == {
        "name": "x",
        "age": {"$gt": 3},
        "owner": {"$exists": True},
    }


def test_logical_nodes_compile_each_branch():
    predicate = [
        Or([Equal("name", "x"), [Equal("age", 1), LowerThan("score", 5)]]),
        And([Exist("owner"), NotIn("id", [1, 2])]),
    ]
    assert translate_predicate(predicate) == {
        "$or": [{"name": "x"}, {"age": 1, "score": {"$lt": 5}}],
        "$and": [{"owner": {"$exists": True}}, {"_id": {"$nin": [1, 2]}}],
    }


def test_elem_match_merges_inner_conditions():
    predicate = [ElemMatch("items", [Equal("sku", "a"), GreaterThan("qty", 2)])]
    assert translate_predicate(predicate) == {
        "items": {"$elemMatch": {"sku": "a", "qty": {"$gt": 2}}}
    }


def test_compilation_is_deterministic():
    predicate = [
        Or([Equal("a", 1), And([In("b", [1, 2]), Regex("c", "^x")])]),
        ElemMatch("d", [NotExist("e"), LowerOrEqual("f", 3)]),
    ]
    assert translate_predicate(predicate) == translate_predicate(predicate)


def test_compilation_does_not_mutate_values():
    values = ["a", "b"]
    translated = translate_predicate([In("tag", values)])
    translated["tag"]["$in"].append("c")
    assert values == ["a", "b"]


class Near(Expression):
    pass


@pytest.mark.parametrize(
    "predicate",
    [
        [Near()],
        [Equal("a", 1), Near()],
        [Or([Equal("a", 1), Near()])],
        [ElemMatch("items", [Near()])],
    ],
)
def test_unknown_expression_is_not_implemented(predicate):
    with pytest.raises(NotImplementedException):
        translate_predicate(predicate)


def test_not_implemented_is_a_builtin_subclass():
    with pytest.raises(NotImplementedError):
        get_query(Query(predicate=[Near()]))


# --- Sort ---


def test_empty_sort_defaults_to_primary_key():
    assert get_sort(Query()) == [("_id", ASCENDING)]


def test_sort_translates_names_and_directions():
    query = Query(sort=[SortField("id", reversed=True), SortField("name")])
    assert get_sort(query) == [("_id", DESCENDING), ("name", ASCENDING)]


def test_duplicate_sort_keeps_last_occurrence():
    query = Query(
        sort=[
            SortField("a"),
            SortField("b", reversed=True),
            SortField("a", reversed=True),
            SortField("c"),
            SortField("b"),
        ]
    )
    assert get_sort(query) == [
        ("a", DESCENDING),
        ("c", ASCENDING),
        ("b", ASCENDING),
    ]


# --- Projection ---


@pytest.mark.parametrize(
    "projection", [[], ["*"], ["name", "*"], [ProjectionField("*")]]
)
def test_projection_of_all_fields(projection):
    assert get_projection(Query(projection=projection)) is None


def test_projection_always_includes_system_fields():
    query = Query(projection=["id", "name", ProjectionField("meta.key"), "meta.other"])
    assert get_projection(query) == {
        "_id": 1,
        "_etag": 1,
        "_updated": 1,
        "name": 1,
        "meta": 1,
    }


# --- Window ---


@pytest.mark.parametrize(
    "window, expected",
    [
        (Window(), {}),
        (Window(offset=5), {"skip": 5}),
        (Window(limit=10), {"limit": 10}),
        (Window(offset=3, limit=0), {"skip": 3, "limit": 0}),
    ],
)
def test_apply_window(window, expected):
    assert apply_window({}, window) == expected
