# type: ignore

import pytest

from cqlstore.core.exceptions import TranslationError
from cqlstore.cql import (
    SERVER_CHOICE,
    And,
    CQLOperator,
    CQLParser,
    CQLQuery,
    Not,
    Or,
    SortDirection,
    SortKey,
    Term,
)


def term(field, operator, value):
    return Term(field=field, operator=CQLOperator(operator), value=value)


def test_search_clause():
    query = CQLParser.parse("title = moby")
    assert query == CQLQuery(where=term("title", "=", "moby"))


@pytest.mark.parametrize(
    "cql, operator",
    [
        ("title any whale", CQLOperator.ANY),
        ("title ALL whale", CQLOperator.ALL),
        ("title exact whale", CQLOperator.EXACT),
        ("title == whale", CQLOperator.EXACT),
        ("title <> whale", CQLOperator.NEQ),
        ("year < 1900", CQLOperator.LT),
        ("year <= 1900", CQLOperator.LTE),
        ("year > 1900", CQLOperator.GT),
        ("year >= 1900", CQLOperator.GTE),
        ('year within "1850 1900"', CQLOperator.WITHIN),
    ],
)
def test_relations(cql: str, operator: CQLOperator):
    assert CQLParser.parse(cql).where.operator == operator


def test_server_choice():
    assert CQLParser.parse("whale").where == Term(
        field=SERVER_CHOICE, value="whale"
    )
    assert CQLParser.parse('"white whale"').where == Term(
        field=SERVER_CHOICE, value="white whale"
    )


def test_same_boolean_chain_is_one_node():
    query = CQLParser.parse("a = 1 and b = 2 AND c = 3")
    assert query.where == And(
        terms=[term("a", "=", "1"), term("b", "=", "2"), term("c", "=", "3")]
    )


def test_booleans_are_left_associative():
    query = CQLParser.parse("a = 1 or b = 2 and c = 3")
    assert query.where == And(
        terms=[
            Or(terms=[term("a", "=", "1"), term("b", "=", "2")]),
            term("c", "=", "3"),
        ]
    )


def test_parentheses():
    query = CQLParser.parse("a = 1 and (b = 2 or c = 3)")
    assert query.where == And(
        terms=[
            term("a", "=", "1"),
            Or(terms=[term("b", "=", "2"), term("c", "=", "3")]),
        ]
    )


def test_not_is_and_not():
    query = CQLParser.parse("a = 1 not b = 2")
    assert query.where == And(
        terms=[term("a", "=", "1"), Not(expr=term("b", "=", "2"))]
    )


def test_quoted_values():
    query = CQLParser.parse('title = "say \\"hi\\""')
    assert query.where.value == 'say "hi"'

    query = CQLParser.parse('title = "whale\\*"')
    assert query.where.value == "whale\\*"


def test_sort_by():
    query = CQLParser.parse("whale sortBy year/sort.descending title")
    assert query.sort_by == [
        SortKey(field="year", direction=SortDirection.DESC),
        SortKey(field="title", direction=SortDirection.ASC),
    ]


@pytest.mark.parametrize("cql", [None, "", "   "])
def test_blank_query_matches_all(cql):
    assert CQLParser.parse(cql) == CQLQuery()


def test_all_records():
    assert CQLParser.parse("cql.allRecords = 1").where.is_all_records()


def test_parsed_queries_are_independent():
    query = CQLParser.parse("title = moby")
    query.where.value = "changed"
    assert CQLParser.parse("title = moby").where.value == "moby"


def test_to_string():
    query = CQLParser.parse('title = "moby" and year > 1850 sortBy year')
    assert str(query) == '(title = "moby" AND year > "1850") sortBy year'


@pytest.mark.parametrize(
    "cql",
    [
        "title = (moby",
        'title = "moby',
        "(title = moby",
        "title = moby )",
        "title =",
        "a = 1 prox b = 2",
        "a = 1 and/rel.algorithm=x b = 2",
        "title =/stem whale",
        "title adj whale",
        "whale sortBy",
        "whale sortBy year/sort.missingLow",
    ],
)
def test_invalid_queries(cql: str):
    with pytest.raises(TranslationError):
        CQLParser.parse(cql)
