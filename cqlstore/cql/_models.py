from __future__ import annotations

import json
from enum import Enum
from typing import Union

from cqlstore.core.data_model import DataModel

SERVER_CHOICE_INDEXES = (
    "cql.serverchoice",
    "srw.serverchoice",
    "cql.anywhere",
    "srw.anywhere",
)
ALL_RECORDS_INDEXES = ("cql.allrecords", "srw.allrecords")


def _str_value(value: str) -> str:
    return json.dumps(value)


class CQLOperator(str, Enum):
    """CQL relation.

    Attributes:
        ANY: Any of the whitespace separated words.
        ALL: All of the whitespace separated words.
        EQ: Equals.
        EXACT: Exact match, also written ``==``.
        NEQ: Not equals.
        LT: Less than.
        LTE: Less than equals.
        GT: Greater than.
        GTE: Greater than equals.
        WITHIN: Inclusive range, value is ``"lower upper"``.
    """

    ANY = "any"
    ALL = "all"
    EQ = "="
    EXACT = "exact"
    NEQ = "<>"
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    WITHIN = "within"

    @staticmethod
    def parse(value: str | CQLOperator) -> CQLOperator:
        if isinstance(value, CQLOperator):
            return value
        lowered = str(value).strip().lower()
        if lowered == "==":
            return CQLOperator.EXACT
        return CQLOperator(lowered)


class Term(DataModel):
    """Relational term.

    Attributes:
        field: Logical field (CQL index).
        operator: Relation. None means the server's default relation.
        value: Search term.
    """

    field: str
    operator: CQLOperator | None = None
    value: str

    def is_server_choice(self) -> bool:
        return self.field.lower() in SERVER_CHOICE_INDEXES

    def is_all_records(self) -> bool:
        return self.field.lower() in ALL_RECORDS_INDEXES

    def __str__(self) -> str:
        if self.operator is None:
            return _str_value(self.value)
        return f"{self.field} {self.operator.value} {_str_value(self.value)}"


class And(DataModel):
    """And expression.

    Attributes:
        terms: Sub expressions, all must match.
    """

    terms: list[Expression] = []

    def __str__(self) -> str:
        return f"({' AND '.join(str(t) for t in self.terms)})"


class Or(DataModel):
    """Or expression.

    Attributes:
        terms: Sub expressions, at least one must match.
    """

    terms: list[Expression] = []

    def __str__(self) -> str:
        return f"({' OR '.join(str(t) for t in self.terms)})"


class Not(DataModel):
    """Not expression.

    Attributes:
        expr: Negated expression.
    """

    expr: Expression | None = None

    def __str__(self) -> str:
        return f"NOT {self.expr}"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortKey(DataModel):
    """Sort key.

    Attributes:
        field: Logical field.
        direction: Sort direction.
    """

    field: str
    direction: SortDirection = SortDirection.ASC

    def __str__(self) -> str:
        if self.direction == SortDirection.DESC:
            return f"{self.field}/sort.descending"
        return self.field


class CQLQuery(DataModel):
    """Parsed CQL query.

    Attributes:
        where: Boolean expression tree, None matches all records.
        sort_by: Sort keys from a ``sortBy`` clause.
    """

    where: Expression | None = None
    sort_by: list[SortKey] = []

    def __str__(self) -> str:
        str = "" if self.where is None else f"{self.where}"
        if self.sort_by:
            str = f"{str} sortBy {' '.join(f'{k}' for k in self.sort_by)}"
        return str.strip()


Expression = Union[Term, And, Or, Not]

And.model_rebuild()
Or.model_rebuild()
Not.model_rebuild()
CQLQuery.model_rebuild()
