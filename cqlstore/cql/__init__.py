from ._models import (
    ALL_RECORDS_INDEXES,
    SERVER_CHOICE_INDEXES,
    And,
    CQLOperator,
    CQLQuery,
    Expression,
    Not,
    Or,
    SortDirection,
    SortKey,
    Term,
)
from ._parser import SERVER_CHOICE, CQLParser

__all__ = [
    "ALL_RECORDS_INDEXES",
    "SERVER_CHOICE",
    "SERVER_CHOICE_INDEXES",
    "And",
    "CQLOperator",
    "CQLParser",
    "CQLQuery",
    "Expression",
    "Not",
    "Or",
    "SortDirection",
    "SortKey",
    "Term",
]
