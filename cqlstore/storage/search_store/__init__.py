from cqlstore.storage._common import CollectionResult, CollectionStatus

from ._cql_mapping import CQLIndex, CQLMapping, CQLOperatorConfig, FieldResolution
from ._models import (
    BagConfig,
    BatchFailure,
    BatchOperation,
    BatchOperationKind,
    BatchOutcome,
    ErrorHandler,
    NativeQuery,
    QueryString,
    SearchBatch,
    SearchFieldType,
    SearchItem,
    SearchKey,
    SearchList,
    SearchProperties,
)
from ._schema import FieldSpec, IndexSchema
from .component import SearchStore

__all__ = [
    "BagConfig",
    "BatchFailure",
    "BatchOperation",
    "BatchOperationKind",
    "BatchOutcome",
    "CQLIndex",
    "CQLMapping",
    "CQLOperatorConfig",
    "CollectionResult",
    "CollectionStatus",
    "ErrorHandler",
    "FieldResolution",
    "FieldSpec",
    "IndexSchema",
    "NativeQuery",
    "QueryString",
    "SearchBatch",
    "SearchFieldType",
    "SearchItem",
    "SearchKey",
    "SearchList",
    "SearchProperties",
    "SearchStore",
]
