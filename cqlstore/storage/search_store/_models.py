from __future__ import annotations

from enum import Enum
from typing import Any, Callable

from cqlstore.core import DataModel


class SearchFieldType(str, Enum):
    # String/Text
    TEXT = "text"  # full-text search
    STRING = "string"  # keyword/exact match

    # Numeric
    NUMBER = "number"
    INTEGER = "integer"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"

    # Other primitives
    BOOLEAN = "boolean"
    DATE = "date"

    # Structures
    OBJECT = "object"


class SearchKey(DataModel):
    """Search key."""

    id: str
    """Record id, unique within a bag."""


class SearchProperties(DataModel):
    """Search properties."""

    etag: str | None = None
    """Record version as seq_no-primary_term."""

    score: float | None = None
    """Match score."""


class SearchItem(DataModel):
    """Search item."""

    key: SearchKey
    """Search key."""

    value: dict[str, Any] | None = None
    """Record, including its id field."""

    properties: SearchProperties | None = None
    """Search properties."""


class SearchList(DataModel):
    """One page of search results."""

    items: list[SearchItem]
    """Records on this page."""

    total: int | None = None
    """Total number of matches reported by the engine."""

    start: int = 0
    """Offset of the first record on this page."""

    limit: int | None = None
    """Requested page size."""


class NativeQuery(DataModel):
    """Engine native query."""

    query: dict[str, Any]
    """Query clause."""

    sort: list[dict[str, Any]] | None = None
    """Sort clauses, None for relevance order."""


class QueryString(DataModel):
    """Lucene query string passed to the engine unparsed.

    Used where a CQL query would be, for callers that already speak the
    engine query syntax.
    """

    query: str


class BatchOperationKind(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class BatchOperation(DataModel):
    """Batch operation.

    Attributes:
        kind: Operation kind.
        key: Record id. Generated for adds without one.
        value: Record for adds, changed fields for updates.
    """

    kind: BatchOperationKind
    key: str | None = None
    value: dict[str, Any] | None = None


class BatchFailure(DataModel):
    """Failure of one batch operation."""

    kind: str
    """not_found, conflict or the engine's error type."""

    status: int | None = None
    """Engine status code."""

    detail: str | None = None
    """Engine error reason."""


class BatchOutcome(DataModel):
    """Outcome of one batch operation."""

    index: int
    """Position of the operation in the submitted batch."""

    kind: BatchOperationKind
    """Operation kind."""

    key: str | None = None
    """Record id."""

    success: bool
    """A value indicating whether the operation succeeded."""

    failure: BatchFailure | None = None
    """Failure details."""


class SearchBatch(DataModel):
    """Search batch.

    Attributes:
        operations: List of batch operations.
    """

    operations: list[BatchOperation] = []

    def add(
        self,
        value: dict[str, Any],
        key: str | None = None,
    ) -> SearchBatch:
        """Add (create or replace) a record.

        Args:
            value:
                Record.
            key:
                Record id. Taken from the record's id field when omitted.
        """
        self.operations.append(
            BatchOperation(kind=BatchOperationKind.ADD, key=key, value=value)
        )
        return self

    def update(
        self,
        key: str,
        value: dict[str, Any],
    ) -> SearchBatch:
        """Merge fields into an existing record.

        Args:
            key:
                Record id.
            value:
                Fields to set.
        """
        self.operations.append(
            BatchOperation(
                kind=BatchOperationKind.UPDATE, key=key, value=value
            )
        )
        return self

    def delete(
        self,
        key: str,
    ) -> SearchBatch:
        """Delete a record.

        Args:
            key:
                Record id.
        """
        self.operations.append(
            BatchOperation(kind=BatchOperationKind.DELETE, key=key)
        )
        return self

    def __len__(self) -> int:
        return len(self.operations)


ErrorHandler = Callable[[str, dict, int], None]


class BagConfig(DataModel):
    """Per bag configuration."""

    cql_mapping: dict[str, Any] | None = None
    """CQL mapping document."""

    on_error: Any = None
    """Error handler (operation_kind, raw_response, index) -> None,
    or an import reference to one."""

    id_prefix: str | None = None
    """Prefix of the record id field, overrides the store key_prefix."""

    buffer_size: int | None = None
    """Bulk submission size."""

    tiebreaker: str | None = None
    """Physical field appended to sorts for deterministic paging."""
