from __future__ import annotations

from typing import Any

from cqlstore.core import DataModel, Response, operation
from cqlstore.cql import CQLQuery, SortKey
from cqlstore.storage._common import CollectionResult, StoreComponent

from ._models import (
    BatchOutcome,
    NativeQuery,
    QueryString,
    SearchBatch,
    SearchItem,
    SearchKey,
    SearchList,
)


class SearchStore(StoreComponent):
    """Record store backed by a search engine, queried with CQL."""

    def __init__(
        self,
        bag: str = "data",
        **kwargs,
    ):
        """Initialize.

        Args:
            bag:
                Default bag name.
        """
        super().__init__(bag=bag, **kwargs)

    @operation()
    def ensure_ready(
        self,
        **kwargs: Any,
    ) -> Response[CollectionResult]:
        """Create the index unless it exists.

        Returns:
            Collection result, CREATED or EXISTS.
        """
        raise NotImplementedError

    @operation()
    def drop(
        self,
        must_exist: bool = False,
        **kwargs: Any,
    ) -> Response[CollectionResult]:
        """Drop the index with every bag in it.

        The next operation creates the index again.

        Args:
            must_exist:
                Raise NotFoundError when the index does not exist.

        Returns:
            Collection result, DROPPED or NOT_EXISTS.
        """
        raise NotImplementedError

    @operation()
    def has_index(
        self,
        **kwargs: Any,
    ) -> Response[bool]:
        """Check if the index exists.

        Returns:
            A value indicating whether the index exists.
        """
        raise NotImplementedError

    @operation()
    def get(
        self,
        key: str | dict | SearchKey,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[SearchItem]:
        """Get record.

        Args:
            key:
                Record id.
            bag:
                Bag name.

        Returns:
            Record with its id field.

        Raises:
            NotFoundError:
                Record not found.
        """
        raise NotImplementedError

    @operation()
    def put(
        self,
        value: dict[str, Any] | DataModel,
        key: str | dict | SearchKey | None = None,
        etag: str | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[SearchItem]:
        """Create or replace record.

        Args:
            value:
                Record.
            key:
                Record id. Taken from the record's id field
                or generated when omitted.
            etag:
                Replace only if the stored record has this etag.
            bag:
                Bag name.

        Returns:
            Stored record.

        Raises:
            ConflictError:
                Etag mismatch.
        """
        raise NotImplementedError

    @operation()
    def update(
        self,
        key: str | dict | SearchKey,
        value: dict[str, Any] | DataModel,
        etag: str | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[SearchItem]:
        """Merge fields into an existing record.

        Args:
            key:
                Record id.
            value:
                Fields to set.
            etag:
                Update only if the stored record has this etag.
            bag:
                Bag name.

        Returns:
            Updated record.

        Raises:
            NotFoundError:
                Record not found.
            ConflictError:
                Etag mismatch.
        """
        raise NotImplementedError

    @operation()
    def delete(
        self,
        key: str | dict | SearchKey,
        etag: str | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[None]:
        """Delete record.

        Args:
            key:
                Record id.
            etag:
                Delete only if the stored record has this etag.
            bag:
                Bag name.

        Raises:
            NotFoundError:
                Record not found.
        """
        raise NotImplementedError

    @operation()
    def delete_all(
        self,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[int]:
        """Delete every record of a bag.

        Args:
            bag:
                Bag name.

        Returns:
            Number of deleted records.
        """
        raise NotImplementedError

    @operation()
    def delete_by_query(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[int]:
        """Delete the records matching a query.

        Args:
            query:
                CQL query, Lucene QueryString or native query.
            bag:
                Bag name.

        Returns:
            Number of deleted records.
        """
        raise NotImplementedError

    @operation()
    def add(
        self,
        value: dict[str, Any] | DataModel,
        key: str | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[list[BatchOutcome]]:
        """Buffer a record for bulk indexing.

        Args:
            value:
                Record.
            key:
                Record id.
            bag:
                Bag name.

        Returns:
            Outcomes when the buffer was flushed, otherwise empty.
        """
        raise NotImplementedError

    @operation()
    def submit(
        self,
        batch: SearchBatch | list | None = None,
        raise_on_error: bool = False,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[list[BatchOutcome]]:
        """Submit a batch of write operations.

        Failed operations never abort the others.

        Args:
            batch:
                Batch operations.
            raise_on_error:
                Raise PartialBatchError when any operation failed.
            bag:
                Bag name.

        Returns:
            One outcome per operation, in order.
        """
        raise NotImplementedError

    @operation()
    def commit(
        self,
        refresh: bool = False,
        raise_on_error: bool = False,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[list[BatchOutcome]]:
        """Flush buffered records.

        Args:
            refresh:
                Wait until the records are searchable.
            raise_on_error:
                Raise PartialBatchError when any operation failed.
            bag:
                Bag name.

        Returns:
            Outcomes since the previous commit.
        """
        raise NotImplementedError

    @operation()
    def translate(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        sort: str | list[SortKey] | list[dict] | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[NativeQuery]:
        """Translate a CQL query with the bag's CQL mapping.

        Args:
            query:
                CQL query. A native query or a Lucene
                QueryString is passed through.
            sort:
                SRU sort keys, sort keys or native sort clauses.
            bag:
                Bag name.

        Returns:
            Native query.

        Raises:
            TranslationError:
                The query can not be translated.
        """
        raise NotImplementedError

    @operation()
    def searcher(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        sort: str | list[SortKey] | list[dict] | None = None,
        limit: int | None = None,
        start: int = 0,
        search_after: list[Any] | None = None,
        page_size: int | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[Any]:
        """Translate a query into a lazy cursor over its records.

        Args:
            query:
                CQL query. A native query or a Lucene
                QueryString is passed through.
            sort:
                SRU sort keys, sort keys or native sort clauses.
            limit:
                Maximum number of records, None for all.
            start:
                Offset of the first record.
            search_after:
                Sort values of the last seen record.
            page_size:
                Records fetched per request.
            bag:
                Bag name.

        Returns:
            Restartable cursor of records.
        """
        raise NotImplementedError

    @operation()
    def query(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        sort: str | list[SortKey] | list[dict] | None = None,
        limit: int | None = None,
        offset: int | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[SearchList]:
        """Fetch one page of records.

        Args:
            query:
                CQL query. A native query or a Lucene
                QueryString is passed through.
            sort:
                SRU sort keys, sort keys or native sort clauses.
            limit:
                Page size.
            offset:
                Offset of the first record.
            bag:
                Bag name.

        Returns:
            Page of records.
        """
        raise NotImplementedError

    @operation()
    def count(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[int]:
        """Count records.

        Args:
            query:
                CQL query. A native query or a Lucene
                QueryString is passed through.
            bag:
                Bag name.

        Returns:
            Count of records.
        """
        raise NotImplementedError

    @operation()
    def close(
        self,
        **kwargs: Any,
    ) -> Response[None]:
        """Close the client."""
        raise NotImplementedError
