"""
Elastic Search.
"""

from __future__ import annotations

__all__ = ["Elasticsearch"]

import inspect
import re
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from elasticsearch import ApiError, ConnectionTimeout
from elasticsearch import Elasticsearch as SyncElasticsearch
from elasticsearch import TransportError
from elasticsearch.exceptions import ConflictError as ESConflictError
from elasticsearch.exceptions import NotFoundError as ESNotFoundError

from cqlstore.core import DataModel, Loader, Response, get_logger
from cqlstore.core.exceptions import (
    BackendUnavailableError,
    BadRequestError,
    BaseError,
    ConfigError,
    ConflictError,
    InternalError,
    NotFoundError,
    PartialBatchError,
    RequestTimeoutError,
    TranslationError,
    UnmappedFieldError,
)
from cqlstore.cql import (
    And,
    CQLOperator,
    CQLParser,
    CQLQuery,
    Expression,
    Not,
    Or,
    SortDirection,
    SortKey,
    Term,
)
from cqlstore.storage._common import (
    CollectionResult,
    CollectionStatus,
    ParameterParser,
    StoreProvider,
)

from .._cql_mapping import CQLMapping, FieldResolution
from .._helper import Helper
from .._models import (
    BagConfig,
    BatchFailure,
    BatchOperation,
    BatchOperationKind,
    BatchOutcome,
    ErrorHandler,
    NativeQuery,
    QueryString,
    SearchBatch,
    SearchItem,
    SearchKey,
    SearchList,
    SearchProperties,
)
from .._schema import IndexSchema

logger = get_logger(__name__)

DEFAULT_BUFFER_SIZE = 100
DEFAULT_PAGE_SIZE = 100
DEFAULT_KEEP_ALIVE = "1m"

# Cluster overloaded or unavailable.
UNAVAILABLE_STATUS_CODES = (429, 502, 503)

RANKING_CLAUSES = (
    "match",
    "match_phrase",
    "multi_match",
    "query_string",
    "simple_query_string",
)


class Elasticsearch(StoreProvider):
    hosts: str | list | dict | None
    cloud_id: str | None
    api_key: str | list[str] | None
    basic_auth: str | list[str] | None
    bearer_auth: str | None
    opaque_id: str | None

    headers: dict[str, str] | None
    verify_certs: bool | None
    ca_certs: str | None
    client_cert: str | None
    client_key: str | None
    ssl_assert_hostname: str | None
    ssl_assert_fingerprint: str | None
    ssl_version: int | None
    request_timeout: float | None

    index_name: str
    key_prefix: str
    bags: dict[str, BagConfig]
    buffer_size: int | dict[str, int] | None
    page_size: int
    keep_alive: str
    nparams: dict[str, Any]

    _client: SyncElasticsearch
    _native_client: Any
    _init: bool
    _init_lock: threading.Lock

    _schema: IndexSchema
    _index_manager: IndexManager | None
    _mappings: dict[str, CQLMapping]
    _handlers: dict[str, ErrorHandler | None]
    _bag_cache: dict[str, ElasticsearchBag]

    def __init__(
        self,
        hosts: str | list | dict | None = None,
        cloud_id: str | None = None,
        api_key: str | list[str] | None = None,
        basic_auth: str | list[str] | None = None,
        bearer_auth: str | None = None,
        opaque_id: str | None = None,
        headers: dict[str, str] | None = None,
        verify_certs: bool | None = None,
        ca_certs: str | None = None,
        client_cert: str | None = None,
        client_key: str | None = None,
        ssl_assert_hostname: str | None = None,
        ssl_assert_fingerprint: str | None = None,
        ssl_version: int | None = None,
        request_timeout: float | None = None,
        index_name: str | None = None,
        index_settings: dict[str, Any] | None = None,
        index_mappings: dict[str, dict[str, Any]] | None = None,
        key_prefix: str = "_",
        bags: dict[str, Any] | None = None,
        buffer_size: int | dict[str, int] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        keep_alive: str = DEFAULT_KEEP_ALIVE,
        nparams: dict[str, Any] = dict(),
        client: Any = None,
        **kwargs,
    ):
        """Initialize.

        Args:
            hosts:
                Elasticsearch hosts.
            cloud_id:
                Elasticsearch cloud id.
            api_key:
                Elasticsearch api key.
            basic_auth:
                Elasticsearch basic auth.
            bearer_auth:
                Elasticsearch bearer auth.
            opaque_id:
                Elasticsearch opaque id.
            headers:
                Elasticsearch http headers.
            verify_certs:
                Elasticsearch verify certs.
            ca_certs:
                Elasticsearch ca certs.
            client_cert:
                Elasticsearch client cert.
            client_key:
                Elasticsearch client key.
            ssl_assert_hostname:
                Elasticsearch ssl assert hostname.
            ssl_assert_fingerprint:
                Elasticsearch ssl assert fingerprint.
            ssl_version:
                Elasticsearch ssl version.
            request_timeout:
                Transport timeout in seconds.
            index_name:
                Index holding every bag of the store.
            index_settings:
                Index settings used when the index is created.
            index_mappings:
                Field mappings per bag.
            key_prefix:
                Prefix of reserved record fields.
                The bag field is {key_prefix}bag.
            bags:
                Per bag configuration: cql_mapping, on_error,
                id_prefix, buffer_size and tiebreaker.
            buffer_size:
                Bulk submission size. To specify for multiple bags,
                use a dictionary where the key is the bag name.
            page_size:
                Number of records fetched per search request.
            keep_alive:
                Lifetime of the point in time held between pages.
            nparams:
                Native parameters to Elasticsearch client.
            client:
                Pre built Elasticsearch client.
        """
        if not index_name:
            raise ConfigError("index_name is required")
        self.hosts = hosts
        self.cloud_id = cloud_id
        self.api_key = api_key
        self.basic_auth = basic_auth
        self.bearer_auth = bearer_auth
        self.opaque_id = opaque_id
        self.headers = headers
        self.verify_certs = verify_certs
        self.ca_certs = ca_certs
        self.client_cert = client_cert
        self.client_key = client_key
        self.ssl_assert_hostname = ssl_assert_hostname
        self.ssl_assert_fingerprint = ssl_assert_fingerprint
        self.ssl_version = ssl_version
        self.request_timeout = request_timeout

        self.index_name = index_name
        self.key_prefix = key_prefix
        self.buffer_size = buffer_size
        self.page_size = page_size
        self.keep_alive = keep_alive
        self.nparams = nparams

        self._schema = IndexSchema.create(
            name=index_name,
            settings=index_settings,
            mappings=index_mappings,
            bag_field=f"{key_prefix}bag",
        )
        self.bags = {}
        self._mappings = {}
        self._handlers = {}
        for name, config in (bags or {}).items():
            bag_config = BagConfig.from_dict(config or {})
            self.bags[name] = bag_config
            self._mappings[name] = CQLMapping.from_config(
                bag_config.cql_mapping
            )
            self._handlers[name] = ErrorHandlerLoader.load(
                name, bag_config.on_error
            )

        self._native_client = client
        self._init = False
        self._init_lock = threading.Lock()
        self._index_manager = None
        self._bag_cache = dict()

    @property
    def client(self) -> SyncElasticsearch:
        if not self._init:
            with self._init_lock:
                if not self._init:
                    if self._native_client is not None:
                        self._client = self._native_client
                    else:
                        self._client = SyncElasticsearch(
                            **self._get_client_params()
                        )
                    self._init = True
        return self._client

    @property
    def index_manager(self) -> IndexManager:
        if self._index_manager is None:
            client = self.client
            with self._init_lock:
                if self._index_manager is None:
                    self._index_manager = IndexManager(
                        client=client, schema=self._schema
                    )
        return self._index_manager

    def __setup__(self) -> None:
        _ = self.client

    def _get_client_params(self) -> dict:
        def _add_if_not_none(key, value):
            return {key: value} if value is not None else {}

        def _convert_if_list(value):
            return tuple(value) if isinstance(value, list) else value

        args = {
            **_add_if_not_none("hosts", self.hosts),
            **_add_if_not_none("cloud_id", self.cloud_id),
            **_add_if_not_none("api_key", _convert_if_list(self.api_key)),
            **_add_if_not_none(
                "basic_auth", _convert_if_list(self.basic_auth)
            ),
            **_add_if_not_none("bearer_auth", self.bearer_auth),
            **_add_if_not_none("opaque_id", self.opaque_id),
            **_add_if_not_none("headers", self.headers),
            **_add_if_not_none("verify_certs", self.verify_certs),
            **_add_if_not_none("ca_certs", self.ca_certs),
            **_add_if_not_none("client_cert", self.client_cert),
            **_add_if_not_none("client_key", self.client_key),
            **_add_if_not_none(
                "ssl_assert_hostname", self.ssl_assert_hostname
            ),
            **_add_if_not_none(
                "ssl_assert_fingerprint", self.ssl_assert_fingerprint
            ),
            **_add_if_not_none("ssl_version", self.ssl_version),
            **_add_if_not_none("request_timeout", self.request_timeout),
        }

        if self.nparams is not None:
            args.update(self.nparams)

        if "hosts" not in args and "cloud_id" not in args:
            raise ConfigError("Either hosts or cloud_id must be specified")
        return args

    def _get_bag(self, bag: str | None) -> ElasticsearchBag:
        bag_name = self._get_bag_name(bag)
        if bag_name in self._bag_cache:
            return self._bag_cache[bag_name]
        client = self.client
        with self._init_lock:
            if bag_name not in self._bag_cache:
                self._bag_cache[bag_name] = self._create_bag(client, bag_name)
        return self._bag_cache[bag_name]

    def _create_bag(self, client: Any, bag_name: str) -> ElasticsearchBag:
        config = self.bags.get(bag_name) or BagConfig()
        id_prefix = (
            config.id_prefix if config.id_prefix is not None else self.key_prefix
        )
        buffer_size = config.buffer_size or ParameterParser.get_bag_parameter(
            self.buffer_size, bag_name, DEFAULT_BUFFER_SIZE
        )
        return ElasticsearchBag(
            client=client,
            index=self.index_name,
            bag=bag_name,
            bag_field=self._schema.bag_field,
            id_field=f"{id_prefix}id",
            mapping=self._mappings.get(bag_name) or CQLMapping(indexes={}),
            on_error=self._handlers.get(bag_name),
            buffer_size=buffer_size,
            tiebreaker=config.tiebreaker,
        )

    def ensure_ready(self, **kwargs: Any) -> Response[CollectionResult]:
        result = self.index_manager.ensure_ready()
        return Response(result=result)

    def drop(
        self,
        must_exist: bool = False,
        **kwargs: Any,
    ) -> Response[CollectionResult]:
        result = self.index_manager.drop(must_exist=must_exist)
        return Response(result=result)

    def has_index(self, **kwargs: Any) -> Response[bool]:
        with ErrorConverter.wrap():
            exists = bool(self.client.indices.exists(index=self.index_name))
        return Response(result=exists)

    def get(
        self,
        key: str | dict | SearchKey,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[SearchItem]:
        col = self._get_bag(bag)
        self.index_manager.ensure_ready()
        args = col.op_converter.convert_get(key=key)
        args.update(kwargs.get("nargs", {}))
        try:
            with ErrorConverter.wrap():
                resp = self.client.get(**args)
        except NotFoundError:
            raise NotFoundError("Item not found.")
        item = col.result_converter.convert_get(response=resp)
        return Response(result=item, native=dict(result=resp))

    def put(
        self,
        value: dict[str, Any] | DataModel,
        key: str | dict | SearchKey | None = None,
        etag: str | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[SearchItem]:
        col = self._get_bag(bag)
        self.index_manager.ensure_ready()
        id, args = col.op_converter.convert_put(
            value=value, key=key, etag=etag
        )
        args.update(kwargs.get("nargs", {}))
        with ErrorConverter.wrap():
            resp = self.client.index(**args)
        item = col.result_converter.convert_put(response=resp, value=value)
        return Response(result=item, native=dict(result=resp))

    def update(
        self,
        key: str | dict | SearchKey,
        value: dict[str, Any] | DataModel,
        etag: str | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[SearchItem]:
        col = self._get_bag(bag)
        self.index_manager.ensure_ready()
        args = col.op_converter.convert_update(key=key, value=value, etag=etag)
        args.update(kwargs.get("nargs", {}))
        try:
            with ErrorConverter.wrap():
                resp = self.client.update(**args)
        except NotFoundError:
            raise NotFoundError("Item not found.")
        item = col.result_converter.convert_update(response=resp)
        return Response(result=item, native=dict(result=resp))

    def delete(
        self,
        key: str | dict | SearchKey,
        etag: str | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[None]:
        col = self._get_bag(bag)
        self.index_manager.ensure_ready()
        args = col.op_converter.convert_delete(key=key, etag=etag)
        args.update(kwargs.get("nargs", {}))
        try:
            with ErrorConverter.wrap():
                resp = self.client.delete(**args)
        except NotFoundError:
            raise NotFoundError("Item not found.")
        return Response(result=None, native=dict(result=resp))

    def delete_all(
        self,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[int]:
        return self.delete_by_query(query=None, bag=bag, **kwargs)

    def delete_by_query(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[int]:
        col = self._get_bag(bag)
        native = col.translator.translate(query)
        self.index_manager.ensure_ready()
        args = col.op_converter.convert_delete_by_query(native)
        args.update(kwargs.get("nargs", {}))
        with ErrorConverter.wrap():
            resp = self.client.delete_by_query(**args)
        logger.info(
            "Deleted %s records from bag %s", resp.get("deleted"), col.bag
        )
        return Response(
            result=resp.get("deleted", 0), native=dict(result=resp)
        )

    def add(
        self,
        value: dict[str, Any] | DataModel,
        key: str | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[list[BatchOutcome]]:
        col = self._get_bag(bag)
        self.index_manager.ensure_ready()
        outcomes = col.writer.add(
            BatchOperation(
                kind=BatchOperationKind.ADD,
                key=key,
                value=Helper.get_value(value),
            )
        )
        return Response(result=outcomes)

    def submit(
        self,
        batch: SearchBatch | list | None = None,
        raise_on_error: bool = False,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[list[BatchOutcome]]:
        col = self._get_bag(bag)
        operations = Helper.get_batch_operations(batch)
        self.index_manager.ensure_ready()
        outcomes = col.writer.submit(
            operations, raise_on_error=raise_on_error
        )
        return Response(result=outcomes)

    def commit(
        self,
        refresh: bool = False,
        raise_on_error: bool = False,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[list[BatchOutcome]]:
        col = self._get_bag(bag)
        if col.writer.pending or refresh:
            self.index_manager.ensure_ready()
        outcomes = col.writer.commit(
            refresh=refresh, raise_on_error=raise_on_error
        )
        return Response(result=outcomes)

    def translate(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        sort: str | list[SortKey] | list[dict] | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[NativeQuery]:
        col = self._get_bag(bag)
        native = col.translator.translate(query, sort=sort)
        return Response(result=native)

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
    ) -> Response[SearchCursor]:
        col = self._get_bag(bag)
        native = col.translator.translate(query, sort=sort)
        cursor = SearchCursor(
            client=self.client,
            native=native,
            op_converter=col.op_converter,
            result_converter=col.result_converter,
            limit=limit,
            start=start,
            search_after=search_after,
            page_size=page_size or self.page_size,
            keep_alive=self.keep_alive,
            on_start=self.index_manager.ensure_ready,
        )
        return Response(result=cursor)

    def query(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        sort: str | list[SortKey] | list[dict] | None = None,
        limit: int | None = None,
        offset: int | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[SearchList]:
        col = self._get_bag(bag)
        native = col.translator.translate(query, sort=sort)
        self.index_manager.ensure_ready()
        args = col.op_converter.convert_search(
            native,
            size=limit or self.page_size,
            start=offset or 0,
        )
        args.update(kwargs.get("nargs", {}))
        with ErrorConverter.wrap():
            resp = self.client.search(**args)
        result = col.result_converter.convert_search(
            response=resp,
            start=offset or 0,
            limit=limit or self.page_size,
        )
        return Response(result=result, native=dict(result=resp))

    def count(
        self,
        query: str | dict | QueryString | CQLQuery | None = None,
        bag: str | None = None,
        **kwargs: Any,
    ) -> Response[int]:
        col = self._get_bag(bag)
        native = col.translator.translate(query)
        self.index_manager.ensure_ready()
        args = col.op_converter.convert_count(native)
        args.update(kwargs.get("nargs", {}))
        with ErrorConverter.wrap():
            resp = self.client.count(**args)
        result = col.result_converter.convert_count(response=resp)
        return Response(result=result, native=dict(result=resp))

    def close(
        self,
        **kwargs: Any,
    ) -> Response[None]:
        if self._init:
            self.client.close()
            self._init = False
            self._index_manager = None
            self._bag_cache = dict()
        return Response(result=None)


class ErrorConverter:
    @staticmethod
    def convert(error: Exception) -> BaseError:
        if isinstance(error, ConnectionTimeout):
            return RequestTimeoutError(str(error))
        if isinstance(error, TransportError):
            return BackendUnavailableError(str(error))
        if isinstance(error, ESNotFoundError):
            return NotFoundError(error.message)
        if isinstance(error, ESConflictError):
            return ConflictError(error.message)
        if isinstance(error, ApiError):
            if error.status_code == 400:
                return BadRequestError(error.message)
            if error.status_code == 504:
                return RequestTimeoutError(error.message)
            if error.status_code in UNAVAILABLE_STATUS_CODES:
                return BackendUnavailableError(error.message)
            return InternalError(error.message)
        return InternalError(str(error))

    @staticmethod
    @contextmanager
    def wrap() -> Iterator[None]:
        try:
            yield
        except (ApiError, TransportError) as e:
            raise ErrorConverter.convert(e) from e


class ErrorHandlerLoader:
    @staticmethod
    def load(bag: str, ref: Any) -> ErrorHandler | None:
        if ref is None:
            return None
        handler = Loader.load_callable(ref)
        try:
            signature = inspect.signature(handler)
        except (TypeError, ValueError):
            return handler
        try:
            signature.bind("add", {}, 0)
        except TypeError as e:
            raise ConfigError(
                f"Error handler of bag {bag} must accept "
                "(operation_kind, response, index)"
            ) from e
        return handler


class IndexManager:
    """Makes sure the index exists before the store uses it.

    The verified state is kept per instance. ``drop`` clears it so the
    next operation creates the index again.
    """

    client: Any
    schema: IndexSchema

    _ready: bool
    _lock: threading.Lock

    def __init__(self, client: Any, schema: IndexSchema):
        self.client = client
        self.schema = schema
        self._ready = False
        self._lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._ready

    def ensure_ready(self) -> CollectionResult:
        """Create the index unless it exists.

        Existing indexes are never altered.

        Returns:
            Collection result, CREATED or EXISTS.

        Raises:
            BackendUnavailableError: The engine could not be reached.
        """
        if self._ready:
            return self._result(CollectionStatus.EXISTS)
        with self._lock:
            if self._ready:
                return self._result(CollectionStatus.EXISTS)
            status = self._create_if_absent()
            self._ready = True
        return self._result(status)

    def drop(self, must_exist: bool = False) -> CollectionResult:
        """Delete the index.

        Args:
            must_exist:
                Raise NotFoundError when the index does not exist.

        Returns:
            Collection result, DROPPED or NOT_EXISTS.
        """
        name = self.schema.name
        with self._lock:
            self._ready = False
            with ErrorConverter.wrap():
                try:
                    self.client.indices.delete(index=name)
                except ApiError as e:
                    if e.error != "index_not_found_exception":
                        raise
                    if must_exist:
                        raise NotFoundError(
                            f"Index {name} does not exist."
                        ) from e
                    return self._result(CollectionStatus.NOT_EXISTS)
        logger.info("Dropped index %s", name)
        return self._result(CollectionStatus.DROPPED)

    def _create_if_absent(self) -> CollectionStatus:
        name = self.schema.name
        with ErrorConverter.wrap():
            if self.client.indices.exists(index=name):
                return CollectionStatus.EXISTS
            try:
                self.client.indices.create(index=name, **self.schema.to_body())
            except ApiError as e:
                if e.error != "resource_already_exists_exception":
                    raise
                logger.debug("Index %s was created concurrently", name)
                return CollectionStatus.EXISTS
        logger.info("Created index %s", name)
        return CollectionStatus.CREATED

    def _result(self, status: CollectionStatus) -> CollectionResult:
        return CollectionResult(status=status, name=self.schema.name)


class CQLTranslator:
    """Translates CQL into Elasticsearch queries for one bag."""

    mapping: CQLMapping
    tiebreaker: str | None

    def __init__(self, mapping: CQLMapping, tiebreaker: str | None = None):
        self.mapping = mapping
        self.tiebreaker = tiebreaker

    def translate(
        self,
        query: str | dict | QueryString | CQLQuery | None,
        sort: str | list[SortKey] | list[dict] | None = None,
    ) -> NativeQuery:
        """Translate a query.

        Args:
            query:
                CQL string, parsed CQL query, a Lucene QueryString
                or a native query which is used unmodified.
            sort:
                SRU sort keys (``"title,,1 year,,0"``), sort keys
                or native sort clauses. Overrides CQL sortBy.

        Returns:
            Native query.

        Raises:
            TranslationError: The query can not be translated.
        """
        sort_by: list[SortKey] = []
        if isinstance(query, dict):
            native = query
        elif isinstance(query, QueryString):
            native = {"query_string": {"query": query.query}}
        else:
            if query is None or isinstance(query, str):
                cql = CQLParser.parse(query)
            elif isinstance(query, CQLQuery):
                cql = query
            else:
                raise TranslationError(f"Unsupported query {query!r}")
            sort_by = cql.sort_by
            if cql.where is None:
                native = {"match_all": {}}
            else:
                native = self.convert_expr(cql.where)
        explicit = self.convert_sort(sort) if sort else None
        if explicit is None and sort_by:
            explicit = [self._convert_sort_key(key) for key in sort_by]
        return NativeQuery(
            query=native,
            sort=self._apply_tiebreaker(native, explicit),
        )

    def convert_expr(self, expr: Expression | None) -> dict[str, Any]:
        if isinstance(expr, Term):
            return self.convert_term(expr)
        if isinstance(expr, And):
            if not expr.terms:
                raise TranslationError("AND without terms")
            return {"bool": {"must": [self.convert_expr(t) for t in expr.terms]}}
        if isinstance(expr, Or):
            if not expr.terms:
                raise TranslationError("OR without terms")
            return {
                "bool": {
                    "should": [self.convert_expr(t) for t in expr.terms],
                    "minimum_should_match": 1,
                }
            }
        if isinstance(expr, Not):
            if expr.expr is None:
                raise TranslationError("NOT without operand")
            return {"bool": {"must_not": [self.convert_expr(expr.expr)]}}
        raise TranslationError(f"Expression {expr!r} not supported")

    def convert_term(self, term: Term) -> dict[str, Any]:
        if term.is_all_records():
            return {"match_all": {}}
        field = term.field
        if term.is_server_choice():
            if self.mapping.default_index is None:
                raise UnmappedFieldError(field)
            field = self.mapping.default_index
        operator = term.operator or self.mapping.default_relation
        resolution = self.mapping.resolve(field, operator)
        values = self.mapping.normalize(resolution, term.value)
        if operator == CQLOperator.NEQ:
            clauses = [
                self._convert_eq(f, v)
                for v in values
                for f in resolution.physical_fields
            ]
            return {"bool": {"must_not": clauses}}
        clauses = [
            self._convert_op(resolution, f, v)
            for v in values
            for f in resolution.physical_fields
        ]
        if len(clauses) == 1:
            return clauses[0]
        return {"bool": {"should": clauses, "minimum_should_match": 1}}

    def _convert_op(
        self, resolution: FieldResolution, field: str, value: str
    ) -> dict[str, Any]:
        op = resolution.operator
        name = resolution.index.name
        if op == CQLOperator.ANY:
            return {
                "bool": {
                    "should": [
                        {"match": {field: word}}
                        for word in self._split(value, name)
                    ],
                    "minimum_should_match": 1,
                }
            }
        if op == CQLOperator.ALL:
            return {
                "bool": {
                    "must": [
                        {"match": {field: word}}
                        for word in self._split(value, name)
                    ]
                }
            }
        if op == CQLOperator.EQ:
            return self._convert_eq(field, value)
        if op == CQLOperator.EXACT:
            return {"term": {field: _unescape(value)}}
        if op == CQLOperator.WITHIN:
            bounds = self._split(value, name)
            if len(bounds) != 2:
                raise TranslationError(
                    "within expects a lower and an upper bound", name
                )
            return {
                "range": {
                    field: {
                        "gte": _unescape(bounds[0]),
                        "lte": _unescape(bounds[1]),
                    }
                }
            }
        ranges = {
            CQLOperator.LT: "lt",
            CQLOperator.LTE: "lte",
            CQLOperator.GT: "gt",
            CQLOperator.GTE: "gte",
        }
        if op in ranges:
            return {"range": {field: {ranges[op]: _unescape(value)}}}
        raise TranslationError(f"Operator {op.value!r} not supported", name)

    def _convert_eq(self, field: str, value: str) -> dict[str, Any]:
        if not _has_wildcard(value):
            return {"term": {field: _unescape(value)}}
        head = value[:-1]
        if value.endswith("*") and head and not _has_wildcard(head):
            return {"prefix": {field: _unescape(head)}}
        return {"wildcard": {field: {"value": value}}}

    def _split(self, value: str, name: str) -> list[str]:
        words = value.split()
        if not words:
            raise TranslationError("Empty search term", name)
        return words

    def convert_sort(
        self, sort: str | list[SortKey] | list[dict]
    ) -> list[dict[str, Any]]:
        if isinstance(sort, str):
            return [self._convert_sort_key(k) for k in _parse_sru_sort(sort)]
        clauses = []
        for key in sort:
            if isinstance(key, SortKey):
                clauses.append(self._convert_sort_key(key))
            elif isinstance(key, dict):
                clauses.append(key)
            else:
                raise TranslationError(f"Sort key {key!r} not supported")
        return clauses

    def _convert_sort_key(self, key: SortKey) -> dict[str, Any]:
        field = self.mapping.resolve_sort(key.field)
        return {field: {"order": key.direction.value}}

    def _apply_tiebreaker(
        self,
        query: dict[str, Any],
        sort: list[dict[str, Any]] | None,
    ) -> list[dict[str, Any]] | None:
        if self.tiebreaker is None:
            return sort
        if sort is None:
            if _has_ranking(query):
                return None
            sort = []
        if any(self.tiebreaker in clause for clause in sort):
            return sort
        return [*sort, {self.tiebreaker: {"order": "asc"}}]


def _has_wildcard(value: str) -> bool:
    escaped = False
    for ch in value:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch in "*?":
            return True
    return False


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def _has_ranking(query: Any) -> bool:
    if isinstance(query, dict):
        return any(
            key in RANKING_CLAUSES or _has_ranking(value)
            for key, value in query.items()
        )
    if isinstance(query, list):
        return any(_has_ranking(item) for item in query)
    return False


def _parse_sru_sort(sort: str) -> list[SortKey]:
    keys = []
    for spec in sort.split():
        parts = spec.split(",")
        if not parts[0]:
            raise TranslationError(f"Invalid sort key {spec!r}")
        ascending = parts[2] if len(parts) > 2 and parts[2] else "1"
        direction = SortDirection.DESC if ascending == "0" else SortDirection.ASC
        keys.append(SortKey(field=parts[0], direction=direction))
    return keys


class BulkWriter:
    """Buffers write operations of one bag and submits them in bulk.

    Not thread safe, use one writer per thread.
    """

    client: Any
    index: str
    op_converter: OperationConverter
    on_error: ErrorHandler | None
    buffer_size: int

    _buffer: list[BatchOperation]
    _outcomes: list[BatchOutcome]

    def __init__(
        self,
        client: Any,
        index: str,
        op_converter: OperationConverter,
        on_error: ErrorHandler | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        if buffer_size < 1:
            raise ConfigError("buffer_size must be positive")
        self.client = client
        self.index = index
        self.op_converter = op_converter
        self.on_error = on_error
        self.buffer_size = buffer_size
        self._buffer = []
        self._outcomes = []

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def add(self, operation: BatchOperation) -> list[BatchOutcome]:
        """Buffer an operation, flushing when the buffer is full.

        Returns:
            Outcomes of a flush, empty when nothing was sent.
        """
        self._buffer.append(operation)
        if len(self._buffer) >= self.buffer_size:
            return self.flush()
        return []

    def flush(self) -> list[BatchOutcome]:
        """Submit the buffered operations.

        A transport failure or timeout keeps the operations buffered,
        with their assigned keys, so a later flush or commit sends them
        again.
        """
        if not self._buffer:
            return []
        operations = [self.op_converter.assign_key(op) for op in self._buffer]
        self._buffer = []
        try:
            outcomes = self._submit(operations, offset=len(self._outcomes))
        except BackendUnavailableError:
            self._buffer = operations + self._buffer
            raise
        self._outcomes.extend(outcomes)
        return outcomes

    def commit(
        self,
        refresh: bool = False,
        raise_on_error: bool = False,
    ) -> list[BatchOutcome]:
        """Flush buffered operations.

        Args:
            refresh:
                Wait for the index refresh so the writes are searchable.
            raise_on_error:
                Raise PartialBatchError when any operation failed.

        Returns:
            Outcomes since the previous commit.
        """
        self.flush()
        if refresh:
            with ErrorConverter.wrap():
                self.client.indices.refresh(index=self.index)
        outcomes, self._outcomes = self._outcomes, []
        if raise_on_error and any(not o.success for o in outcomes):
            raise PartialBatchError(outcomes)
        return outcomes

    def submit(
        self,
        operations: list[BatchOperation],
        raise_on_error: bool = False,
    ) -> list[BatchOutcome]:
        """Submit operations, one bulk request per buffer_size chunk.

        Returns:
            One outcome per operation, in order.

        Raises:
            PartialBatchError:
                Some operations failed and raise_on_error is set.
            ConfigError:
                The error handler raised.
        """
        outcomes: list[BatchOutcome] = []
        for start in range(0, len(operations), self.buffer_size):
            chunk = operations[start : start + self.buffer_size]
            outcomes.extend(self._submit(chunk, offset=start))
        if raise_on_error and any(not o.success for o in outcomes):
            raise PartialBatchError(outcomes)
        return outcomes

    def _submit(
        self,
        operations: list[BatchOperation],
        offset: int,
    ) -> list[BatchOutcome]:
        keyed = [self.op_converter.assign_key(op) for op in operations]
        lines: list[dict] = []
        for op in keyed:
            lines.extend(self.op_converter.convert_bulk_action(op))
        logger.debug(
            "Submitting %d operations to index %s", len(keyed), self.index
        )
        with ErrorConverter.wrap():
            resp = self.client.bulk(operations=lines)
        items = resp.get("items", [])
        if len(items) != len(keyed):
            raise InternalError(
                f"Bulk response has {len(items)} items "
                f"for {len(keyed)} operations"
            )
        outcomes = []
        for i, (op, item) in enumerate(zip(keyed, items)):
            outcome = self._convert_item(offset + i, op, item)
            if not outcome.success:
                self._report(outcome, item)
            outcomes.append(outcome)
        return outcomes

    def _convert_item(
        self, index: int, op: BatchOperation, item: dict
    ) -> BatchOutcome:
        result = next(iter(item.values()), {})
        status = result.get("status")
        error = result.get("error")
        failed = error is not None or status is None or status >= 300
        if not failed:
            return BatchOutcome(
                index=index, kind=op.kind, key=op.key, success=True
            )
        if status == 404:
            kind = "not_found"
        elif status == 409:
            kind = "conflict"
        elif isinstance(error, dict):
            kind = error.get("type", "error")
        else:
            kind = "error"
        detail = error.get("reason") if isinstance(error, dict) else error
        return BatchOutcome(
            index=index,
            kind=op.kind,
            key=op.key,
            success=False,
            failure=BatchFailure(kind=kind, status=status, detail=detail),
        )

    def _report(self, outcome: BatchOutcome, item: dict) -> None:
        logger.warning(
            "%s of %s failed: %s",
            outcome.kind.value,
            outcome.key,
            outcome.failure.kind if outcome.failure else None,
        )
        if self.on_error is None:
            return
        try:
            self.on_error(outcome.kind.value, item, outcome.index)
        except Exception as e:
            raise ConfigError(
                f"Error handler raised for operation {outcome.index}"
            ) from e


class SearchCursor:
    """Lazy iterator over the records matching a native query.

    Every iteration starts over from the first page against live data.
    Pages are fetched one request at a time, only the current one is held.

    Without a caller supplied ``search_after`` token an iteration opens a
    point in time, so pages after the first one continue from the sort
    values of the previous page instead of an offset. This keeps the
    order stable and is not bounded by the index result window.
    """

    client: Any
    native: NativeQuery
    op_converter: OperationConverter
    result_converter: ResultConverter
    limit: int | None
    start: int
    search_after: list[Any] | None
    page_size: int
    keep_alive: str
    on_start: Callable[[], Any] | None

    def __init__(
        self,
        client: Any,
        native: NativeQuery,
        op_converter: OperationConverter,
        result_converter: ResultConverter,
        limit: int | None = None,
        start: int = 0,
        search_after: list[Any] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        keep_alive: str = DEFAULT_KEEP_ALIVE,
        on_start: Callable[[], Any] | None = None,
    ):
        if page_size < 1:
            raise BadRequestError("page_size must be positive")
        if limit is not None and limit < 0:
            raise BadRequestError("limit must not be negative")
        if start < 0:
            raise BadRequestError("start must not be negative")
        if search_after is not None and not native.sort:
            raise BadRequestError("search_after requires a sorted query")
        self.client = client
        self.native = native
        self.op_converter = op_converter
        self.result_converter = result_converter
        self.limit = limit
        self.start = start
        self.search_after = search_after
        self.page_size = page_size
        self.keep_alive = keep_alive
        self.on_start = on_start

    def __iter__(self) -> Iterator[SearchItem]:
        return self._iterate()

    def first(self) -> SearchItem | None:
        return next(iter(self), None)

    def _iterate(self) -> Iterator[SearchItem]:
        if self.on_start is not None:
            self.on_start()
        if self.search_after is not None:
            yield from self._pages(pit=None)
            return
        with ErrorConverter.wrap():
            resp = self.client.open_point_in_time(
                index=self.op_converter.index, keep_alive=self.keep_alive
            )
        pit = {"id": resp["id"], "keep_alive": self.keep_alive}
        try:
            yield from self._pages(pit=pit)
        finally:
            self._close(pit["id"])

    def _pages(self, pit: dict[str, Any] | None) -> Iterator[SearchItem]:
        remaining = self.limit
        offset = self.start
        token = self.search_after
        while remaining is None or remaining > 0:
            size = (
                self.page_size
                if remaining is None
                else min(self.page_size, remaining)
            )
            args = self.op_converter.convert_search(
                self.native,
                size=size,
                start=None if token is not None else offset,
                search_after=token,
                pit=pit,
            )
            with ErrorConverter.wrap():
                resp = self.client.search(**args)
            if pit is not None and resp.get("pit_id"):
                pit["id"] = resp["pit_id"]
            hits = resp.get("hits", {}).get("hits", [])
            for hit in hits:
                yield self.result_converter.convert_hit(hit)
            if remaining is not None:
                remaining -= len(hits)
            if len(hits) < size:
                return
            token = hits[-1].get("sort")
            if token is None:
                offset += len(hits)

    def _close(self, pit_id: str) -> None:
        try:
            with ErrorConverter.wrap():
                self.client.close_point_in_time(id=pit_id)
        except BaseError as e:
            # The point in time expires after keep_alive anyway.
            logger.warning("Could not close point in time: %s", e)


class OperationConverter:
    index: str
    bag: str
    bag_field: str
    id_field: str

    def __init__(
        self, index: str, bag: str, bag_field: str, id_field: str
    ) -> None:
        self.index = index
        self.bag = bag
        self.bag_field = bag_field
        self.id_field = id_field

    def convert_id(self, id: str) -> str:
        return f"{self.bag}:{id}"

    def convert_document(self, value: dict[str, Any]) -> dict[str, Any]:
        document = {
            k: v
            for k, v in value.items()
            if k not in (self.id_field, self.bag_field)
        }
        document[self.bag_field] = self.bag
        return document

    def scope(self, query: dict[str, Any]) -> dict[str, Any]:
        return {
            "bool": {
                "must": [query],
                "filter": [{"term": {self.bag_field: self.bag}}],
            }
        }

    def assign_key(self, op: BatchOperation) -> BatchOperation:
        if op.key is not None:
            return op
        if op.kind != BatchOperationKind.ADD:
            raise BadRequestError(f"{op.kind.value} requires a key")
        id = Helper.get_id(self.id_field, value=op.value or {})
        return op.copy(update={"key": id or str(uuid.uuid4())})

    def convert_bulk_action(self, op: BatchOperation) -> list[dict]:
        meta = {"_index": self.index, "_id": self.convert_id(str(op.key))}
        if op.kind == BatchOperationKind.ADD:
            return [
                {"index": meta},
                self.convert_document(op.value or {}),
            ]
        if op.kind == BatchOperationKind.UPDATE:
            doc = self.convert_document(op.value or {})
            return [{"update": meta}, {"doc": doc}]
        return [{"delete": meta}]

    def convert_get(
        self,
        key: str | dict | SearchKey,
    ) -> dict:
        id = Helper.get_id(self.id_field, key=key)
        return {
            "index": self.index,
            "id": self.convert_id(str(id)),
        }

    def convert_put(
        self,
        value: dict[str, Any] | DataModel,
        key: str | dict | SearchKey | None = None,
        etag: str | None = None,
    ) -> tuple[str, dict]:
        val = Helper.get_value(value)
        id = Helper.get_id(self.id_field, key=key, value=val)
        if id is None:
            id = str(uuid.uuid4())
        args: dict = {
            "index": self.index,
            "id": self.convert_id(id),
            "document": self.convert_document(val),
        }
        args.update(self._convert_etag(etag))
        return id, args

    def convert_update(
        self,
        key: str | dict | SearchKey,
        value: dict[str, Any] | DataModel,
        etag: str | None = None,
    ) -> dict:
        id = Helper.get_id(self.id_field, key=key)
        args: dict = {
            "index": self.index,
            "id": self.convert_id(str(id)),
            "doc": self.convert_document(Helper.get_value(value)),
            "source": True,
        }
        args.update(self._convert_etag(etag))
        return args

    def convert_delete(
        self,
        key: str | dict | SearchKey,
        etag: str | None = None,
    ) -> dict:
        id = Helper.get_id(self.id_field, key=key)
        args: dict = {
            "index": self.index,
            "id": self.convert_id(str(id)),
        }
        args.update(self._convert_etag(etag))
        return args

    def convert_search(
        self,
        native: NativeQuery,
        size: int,
        start: int | None = None,
        search_after: list[Any] | None = None,
        pit: dict[str, Any] | None = None,
    ) -> dict:
        args: dict = {
            "query": self.scope(native.query),
            "size": size,
            "seq_no_primary_term": True,
            "track_total_hits": True,
        }
        # A point in time already pins the index.
        if pit is not None:
            args["pit"] = pit
        else:
            args["index"] = self.index
        if native.sort:
            args["sort"] = native.sort
        if search_after is not None:
            args["search_after"] = search_after
        elif start:
            args["from_"] = start
        return args

    def convert_count(self, native: NativeQuery) -> dict:
        return {"index": self.index, "query": self.scope(native.query)}

    def convert_delete_by_query(self, native: NativeQuery) -> dict:
        return {
            "index": self.index,
            "query": self.scope(native.query),
            "conflicts": "proceed",
        }

    def _convert_etag(self, etag: str | None) -> dict:
        if etag is None:
            return {}
        splits = etag.split("-")
        if len(splits) != 2 or not all(s.isdigit() for s in splits):
            raise BadRequestError("ETag format error")
        return {"if_seq_no": int(splits[0]), "if_primary_term": int(splits[1])}


class ResultConverter:
    bag: str
    bag_field: str
    id_field: str

    def __init__(self, bag: str, bag_field: str, id_field: str) -> None:
        self.bag = bag
        self.bag_field = bag_field
        self.id_field = id_field

    def convert_get(
        self,
        response: Any,
    ) -> SearchItem:
        return self.convert_hit(response)

    def convert_put(
        self,
        response: Any,
        value: dict[str, Any] | DataModel,
    ) -> SearchItem:
        id = self.convert_id(response["_id"])
        record = dict(Helper.get_value(value))
        record[self.id_field] = id
        return SearchItem(
            key=SearchKey(id=id),
            properties=SearchProperties(etag=self._get_etag(response)),
            value=record,
        )

    def convert_update(
        self,
        response: Any,
    ) -> SearchItem:
        id = self.convert_id(response["_id"])
        source = response.get("get", {}).get("_source", None)
        return SearchItem(
            key=SearchKey(id=id),
            properties=SearchProperties(etag=self._get_etag(response)),
            value=self.convert_source(id, source) if source else None,
        )

    def convert_hit(self, hit: Any) -> SearchItem:
        id = self.convert_id(hit["_id"])
        return SearchItem(
            key=SearchKey(id=id),
            properties=SearchProperties(
                etag=self._get_etag(hit),
                score=hit.get("_score"),
            ),
            value=self.convert_source(id, hit.get("_source", {})),
        )

    def convert_search(
        self,
        response: Any,
        start: int,
        limit: int | None,
    ) -> SearchList:
        hits_block = response.get("hits", {})
        total = hits_block.get("total")
        if isinstance(total, dict):
            total = total.get("value")
        return SearchList(
            items=[self.convert_hit(hit) for hit in hits_block.get("hits", [])],
            total=total,
            start=start,
            limit=limit,
        )

    def convert_count(
        self,
        response: Any,
    ) -> int:
        return response.get("count", 0)

    def convert_id(self, id: str) -> str:
        prefix = f"{self.bag}:"
        return id[len(prefix) :] if id.startswith(prefix) else id

    def convert_source(self, id: str, source: dict[str, Any]) -> dict[str, Any]:
        record = {k: v for k, v in source.items() if k != self.bag_field}
        record[self.id_field] = id
        return record

    def _get_etag(self, response: Any) -> str | None:
        seq_no = response.get("_seq_no")
        primary_term = response.get("_primary_term")
        if seq_no is None or primary_term is None:
            return None
        return f"{seq_no}-{primary_term}"


class ElasticsearchBag:
    bag: str
    id_field: str
    translator: CQLTranslator
    writer: BulkWriter
    op_converter: OperationConverter
    result_converter: ResultConverter

    def __init__(
        self,
        client: Any,
        index: str,
        bag: str,
        bag_field: str,
        id_field: str,
        mapping: CQLMapping,
        on_error: ErrorHandler | None,
        buffer_size: int,
        tiebreaker: str | None,
    ):
        self.bag = bag
        self.id_field = id_field
        self.translator = CQLTranslator(mapping=mapping, tiebreaker=tiebreaker)
        self.op_converter = OperationConverter(
            index=index, bag=bag, bag_field=bag_field, id_field=id_field
        )
        self.result_converter = ResultConverter(
            bag=bag, bag_field=bag_field, id_field=id_field
        )
        self.writer = BulkWriter(
            client=client,
            index=index,
            op_converter=self.op_converter,
            on_error=on_error,
            buffer_size=buffer_size,
        )
