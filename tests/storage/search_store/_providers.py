# type: ignore

from typing import Any

from cqlstore.storage.search_store import SearchStore

from ._fake_client import FakeElasticsearch


class SearchStoreProvider:
    ELASTICSEARCH = "elasticsearch"


INDEX_NAME = "catalog"

BOOK_MAPPING = {
    "default_index": "all",
    "default_relation": "any",
    "indexes": {
        "all": {
            "field": "title",
            "op": {
                "any": {"field": ["title", "author"]},
                "=": {"field": ["title", "author"]},
            },
        },
        "isbn": {"op": ["=", "exact"], "sort": True},
        "title": {
            "field": "title",
            "op": {
                "any": True,
                "all": True,
                "=": True,
                "<>": True,
                "exact": {"field": ["title.exact"]},
            },
            "sort": True,
        },
        "author": {
            "op": ["=", "exact", "any"],
            "filter": ["lowercase"],
            "sort": {"field": "author.sort"},
        },
        "year": {
            "op": {"=": 1, "<": 1, "<=": 1, ">": 1, ">=": 1, "within": 1},
            "sort": True,
        },
        "subject": {
            "field": "subject",
            "op": {"=": True, "exact": {"field": ["subject.exact", "keywords"]}},
        },
        "internal": {"field": "internal", "op": {}},
    },
}

provider_parameters: dict[str, dict[str, Any]] = {
    SearchStoreProvider.ELASTICSEARCH: {
        "index_name": INDEX_NAME,
        "index_settings": {"number_of_shards": 1},
        "index_mappings": {
            "book": {
                "title": {
                    "type": "text",
                    "fields": {"exact": {"type": "string"}},
                },
                "author": "string",
                "isbn": "string",
                "year": "integer",
            }
        },
        "bags": {
            "book": {
                "cql_mapping": BOOK_MAPPING,
                "tiebreaker": "isbn",
            },
        },
    },
}


def get_component(
    provider_type: str = SearchStoreProvider.ELASTICSEARCH,
    bag: str = "book",
    client: FakeElasticsearch | None = None,
    **parameters: Any,
) -> SearchStore:
    component = SearchStore(
        bag=bag,
        __provider__=dict(
            type=provider_type,
            parameters={
                **provider_parameters[provider_type],
                "client": client or FakeElasticsearch(),
                **parameters,
            },
        ),
    )
    return component
