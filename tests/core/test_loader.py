# type: ignore

import posixpath

import pytest

from cqlstore.core import Loader, Provider
from cqlstore.core.exceptions import ConfigError
from cqlstore.storage.search_store import SearchStore
from cqlstore.storage.search_store.providers.elasticsearch import Elasticsearch

MANIFEST = """
components:
  search:
    type: cqlstore.storage.search_store
    parameters:
      bag: book
    provider:
      type: elasticsearch
      parameters:
        hosts: http://localhost:9200
        index_name: catalog
        buffer_size: "50"
        bags:
          book:
            on_error: logging:debug
            tiebreaker: isbn
            cql_mapping:
              default_index: title
              indexes:
                title:
                  op: [any, "="]
                  sort: true
                isbn:
                  op: ["="]
"""


def test_load_component(tmp_path):
    path = tmp_path / "components.yaml"
    path.write_text(MANIFEST)

    store = Loader.load_component(str(path), "search")
    assert isinstance(store, SearchStore)
    assert store.__handle__ == "search"
    assert store.bag == "book"

    provider = store.__provider__
    assert isinstance(provider, Elasticsearch)
    assert provider.index_name == "catalog"
    assert provider.bags["book"].tiebreaker == "isbn"

    native = store.translate(query="isbn = 0001").result
    assert native.query == {"term": {"isbn": "0001"}}
    assert native.sort == [{"isbn": {"order": "asc"}}]
    store.close()


def test_missing_component(tmp_path):
    path = tmp_path / "components.yaml"
    path.write_text(MANIFEST)
    with pytest.raises(ConfigError):
        Loader.load_component(str(path), "nope")


def test_bad_provider_config(tmp_path):
    path = tmp_path / "components.yaml"
    path.write_text(MANIFEST.replace("op: [any", "op: [near"))
    with pytest.raises(ConfigError):
        Loader.load_component(str(path), "search")


def test_load_class():
    cls = Loader.load_class(
        "cqlstore.storage.search_store.providers.elasticsearch", Provider
    )
    assert cls is Elasticsearch
    with pytest.raises(ConfigError):
        Loader.load_class("cqlstore.nothing_here", Provider)
    with pytest.raises(ConfigError):
        Loader.load_class("posixpath:basename", Provider)


@pytest.mark.parametrize(
    "ref",
    [
        posixpath.basename,
        "posixpath:basename",
        "posixpath.basename",
        ["posixpath", "basename"],
    ],
)
def test_load_callable(ref):
    assert Loader.load_callable(ref) is posixpath.basename


@pytest.mark.parametrize(
    "ref", ["basename", "posixpath:nothing", "nothing.here:func", 1]
)
def test_invalid_callable(ref):
    with pytest.raises(ConfigError):
        Loader.load_callable(ref)
