# type: ignore

import copy
import fnmatch
from types import SimpleNamespace
from typing import Any

from elasticsearch import BadRequestError as ESBadRequestError
from elasticsearch import ConflictError as ESConflictError
from elasticsearch import NotFoundError as ESNotFoundError


def api_error(cls, status: int, type: str, reason: str = ""):
    body = {
        "error": {
            "type": type,
            "reason": reason or type,
            "root_cause": [{"type": type, "reason": reason or type}],
        },
        "status": status,
    }
    return cls(type, meta=SimpleNamespace(status=status), body=body)


class FakeIndices:
    def __init__(self, client: "FakeElasticsearch"):
        self.client = client
        self.create_calls: list[dict] = []
        self.refresh_calls = 0

    def exists(self, index: str, **kwargs) -> bool:
        self.client._check_failure()
        return index in self.client.indices_data

    def create(self, index: str, **kwargs) -> dict:
        self.client._check_failure()
        self.create_calls.append({"index": index, **kwargs})
        if index in self.client.indices_data:
            raise api_error(
                ESBadRequestError, 400, "resource_already_exists_exception"
            )
        self.client.indices_data[index] = {}
        self.client.index_bodies[index] = kwargs
        return {"acknowledged": True, "index": index}

    def delete(self, index: str, **kwargs) -> dict:
        self.client._check_failure()
        if index not in self.client.indices_data:
            raise api_error(ESNotFoundError, 404, "index_not_found_exception")
        del self.client.indices_data[index]
        self.client.index_bodies.pop(index, None)
        return {"acknowledged": True}

    def refresh(self, index: str, **kwargs) -> dict:
        self.client._check_failure()
        self.refresh_calls += 1
        return {"_shards": {"failed": 0}}


class FakeElasticsearch:
    """In memory stand in for the Elasticsearch client."""

    def __init__(self):
        self.indices_data: dict[str, dict[str, dict]] = {}
        self.index_bodies: dict[str, dict] = {}
        self.indices = FakeIndices(self)
        self.bulk_calls: list[list[dict]] = []
        self.search_calls: list[dict] = []
        self.rejected: dict[str, tuple[int, str]] = {}
        self.failure: Exception | None = None
        self.closed = False
        self.pits: dict[str, str] = {}
        self.max_result_window = 10000
        self._seq_no = 0
        self._pit_seq = 0

    def _check_failure(self):
        if self.failure is not None:
            raise self.failure

    def _docs(self, index: str) -> dict[str, dict]:
        return self.indices_data.setdefault(index, {})

    def _store(self, index: str, id: str, source: dict) -> dict:
        docs = self._docs(index)
        created = id not in docs
        self._seq_no += 1
        docs[id] = {"_source": copy.deepcopy(source), "_seq_no": self._seq_no}
        return {
            "_index": index,
            "_id": id,
            "_seq_no": self._seq_no,
            "_primary_term": 1,
            "result": "created" if created else "updated",
            "status": 201 if created else 200,
        }

    def _check_etag(self, doc, if_seq_no, if_primary_term):
        if if_seq_no is None:
            return
        if doc is None or doc["_seq_no"] != if_seq_no or if_primary_term != 1:
            raise api_error(
                ESConflictError, 409, "version_conflict_engine_exception"
            )

    def get(self, index: str, id: str, **kwargs) -> dict:
        self._check_failure()
        doc = self._docs(index).get(id)
        if doc is None:
            raise api_error(ESNotFoundError, 404, "not_found")
        return {
            "_index": index,
            "_id": id,
            "found": True,
            "_seq_no": doc["_seq_no"],
            "_primary_term": 1,
            "_source": copy.deepcopy(doc["_source"]),
        }

    def index(
        self,
        index: str,
        id: str,
        document: dict,
        if_seq_no=None,
        if_primary_term=None,
        **kwargs,
    ) -> dict:
        self._check_failure()
        doc = self._docs(index).get(id)
        self._check_etag(doc, if_seq_no, if_primary_term)
        return self._store(index, id, document)

    def update(
        self,
        index: str,
        id: str,
        doc: dict,
        source=None,
        if_seq_no=None,
        if_primary_term=None,
        **kwargs,
    ) -> dict:
        self._check_failure()
        current = self._docs(index).get(id)
        if current is None:
            raise api_error(ESNotFoundError, 404, "document_missing_exception")
        self._check_etag(current, if_seq_no, if_primary_term)
        merged = {**current["_source"], **doc}
        resp = self._store(index, id, merged)
        if source:
            resp["get"] = {"_source": copy.deepcopy(merged)}
        return resp

    def delete(
        self,
        index: str,
        id: str,
        if_seq_no=None,
        if_primary_term=None,
        **kwargs,
    ) -> dict:
        self._check_failure()
        docs = self._docs(index)
        if id not in docs:
            raise api_error(ESNotFoundError, 404, "not_found")
        self._check_etag(docs[id], if_seq_no, if_primary_term)
        del docs[id]
        return {"_index": index, "_id": id, "result": "deleted"}

    def bulk(self, operations: list[dict], index: str | None = None, **kwargs):
        self._check_failure()
        self.bulk_calls.append(copy.deepcopy(operations))
        items = []
        lines = iter(operations)
        for line in lines:
            action, meta = next(iter(line.items()))
            target = meta.get("_index", index)
            id = meta["_id"]
            if action in ("index", "update"):
                payload = next(lines)
            if id in self.rejected:
                status, type = self.rejected[id]
                items.append(
                    {
                        action: {
                            "_index": target,
                            "_id": id,
                            "status": status,
                            "error": {"type": type, "reason": f"{type} {id}"},
                        }
                    }
                )
                continue
            docs = self._docs(target)
            if action == "index":
                result = self._store(target, id, payload)
            elif action == "update":
                if id not in docs:
                    result = {
                        "_index": target,
                        "_id": id,
                        "status": 404,
                        "error": {
                            "type": "document_missing_exception",
                            "reason": f"[{id}]: document missing",
                        },
                    }
                else:
                    merged = {**docs[id]["_source"], **payload["doc"]}
                    result = self._store(target, id, merged)
                    result["status"] = 200
                    result["result"] = "updated"
            else:
                if id in docs:
                    del docs[id]
                    result = {"_id": id, "status": 200, "result": "deleted"}
                else:
                    result = {"_id": id, "status": 404, "result": "not_found"}
            items.append({action: result})
        errors = any(
            next(iter(i.values())).get("status", 500) >= 300 for i in items
        )
        return {"took": 1, "errors": errors, "items": items}

    def open_point_in_time(self, index: str, keep_alive: str, **kwargs):
        self._check_failure()
        if index not in self.indices_data:
            raise api_error(ESNotFoundError, 404, "index_not_found_exception")
        self._pit_seq += 1
        id = f"pit-{self._pit_seq}"
        self.pits[id] = index
        return {"id": id}

    def close_point_in_time(self, id: str, **kwargs) -> dict:
        self._check_failure()
        freed = self.pits.pop(id, None) is not None
        return {"succeeded": True, "num_freed": int(freed)}

    def search(
        self,
        index: str | None = None,
        query: dict | None = None,
        size: int = 10,
        from_: int = 0,
        sort: list | None = None,
        search_after: list | None = None,
        pit: dict | None = None,
        **kwargs,
    ) -> dict:
        self._check_failure()
        self.search_calls.append(
            {
                "index": index,
                "query": query,
                "size": size,
                "from_": from_,
                "sort": sort,
                "search_after": search_after,
                "pit": copy.deepcopy(pit),
            }
        )
        if pit is not None:
            if index is not None:
                raise api_error(
                    ESBadRequestError,
                    400,
                    "action_request_validation_exception",
                    "[indices] cannot be used with point in time",
                )
            if pit["id"] not in self.pits:
                raise api_error(
                    ESNotFoundError, 404, "search_context_missing_exception"
                )
            index = self.pits[pit["id"]]
        if from_ + size > self.max_result_window:
            raise api_error(
                ESBadRequestError,
                400,
                "illegal_argument_exception",
                "Result window is too large",
            )
        matched = self._match_all(index, query)
        if sort:
            matched = _sort(matched, sort)

        # A point in time adds an implicit tiebreaker, the id stands in for it.
        def sort_values(id, doc):
            values = _sort_values(doc, sort) if sort else []
            return values + [id] if pit is not None else values

        if search_after is not None:
            keys = [sort_values(id, doc) for id, doc in matched]
            position = keys.index(list(search_after)) + 1
            matched = matched[position:]
        page = matched[from_ : from_ + size]
        hits = []
        for id, doc in page:
            hit = {
                "_index": index,
                "_id": id,
                "_score": 1.0,
                "_seq_no": doc["_seq_no"],
                "_primary_term": 1,
                "_source": copy.deepcopy(doc["_source"]),
            }
            if sort or pit is not None:
                hit["sort"] = sort_values(id, doc)
            hits.append(hit)
        resp = {
            "hits": {
                "total": {"value": len(matched), "relation": "eq"},
                "hits": hits,
            }
        }
        if pit is not None:
            resp["pit_id"] = pit["id"]
        return resp

    def count(self, index: str, query: dict | None = None, **kwargs) -> dict:
        self._check_failure()
        return {"count": len(self._match_all(index, query))}

    def delete_by_query(self, index: str, query: dict, **kwargs) -> dict:
        self._check_failure()
        matched = self._match_all(index, query)
        docs = self._docs(index)
        for id, _ in matched:
            del docs[id]
        return {"deleted": len(matched)}

    def close(self):
        self.closed = True

    def _match_all(self, index: str, query: dict | None) -> list:
        docs = self.indices_data.get(index)
        if docs is None:
            raise api_error(ESNotFoundError, 404, "index_not_found_exception")
        return [
            (id, doc)
            for id, doc in sorted(docs.items())
            if query is None or matches(doc["_source"], query)
        ]


def _values(source: dict, field: str) -> list:
    value = source.get(field)
    if value is None and "." in field:
        value = source.get(field.split(".", 1)[0])
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _compare(value: Any, bound: Any) -> tuple[Any, Any]:
    try:
        return float(value), float(bound)
    except (TypeError, ValueError):
        return str(value), str(bound)


def matches(source: dict, query: dict) -> bool:
    kind, body = next(iter(query.items()))
    if kind == "match_all":
        return True
    if kind == "bool":
        must = body.get("must", []) + body.get("filter", [])
        if not all(matches(source, q) for q in must):
            return False
        if any(matches(source, q) for q in body.get("must_not", [])):
            return False
        should = body.get("should", [])
        if should:
            required = body.get("minimum_should_match", 0 if must else 1)
            hits = sum(1 for q in should if matches(source, q))
            return hits >= required
        return True
    field, spec = next(iter(body.items()))
    values = _values(source, field)
    if kind == "term":
        return any(v == spec or str(v) == str(spec) for v in values)
    if kind == "match":
        words = str(spec).lower().split()
        tokens = {t for v in values for t in str(v).lower().split()}
        return any(w in tokens for w in words)
    if kind == "prefix":
        return any(str(v).startswith(str(spec)) for v in values)
    if kind == "wildcard":
        pattern = spec["value"] if isinstance(spec, dict) else spec
        return any(fnmatch.fnmatchcase(str(v), pattern) for v in values)
    if kind == "range":
        for v in values:
            ok = True
            for op, bound in spec.items():
                a, b = _compare(v, bound)
                ok = ok and {
                    "lt": a < b,
                    "lte": a <= b,
                    "gt": a > b,
                    "gte": a >= b,
                }[op]
            if ok:
                return True
        return False
    raise ValueError(f"Unsupported query {kind}")


def _sort_spec(clause: dict) -> tuple[str, bool]:
    field, spec = next(iter(clause.items()))
    order = spec.get("order", "asc") if isinstance(spec, dict) else spec
    return field, order == "desc"


def _sort_values(doc: dict, sort: list) -> list:
    result = []
    for clause in sort:
        field, _ = _sort_spec(clause)
        values = _values(doc["_source"], field)
        result.append(values[0] if values else None)
    return result


def _sort(matched: list, sort: list) -> list:
    for clause in reversed(sort):
        field, descending = _sort_spec(clause)

        def key(item, field=field):
            values = _values(item[1]["_source"], field)
            return (not values, values[0] if values else 0)

        matched = sorted(matched, key=key, reverse=descending)
    return matched
