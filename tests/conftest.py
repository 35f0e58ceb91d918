from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from elasticsearch import BadRequestError, ConnectionError, NotFoundError


def api_error(cls, status: int, error_type: str, reason: str = "boom"):
    """Build an elasticsearch ApiError the way the client raises it."""
    body = {"error": {"type": error_type, "reason": reason, "root_cause": [{"type": error_type, "reason": reason}]}, "status": status}
    return cls(message=error_type, meta=SimpleNamespace(status=status), body=body)


class FakeIndices:
    def __init__(self, backend: "FakeElasticsearch"):
        self.backend = backend
        self.existing = set()
        self.mappings = {}
        self.exists_error = None
        self.create_error = None

    def exists(self, index):
        self.backend.calls.append(("indices.exists", index))
        if self.exists_error is not None:
            raise self.exists_error
        return index in self.existing

    def create(self, index, **kwargs):
        self.backend.calls.append(("indices.create", index))
        if self.create_error is not None:
            raise self.create_error
        if index in self.existing:
            raise api_error(BadRequestError, 400, "resource_already_exists_exception")
        self.existing.add(index)
        return {"acknowledged": True, "index": index}

    def put_mapping(self, index, body, **kwargs):
        self.backend.calls.append(("indices.put_mapping", index))
        if index not in self.existing:
            raise api_error(NotFoundError, 404, "index_not_found_exception")
        for field in body.get("properties", {}).values():
            if field.get("type") == "not-a-type":
                raise api_error(BadRequestError, 400, "mapper_parsing_exception")
        self.mappings.setdefault(index, {}).update(body.get("properties", {}))
        return {"acknowledged": True}


class FakeElasticsearch:
    """In-memory stand-in for the Elasticsearch client."""

    def __init__(self):
        self.calls = []
        self.docs = {}
        self.indices = FakeIndices(self)
        self.closed = 0
        # ids whose next N single writes fail
        self.put_failures = {}
        # positions of the next bulk request that fail
        self.bulk_failures = {}
        self.bulk_error = None
        self.search_response = {"hits": {"total": {"value": 0}, "hits": []}}

    def index(self, index, id, document, refresh=None, **kwargs):
        self.calls.append(("index", index, id, refresh))
        if self.put_failures.get(id, 0) > 0:
            self.put_failures[id] -= 1
            raise api_error(BadRequestError, 400, "mapper_parsing_exception", f"bad doc {id}")
        self.docs[(index, id)] = document
        return {"_index": index, "_id": id, "result": "created"}

    def bulk(self, operations, refresh=None, **kwargs):
        self.calls.append(("bulk", len(operations) // 2, refresh))
        if self.bulk_error is not None:
            raise self.bulk_error

        items = []
        for position in range(len(operations) // 2):
            action = operations[2 * position]["index"]
            payload = operations[2 * position + 1]
            if position in self.bulk_failures:
                error_type = self.bulk_failures[position]
                items.append({"index": {
                    "_index": action["_index"],
                    "_id": action["_id"],
                    "status": 404 if error_type == "index_not_found_exception" else 429,
                    "error": {"type": error_type, "reason": "rejected"},
                }})
            else:
                self.docs[(action["_index"], action["_id"])] = payload
                items.append({"index": {"_index": action["_index"], "_id": action["_id"], "status": 201}})
        self.bulk_failures = {}
        return {"took": 1, "errors": any("error" in i["index"] for i in items), "items": items}

    def search(self, index=None, body=None, **kwargs):
        self.calls.append(("search", index, body))
        return self.search_response

    def close(self):
        self.closed += 1

    def call_names(self):
        return [c[0] for c in self.calls]

    def stored(self, index, doc_id):
        return json.loads(self.docs[(index, doc_id)])


@pytest.fixture
def es():
    return FakeElasticsearch()


@pytest.fixture
def transport_error():
    return ConnectionError("Connection refused")
