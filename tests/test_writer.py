from __future__ import annotations

import json
import logging

import pytest

from searchsync.errors import WriteError
from searchsync.writer import BulkItem, BulkStatus, BulkWriter, DocumentWriter, failed_items


def doc(**fields) -> bytes:
    return json.dumps(fields).encode("utf-8")


def items(n: int, index: str = "rules"):
    return [BulkItem(index, "rule", f"id{i}", doc(n=i)) for i in range(n)]


def single_writes(es):
    return [c for c in es.calls if c[0] == "index"]


def test_put_overwrites_previous_content(es):
    writer = DocumentWriter(es)
    writer.put("rules", "rule", "id1", doc(v="A"))
    writer.put("rules", "rule", "id1", doc(v="B"))

    assert es.stored("rules", "id1") == {"v": "B"}
    assert len(es.docs) == 1


def test_put_encodes_text_payloads(es):
    DocumentWriter(es).put("rules", "rule", "id1", '{"v": "A"}')
    assert es.docs[("rules", "id1")] == b'{"v": "A"}'


def test_put_failure_raises_write_error(es):
    es.put_failures["id1"] = 1
    with pytest.raises(WriteError) as excinfo:
        DocumentWriter(es).put("rules", "rule", "id1", doc(v="A"))

    err = excinfo.value
    assert (err.index, err.doc_type, err.doc_id) == ("rules", "rule", "id1")
    assert err.error_type == "mapper_parsing_exception"
    assert "bad doc id1" in err.detail


def test_put_transport_failure_raises_write_error(es, transport_error):
    def unreachable(**kwargs):
        raise transport_error

    es.index = unreachable
    with pytest.raises(WriteError, match="Connection refused"):
        DocumentWriter(es).put("rules", "rule", "id1", doc(v="A"))


def test_bulk_empty_batch_makes_no_backend_call(es):
    outcome = BulkWriter(es).bulk_put([])
    assert outcome.status == BulkStatus.ALL_SUCCEEDED
    assert es.calls == []


def test_bulk_sends_one_refreshing_request(es):
    outcome = BulkWriter(es).bulk_put(items(3))

    assert es.calls == [("bulk", 3, True)]
    assert outcome.status == BulkStatus.ALL_SUCCEEDED
    assert outcome.total == 3
    assert outcome.ok
    assert es.stored("rules", "id2") == {"n": 2}


def test_bulk_retries_only_the_failed_position(es):
    es.bulk_failures = {1: "es_rejected_execution_exception"}
    batch = items(3)

    outcome = BulkWriter(es).bulk_put(batch)

    assert single_writes(es) == [("index", "rules", "id1", True)]
    assert outcome.status == BulkStatus.PARTIALLY_FAILED
    assert outcome.failed_positions == (1,)
    assert outcome.retried_positions == (1,)
    assert outcome.residual_positions == ()
    assert outcome.ok
    assert es.stored("rules", "id1") == {"n": 1}


def test_bulk_retries_each_failed_position_in_order(es):
    es.bulk_failures = {3: "es_rejected_execution_exception", 0: "es_rejected_execution_exception"}

    outcome = BulkWriter(es).bulk_put(items(5))

    assert [c[2] for c in single_writes(es)] == ["id0", "id3"]
    assert outcome.failed_positions == (0, 3)


def test_bulk_does_not_retry_a_second_time(es, caplog):
    es.bulk_failures = {1: "es_rejected_execution_exception"}
    es.put_failures["id1"] = 5

    with caplog.at_level(logging.ERROR, logger="searchsync.writer"):
        outcome = BulkWriter(es).bulk_put(items(3))

    assert len(single_writes(es)) == 1
    assert es.put_failures["id1"] == 4
    assert outcome.residual_positions == (1,)
    assert not outcome.ok
    assert "Retry of bulk item 1 failed" in caplog.text


def test_bulk_transport_failure_is_reported_not_raised(es, transport_error, caplog):
    es.bulk_error = transport_error

    with caplog.at_level(logging.ERROR, logger="searchsync.writer"):
        outcome = BulkWriter(es).bulk_put(items(2))

    assert outcome.status == BulkStatus.TRANSPORT_FAILED
    assert outcome.error is transport_error
    assert outcome.total == 2
    assert not outcome.ok
    assert single_writes(es) == []
    assert "Execution of bulk operation failed" in caplog.text


def test_bulk_reports_missing_indices(es):
    es.bulk_failures = {0: "index_not_found_exception"}
    outcome = BulkWriter(es).bulk_put(items(1, index="gone"))
    assert outcome.missing_indices == frozenset({"gone"})


def test_failed_items_reads_positions_and_error_types():
    response = {
        "errors": True,
        "items": [
            {"index": {"_id": "a", "status": 201}},
            {"index": {"_id": "b", "status": 429, "error": {"type": "es_rejected_execution_exception"}}},
            {"create": {"_id": "c", "status": 409}},
        ],
    }
    assert failed_items(response) == {1: "es_rejected_execution_exception", 2: None}


def test_bulk_calls_before_retry_with_missing_indices_first(es):
    seen = []

    def before_retry(indices):
        seen.append((indices, len(single_writes(es))))

    es.bulk_failures = {0: "index_not_found_exception", 1: "es_rejected_execution_exception"}
    outcome = BulkWriter(es, before_retry=before_retry).bulk_put(items(2, index="gone"))

    assert seen == [(frozenset({"gone"}), 0)]
    assert len(single_writes(es)) == 2
    assert outcome.missing_indices == frozenset()


def test_bulk_skips_before_retry_without_missing_indices(es):
    calls = []
    es.bulk_failures = {0: "es_rejected_execution_exception"}
    BulkWriter(es, before_retry=calls.append).bulk_put(items(1))
    assert calls == []
