"""
SearchSync Writer — Single and Bulk Document Upserts
====================================================

DocumentWriter.put() writes one document and raises WriteError on failure.

BulkWriter.bulk_put() sends a whole batch in one bulk request with
refresh=true, then recovers per-item failures:

    bulk response    → positions whose item carries an error
    single retry     → each failed position re-put once, in order
    still failing    → logged and reported, never retried again

A failed round trip (connection lost, request rejected as a whole) is logged
and reported as TRANSPORT_FAILED instead of raised.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union
from elasticsearch import ApiError, Elasticsearch, TransportError

from .errors import WriteError, backend_error_type, describe

logger = logging.getLogger(__name__)

Payload = Union[bytes, str]

INDEX_NOT_FOUND = "index_not_found_exception"


@dataclass(frozen=True)
class BulkItem:
    """
    One document of a bulk batch.

    ``payload`` is a serialized JSON document on a single line; the writer
    passes it through untouched.
    """

    index: str
    type: str
    id: str
    payload: Payload


class BulkStatus(str, Enum):
    ALL_SUCCEEDED = "all_succeeded"
    PARTIALLY_FAILED = "partially_failed"
    TRANSPORT_FAILED = "transport_failed"


@dataclass
class BulkOutcome:
    """Result of one bulk_put() call, positionally aligned with its input."""

    status: BulkStatus
    total: int = 0
    failed_positions: Tuple[int, ...] = ()
    residual_positions: Tuple[int, ...] = ()
    missing_indices: FrozenSet[str] = frozenset()
    error: Optional[BaseException] = field(default=None, repr=False)

    @property
    def retried_positions(self) -> Tuple[int, ...]:
        return self.failed_positions

    @property
    def ok(self) -> bool:
        """True when every item is known to be written."""
        return self.status != BulkStatus.TRANSPORT_FAILED and not self.residual_positions


def _as_bytes(payload: Payload) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return payload


class DocumentWriter:
    """Synchronous single-document upsert. Does not retry."""

    def __init__(self, client: Elasticsearch):
        self._client = client

    def put(
        self,
        index: str,
        doc_type: str,
        doc_id: str,
        payload: Payload,
        refresh: Optional[bool] = None
    ) -> None:
        """
        Index (create or overwrite) one document.

        Args:
            index: Index name
            doc_type: Document type (its mapping is applied index-wide)
            doc_id: Document id
            payload: Serialized JSON document
            refresh: Forwarded to the backend when set

        Raises:
            WriteError: The backend or the transport reported a failure
        """
        kwargs: Dict[str, Any] = {
            "index": index,
            "id": doc_id,
            "document": _as_bytes(payload),
        }
        if refresh is not None:
            kwargs["refresh"] = refresh

        try:
            self._client.index(**kwargs)
        except (ApiError, TransportError) as e:
            raise WriteError(index, doc_type, doc_id, describe(e), backend_error_type(e)) from e


def failed_items(response: Dict[str, Any]) -> Dict[int, Optional[str]]:
    """Failed positions of a bulk response, mapped to the backend error type."""
    failures: Dict[int, Optional[str]] = {}
    for position, item in enumerate(response.get("items", [])):
        # Each item is {"<action>": {"_id": ..., "status": ..., "error": ...}}
        result = next(iter(item.values()), {})
        error = result.get("error")
        if error or result.get("status", 200) >= 300:
            failures[position] = error.get("type") if isinstance(error, dict) else None
    return failures


class BulkWriter:
    """Batched upserts with one individual retry per failed item."""

    def __init__(
        self,
        client: Elasticsearch,
        document_writer: Optional[DocumentWriter] = None,
        before_retry: Optional[Callable[[FrozenSet[str]], None]] = None
    ):
        """
        Args:
            client: Backend client
            document_writer: Writer used for the single retries
            before_retry: Called with the indices the bulk response reported
                missing, before any item is retried
        """
        self._client = client
        self._documents = document_writer or DocumentWriter(client)
        self._before_retry = before_retry

    def bulk_put(self, items: Iterable[BulkItem]) -> BulkOutcome:
        """
        Write a batch of documents in one round trip.

        Args:
            items: Documents in submission order

        Returns:
            BulkOutcome; never raises for backend failures
        """
        items = list(items)
        if not items:
            return BulkOutcome(BulkStatus.ALL_SUCCEEDED)

        operations: List[Any] = []
        for item in items:
            operations.append({"index": {"_index": item.index, "_id": item.id}})
            operations.append(_as_bytes(item.payload))

        try:
            response = self._client.bulk(operations=operations, refresh=True)
        except (ApiError, TransportError) as e:
            logger.error("Execution of bulk operation failed (%d items)", len(items), exc_info=True)
            return BulkOutcome(BulkStatus.TRANSPORT_FAILED, total=len(items), error=e)

        if not response.get("errors"):
            return BulkOutcome(BulkStatus.ALL_SUCCEEDED, total=len(items))

        failed = failed_items(response)
        if not failed:
            return BulkOutcome(BulkStatus.ALL_SUCCEEDED, total=len(items))
        logger.warning("Bulk operation had %d failed items, retrying them once", len(failed))

        missing = {items[p].index for p, error_type in failed.items() if error_type == INDEX_NOT_FOUND}
        if missing and self._before_retry is not None:
            self._before_retry(frozenset(missing))
            missing = set()

        residual = []
        for position in sorted(failed):
            item = items[position]
            try:
                self._documents.put(item.index, item.type, item.id, item.payload, refresh=True)
            except WriteError as e:
                logger.error("Retry of bulk item %d failed", position, exc_info=True)
                residual.append(position)
                if e.error_type == INDEX_NOT_FOUND:
                    missing.add(item.index)

        return BulkOutcome(
            BulkStatus.PARTIALLY_FAILED,
            total=len(items),
            failed_positions=tuple(sorted(failed)),
            residual_positions=tuple(residual),
            missing_indices=frozenset(missing),
        )
