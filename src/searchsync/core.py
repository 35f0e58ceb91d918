"""
SearchSync Core — Index Facade
==============================

SearchIndex is the public surface of searchsync. It owns the lifecycle of
one backend connection and composes the provisioner and the writers:

    caller → SearchIndex → BulkWriter / DocumentWriter → Elasticsearch
                       ↘ SchemaProvisioner (lazily, before the first write
                         touching a registered (index, type) pair)

The connection is injected as a factory so that start()/stop() are a scoped
acquire/release of it:

    with SearchIndex.from_settings(ConnectionSettings(hosts=[...])) as index:
        index.register_mapping("rules", "rule", "mappings/rule.json")
        index.bulk_put([BulkItem("rules", "rule", "java:S100", b'{"name": "..."}')])
        response = index.query(SearchQuery.query_string("rules", "naming"))
"""

import logging
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Set, Tuple, Union
from elasticsearch import Elasticsearch

from .connection import ConnectionSettings, connect
from .errors import BulkTransportFailure, NotStartedError, PartialBulkFailure, WriteError
from .keys import group_by, index_type_key
from .mapping import MappingSource, SchemaProvisioner, load_mapping
from .query import SearchQuery
from .writer import (
    INDEX_NOT_FOUND,
    BulkItem,
    BulkOutcome,
    BulkStatus,
    BulkWriter,
    DocumentWriter,
    Payload,
)

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], Elasticsearch]
MappingLoader = Callable[[str], Dict[str, Any]]


class SearchIndex:
    """
    Remote index synchronization facade.

    Provisioning failures are raised. Bulk failures are recovered once per
    item and otherwise logged; pass ``strict=True`` to have bulk_put() raise
    BulkTransportFailure or PartialBulkFailure instead.

    Example:
        index = SearchIndex(lambda: Elasticsearch("http://localhost:9200"))
        index.start()
        try:
            index.add_mapping_from_resource("rules", "rule", "mappings/rule.json")
            index.put("rules", "rule", "java:S100", b'{"name": "Method names"}')
        finally:
            index.stop()
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        mapping_loader: MappingLoader = load_mapping,
        strict: bool = False
    ):
        """
        Args:
            connection_factory: Returns an open client; called by start()
            mapping_loader: Resolves a mapping resource path to a mapping
            strict: Raise on bulk transport failures and residual item failures
        """
        self._connection_factory = connection_factory
        self._mapping_loader = mapping_loader
        self.strict = strict

        self._client: Optional[Elasticsearch] = None
        self._provisioner: Optional[SchemaProvisioner] = None
        self._documents: Optional[DocumentWriter] = None
        self._bulk: Optional[BulkWriter] = None

        # (index, type) → mapping resource, provisioned before the first write
        self._registered: Dict[Tuple[str, str], str] = {}
        self._provisioned: Set[Tuple[str, str]] = set()

    @classmethod
    def from_settings(cls, settings: Optional[ConnectionSettings] = None, **kwargs) -> "SearchIndex":
        """Build an index whose connection comes from ``connect(settings)``."""
        return cls(lambda: connect(settings), **kwargs)

    # -- lifecycle -----------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._client is not None

    def start(self) -> None:
        """Acquire the backend connection. Does nothing when already started."""
        if self._client is not None:
            return

        client = self._connection_factory()
        try:
            self._provisioner = SchemaProvisioner(client)
            self._documents = DocumentWriter(client)
            self._bulk = BulkWriter(client, self._documents, before_retry=self._reprovision)
        except BaseException:
            client.close()
            raise
        self._client = client

    def stop(self) -> None:
        """Release the backend connection. Safe to call when not started."""
        client, self._client = self._client, None
        self._provisioner = self._documents = self._bulk = None
        self._provisioned.clear()
        if client is not None:
            client.close()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def _require_client(self) -> Elasticsearch:
        if self._client is None:
            raise NotStartedError("SearchIndex.start() must be called first")
        return self._client

    # -- provisioning --------------------------------------------------------

    def ensure_mapping(self, index: str, doc_type: str, mapping: MappingSource) -> None:
        """
        Make sure ``index`` exists and carries the mapping of ``doc_type``.

        Raises:
            MappingLoadError: ``mapping`` is text that does not parse
            InvalidMappingError: The backend rejected the mapping
        """
        self._require_client()
        self._provisioner.ensure_mapping(index, doc_type, mapping)
        self._provisioned.add((index, doc_type))

    def add_mapping_from_resource(self, index: str, doc_type: str, resource: str) -> None:
        """
        Load a mapping resource and apply it.

        Raises:
            MappingLoadError: The resource is missing or malformed; nothing is
                sent to the backend
            InvalidMappingError: The backend rejected the mapping
        """
        self._require_client()
        mapping = self._mapping_loader(resource)
        self.ensure_mapping(index, doc_type, mapping)

    def register_mapping(self, index: str, doc_type: str, resource: str) -> None:
        """Provision ``resource`` lazily, before the first write to (index, type)."""
        self._registered[(index, doc_type)] = resource

    def _provision(self, pairs: Iterable[Tuple[str, str]]) -> None:
        for pair in pairs:
            if pair in self._provisioned or pair not in self._registered:
                continue
            self.add_mapping_from_resource(pair[0], pair[1], self._registered[pair])

    def _forget_index(self, index: str) -> None:
        stale = {pair for pair in self._provisioned if pair[0] == index}
        if stale:
            logger.warning("Index %s reported missing, mappings will be provisioned again", index)
            self._provisioned.difference_update(stale)

    def _reprovision(self, indices: FrozenSet[str]) -> None:
        for index in indices:
            self._forget_index(index)
        self._provision([pair for pair in self._registered if pair[0] in indices])

    # -- writes --------------------------------------------------------------

    def put(self, index: str, doc_type: str, doc_id: str, payload: Payload) -> None:
        """
        Upsert one document. Not retried.

        Raises:
            WriteError: The backend or the transport reported a failure
        """
        self._require_client()
        self._provision([(index, doc_type)])
        try:
            self._documents.put(index, doc_type, doc_id, payload)
        except WriteError as e:
            if e.error_type == INDEX_NOT_FOUND:
                self._forget_index(index)
            raise

    def bulk_put(self, items: Iterable[Union[BulkItem, Tuple[str, str, str, Payload]]]) -> BulkOutcome:
        """
        Upsert a batch of documents in one round trip, retrying each failed
        item once.

        Args:
            items: BulkItem values or (index, type, id, payload) tuples

        Returns:
            The BulkOutcome of the batch
        """
        items = [item if isinstance(item, BulkItem) else BulkItem(*item) for item in items]
        if not items:
            return BulkOutcome(BulkStatus.ALL_SUCCEEDED)

        self._require_client()
        self._provision(group_by(items, index_type_key))

        outcome = self._bulk.bulk_put(items)
        for index in outcome.missing_indices:
            self._forget_index(index)

        if outcome.status == BulkStatus.TRANSPORT_FAILED:
            if self.strict:
                raise BulkTransportFailure(f"Bulk request of {outcome.total} items failed") from outcome.error
        elif outcome.residual_positions:
            logger.error(
                "%d of %d bulk items could not be written",
                len(outcome.residual_positions),
                outcome.total,
            )
            if self.strict:
                raise PartialBulkFailure(outcome.residual_positions)

        return outcome

    # -- reads ---------------------------------------------------------------

    def query(self, q: Union[SearchQuery, Dict[str, Any]], index: Optional[str] = None) -> Any:
        """
        Run a search and return the backend response untouched.

        Args:
            q: A SearchQuery, or a raw request body
            index: Target index when ``q`` is a raw body
        """
        client = self._require_client()
        if isinstance(q, SearchQuery):
            return client.search(**q.to_kwargs())
        return client.search(index=index, body=q)
