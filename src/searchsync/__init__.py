"""
SearchSync — Remote Search Index Synchronization
================================================

Keeps a remote Elasticsearch index in step with locally stored records:
provisions index mappings once, and writes documents singly or in bulk with
per-item recovery of partial failures.

Key Features:
- Idempotent index and mapping provisioning
- Lazy provisioning of registered mappings before the first write
- Bulk writes with refresh and one individual retry per failed item
- Explicit bulk outcome (all succeeded, partially failed, transport failed)
- Scoped connection lifecycle (start/stop, context manager)

Usage:
    from searchsync import SearchIndex, BulkItem

    with SearchIndex.from_settings() as index:
        index.add_mapping_from_resource("rules", "rule", "mappings/rule.json")
        index.bulk_put([BulkItem("rules", "rule", "java:S100", b'{"key": "S100"}')])

License: MIT
"""

__version__ = "0.1.0"

from .connection import ConnectionSettings, connect
from .core import SearchIndex
from .errors import (
    BulkTransportFailure,
    IndexProvisioningWarning,
    InvalidMappingError,
    MappingLoadError,
    NotStartedError,
    PartialBulkFailure,
    SearchSyncError,
    WriteError,
)
from .mapping import SchemaProvisioner, load_mapping
from .query import SearchQuery
from .writer import BulkItem, BulkOutcome, BulkStatus, BulkWriter, DocumentWriter

__all__ = [
    "SearchIndex",
    "ConnectionSettings",
    "connect",
    "SchemaProvisioner",
    "load_mapping",
    "DocumentWriter",
    "BulkWriter",
    "BulkItem",
    "BulkOutcome",
    "BulkStatus",
    "SearchQuery",
    "SearchSyncError",
    "MappingLoadError",
    "InvalidMappingError",
    "WriteError",
    "PartialBulkFailure",
    "BulkTransportFailure",
    "NotStartedError",
    "IndexProvisioningWarning",
]
