"""
SearchSync Errors — Failure Taxonomy
====================================

Provisioning errors are hard failures surfaced to the caller. Write-path
errors on the bulk path are recovered or logged; the bulk exceptions below
are only raised when a SearchIndex is built with ``strict=True``.
"""

from typing import Optional, Sequence


class SearchSyncError(Exception):
    """Base class for every error raised by searchsync."""


class NotStartedError(SearchSyncError):
    """An operation needed a backend connection before start() was called."""


class MappingLoadError(SearchSyncError):
    """A mapping resource is missing, unreadable or malformed. Not retried."""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource


class InvalidMappingError(SearchSyncError):
    """The backend rejected the syntax of a mapping. Not retried."""

    def __init__(self, index: str, doc_type: str, detail: str = ""):
        super().__init__(f"Invalid mapping for {index}/{doc_type}: {detail}")
        self.index = index
        self.doc_type = doc_type
        self.detail = detail


class WriteError(SearchSyncError):
    """A single-document upsert failed."""

    def __init__(
        self,
        index: str,
        doc_type: str,
        doc_id: str,
        detail: str = "",
        error_type: Optional[str] = None
    ):
        super().__init__(f"Failed to write {index}/{doc_type}/{doc_id}: {detail}")
        self.index = index
        self.doc_type = doc_type
        self.doc_id = doc_id
        self.detail = detail
        self.error_type = error_type


class PartialBulkFailure(SearchSyncError):
    """Some bulk items still failed after their single retry."""

    def __init__(self, positions: Sequence[int]):
        super().__init__(f"Bulk items at positions {list(positions)} failed after retry")
        self.positions = tuple(positions)


class BulkTransportFailure(SearchSyncError):
    """The bulk round trip itself failed; no per-item outcome is known."""


class IndexProvisioningWarning(UserWarning):
    """Index creation lost a race against another actor. Logged, never raised."""


def backend_error_type(exc: BaseException) -> Optional[str]:
    """The backend's error type (e.g. ``index_not_found_exception``), if any."""
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("type")
    return None


def describe(exc: BaseException) -> str:
    """Short human-readable detail for a backend exception."""
    error_type = backend_error_type(exc)
    if error_type:
        return f"{error_type}: {exc}"
    return str(exc) or exc.__class__.__name__
