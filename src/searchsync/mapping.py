"""
SearchSync Mapping — Schema Provisioning
========================================

Makes sure an index exists and carries the mapping of a document type
before anything is written to it.

Provisioning steps:
    1. indices.exists(index)        → skip creation when present
    2. indices.create(index)        → a lost creation race is only logged
    3. indices.put_mapping(index)   → a rejected mapping is a hard error

Elasticsearch 8 dropped mapping types, so a type's mapping is merged into
the index mapping. Mapping files written for older clusters, wrapped as
{"<type>": {"properties": ...}}, are unwrapped first.

Typical usage:
    provisioner = SchemaProvisioner(client)
    provisioner.ensure_mapping("rules", "rule", load_mapping("mappings/rule.json"))
"""

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Union
from elasticsearch import ApiError, BadRequestError, Elasticsearch, TransportError

from .errors import (
    IndexProvisioningWarning,
    InvalidMappingError,
    MappingLoadError,
    backend_error_type,
    describe,
)

logger = logging.getLogger(__name__)

MappingSource = Union[str, bytes, Dict[str, Any]]

ALREADY_EXISTS = "resource_already_exists_exception"


def load_mapping(resource: str, package: str = "searchsync") -> Dict[str, Any]:
    """
    Load a mapping from a package resource or a file.

    Args:
        resource: Resource path inside ``package`` (e.g. "mappings/rule.json"),
            or a filesystem path
        package: Package the resource is looked up in first

    Returns:
        The parsed mapping

    Raises:
        MappingLoadError: The resource does not exist, cannot be read, or is
            not a JSON object
    """
    text = None
    try:
        candidate = resources.files(package).joinpath(resource.lstrip("/"))
        if candidate.is_file():
            text = candidate.read_text(encoding="utf-8")
    except ModuleNotFoundError:
        pass
    except (OSError, UnicodeDecodeError) as e:
        raise MappingLoadError(f"Problem loading file at {resource}", resource) from e

    if text is None:
        path = Path(resource)
        if not path.is_file():
            raise MappingLoadError(f"Could not load unexisting file at {resource}", resource)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise MappingLoadError(f"Problem loading file at {resource}", resource) from e

    return parse_mapping(text, resource)


def parse_mapping(source: MappingSource, resource: str = "<inline>") -> Dict[str, Any]:
    """Parse mapping text into a dict; dicts are returned unchanged."""
    if isinstance(source, dict):
        return source
    try:
        mapping = json.loads(source)
    except ValueError as e:
        raise MappingLoadError(f"Problem loading file at {resource}: {e}", resource) from e
    if not isinstance(mapping, dict):
        raise MappingLoadError(f"Problem loading file at {resource}: not a JSON object", resource)
    return mapping


MAPPING_KEYS = {"properties", "dynamic", "_source", "_routing", "_meta", "dynamic_templates", "runtime"}


def _looks_like_mapping(value: Any) -> bool:
    return isinstance(value, dict) and bool(MAPPING_KEYS & set(value))


def type_mapping(doc_type: str, mapping: Dict[str, Any]) -> Dict[str, Any]:
    """Strip the wrappers older mapping files put around a type's mapping."""
    wrapped = mapping.get("mappings")
    if _looks_like_mapping(wrapped) or (
        isinstance(wrapped, dict) and _looks_like_mapping(wrapped.get(doc_type))
    ):
        mapping = wrapped
    if len(mapping) == 1 and _looks_like_mapping(mapping.get(doc_type)):
        mapping = mapping[doc_type]
    return mapping


class SchemaProvisioner:
    """
    Creates indices and applies type mappings. Keeps no state of its own;
    SearchIndex tracks which (index, type) pairs are already provisioned.
    """

    def __init__(self, client: Elasticsearch):
        self._client = client

    def ensure_mapping(self, index: str, doc_type: str, mapping: MappingSource) -> None:
        """
        Create ``index`` if needed, then apply the mapping of ``doc_type``.

        Args:
            index: Index name
            doc_type: Document type the mapping describes
            mapping: Parsed mapping, or its JSON text

        Raises:
            MappingLoadError: ``mapping`` is text that does not parse
            InvalidMappingError: The backend rejected the mapping
        """
        if not index or not doc_type:
            raise ValueError("index and doc_type must be non-empty")

        body = type_mapping(doc_type, parse_mapping(mapping))

        self._ensure_index(index)

        try:
            self._client.indices.put_mapping(index=index, body=body)
        except BadRequestError as e:
            raise InvalidMappingError(index, doc_type, describe(e)) from e

        logger.debug("Applied mapping for %s/%s", index, doc_type)

    def _ensure_index(self, index: str) -> None:
        indices = self._client.indices
        try:
            if indices.exists(index=index):
                return
            indices.create(index=index)
            logger.info("Created index %s", index)
        except (ApiError, TransportError) as e:
            if backend_error_type(e) == ALREADY_EXISTS:
                logger.warning(
                    "Index %s was created concurrently by another actor",
                    index,
                    extra={"category": IndexProvisioningWarning.__name__},
                )
            else:
                logger.error("While checking for index existence of %s", index, exc_info=True)
