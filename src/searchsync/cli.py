"""
SearchSync CLI — Command-Line Interface
=======================================

Command-line interface for SearchSync operations.

Usage:
    python -m searchsync mapping rules rule mappings/rule.json
    python -m searchsync put rules rule java:S100 '{"key": "S100"}'
    python -m searchsync bulk rules rule rules.jsonl --id-field key
    python -m searchsync search rules "naming convention"
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional
from elasticsearch import ApiError, TransportError

from .connection import ConnectionSettings
from .core import SearchIndex
from .errors import SearchSyncError
from .query import SearchQuery
from .writer import BulkItem

logger = logging.getLogger(__name__)


def get_settings(args) -> ConnectionSettings:
    """Environment settings, overridden by command-line options."""
    settings = ConnectionSettings.from_env()
    overrides = {}
    if args.hosts:
        overrides["hosts"] = args.hosts.split(",")
    if args.api_key:
        overrides["api_key"] = args.api_key
    if overrides:
        settings = replace(settings, **overrides)
    return settings


def read_jsonl(path: str, index: str, doc_type: str, id_field: str) -> List[BulkItem]:
    """Bulk items from a JSONL file, one document per line."""
    items = []
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            doc = json.loads(line)
            if id_field not in doc:
                raise SearchSyncError(f"{path}:{line_no}: missing id field {id_field!r}")
            items.append(BulkItem(index, doc_type, str(doc[id_field]), json.dumps(doc)))
    return items


def cmd_mapping(index: SearchIndex, args) -> int:
    """Provision a mapping."""
    index.add_mapping_from_resource(args.index, args.type, args.resource)
    print(f"Mapping applied: {args.index}/{args.type}")
    return 0


def cmd_put(index: SearchIndex, args) -> int:
    """Write one document."""
    doc = json.loads(args.document)
    index.put(args.index, args.type, args.id, json.dumps(doc))
    print(f"Indexed: {args.index}/{args.type}/{args.id}")
    return 0


def cmd_bulk(index: SearchIndex, args) -> int:
    """Write documents from a JSONL file."""
    items = read_jsonl(args.file, args.index, args.type, args.id_field)
    outcome = index.bulk_put(items)

    print(f"\nItems: {outcome.total}")
    print(f"Status: {outcome.status.value}")
    if outcome.failed_positions:
        print(f"Retried: {len(outcome.failed_positions)}")
        print(f"Still failing: {len(outcome.residual_positions)}")

    return 0 if outcome.ok else 1


def cmd_search(index: SearchIndex, args) -> int:
    """Search an index."""
    response = index.query(SearchQuery.query_string(args.index, args.query, size=args.size))
    hits = response["hits"]["hits"]

    print(f"\nQuery: {args.query}")
    print(f"Results: {len(hits)}\n")
    for hit in hits:
        print(f"{hit['_id']}  (score {hit.get('_score') or 0:.2f})")

    return 0


COMMANDS = {
    "mapping": cmd_mapping,
    "put": cmd_put,
    "bulk": cmd_bulk,
    "search": cmd_search,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="searchsync",
        description="SearchSync — Remote Search Index Synchronization"
    )

    # Global options
    parser.add_argument(
        "--hosts",
        help="Elasticsearch hosts (comma-separated)",
        default=None
    )
    parser.add_argument(
        "--api-key",
        dest="api_key",
        help="Elasticsearch API key",
        default=None
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # mapping command
    mapping_parser = subparsers.add_parser("mapping", help="Provision a type mapping")
    mapping_parser.add_argument("index", help="Index name")
    mapping_parser.add_argument("type", help="Document type")
    mapping_parser.add_argument("resource", help="Mapping resource or file path")

    # put command
    put_parser = subparsers.add_parser("put", help="Write one document")
    put_parser.add_argument("index", help="Index name")
    put_parser.add_argument("type", help="Document type")
    put_parser.add_argument("id", help="Document id")
    put_parser.add_argument("document", help="Document as JSON")

    # bulk command
    bulk_parser = subparsers.add_parser("bulk", help="Write documents from a JSONL file")
    bulk_parser.add_argument("index", help="Index name")
    bulk_parser.add_argument("type", help="Document type")
    bulk_parser.add_argument("file", help="JSONL file")
    bulk_parser.add_argument("--id-field", default="id", help="Field holding the document id")

    # search command
    search_parser = subparsers.add_parser("search", help="Search an index")
    search_parser.add_argument("index", help="Index name")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--size", type=int, default=20, help="Max results")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 2

    try:
        with SearchIndex.from_settings(get_settings(args)) as index:
            return command(index, args)
    except (SearchSyncError, ApiError, TransportError, ValueError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
