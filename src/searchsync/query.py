"""
SearchSync Query — Search Request Description
=============================================

A SearchQuery only describes one search call; ranking and result assembly
stay with the backend and the caller.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class SearchQuery:
    """
    Example:
        q = SearchQuery("rules", query={"match": {"name": "null pointer"}}, size=10)
        response = index.query(q)
    """

    index: Union[str, List[str]]
    query: Dict[str, Any] = field(default_factory=lambda: {"match_all": {}})
    size: int = 20
    from_: int = 0
    sort: Optional[List[Any]] = None
    source: Optional[Union[bool, List[str]]] = None

    @classmethod
    def query_string(cls, index: str, text: str, fields: Optional[List[str]] = None, size: int = 20) -> "SearchQuery":
        """Full-text query using Elasticsearch query string syntax."""
        clause: Dict[str, Any] = {"query": text, "default_operator": "AND"}
        if fields:
            clause["fields"] = fields
        return cls(index, query={"query_string": clause}, size=size)

    def to_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``Elasticsearch.search``."""
        body: Dict[str, Any] = {
            "query": self.query,
            "size": self.size,
            "from": self.from_,
        }
        if self.sort is not None:
            body["sort"] = self.sort
        if self.source is not None:
            body["_source"] = self.source
        return {"index": self.index, "body": body}
