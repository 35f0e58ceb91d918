"""Key extraction helpers for grouping records."""

from typing import Callable, Dict, Hashable, Iterable, List, Tuple, TypeVar

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def group_by(items: Iterable[T], key: Callable[[T], K]) -> Dict[K, List[T]]:
    """
    Group items by a key function, keeping first-seen key order and the
    input order inside each group.
    """
    groups: Dict[K, List[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def index_type_key(item) -> Tuple[str, str]:
    """(index, type) of anything carrying ``index`` and ``type`` attributes."""
    return (item.index, item.type)
