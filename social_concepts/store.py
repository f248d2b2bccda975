"""
Document collection used by the concepts that do not live in OpenFGA.
"""

import copy
import functools
import itertools
import uuid
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

_OPERATORS = {
    "$gt": lambda value, bound: value is not None and value > bound,
    "$gte": lambda value, bound: value is not None and value >= bound,
    "$lt": lambda value, bound: value is not None and value < bound,
    "$lte": lambda value, bound: value is not None and value <= bound,
    "$ne": lambda value, bound: value != bound,
}


def matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    """Check a document against an equality/comparison filter."""
    for field, expected in query.items():
        value = doc.get(field)
        if isinstance(expected, dict) and expected and all(k.startswith("$") for k in expected):
            for op, bound in expected.items():
                if op not in _OPERATORS:
                    raise ValueError(f"Unsupported filter operator: {op}")
                if not _OPERATORS[op](value, bound):
                    return False
        elif value != expected:
            return False
    return True


def _compare(a: Dict[str, Any], b: Dict[str, Any], order: List[Tuple[str, int]]) -> int:
    for field, direction in order:
        left, right = a.get(field), b.get(field)
        if left == right:
            continue
        # Missing values sort first.
        if left is None:
            return -direction
        if right is None:
            return direction
        return direction if left > right else -direction
    return 0


class DocCollection:
    """
    A named collection of dict documents keyed by ``_id``.

    Every single-document call is one operation on the backing store. Reads
    return copies so callers cannot mutate stored documents in place.
    """

    def __init__(self, name: str, backing_store: Optional[Any] = None):
        """
        Args:
            name: Collection name
            backing_store: Optional dict-like store of ``_id`` -> document
        """
        self.name = name
        self.documents = backing_store if backing_store is not None else {}
        self._sequence = itertools.count(len(self.documents))

    async def create_one(self, item: Dict[str, Any]) -> str:
        _id = uuid.uuid4().hex
        now = datetime.utcnow()
        self.documents[_id] = {
            **copy.deepcopy(item),
            "_id": _id,
            "_seq": next(self._sequence),
            "created": now,
            "updated": now,
        }
        return _id

    async def read_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for doc in self.documents.values():
            if matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def read_many(
        self,
        query: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None
    ) -> List[Dict[str, Any]]:
        """
        Read every document matching ``query``.

        ``sort`` is a list of ``(field, direction)`` pairs, direction 1 for
        ascending and -1 for descending, applied in order of priority.
        """
        docs = [copy.deepcopy(doc) for doc in self.documents.values() if matches(doc, query)]
        if sort:
            # Ties fall back to insertion order, in the direction of the first key.
            order = list(sort) + [("_seq", sort[0][1])]
            docs.sort(key=functools.cmp_to_key(lambda a, b: _compare(a, b, order)))
        return docs

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any]) -> bool:
        for doc in self.documents.values():
            if matches(doc, query):
                doc.update(copy.deepcopy(update))
                doc["updated"] = datetime.utcnow()
                return True
        return False

    async def delete_one(self, query: Dict[str, Any]) -> int:
        for _id, doc in list(self.documents.items()):
            if matches(doc, query):
                del self.documents[_id]
                return 1
        return 0

    async def delete_many(self, query: Dict[str, Any]) -> int:
        doomed = [_id for _id, doc in self.documents.items() if matches(doc, query)]
        for _id in doomed:
            del self.documents[_id]
        return len(doomed)
