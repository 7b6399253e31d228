"""
In-process document store

Keeps collections as ordered lists of documents. Filters support equality,
regular expressions and $gt/$gte/$lt/$lte/$ne/$eq over dotted paths.
"""

import copy
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from bson.regex import Regex
from pymongo.errors import DuplicateKeyError

from .base import DocumentStore, assert_materialized

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = 11000


class QueryMatcher:
    """Evaluates simple filter documents against stored documents"""

    @staticmethod
    def get_value_by_path(document: Dict[str, Any], path: str) -> Any:
        """Get value from document using a dotted path"""
        current = document

        for part in QueryMatcher._parse_path(path):
            if isinstance(part, str):
                if isinstance(current, dict):
                    current = current.get(part)
                else:
                    return None
            elif isinstance(part, int):
                if isinstance(current, list) and 0 <= part < len(current):
                    current = current[part]
                elif isinstance(current, dict):
                    current = current.get(str(part))
                else:
                    return None

            if current is None:
                return None

        return current

    @staticmethod
    def _parse_path(path: str) -> List[Union[str, int]]:
        """Parse a dotted path into components"""
        parts = []
        current = ""
        i = 0

        while i < len(path):
            if path[i] == ".":
                if current:
                    # Try to convert to integer if it's numeric
                    try:
                        parts.append(int(current))
                    except ValueError:
                        parts.append(current)
                    current = ""
            else:
                current += path[i]
            i += 1

        if current:
            try:
                parts.append(int(current))
            except ValueError:
                parts.append(current)

        return parts

    @staticmethod
    def _compare(value: Any, op: str, expected: Any) -> bool:
        try:
            if op == "$gt":
                return value is not None and value > expected
            if op == "$gte":
                return value is not None and value >= expected
            if op == "$lt":
                return value is not None and value < expected
            if op == "$lte":
                return value is not None and value <= expected
        except TypeError:
            # values of different types never compare as ordered
            return False
        if op == "$ne":
            return value != expected
        # $eq and unknown operators
        return value == expected

    @staticmethod
    def _matches_value(value: Any, condition: Any) -> bool:
        if isinstance(condition, (Regex, re.Pattern)):
            if isinstance(condition, Regex):
                condition = condition.try_compile()
            return isinstance(value, str) and condition.search(value) is not None
        if isinstance(value, list) and not isinstance(condition, list):
            return condition in value
        return value == condition

    @staticmethod
    def evaluate_filter(document: Dict[str, Any], filter_conditions: Dict[str, Any]) -> bool:
        """Evaluate filter conditions against a document"""
        for path, condition in filter_conditions.items():
            value = QueryMatcher.get_value_by_path(document, path)

            if isinstance(condition, dict) and condition and all(
                key.startswith("$") for key in condition
            ):
                for op, expected in condition.items():
                    if not QueryMatcher._compare(value, op, expected):
                        return False
            elif not QueryMatcher._matches_value(value, condition):
                return False

        return True


class MemoryDocumentStore(DocumentStore):
    """Document store held in memory, used for tests and dry runs"""

    def __init__(self, writable: bool = True):
        self.writable = writable
        self.collections: Dict[str, List[Dict[str, Any]]] = {}

    def _collection(self, name: str) -> List[Dict[str, Any]]:
        return self.collections.setdefault(name, [])

    def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        limit: int = 0,
        skip: int = 0,
    ) -> Iterable[Dict[str, Any]]:
        matches = [
            copy.deepcopy(document)
            for document in self.collections.get(collection, [])
            if QueryMatcher.evaluate_filter(document, query or {})
        ]
        matches = matches[skip:]
        return matches[:limit] if limit else matches

    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        return sum(
            1
            for document in self.collections.get(collection, [])
            if QueryMatcher.evaluate_filter(document, query or {})
        )

    def insert(
        self, collection: str, documents: List[Dict[str, Any]], keep_going: bool = False
    ) -> int:
        assert_materialized(documents)
        stored = self._collection(collection)
        existing = {document["_id"] for document in stored if self._hashable(document["_id"])}
        inserted = 0

        for document in documents:
            document = copy.deepcopy(document)
            if "_id" not in document:
                document = {"_id": ObjectId(), **document}

            identifier = document["_id"]
            if self._hashable(identifier) and identifier in existing:
                if keep_going:
                    logger.debug(f"Skipping duplicate _id {identifier!r}")
                    continue
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {collection} "
                    f"dup key: {{ _id: {identifier!r} }}",
                    DUPLICATE_KEY_CODE,
                )

            if self._hashable(identifier):
                existing.add(identifier)
            stored.append(document)
            inserted += 1

        return inserted

    @staticmethod
    def _hashable(value: Any) -> bool:
        try:
            hash(value)
        except TypeError:
            return False
        return True

    def update(
        self,
        collection: str,
        document_id: Any,
        document: Dict[str, Any],
        use_set: bool = False,
    ) -> int:
        assert_materialized([document])
        stored = self.collections.get(collection, [])
        for index, current in enumerate(stored):
            if current.get("_id") == document_id:
                if use_set:
                    updated = dict(current)
                    updated.update(copy.deepcopy(document))
                else:
                    updated = {"_id": document_id, **copy.deepcopy(document)}
                stored[index] = updated
                return 1
        return 0

    def drop(self, collection: str):
        self.collections.pop(collection, None)

    def is_writable(self) -> bool:
        return self.writable
