"""
Document store interface

The codec and streaming layers only need find, count and insert over
fully materialized documents, plus update and drop for the service layer.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ..codec.materializer import find_sentinels
from ..exceptions import CapabilityError, ValueFormatError

# Operations that need a writable (primary) member
WRITE_OPERATIONS = frozenset(
    [
        "create_collection",
        "drop_collection",
        "import_collection",
        "import_documents",
        "save_document",
        "delete_document",
    ]
)


def assert_materialized(documents: Iterable[Dict[str, Any]]):
    """Refuse documents that still carry sentinel strings"""
    for index, document in enumerate(documents):
        leaked = find_sentinels(document)
        if leaked:
            path = f"{index}.{leaked[0]}" if leaked[0] else str(index)
            raise ValueFormatError(path, leaked[0], "materialized value", path)


class DocumentStore(ABC):
    """Minimal document store used by jobs and the service layer"""

    @abstractmethod
    def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        limit: int = 0,
        skip: int = 0,
    ) -> Iterable[Dict[str, Any]]:
        """Documents of a collection matching a query, in natural order"""

    @abstractmethod
    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        """Number of documents matching a query"""

    @abstractmethod
    def insert(
        self, collection: str, documents: List[Dict[str, Any]], keep_going: bool = False
    ) -> int:
        """Insert documents in order and return how many were stored

        With keep_going, duplicate-key failures are skipped instead of
        aborting the insert.
        """

    @abstractmethod
    def update(
        self,
        collection: str,
        document_id: Any,
        document: Dict[str, Any],
        use_set: bool = False,
    ) -> int:
        """Replace (or $set into) the document with the given _id"""

    @abstractmethod
    def drop(self, collection: str):
        """Remove a collection and all of its documents"""

    @abstractmethod
    def is_writable(self) -> bool:
        """True when connected to a member that accepts writes"""

    def ensure_can_execute(self, operation: str):
        """Raise CapabilityError for write operations on a read-only member"""
        if operation in WRITE_OPERATIONS and not self.is_writable():
            raise CapabilityError(operation)
