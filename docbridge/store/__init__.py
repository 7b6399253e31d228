"""
Document store collaborators
"""

from .base import WRITE_OPERATIONS, DocumentStore, assert_materialized
from .memory import MemoryDocumentStore, QueryMatcher
from .mongo import MongoDocumentStore

__all__ = [
    "WRITE_OPERATIONS",
    "DocumentStore",
    "MemoryDocumentStore",
    "MongoDocumentStore",
    "QueryMatcher",
    "assert_materialized",
]
