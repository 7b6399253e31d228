"""
MongoDB document store backed by pymongo
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from bson.codec_options import DatetimeConversion
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import BulkWriteError

from ..config import StoreConfig
from .base import DocumentStore, assert_materialized

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = 11000


class MongoDocumentStore(DocumentStore):
    """Document store over one pymongo database"""

    def __init__(self, database: Database):
        self.database = database

    @classmethod
    def from_config(cls, config: StoreConfig) -> "MongoDocumentStore":
        # out-of-range dates such as the overflow marker decode as DatetimeMS
        client = MongoClient(
            config.uri,
            serverSelectionTimeoutMS=config.server_selection_timeout_ms,
            datetime_conversion=DatetimeConversion.DATETIME_AUTO,
        )
        logger.info(f"Connecting to {config.database} at {config.uri}")
        return cls(client[config.database])

    @property
    def name(self) -> str:
        return self.database.name

    def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        limit: int = 0,
        skip: int = 0,
    ) -> Iterable[Dict[str, Any]]:
        return self.database[collection].find(query or {}, limit=limit, skip=skip)

    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        return self.database[collection].count_documents(query or {})

    def insert(
        self, collection: str, documents: List[Dict[str, Any]], keep_going: bool = False
    ) -> int:
        if not documents:
            return 0
        assert_materialized(documents)

        try:
            result = self.database[collection].insert_many(
                documents, ordered=not keep_going
            )
        except BulkWriteError as e:
            write_errors = e.details.get("writeErrors", [])
            only_duplicates = all(
                error.get("code") == DUPLICATE_KEY_CODE for error in write_errors
            )
            if keep_going and only_duplicates and not e.details.get("writeConcernErrors"):
                logger.debug(
                    f"Ignored {len(write_errors)} duplicate key error(s) in {collection}"
                )
                return e.details.get("nInserted", 0)
            raise

        return len(result.inserted_ids)

    def update(
        self,
        collection: str,
        document_id: Any,
        document: Dict[str, Any],
        use_set: bool = False,
    ) -> int:
        assert_materialized([document])
        target = self.database[collection]
        if use_set:
            result = target.update_one({"_id": document_id}, {"$set": document})
        else:
            result = target.replace_one({"_id": document_id}, document)
        return result.matched_count

    def drop(self, collection: str):
        self.database.drop_collection(collection)

    def is_writable(self) -> bool:
        reply = self.database.client.admin.command("isMaster")
        return bool(reply.get("ismaster"))
