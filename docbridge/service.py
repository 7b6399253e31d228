"""
Document service

Entry points used by the command line and by embedding applications:
finding documents for display, saving edited documents, validating edit
text, importing and exporting collections and inferring schemas. All codec
work is delegated to docbridge.codec and docbridge.schema; the service adds
name checks, write-capability checks and id handling.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bson import ObjectId

from .codec.materializer import MaterializeMode, materialize, materialize_query
from .codec.normalizer import parse_loose
from .codec.presenter import present
from .codec.values import ValueKind, is_object_id_hex, to_storable
from .config import DocBridgeConfig
from .exceptions import DocBridgeError
from .schema.inference import infer_schema
from .schema.tagger import tag_documents
from .store.base import DocumentStore
from .streaming.exporter import ExportJob, ExportResult
from .streaming.progress import Listener, Phase, ProgressReporter
from .streaming.reader import ImportJob, ImportResult

logger = logging.getLogger(__name__)

COLLECTION_NAME_FORBIDDEN_CHARS = re.compile(r'[À-Üß-ü/"*<>:|?\x00\\]')
DATABASE_NAME_FORBIDDEN_CHARS = re.compile(r'[À-Üß-ü$\s. /"*<>:|?\x00\\]')
SYSTEM_COLLECTION_NAMES = re.compile(r"system\.")
ALLOWED_DOLLAR_COLLECTIONS = re.compile(r"(^\$cmd)|(oplog\.\$main)")
RESERVED_DATABASE_NAMES = ("admin", "local")


def is_valid_collection_name(name: Optional[str]) -> bool:
    """Collection name check: no forbidden characters, system. prefix or stray dots"""
    if not name or ".." in name:
        return False

    if COLLECTION_NAME_FORBIDDEN_CHARS.search(name) or SYSTEM_COLLECTION_NAMES.search(name):
        return False

    if "$" in name and not ALLOWED_DOLLAR_COLLECTIONS.search(name):
        return False

    if name.startswith(".") or name.endswith("."):
        return False

    return True


def is_valid_database_name(name: Optional[str]) -> bool:
    if not name:
        return False

    if name == "$external":
        return True

    if DATABASE_NAME_FORBIDDEN_CHARS.search(name) or name in RESERVED_DATABASE_NAMES:
        return False

    return True


@dataclass
class FindResult:
    """Documents prepared for display together with their metadata"""
    documents: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    count: int = 0
    schema: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'documents': self.documents,
            'metadata': self.metadata,
            'count': self.count,
            'schema': self.schema
        }


class DocumentService:
    """Codec-aware operations on the collections of one database"""

    def __init__(self, store: DocumentStore, database: str, config: DocBridgeConfig = None):
        if not is_valid_database_name(database):
            raise DocBridgeError(f'Database name "{database}" is not a valid database name')
        self.store = store
        self.database = database
        self.config = config or DocBridgeConfig()

    def _check_collection(self, collection: str):
        if not is_valid_collection_name(collection):
            raise DocBridgeError(f'Collection name "{collection}" is not a valid collection name')

    def find_documents(
        self, collection: str, query: Any = None, limit: int = 0, skip: int = 0
    ) -> FindResult:
        """Presented documents, type tags keyed by _id, total count and schema"""
        self._check_collection(collection)
        filter_document = materialize_query(query)

        documents = list(self.store.find(collection, filter_document, limit=limit, skip=skip))
        metadata = tag_documents(documents)

        return FindResult(
            documents=[present(document) for document in documents],
            metadata=metadata,
            count=self.store.count(collection, filter_document),
            schema=infer_schema(metadata),
        )

    def save_document(
        self,
        collection: str,
        document: Any,
        metadata: Optional[Dict[str, Any]] = None,
        document_id: Any = None,
        use_set: bool = False,
    ) -> Any:
        """Insert an edited document, or update the document with document_id

        Returns the _id of the saved document.
        """
        self._check_collection(collection)
        self.store.ensure_can_execute("save_document")

        if isinstance(document, str):
            document = parse_loose(document)
        values = to_storable(materialize(document, metadata, MaterializeMode.EDIT))

        if document_id is None:
            if "_id" not in values:
                values = {"_id": ObjectId(), **values}
            self.store.insert(collection, [values])
            logger.debug(f"Inserted document {values['_id']!r} into {collection}")
            return values["_id"]

        if str(document_id) == str(values.get("_id", "")):
            # _id is immutable on update
            values.pop("_id")

        id_tag = (metadata or {}).get("_id")
        if (
            isinstance(document_id, str)
            and is_object_id_hex(document_id)
            and id_tag == ValueKind.OBJECT_ID.value
        ):
            document_id = ObjectId(document_id)

        matched = self.store.update(collection, document_id, values, use_set=use_set)
        if not matched:
            raise DocBridgeError(f"No document with _id {document_id!r} in {collection}")
        return document_id

    def validate_document(self, document: Any) -> Any:
        """Edit text reduced to plain values for an external format validator"""
        if isinstance(document, str):
            document = parse_loose(document)
        return materialize(document, None, MaterializeMode.VALIDATE_ONLY)

    def import_text(
        self,
        collection: str,
        text: str,
        keep_going: bool = False,
        listener: Listener = None,
    ) -> ImportResult:
        """Insert documents typed as loose text"""
        self._check_collection(collection)
        job = ImportJob(
            self.store,
            collection,
            self.config,
            ProgressReporter(Phase.IMPORT, listener),
            keep_going=keep_going,
        )
        return job.run_text(text)

    def import_file(
        self,
        collection: str,
        path: str,
        replace: bool = False,
        keep_going: bool = False,
        listener: Listener = None,
    ) -> ImportResult:
        """Import an export file, appending or replacing the collection"""
        self._check_collection(collection)
        if replace:
            self.store.ensure_can_execute("drop_collection")
            logger.info(f"Dropping {collection} before import")
            self.store.drop(collection)

        job = ImportJob(
            self.store,
            collection,
            self.config,
            ProgressReporter(Phase.IMPORT, listener),
            keep_going=keep_going,
        )
        return job.run_file(path)

    def export_collection(
        self, collection: str, query: Any = None, listener: Listener = None
    ) -> ExportResult:
        """Export matching documents to <db>_<collection>_<uptime>.json"""
        self._check_collection(collection)
        job = ExportJob(
            self.store,
            self.database,
            collection,
            self.config,
            ProgressReporter(Phase.EXPORT, listener),
        )
        return job.run(query)

    def infer_collection_schema(
        self, collection: str, query: Any = None, sample_size: int = 100
    ) -> Dict[str, Any]:
        """Schema inferred from up to sample_size matching documents"""
        self._check_collection(collection)
        documents = self.store.find(collection, materialize_query(query), limit=sample_size)
        return infer_schema(tag_documents(documents))
