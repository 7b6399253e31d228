"""
docbridge: loose document text, tagged-wire export files and schema
inference for MongoDB collections.
"""

__version__ = "1.0.0"
__author__ = "docbridge Team"

from .codec import (
    DisplayLiteral,
    MaterializeMode,
    materialize,
    materialize_query,
    normalize,
    parse_loose,
    present,
    render_export_line,
    to_edit_text,
    to_wire,
)
from .config import DocBridgeConfig
from .exceptions import (
    CapabilityError,
    DocBridgeError,
    JobCancelledError,
    SizeLimitError,
    StoreError,
    StreamIOError,
    TextSyntaxError,
    ValueFormatError,
)
from .schema import dumps_schema, infer_schema, tag_document, tag_documents
from .service import DocumentService
from .store import DocumentStore, MemoryDocumentStore, MongoDocumentStore
from .streaming import DocumentPackager, ExportJob, ImportJob

__all__ = [
    'CapabilityError',
    'DisplayLiteral',
    'DocBridgeConfig',
    'DocBridgeError',
    'DocumentPackager',
    'DocumentService',
    'DocumentStore',
    'ExportJob',
    'ImportJob',
    'JobCancelledError',
    'MaterializeMode',
    'MemoryDocumentStore',
    'MongoDocumentStore',
    'SizeLimitError',
    'StoreError',
    'StreamIOError',
    'TextSyntaxError',
    'ValueFormatError',
    'dumps_schema',
    'infer_schema',
    'materialize',
    'materialize_query',
    'normalize',
    'parse_loose',
    'present',
    'render_export_line',
    'tag_document',
    'tag_documents',
    'to_edit_text',
    'to_wire',
]
