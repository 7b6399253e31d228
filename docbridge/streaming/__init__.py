"""
Packaging, chunked import and export of document sets
"""

from .exporter import BufferedExportWriter, ExportJob, ExportResult, export_file_name
from .packager import DocumentPackager, array_size, document_size, split_into_packages
from .progress import EventType, JobEvent, Phase, ProgressReporter
from .reader import (
    ChunkedDocumentReader,
    ImportJob,
    ImportResult,
    parse_import_block,
    prepare_import_text,
)

__all__ = [
    "BufferedExportWriter",
    "ChunkedDocumentReader",
    "DocumentPackager",
    "EventType",
    "ExportJob",
    "ExportResult",
    "ImportJob",
    "ImportResult",
    "JobEvent",
    "Phase",
    "ProgressReporter",
    "array_size",
    "document_size",
    "export_file_name",
    "parse_import_block",
    "prepare_import_text",
    "split_into_packages",
]
