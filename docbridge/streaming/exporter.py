"""
Collection export

ExportJob streams the documents of a query into a newline-delimited export
file. The writer signals backpressure by returning False from write(); the
job then waits for it to drain before producing more output.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List

import psutil

from ..codec.materializer import materialize_query
from ..codec.serializer import render_export_line
from ..config import DocBridgeConfig
from ..exceptions import JobCancelledError, ValueFormatError, classify_error
from ..store.base import DocumentStore
from .progress import Phase, ProgressReporter

logger = logging.getLogger(__name__)


def system_uptime_token() -> str:
    """Seconds since boot with the decimal point removed, e.g. 12345678"""
    uptime = max(0.0, time.time() - psutil.boot_time())
    return str(round(uptime, 2)).replace(".", "", 1)


def export_file_name(database: str, collection: str, token: str = None) -> str:
    """<db>_<collection>_<uptime>.json"""
    return f"{database}_{collection}_{token or system_uptime_token()}.json"


class BufferedExportWriter:
    """Text file writer with a bounded in-memory buffer"""

    def __init__(self, path: str, encoding: str = "utf-8", buffer_size: int = 64 * 1024):
        self.path = path
        self.buffer_size = buffer_size
        self._file = open(path, "w", encoding=encoding, newline="")
        self._pending: List[str] = []
        self._pending_size = 0
        self.drain_count = 0

    def write(self, text: str) -> bool:
        """Queue text, False once the buffer is full"""
        self._pending.append(text)
        self._pending_size += len(text)
        return self._pending_size < self.buffer_size

    def wait_until_ready(self):
        """Block until buffered text has reached the file"""
        if self._pending:
            self._file.write("".join(self._pending))
            self._file.flush()
            self.drain_count += 1
        self._pending = []
        self._pending_size = 0

    def close(self):
        if self._file.closed:
            return
        try:
            self.wait_until_ready()
        finally:
            self._file.close()


@dataclass
class ExportResult:
    """Outcome of an export job"""
    file_name: str
    path: str
    document_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fileName': self.file_name,
            'path': self.path,
            'documentCount': self.document_count
        }


class ExportJob:
    """Exports the documents of a query to a file in the export directory"""

    def __init__(
        self,
        store: DocumentStore,
        database: str,
        collection: str,
        config: DocBridgeConfig = None,
        reporter: ProgressReporter = None,
        file_name: str = None,
    ):
        self.store = store
        self.database = database
        self.collection = collection
        self.config = config or DocBridgeConfig()
        self.reporter = reporter or ProgressReporter(Phase.EXPORT)
        self.file_name = file_name or export_file_name(database, collection)
        self.path = os.path.join(self.config.export.export_dir, self.file_name)
        self._cancelled = threading.Event()

    def cancel(self):
        self._cancelled.set()

    def run(self, query: Any = None) -> ExportResult:
        """Write every matching document, one per line"""
        result = ExportResult(self.file_name, self.path)
        logger.info(f"Exporting {self.database}.{self.collection} to {self.path}")

        try:
            query = materialize_query(query)
            total = self.store.count(self.collection, query)
            os.makedirs(self.config.export.export_dir, exist_ok=True)
            writer = BufferedExportWriter(
                self.path,
                self.config.stream.encoding,
                self.config.export.write_buffer_size,
            )
            try:
                self._write_documents(writer, query, total, result)
            finally:
                writer.close()
        except Exception as e:
            classified = classify_error(e)
            logger.error(f"Export of {self.collection} failed: {classified.message}")
            self.reporter.error(classified)
            if classified is e:
                raise
            raise classified from e

        self.reporter.done(fileName=self.file_name)
        logger.info(f"Exported {result.document_count} documents to {self.file_name}")
        return result

    def _write_documents(self, writer: BufferedExportWriter, query: Dict[str, Any], total: int, result: ExportResult):
        terminator = self.config.export.line_terminator
        interval = self.config.stream.progress_interval

        for document in self.store.find(self.collection, query):
            if self._cancelled.is_set():
                raise JobCancelledError(
                    f"Export of {self.collection} cancelled after "
                    f"{result.document_count} documents"
                )

            result.document_count += 1
            try:
                line = render_export_line(document)
            except ValueFormatError:
                logger.error(f"Cannot convert document with _id {document.get('_id')!r} to json")
                raise

            if result.document_count % interval == 0:
                self.reporter.progress(result.document_count, total)

            if not writer.write(line + terminator):
                writer.wait_until_ready()
