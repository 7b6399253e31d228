"""
Chunked import

ChunkedDocumentReader reads an export file in fixed-size chunks and yields
text blocks that end on a document boundary, carrying the partial tail of
each chunk into the next one. ImportJob feeds every block through the
normalizer and materializer, packages the documents and inserts them, one
block at a time.
"""

import codecs
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Tuple

from ..codec.materializer import MaterializeMode, materialize
from ..codec.normalizer import parse_loose
from ..codec.values import to_storable
from ..config import DocBridgeConfig
from ..exceptions import (
    JobCancelledError,
    SizeLimitError,
    StreamIOError,
    classify_error,
)
from ..store.base import DocumentStore
from .packager import DocumentPackager
from .progress import Phase, ProgressReporter

logger = logging.getLogger(__name__)

# Line break between two documents written one per line
DOCUMENT_BREAK = re.compile(r"\}\s*[\r\n]+\s*\{")
NUMBER_INT = re.compile(r"NumberInt\(\s*(-?\d+)\s*\)")


def prepare_import_text(text: str) -> str:
    """Array text for a block of newline-delimited documents

    A leading "[" and trailing "]" are stripped, documents separated by line
    breaks are joined with commas and the result is wrapped in one array.
    """
    body = text.strip()
    if body.startswith("["):
        body = body[1:]
    if body.endswith("]"):
        body = body[:-1]
    body = body.strip().strip(",")

    body = DOCUMENT_BREAK.sub("},{", body)
    body = NUMBER_INT.sub(r"\1", body)
    return f"[{body}]"


def parse_import_block(text: str, mode: MaterializeMode = MaterializeMode.FILE_IMPORT) -> List[Dict[str, Any]]:
    """Storable documents of one block of import text"""
    documents = parse_loose(prepare_import_text(text))
    if isinstance(documents, dict):
        documents = [documents]
    return to_storable(materialize(documents, None, mode))


def find_last_boundary(buffer: str) -> Optional[Tuple[int, int]]:
    """End of the last complete document and start of the carried tail"""
    index = max(buffer.rfind("}\n"), buffer.rfind("}\r"))
    if index < 0:
        return None
    tail_start = index + 2
    if buffer.startswith("\r\n", index + 1):
        tail_start += 1
    return index + 1, tail_start


class ChunkedDocumentReader:
    """Yields (text block, bytes consumed) pairs from a byte stream"""

    def __init__(self, source: BinaryIO, chunk_size: int, encoding: str = "utf-8"):
        self.source = source
        self.chunk_size = chunk_size
        self.encoding = encoding
        self.position = 0

    def __iter__(self) -> Iterator[Tuple[str, int]]:
        decoder = codecs.getincrementaldecoder(self.encoding)()
        carry = ""

        while True:
            data = self.source.read(self.chunk_size)
            if not data:
                break
            self.position += len(data)

            buffer = carry + decoder.decode(data)
            boundary = find_last_boundary(buffer)
            if boundary is None:
                carry = buffer
                continue

            end, tail_start = boundary
            carry = buffer[tail_start:]
            yield buffer[:end], self.position

        tail = carry + decoder.decode(b"", final=True)
        if tail.strip() and tail.strip() != "]":
            yield tail, self.position


@dataclass
class ImportResult:
    """Outcome of an import job"""
    original_count: int = 0
    inserted_count: int = 0
    result_count: int = 0
    oversized: List[SizeLimitError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'originalCount': self.original_count,
            'insertedCount': self.inserted_count,
            'resultCount': self.result_count,
            'oversized': [error.to_dict() for error in self.oversized]
        }


class ImportJob:
    """Imports documents into one collection, package by package"""

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        config: DocBridgeConfig = None,
        reporter: ProgressReporter = None,
        keep_going: bool = False,
    ):
        self.store = store
        self.collection = collection
        self.config = config or DocBridgeConfig()
        self.reporter = reporter or ProgressReporter(Phase.IMPORT)
        self.keep_going = keep_going
        self.packager = DocumentPackager(self.config.packager)
        self.result = ImportResult()
        self._cancelled = threading.Event()

    def cancel(self):
        """Stop before the next block or package is processed"""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _check_cancelled(self):
        if self.cancelled:
            raise JobCancelledError(
                f"Import into {self.collection} cancelled after "
                f"{self.result.inserted_count} documents"
            )

    def _insert(self, documents: List[Dict[str, Any]]):
        self.result.original_count += len(documents)
        for package in self.packager.package(documents):
            self._check_cancelled()
            inserted = self.store.insert(self.collection, package, keep_going=self.keep_going)
            self.result.inserted_count += inserted
            logger.debug(f"Inserted package of {len(package)} documents into {self.collection}")

    def _run(self, body) -> ImportResult:
        logger.info(f"Starting import into {self.collection}")

        try:
            self.store.ensure_can_execute("import_collection")
            count_before = self.store.count(self.collection)
            body()
        except Exception as e:
            classified = classify_error(e)
            logger.error(f"Import into {self.collection} failed: {classified.message}")
            self.reporter.error(classified)
            if classified is e:
                raise
            raise classified from e

        self.result.oversized = list(self.packager.oversized)
        self.result.result_count = self.store.count(self.collection) - count_before
        self.reporter.done(
            originalCount=self.result.original_count, resultCount=self.result.result_count
        )
        logger.info(
            f"Imported {self.result.inserted_count} of {self.result.original_count} "
            f"documents into {self.collection}"
        )
        return self.result

    def run_documents(self, documents: List[Dict[str, Any]]) -> ImportResult:
        """Import already materialized documents"""
        return self._run(lambda: self._insert(to_storable(documents)))

    def run_text(self, text: str) -> ImportResult:
        """Import documents typed as loose text"""
        return self._run(
            lambda: self._insert(parse_import_block(text, MaterializeMode.EDIT))
        )

    def run_stream(self, source: BinaryIO, total_size: int) -> ImportResult:
        """Import an export stream, reading one chunk at a time"""

        def body():
            reader = ChunkedDocumentReader(
                source, self.config.stream.read_chunk_size, self.config.stream.encoding
            )
            for block, position in reader:
                self._check_cancelled()
                self._insert(parse_import_block(block))
                self.reporter.progress(
                    position, total_size, documents=self.result.inserted_count
                )

        try:
            return self._run(body)
        finally:
            source.close()

    def run_file(self, path: str) -> ImportResult:
        """Import an export file"""
        try:
            total_size = os.path.getsize(path)
            source = open(path, "rb")
        except OSError as e:
            error = StreamIOError(f"Cannot read import file {path}: {e}")
            self.reporter.error(error)
            raise error from e
        return self.run_stream(source, total_size)
