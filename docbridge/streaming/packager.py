"""
Bounded packager

Splits a document array into ordered packages whose BSON array size stays
within a byte limit. A single document larger than the limit is passed
through alone and flagged.
"""

import logging
import math
from typing import Any, Dict, List, Sequence

import bson

from ..config import PackagerConfig
from ..exceptions import SizeLimitError

logger = logging.getLogger(__name__)

# int32 length prefix and trailing NUL of a BSON document
ARRAY_OVERHEAD = 5


def document_size(document: Dict[str, Any]) -> int:
    """Encoded BSON size of one document"""
    return len(bson.encode(document))


def element_size(index: int, size: int) -> int:
    """Size of an embedded document stored under array index `index`"""
    # type byte, decimal key and its NUL terminator
    return 2 + len(str(index)) + size


def array_size(documents: Sequence[Dict[str, Any]]) -> int:
    """Encoded BSON size of the array holding `documents`"""
    return ARRAY_OVERHEAD + sum(
        element_size(index, document_size(document))
        for index, document in enumerate(documents)
    )


class DocumentPackager:
    """Splits document arrays into size-bounded packages"""

    def __init__(self, config: PackagerConfig = None):
        self.config = config or PackagerConfig()
        self.limit = self.config.limit_bytes
        self.oversized: List[SizeLimitError] = []

    def _slice_size(self, sizes: List[int], start: int, end: int) -> int:
        return ARRAY_OVERHEAD + sum(
            element_size(index - start, sizes[index]) for index in range(start, end)
        )

    def package(self, documents: Sequence[Dict[str, Any]]) -> List[List[Dict[str, Any]]]:
        """Ordered packages covering every document exactly once"""
        documents = list(documents)
        if not documents:
            return []

        sizes = [document_size(document) for document in documents]
        total = self._slice_size(sizes, 0, len(documents))
        if total <= self.limit:
            return [documents]

        # average documents per package, rounded half up
        per_package = max(1, math.floor(self.limit * len(documents) / total + 0.5))
        logger.debug(
            f"Splitting {len(documents)} documents ({total} bytes) "
            f"into packages of at most {per_package}"
        )

        packages = []
        start = 0
        while start < len(documents):
            end = min(start + per_package, len(documents))
            size = self._slice_size(sizes, start, end)
            while end - start > 1 and size > self.limit:
                end = start + (end - start) // 2
                size = self._slice_size(sizes, start, end)

            if size > self.limit:
                self._flag_oversized(sizes[start], start)

            packages.append(documents[start:end])
            start = end

        return packages

    def _flag_oversized(self, size: int, index: int):
        error = SizeLimitError(size, self.limit, index)
        self.oversized.append(error)
        logger.warning(f"{error.message} (document {index}), inserting it alone")


def split_into_packages(
    documents: Sequence[Dict[str, Any]], limit_bytes: int = PackagerConfig.limit_bytes
) -> List[List[Dict[str, Any]]]:
    return DocumentPackager(PackagerConfig(limit_bytes=limit_bytes)).package(documents)
