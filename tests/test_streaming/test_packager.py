"""
Tests for the bounded packager.
"""

import bson
import pytest

from docbridge.config import PackagerConfig
from docbridge.streaming.packager import (
    DocumentPackager,
    array_size,
    document_size,
    split_into_packages,
)

MIB = 1024 * 1024


def megabyte_documents(count):
    return [{"x": "x" * (MIB - 100), "n": n} for n in range(count)]


class TestSizes:
    """BSON sizes of documents and arrays"""

    def test_document_size(self):
        document = {"a": 1, "b": "text"}
        assert document_size(document) == len(bson.encode(document))

    def test_array_size_matches_encoding(self, sample_documents):
        as_document = {str(index): doc for index, doc in enumerate(sample_documents)}
        assert array_size(sample_documents) == len(bson.encode(as_document))

    def test_array_size_with_two_digit_indexes(self):
        documents = [{"n": n} for n in range(12)]
        as_document = {str(index): doc for index, doc in enumerate(documents)}
        assert array_size(documents) == len(bson.encode(as_document))

    def test_empty_array(self):
        assert array_size([]) == len(bson.encode({}))


class TestPackage:
    """Splitting arrays into packages"""

    def test_empty(self):
        assert DocumentPackager().package([]) == []

    def test_small_array_is_one_package(self, sample_documents):
        packages = DocumentPackager().package(sample_documents)
        assert packages == [sample_documents]

    def test_megabyte_documents_under_default_limit(self):
        documents = megabyte_documents(17)
        packager = DocumentPackager(PackagerConfig(limit_bytes=15 * MIB))

        packages = packager.package(documents)

        assert len(packages) == 2
        assert [len(package) for package in packages] == [15, 2]
        assert all(array_size(package) <= 15 * MIB for package in packages)
        assert [doc for package in packages for doc in package] == documents
        assert packager.oversized == []

    def test_packages_shrink_until_they_fit(self):
        # one large document pulls the average up for its neighbours
        documents = [{"s": "a" * 10} for _ in range(8)] + [{"s": "b" * 400}]
        packager = DocumentPackager(PackagerConfig(limit_bytes=450))

        packages = packager.package(documents)

        assert [doc for package in packages for doc in package] == documents
        assert all(package for package in packages)
        assert all(array_size(package) <= 450 for package in packages)

    def test_oversized_document_goes_alone(self):
        documents = [{"s": "a"}, {"s": "b" * 500}, {"s": "c"}]
        packager = DocumentPackager(PackagerConfig(limit_bytes=100))

        packages = packager.package(documents)

        assert [doc for package in packages for doc in package] == documents
        assert [documents[1]] in packages
        assert len(packager.oversized) == 1
        error = packager.oversized[0]
        assert error.index == 1
        assert error.limit == 100
        assert error.size == document_size(documents[1])

    def test_oversized_is_logged(self, caplog):
        packager = DocumentPackager(PackagerConfig(limit_bytes=50))
        with caplog.at_level("WARNING"):
            packager.package([{"s": "b" * 100}, {"s": "c"}])
        assert "exceeds the package limit" in caplog.text

    @pytest.mark.parametrize("limit", [64, 200, 1000, 5000])
    def test_every_document_appears_once_in_order(self, limit):
        documents = [{"n": n, "pad": "p" * (n % 7 * 10)} for n in range(60)]
        packages = split_into_packages(documents, limit)
        assert [doc for package in packages for doc in package] == documents
        assert all(package for package in packages)
        assert all(array_size(p) <= limit or len(p) == 1 for p in packages)
