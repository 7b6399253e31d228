"""
Shared test fixtures for the docbridge test suite.
"""
import datetime
import os
import sys

import pytest
from bson import ObjectId
from bson.binary import Binary, OLD_UUID_SUBTYPE, UUID_SUBTYPE
from bson.code import Code
from bson.dbref import DBRef
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.regex import Regex
from bson.timestamp import Timestamp

# Add project root to path so the package imports without installation
project_root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from docbridge.config import DocBridgeConfig
from docbridge.service import DocumentService
from docbridge.store.memory import MemoryDocumentStore

OBJECT_ID_HEX = "507f191e810c19729de860ea"
UUID_HEX = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def object_id():
    return ObjectId(OBJECT_ID_HEX)


@pytest.fixture
def typed_document():
    """One document holding every extended value variant"""
    return {
        "_id": ObjectId(OBJECT_ID_HEX),
        "name": "Ann",
        "age": 42,
        "score": 1.5,
        "active": True,
        "nothing": None,
        "born": datetime.date(1980, 5, 17),
        "created": datetime.datetime(2014, 1, 1, 10, 30, 0, 123000),
        "pattern": Regex("^a/b", "i"),
        "uuid": Binary(bytes.fromhex(UUID_HEX), UUID_SUBTYPE),
        "luuid": Binary(bytes.fromhex(UUID_HEX), OLD_UUID_SUBTYPE),
        "ts": Timestamp(1412180887, 1),
        "code": Code("function () { return x; }", {"x": 1}),
        "ref": DBRef("users", ObjectId(OBJECT_ID_HEX), "shop"),
        "low": MinKey(),
        "high": MaxKey(),
        "tags": ["a", 1, [2, 3]],
        "nested": {"inner": {"when": datetime.datetime(2000, 2, 29)}},
        "empty": [],
    }


@pytest.fixture
def sample_documents():
    """Small collection with heterogeneous fields"""
    return [
        {"_id": ObjectId("000000000000000000000001"), "name": "Ann", "age": 30},
        {"_id": ObjectId("000000000000000000000002"), "name": "Bob", "age": 25,
         "joined": datetime.datetime(2015, 3, 1)},
        {"_id": ObjectId("000000000000000000000003"), "name": "Cid", "age": None,
         "tags": ["x", "y"]},
    ]


@pytest.fixture
def memory_store():
    return MemoryDocumentStore()


@pytest.fixture
def populated_store(memory_store, sample_documents):
    memory_store.insert("people", sample_documents)
    return memory_store


@pytest.fixture
def config(tmp_path):
    """Configuration writing exports below the test's temporary directory"""
    config = DocBridgeConfig()
    config.export.export_dir = str(tmp_path / "cache")
    return config


@pytest.fixture
def service(populated_store, config):
    return DocumentService(populated_store, "shop", config)


@pytest.fixture
def events():
    """Listener collecting job events"""
    received = []

    def listener(event):
        received.append(event)

    listener.received = received
    return listener
