"""
Typed value model for docbridge

Native values are the classes the bson package encodes. ValueKind is the
closed set of variants the codec understands and kind_of() is the single
place where a value's variant is decided, based on the class the value was
constructed as.
"""

import calendar
import datetime
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.binary import Binary, OLD_UUID_SUBTYPE, UUID_SUBTYPE
from bson.code import Code
from bson.datetime_ms import DatetimeMS
from bson.dbref import DBRef
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.regex import Regex
from bson.timestamp import Timestamp

SENTINEL_MARKER = "##"

# Marker used for dates that cannot be represented (int64 minimum)
OVERFLOW_DATE_MILLIS = -9223372036854775808
MAX_DATE_MILLIS = 2**63 - 1

# Largest absolute epoch offset a calendar date may have in exported files
MAX_DATE_MILLIS = 8_640_000_000_000_000

TIMESTAMP_FIELD_LIMIT = 2**32

EPOCH = datetime.datetime(1970, 1, 1)

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")
UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{12}$"
)

_REGEX_FLAG_LETTERS = [
    (re.IGNORECASE, "i"),
    (re.LOCALE, "l"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.UNICODE, "u"),
    (re.VERBOSE, "x"),
]

REGEX_FLAG_CHARACTERS = "gilmsuxy"


class ValueKind(Enum):
    """Variants of a typed value, valued by their type-tag name"""

    NULL = "null"
    BOOL = "boolean"
    INT = "integer"
    FLOAT = "float"
    STR = "string"
    DATE_ONLY = "date"
    DATE_TIME = "date-time"
    REGEX = "regex"
    OBJECT_ID = "ObjectID"
    UUID = "UUID"
    LUUID = "LUUID"
    TIMESTAMP = "Timestamp"
    CODE = "Code"
    DBREF = "DBRef"
    MIN_KEY = "MinKey"
    MAX_KEY = "MaxKey"
    ARRAY = "array"
    DOCUMENT = "object"

    @property
    def is_container(self) -> bool:
        return self in (ValueKind.ARRAY, ValueKind.DOCUMENT)

    @property
    def is_json_primitive(self) -> bool:
        return self in (
            ValueKind.NULL,
            ValueKind.BOOL,
            ValueKind.INT,
            ValueKind.FLOAT,
            ValueKind.STR,
        )


def kind_of(value: Any) -> Optional[ValueKind]:
    """Return the variant of a native value, or None for unsupported classes"""
    if value is None:
        return ValueKind.NULL
    # bool before int, Code before str, Binary before bytes
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, datetime.datetime):
        return ValueKind.DATE_TIME
    if isinstance(value, datetime.date):
        return ValueKind.DATE_ONLY
    if isinstance(value, DatetimeMS):
        return ValueKind.DATE_TIME
    if isinstance(value, Code):
        return ValueKind.CODE
    if isinstance(value, str):
        return ValueKind.STR
    if isinstance(value, int):
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, (Regex, re.Pattern)):
        return ValueKind.REGEX
    if isinstance(value, ObjectId):
        return ValueKind.OBJECT_ID
    if isinstance(value, Binary):
        if value.subtype == UUID_SUBTYPE:
            return ValueKind.UUID
        if value.subtype == OLD_UUID_SUBTYPE:
            return ValueKind.LUUID
        return None
    if isinstance(value, Timestamp):
        return ValueKind.TIMESTAMP
    if isinstance(value, DBRef):
        return ValueKind.DBREF
    if isinstance(value, MinKey):
        return ValueKind.MIN_KEY
    if isinstance(value, MaxKey):
        return ValueKind.MAX_KEY
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, dict):
        return ValueKind.DOCUMENT
    return None


def is_object_id_hex(text: str) -> bool:
    return bool(OBJECT_ID_PATTERN.match(text))


def is_uuid_text(text: str) -> bool:
    return bool(UUID_PATTERN.match(text))


def make_object_id(text: str) -> ObjectId:
    """Build an ObjectId from its 24 character hex form"""
    if not is_object_id_hex(text):
        raise ValueError(f"'{text}' is not a 24 character hex string")
    return ObjectId(text)


def make_uuid(text: str, legacy: bool = False) -> Binary:
    """Build a UUID (subtype 4) or legacy UUID (subtype 3) binary from hex text"""
    if not is_uuid_text(text):
        raise ValueError(f"'{text}' is not a UUID")
    subtype = OLD_UUID_SUBTYPE if legacy else UUID_SUBTYPE
    return Binary(bytes.fromhex(text.replace("-", "")), subtype)


def format_uuid(value: bytes) -> str:
    """Render 16 bytes as dashed hex grouped 8-4-4-4-12"""
    text = bytes(value).hex()
    return "-".join(
        [text[0:8], text[8:12], text[12:16], text[16:20], text[20:]]
    )


def make_timestamp(high: int, low: int) -> Timestamp:
    """Build a replication timestamp, both halves must fit in 32 bits"""
    if not (0 <= high < TIMESTAMP_FIELD_LIMIT and 0 <= low < TIMESTAMP_FIELD_LIMIT):
        raise ValueError(f"Timestamp({high}, {low}) is outside the legal range")
    return Timestamp(high, low)


def to_epoch_millis(value: Any) -> int:
    """Milliseconds since the epoch for a date, datetime or DatetimeMS"""
    if isinstance(value, DatetimeMS):
        return int(value)
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return calendar.timegm(value.timetuple()) * 1000 + value.microsecond // 1000


def from_epoch_millis(millis: int) -> Any:
    """Naive UTC datetime for an epoch offset, DatetimeMS when out of range"""
    if not OVERFLOW_DATE_MILLIS <= millis <= MAX_DATE_MILLIS:
        raise ValueError(f"{millis} does not fit in 64-bit epoch milliseconds")
    try:
        return EPOCH + datetime.timedelta(milliseconds=millis)
    except OverflowError:
        return DatetimeMS(millis)


def invalid_date() -> DatetimeMS:
    """The explicitly-invalid date produced for the overflow sentinel"""
    return DatetimeMS(OVERFLOW_DATE_MILLIS)


def format_iso_datetime(value: datetime.datetime) -> str:
    """ISO 8601 in UTC with millisecond precision, e.g. 2014-01-01T00:00:00.000Z"""
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def regex_parts(value: Any) -> Tuple[str, str]:
    """Pattern text and flag letters of a Regex or compiled pattern"""
    flags = value.flags
    if isinstance(value, re.Pattern):
        # implicit for str patterns
        flags &= ~re.UNICODE
    letters = "".join(letter for flag, letter in _REGEX_FLAG_LETTERS if flags & flag)
    return value.pattern, letters


def regex_literal(value: Any) -> str:
    """Delimited /pattern/flags text of a regular expression"""
    pattern, flags = regex_parts(value)
    return f"/{pattern}/{flags}"


def split_regex_literal(text: str) -> Tuple[str, str]:
    """Split /pattern/flags text, keeping slashes inside the pattern

    The pattern is everything between the first and the last slash, so a
    pattern containing slash characters is re-joined rather than cut.
    """
    parts = text.split("/")
    if len(parts) < 3 or parts[0] != "":
        raise ValueError(f"'{text}' is not a delimited regular expression")
    return "/".join(parts[1:-1]), parts[-1]


def make_regex(pattern: str, flags: str = "") -> Regex:
    """Build a Regex, rejecting unknown flag letters"""
    unknown = [letter for letter in flags if letter not in REGEX_FLAG_CHARACTERS]
    if unknown:
        raise ValueError(f"Unknown regular expression flags: {''.join(unknown)}")
    return Regex(pattern, flags)


def to_storable(value: Any) -> Any:
    """Copy of a tree with date-only values widened to midnight UTC datetimes"""
    if isinstance(value, dict):
        return {key: to_storable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_storable(item) for item in value]
    if isinstance(value, Code) and value.scope is not None:
        return Code(str(value), to_storable(value.scope))
    if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        return datetime.datetime(value.year, value.month, value.day)
    return value


def walk_paths(value: Any, prefix: str = "") -> List[Tuple[str, Any]]:
    """All (dotted path, value) pairs of a tree, containers included"""
    paths = []
    if isinstance(value, dict):
        items = value.items()
    elif isinstance(value, list):
        items = enumerate(value)
    else:
        return paths

    for key, item in items:
        current_path = f"{prefix}.{key}" if prefix else str(key)
        paths.append((current_path, item))
        if isinstance(item, (dict, list)):
            paths.extend(walk_paths(item, current_path))
    return paths


def document_id_key(document: Dict[str, Any]) -> str:
    """String key of a document's _id, used to index per-document metadata"""
    identifier = document.get("_id")
    if isinstance(identifier, Binary):
        return format_uuid(identifier)
    return str(identifier)
