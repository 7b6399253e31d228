"""
Value materializer

Walks a generic tree produced by parsing normalized text (or a tagged-wire
export file) and resolves sentinel strings, tagged-wire objects and
ambiguous strings into native typed values.

Three modes are supported:
- edit: resolve sentinels and structurally edited objects ($code, $ref,
  $minKey, $maxKey); default for text typed by a user
- fileImport: additionally resolve the tagged-wire objects written by the
  export serializer ($oid, $date, $binary, $regex, $timestamp)
- validateOnly: strip sentinel markers back to their raw argument text so
  that a validator can check formats before anything is committed

The walk is a pure, depth-first, pre-order transform that returns a new
tree. A format error on one branch does not stop the walk of its siblings;
the first error encountered is raised once the walk is complete.
"""

import base64
import binascii
import datetime
import logging
import re
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from bson.binary import Binary, OLD_UUID_SUBTYPE, UUID_SUBTYPE
from bson.code import Code
from bson.dbref import DBRef
from bson.max_key import MaxKey
from bson.min_key import MinKey

from ..exceptions import ValueFormatError
from .normalizer import SENTINEL_CONSTRUCTORS, is_sentinel, parse_loose
from .values import (
    OVERFLOW_DATE_MILLIS,
    SENTINEL_MARKER,
    ValueKind,
    from_epoch_millis,
    invalid_date,
    is_object_id_hex,
    is_uuid_text,
    make_object_id,
    make_regex,
    make_timestamp,
    make_uuid,
    split_regex_literal,
    walk_paths,
)

logger = logging.getLogger(__name__)

CALENDAR_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d, %Y %H:%M:%S",
    "%b %d, %Y %H:%M:%S",
    "%d %B %Y",
    "%d %b %Y",
]

_INTEGER = re.compile(r"^-?\d+$")
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_UNRESOLVED = object()


class MaterializeMode(Enum):
    """How sentinel strings and wire objects are treated"""

    EDIT = "edit"
    FILE_IMPORT = "fileImport"
    VALIDATE_ONLY = "validateOnly"


def _naive_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value


def utc_now() -> datetime.datetime:
    """Current time as a naive UTC datetime with millisecond precision"""
    now = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def parse_date_argument(argument: str) -> Any:
    """Resolve the argument of ISODate(...) into a date value

    Accepted forms: an empty argument (now), a (year, month, day[, hour,
    minute, second, millisecond]) tuple with a 1-based month, a bare epoch
    milliseconds integer, or a calendar/time string.
    """
    text = argument.strip()
    if not text:
        return utc_now()

    compact = re.sub(r"\s", "", text)
    parts = compact.split(",")
    if len(parts) >= 3 and all(_INTEGER.match(part) for part in parts):
        numbers = [int(part) for part in parts[:7]] + [0] * (7 - min(len(parts), 7))
        year, month, day, hour, minute, second, millis = numbers
        return datetime.datetime(year, month, day, hour, minute, second, millis * 1000)

    if _INTEGER.match(compact):
        return from_epoch_millis(int(compact))

    if _DATE_ONLY.match(text):
        return datetime.date.fromisoformat(text)

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return _naive_utc(datetime.datetime.fromisoformat(iso))
    except ValueError:
        pass

    for fmt in CALENDAR_FORMATS:
        try:
            return datetime.datetime.strptime(text, fmt)
        except ValueError:
            continue

    try:
        return _naive_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass

    raise ValueError(f"'{argument}' is not a recognized date")


def parse_timestamp_argument(argument: str):
    """Resolve 'high, low' into a Timestamp"""
    text = re.sub(r"\s", "", argument)
    if "," not in text:
        raise ValueError(f"'{argument}' is not a (high, low) pair")
    high, low = text.rsplit(",", 1)
    return make_timestamp(int(high), int(low))


def _split_sentinel(value: str) -> Optional[Tuple[str, str]]:
    """Constructor name and raw argument of a ##Name(arg) sentinel"""
    body = value[len(SENTINEL_MARKER) :]
    open_index = body.find("(")
    close_index = body.rfind(")")
    if open_index <= 0 or close_index < open_index:
        return None
    return body[:open_index], body[open_index + 1 : close_index]


class Materializer:
    """Resolves a generic tree into native typed values"""

    def __init__(self, mode: MaterializeMode = MaterializeMode.EDIT):
        self.mode = MaterializeMode(mode)
        self.errors: List[ValueFormatError] = []

    def materialize(self, tree: Any, metadata: Any = None) -> Any:
        """Materialize a tree, raising the first format error encountered"""
        self.errors = []
        result = self._convert(tree, metadata, None, "")
        if self.errors:
            logger.debug(
                "Materialization produced %d format error(s)", len(self.errors)
            )
            raise self.errors[0]
        return result

    def _fail(self, key: Any, raw: Any, expected: str, path: str) -> Any:
        self.errors.append(ValueFormatError(key, raw, expected, path))
        return raw

    def _convert(self, value: Any, tag: Any, key: Any, path: str) -> Any:
        if isinstance(value, dict):
            if self.mode != MaterializeMode.VALIDATE_ONLY:
                resolved = self._resolve_wire(value, key, path)
                if resolved is not _UNRESOLVED:
                    return resolved
            tags = tag if isinstance(tag, dict) else {}
            return {
                child_key: self._convert(
                    child,
                    tags.get(child_key),
                    child_key,
                    f"{path}.{child_key}" if path else str(child_key),
                )
                for child_key, child in value.items()
            }

        if isinstance(value, list):
            tags = tag if isinstance(tag, list) else []
            return [
                self._convert(
                    child,
                    tags[index] if index < len(tags) else None,
                    index,
                    f"{path}.{index}" if path else str(index),
                )
                for index, child in enumerate(value)
            ]

        if isinstance(value, str):
            if is_sentinel(value):
                return self._resolve_sentinel(value, key, path)
            if self.mode != MaterializeMode.VALIDATE_ONLY and isinstance(tag, str):
                return self._disambiguate(value, tag)

        return value

    @staticmethod
    def _disambiguate(value: str, tag: str) -> Any:
        """Plain strings whose recorded type says they are identifiers"""
        if tag == ValueKind.OBJECT_ID.value and is_object_id_hex(value):
            return make_object_id(value)
        if tag == ValueKind.UUID.value and is_uuid_text(value):
            return make_uuid(value)
        if tag == ValueKind.LUUID.value and is_uuid_text(value):
            return make_uuid(value, legacy=True)
        return value

    def _resolve_sentinel(self, value: str, key: Any, path: str) -> Any:
        if value.startswith(SENTINEL_MARKER + "/"):
            literal = value[len(SENTINEL_MARKER) :]
            if self.mode == MaterializeMode.VALIDATE_ONLY:
                return literal
            try:
                return make_regex(*split_regex_literal(literal))
            except ValueError:
                return self._fail(key, literal, "regular expression", path)

        parts = _split_sentinel(value)
        if parts is None or parts[0] not in SENTINEL_CONSTRUCTORS.values():
            return value
        name, argument = parts

        if self.mode == MaterializeMode.VALIDATE_ONLY:
            return argument.strip() if name == "Timestamp" else argument

        try:
            if name == "ObjectId":
                return make_object_id(argument)
            if name == "UUID":
                return make_uuid(argument)
            if name == "LUUID":
                return make_uuid(argument, legacy=True)
            if name == "Timestamp":
                return parse_timestamp_argument(argument)
            return parse_date_argument(argument)
        except (ValueError, OverflowError):
            expected = {"ISODate": "date", "Timestamp": "timestamp"}.get(name, name)
            return self._fail(key, argument, expected, path)

    def _resolve_wire(self, value: Dict[str, Any], key: Any, path: str) -> Any:
        keys = set(value)

        if self.mode == MaterializeMode.FILE_IMPORT:
            resolved = self._resolve_exported(value, keys, key, path)
            if resolved is not _UNRESOLVED:
                return resolved

        if "$code" in keys and keys <= {"$code", "$scope"}:
            if not isinstance(value["$code"], str):
                return self._fail(key, value["$code"], "Code", path)
            scope = value.get("$scope")
            if isinstance(scope, dict):
                scope = self._convert(scope, None, "$scope", f"{path}.$scope")
            else:
                scope = None
            return Code(value["$code"], scope)

        if keys == {"$minKey"}:
            return MinKey()

        if keys == {"$maxKey"}:
            return MaxKey()

        if {"$ref", "$id"} <= keys <= {"$ref", "$id", "$db"}:
            database = value.get("$db")
            if not isinstance(value["$ref"], str) or not (
                database is None or isinstance(database, str)
            ):
                return self._fail(key, value, "DBRef", path)
            identifier = self._convert(value["$id"], None, "$id", f"{path}.$id")
            return DBRef(value["$ref"], identifier, database)

        return _UNRESOLVED

    def _resolve_exported(
        self, value: Dict[str, Any], keys: set, key: Any, path: str
    ) -> Any:
        """Tagged-wire objects written by the export serializer"""
        if keys == {"$oid"}:
            raw = value["$oid"]
            if isinstance(raw, str) and is_object_id_hex(raw):
                return make_object_id(raw)
            return self._fail(key, raw, "ObjectId", path)

        if keys == {"$date"}:
            return self._resolve_date(value["$date"], key, path)

        if "$binary" in keys and keys <= {"$binary", "$type"}:
            return self._resolve_binary(value, key, path)

        if "$regex" in keys and keys <= {"$regex", "$options"}:
            if isinstance(value["$regex"], str):
                try:
                    return make_regex(value["$regex"], value.get("$options") or "")
                except ValueError:
                    return self._fail(key, value, "regular expression", path)

        if keys == {"$regularExpression"} and isinstance(
            value["$regularExpression"], dict
        ):
            fields = value["$regularExpression"]
            try:
                return make_regex(fields.get("pattern", ""), fields.get("options") or "")
            except ValueError:
                return self._fail(key, fields, "regular expression", path)

        if keys == {"$timestamp"}:
            fields = value["$timestamp"]
            try:
                return make_timestamp(int(fields["t"]), int(fields["i"]))
            except (KeyError, TypeError, ValueError):
                return self._fail(key, fields, "timestamp", path)

        return _UNRESOLVED

    def _resolve_date(self, raw: Any, key: Any, path: str) -> Any:
        if raw == OVERFLOW_DATE_MILLIS:
            return invalid_date()
        if raw is None:
            return from_epoch_millis(0)
        if isinstance(raw, dict) and set(raw) == {"$numberLong"}:
            raw = raw["$numberLong"]
            if isinstance(raw, str) and _INTEGER.match(raw):
                raw = int(raw)
                if raw == OVERFLOW_DATE_MILLIS:
                    return invalid_date()
        if isinstance(raw, int) and not isinstance(raw, bool):
            try:
                return from_epoch_millis(raw)
            except ValueError:
                return self._fail(key, raw, "date", path)
        if isinstance(raw, str):
            try:
                return parse_date_argument(raw)
            except (ValueError, OverflowError):
                pass
        return self._fail(key, raw, "date", path)

    def _resolve_binary(self, value: Dict[str, Any], key: Any, path: str) -> Any:
        payload = value["$binary"]
        if isinstance(payload, dict):
            data, subtype = payload.get("base64"), payload.get("subType")
        else:
            data, subtype = payload, value.get("$type", "00")

        try:
            raw = base64.b64decode(data, validate=True)
            subtype = int(subtype, 16) if isinstance(subtype, str) else int(subtype)
        except (binascii.Error, TypeError, ValueError):
            return self._fail(key, payload, "binary", path)

        if subtype in (UUID_SUBTYPE, OLD_UUID_SUBTYPE) and len(raw) != 16:
            expected = "UUID" if subtype == UUID_SUBTYPE else "LUUID"
            return self._fail(key, payload, expected, path)
        return Binary(raw, subtype)


def materialize(
    tree: Any,
    metadata: Any = None,
    mode: MaterializeMode = MaterializeMode.EDIT,
) -> Any:
    """Materialize a generic tree in the given mode"""
    return Materializer(mode).materialize(tree, metadata)


def materialize_text(
    text: str,
    metadata: Any = None,
    mode: MaterializeMode = MaterializeMode.EDIT,
) -> Any:
    """Normalize, parse and materialize loose document text"""
    return materialize(parse_loose(text), metadata, mode)


def coerce_object_ids(query: Any) -> Any:
    """Copy of a query with every 24-hex string turned into an ObjectId"""
    if isinstance(query, dict):
        return {key: coerce_object_ids(value) for key, value in query.items()}
    if isinstance(query, list):
        return [coerce_object_ids(value) for value in query]
    if isinstance(query, str) and is_object_id_hex(query):
        return make_object_id(query)
    return query


def materialize_query(query: Any) -> Any:
    """Materialize a find query given as loose text or as a generic tree"""
    if query is None or query == "":
        return {}
    if isinstance(query, str):
        query = parse_loose(query)
    return coerce_object_ids(materialize(query))


def find_sentinels(tree: Any) -> List[str]:
    """Paths of sentinel strings left in a tree"""
    known = tuple(
        f"{SENTINEL_MARKER}{name}(" for name in set(SENTINEL_CONSTRUCTORS.values())
    ) + (SENTINEL_MARKER + "/",)
    if isinstance(tree, str):
        return [""] if tree.startswith(known) else []
    return [
        path
        for path, value in walk_paths(tree)
        if isinstance(value, str) and value.startswith(known)
    ]
