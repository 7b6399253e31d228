"""
Export serializer

Turns native documents into their tagged-wire form ($oid, $date, $binary,
...) and renders that form as spaced, one-document-per-line text for
export files.
"""

import base64
import datetime
import json
import re
from typing import Any, Dict, Iterable, Iterator

from bson import ObjectId
from bson.binary import Binary
from bson.code import Code
from bson.datetime_ms import DatetimeMS
from bson.dbref import DBRef
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.regex import Regex
from bson.timestamp import Timestamp

from ..exceptions import ValueFormatError
from .values import (
    MAX_DATE_MILLIS,
    OVERFLOW_DATE_MILLIS,
    regex_literal,
    split_regex_literal,
    to_epoch_millis,
)


def date_to_wire(value: Any) -> Dict[str, int]:
    """{$date: millis}, or the overflow marker outside the calendar range"""
    millis = to_epoch_millis(value)
    if abs(millis) > MAX_DATE_MILLIS:
        millis = OVERFLOW_DATE_MILLIS
    return {"$date": millis}


def regex_to_wire(value: Any) -> Dict[str, str]:
    pattern, options = split_regex_literal(regex_literal(value))
    return {"$regex": pattern, "$options": options}


def binary_to_wire(value: bytes, subtype: int) -> Dict[str, str]:
    return {
        "$binary": base64.b64encode(bytes(value)).decode("ascii"),
        "$type": f"{subtype:02x}",
    }


def to_wire(value: Any, key: Any = None) -> Any:
    """Tagged-wire copy of a native value"""
    if isinstance(value, dict):
        return {child_key: to_wire(child, child_key) for child_key, child in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(child, index) for index, child in enumerate(value)]

    if value is None or isinstance(value, (bool, float)):
        return value
    if isinstance(value, (datetime.date, DatetimeMS)):
        return date_to_wire(value)
    if isinstance(value, Code):
        wire = {"$code": str(value)}
        if value.scope is not None:
            wire["$scope"] = to_wire(value.scope, "$scope")
        return wire
    if isinstance(value, (str, int)):
        return value
    if isinstance(value, (Regex, re.Pattern)):
        return regex_to_wire(value)
    if isinstance(value, ObjectId):
        return {"$oid": str(value)}
    if isinstance(value, Binary):
        return binary_to_wire(value, value.subtype)
    if isinstance(value, bytes):
        return binary_to_wire(value, 0)
    if isinstance(value, Timestamp):
        return {"$timestamp": {"t": value.time, "i": value.inc}}
    if isinstance(value, DBRef):
        wire = {"$ref": value.collection, "$id": to_wire(value.id, "$id")}
        if value.database:
            wire["$db"] = value.database
        return wire
    if isinstance(value, MinKey):
        return {"$minKey": 1}
    if isinstance(value, MaxKey):
        return {"$maxKey": 1}

    raise ValueFormatError(key, repr(value), "exportable value")


def render_spaced(value: Any) -> str:
    """JSON text with a space after every structural token

    {"a":1,"b":[1,2]} renders as { "a" : 1, "b" : [ 1, 2 ] }
    """
    if isinstance(value, dict):
        members = ", ".join(
            f"{json.dumps(str(key), ensure_ascii=False)} : {render_spaced(child)}"
            for key, child in value.items()
        )
        return f"{{ {members} }}"
    if isinstance(value, list):
        return f"[ {', '.join(render_spaced(child) for child in value)} ]"
    return json.dumps(value, ensure_ascii=False)


def render_export_line(document: Dict[str, Any]) -> str:
    """One export file line for a native document, without terminator"""
    return render_spaced(to_wire(document))


def iter_export_lines(
    documents: Iterable[Dict[str, Any]], line_terminator: str = "\n"
) -> Iterator[str]:
    for document in documents:
        yield render_export_line(document) + line_terminator
