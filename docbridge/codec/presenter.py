"""
Client presenter

Renders native documents for display: extended scalars become annotated
display strings such as ObjectId(..) or ISODate(..), while Code, DBRef,
MinKey and MaxKey stay structured so they can be edited in place.
to_edit_text() turns a presented document back into loose edit text that
the normalizer and materializer accept.
"""

import datetime
import json
import re
from typing import Any

from bson import ObjectId
from bson.binary import Binary, OLD_UUID_SUBTYPE, UUID_SUBTYPE
from bson.code import Code
from bson.datetime_ms import DatetimeMS
from bson.dbref import DBRef
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.regex import Regex
from bson.timestamp import Timestamp

from .serializer import binary_to_wire
from .values import SENTINEL_MARKER, format_iso_datetime, format_uuid, regex_literal

# Display literals whose argument is written without quotes in edit text
UNQUOTED_ARGUMENTS = {"Timestamp"}


class DisplayLiteral(str):
    """A presented string that denotes a constructor literal"""

    @property
    def constructor(self) -> str:
        if self.startswith(SENTINEL_MARKER):
            return "regex"
        return self[: self.index("(")]

    @property
    def argument(self) -> str:
        if self.startswith(SENTINEL_MARKER):
            return self[len(SENTINEL_MARKER) :]
        return self[self.index("(") + 1 : -1]


def present_date(value: Any) -> DisplayLiteral:
    if isinstance(value, DatetimeMS):
        return DisplayLiteral(f"ISODate({int(value)})")
    if isinstance(value, datetime.datetime):
        return DisplayLiteral(f"ISODate({format_iso_datetime(value)})")
    return DisplayLiteral(f"ISODate({value.isoformat()})")


def present(value: Any) -> Any:
    """Display copy of a native value"""
    if isinstance(value, dict):
        return {key: present(child) for key, child in value.items()}
    if isinstance(value, (list, tuple)):
        return [present(child) for child in value]

    if isinstance(value, (datetime.date, DatetimeMS)):
        return present_date(value)
    if isinstance(value, ObjectId):
        return DisplayLiteral(f"ObjectId({value})")
    if isinstance(value, (Regex, re.Pattern)):
        return DisplayLiteral(SENTINEL_MARKER + regex_literal(value))
    if isinstance(value, Binary):
        if value.subtype == UUID_SUBTYPE:
            return DisplayLiteral(f"UUID({format_uuid(value)})")
        if value.subtype == OLD_UUID_SUBTYPE:
            return DisplayLiteral(f"LUUID({format_uuid(value)})")
        return binary_to_wire(value, value.subtype)
    if isinstance(value, bytes):
        return binary_to_wire(value, 0)
    if isinstance(value, Timestamp):
        return DisplayLiteral(f"Timestamp({value.time}, {value.inc})")
    if isinstance(value, Code):
        presented = {"$code": str(value)}
        if value.scope is not None:
            presented["$scope"] = present(value.scope)
        return presented
    if isinstance(value, DBRef):
        presented = {"$ref": value.collection, "$id": present(value.id)}
        if value.database:
            presented["$db"] = value.database
        return presented
    if isinstance(value, MinKey):
        return {"$minKey": 1}
    if isinstance(value, MaxKey):
        return {"$maxKey": 1}
    return value


def to_edit_text(presented: Any) -> str:
    """Loose edit text for a presented value"""
    if isinstance(presented, dict):
        members = ", ".join(
            f"{json.dumps(str(key), ensure_ascii=False)}: {to_edit_text(child)}"
            for key, child in presented.items()
        )
        return f"{{{members}}}"
    if isinstance(presented, list):
        return f"[{', '.join(to_edit_text(child) for child in presented)}]"
    if isinstance(presented, DisplayLiteral):
        if presented.constructor == "regex":
            return json.dumps(str(presented), ensure_ascii=False)
        if presented.constructor in UNQUOTED_ARGUMENTS:
            return str(presented)
        return f'{presented.constructor}("{presented.argument}")'
    return json.dumps(presented, ensure_ascii=False)
