"""
Metadata tagger

Builds the type-tag tree of a native document: a mirror of its shape in
which every leaf holds a type name instead of a value.
"""

import datetime
import logging
from numbers import Number
from typing import Any, Dict, Iterable

from bson.datetime_ms import DatetimeMS

from ..codec.values import ValueKind, document_id_key, kind_of

logger = logging.getLogger(__name__)


def tag_value(value: Any) -> Any:
    """Type-tag tree of one native value"""
    if value is None:
        return ValueKind.NULL.value

    # dates come first so that a date is never mistaken for a number
    if isinstance(value, DatetimeMS):
        # outside the calendar range there is no time of day to show
        return ValueKind.DATE_ONLY.value
    if isinstance(value, datetime.datetime):
        return ValueKind.DATE_TIME.value
    if isinstance(value, datetime.date):
        return ValueKind.DATE_ONLY.value

    kind = kind_of(value)

    if kind is None:
        fallback = ValueKind.FLOAT if isinstance(value, Number) else ValueKind.STR
        logger.debug(
            "Tagging unrecognized %s value as %s",
            type(value).__name__,
            fallback.value,
        )
        return fallback.value

    if kind == ValueKind.ARRAY:
        if len(value) == 0:
            return ValueKind.ARRAY.value
        return [tag_value(item) for item in value]

    if kind == ValueKind.DOCUMENT:
        return {key: tag_value(item) for key, item in value.items()}

    return kind.value


def tag_document(document: Dict[str, Any]) -> Dict[str, Any]:
    return tag_value(document)


def tag_documents(documents: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Type-tag trees of a batch of documents keyed by their _id"""
    return {document_id_key(document): tag_document(document) for document in documents}
