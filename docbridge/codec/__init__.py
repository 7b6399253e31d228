"""
Codec layer: loose text, tagged-wire objects and native typed values
"""

from .materializer import (
    MaterializeMode,
    Materializer,
    materialize,
    materialize_query,
    materialize_text,
)
from .normalizer import LooseTextNormalizer, is_sentinel, normalize, parse_loose
from .presenter import DisplayLiteral, present, to_edit_text
from .serializer import render_export_line, to_wire
from .values import ValueKind, kind_of, to_storable

__all__ = [
    "DisplayLiteral",
    "LooseTextNormalizer",
    "MaterializeMode",
    "Materializer",
    "ValueKind",
    "is_sentinel",
    "kind_of",
    "materialize",
    "materialize_query",
    "materialize_text",
    "normalize",
    "parse_loose",
    "present",
    "render_export_line",
    "to_edit_text",
    "to_storable",
    "to_wire",
]
