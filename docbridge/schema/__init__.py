"""
Type tagging and schema inference for sampled documents
"""

from .inference import dumps_schema, infer_schema, merge_nodes, schema_of_tag
from .tagger import tag_document, tag_documents, tag_value

__all__ = [
    "dumps_schema",
    "infer_schema",
    "merge_nodes",
    "schema_of_tag",
    "tag_document",
    "tag_documents",
    "tag_value",
]
