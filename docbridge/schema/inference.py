"""
Schema inference

Builds a schema node for every type-tag tree of a sample, folds the nodes
into one, and finally simplifies union types. Merging two nodes is
commutative and associative: disagreeing scalar types accumulate into a
sorted union, while object or array against anything else collapses to
"any".

The result is advisory. The store accepts documents outside of it.
"""

import json
import logging
from functools import reduce
from typing import Any, Dict, Iterable, List, Union

logger = logging.getLogger(__name__)

ANY = "any"
KEY_FIELD = "_id"

# Type-tag name -> schema node of a leaf
LEAF_SCHEMAS = {
    "float": {"type": "number"},
    "date": {"type": "string", "format": "date"},
    "ObjectID": {"type": "string", "format": "mongo-id"},
    "date-time": {"type": "string", "format": "date-time"},
    "regex": {"type": "regexp"},
    "UUID": {"type": "string", "format": "uuid"},
    "LUUID": {"type": "string", "format": "luuid"},
    "Timestamp": {"type": "string", "format": "timestamp"},
    "DBRef": {"type": "dbRef"},
    "MinKey": {"type": "minKey"},
    "MaxKey": {"type": "maxKey"},
    "Code": {"type": "code"},
}

# Node types that never join a union with another type
STRUCTURED_TYPES = ("object", "array")

SchemaNode = Dict[str, Any]
TypeName = Union[str, List[str]]


def leaf_schema(tag: str, key: Any = None) -> SchemaNode:
    """Schema node of a single type-tag leaf"""
    node = dict(LEAF_SCHEMAS.get(tag, {"type": tag}))
    if str(key) == KEY_FIELD:
        node["key"] = True
    return node


def schema_of_tag(tag: Any, key: Any = None) -> SchemaNode:
    """Schema node of one type-tag tree"""
    if isinstance(tag, dict):
        return {"type": "object", "properties": properties_of_tag(tag)}

    if isinstance(tag, list):
        items = [schema_of_tag(item, index) for index, item in enumerate(tag)]
        if len(items) == 1:
            merged = items[0]
        else:
            merged = reduce(merge_nodes, items, {})
        return {"type": "array", "items": merged}

    return leaf_schema(tag, key)


def properties_of_tag(tag: Dict[str, Any]) -> Dict[str, SchemaNode]:
    return {key: schema_of_tag(value, key) for key, value in tag.items()}


def merge_types(left: TypeName, right: TypeName) -> TypeName:
    """Merge two node types into one type, a union, or "any"."""
    if left is None:
        return right
    if right is None or left == right:
        return left
    if ANY in (left, right):
        return ANY
    if left in STRUCTURED_TYPES or right in STRUCTURED_TYPES:
        return ANY

    left_names = left if isinstance(left, list) else [left]
    right_names = right if isinstance(right, list) else [right]
    union = sorted(set(left_names) | set(right_names))
    return union[0] if len(union) == 1 else union


def merge_nodes(left: Dict[str, Any], right: Dict[str, Any]) -> Dict[str, Any]:
    """Merge two schema nodes, or two maps of property nodes, key by key

    Mapping values are merged recursively and every other value is merged
    with merge_types, so a property named "type" (whose node is a mapping)
    never collides with a node's own type name.
    """
    merged = dict(left)
    for key, value in right.items():
        current = merged.get(key)
        if isinstance(value, dict):
            merged[key] = merge_nodes(current if isinstance(current, dict) else {}, value)
        elif isinstance(value, bool) or isinstance(current, bool):
            merged[key] = value if current is None else current
        else:
            merged[key] = merge_types(current, value)
    return merged


def simplify_unions(mapping: Dict[str, Any]) -> Dict[str, Any]:
    """Final pass over union types

    A union of more than two types becomes "any". A two-type union that
    includes "null" stays a nullable union and keeps the node's other
    properties; every other union, and "any", strips the node to its type.
    """
    simplified = {}
    for key, value in mapping.items():
        if isinstance(value, dict):
            node_type = value.get("type")
            if isinstance(node_type, list) and len(node_type) > 2:
                value = {"type": ANY}
            elif node_type == ANY or (
                isinstance(node_type, list)
                and not (len(node_type) == 2 and "null" in node_type)
            ):
                value = {"type": node_type}
            value = simplify_unions(value)
        simplified[key] = value
    return simplified


def infer_schema(tags: Iterable[Dict[str, Any]]) -> SchemaNode:
    """Merged schema of a sample of type-tag trees"""
    if isinstance(tags, dict):
        tags = tags.values()

    document_schemas = [properties_of_tag(tag) for tag in tags]
    logger.debug("Inferring schema from %d document(s)", len(document_schemas))

    properties = reduce(merge_nodes, document_schemas, {})
    return simplify_unions({"properties": properties})


def dumps_schema(schema: SchemaNode) -> str:
    """Tab indented JSON text of a schema"""
    return json.dumps(schema, indent="\t", ensure_ascii=False)
