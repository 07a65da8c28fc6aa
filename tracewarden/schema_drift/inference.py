"""
Shape inference and structural comparison for JSON values.
"""

from typing import Any, List, Tuple

from .schemas import (
    AnyNode,
    ArrayNode,
    BooleanNode,
    DiffType,
    NullableNode,
    NullNode,
    NumberNode,
    ObjectNode,
    SchemaDiff,
    StringNode,
)


def infer_schema(value: Any) -> AnyNode:
    """
    Infer the shape of a parsed JSON value.

    Arrays are sampled by their first element only; an empty array has an
    unknown item shape.
    """
    if value is None:
        return NullNode()
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return BooleanNode()
    if isinstance(value, (int, float)):
        return NumberNode()
    if isinstance(value, str):
        return StringNode()
    if isinstance(value, (list, tuple)):
        if not value:
            return ArrayNode(items=None)
        return ArrayNode(items=infer_schema(value[0]))
    if isinstance(value, dict):
        return ObjectNode(fields={str(k): infer_schema(v) for k, v in value.items()})
    return StringNode()


def kind_label(node: AnyNode) -> str:
    if isinstance(node, ArrayNode):
        return f"{kind_label(node.items)}[]" if node.items is not None else "array"
    if isinstance(node, NullableNode):
        return f"{kind_label(node.inner)}?"
    return node.kind


def _unwrap(node: AnyNode) -> Tuple[AnyNode, bool]:
    """(base node, is nullable) - null itself counts as nullable."""
    if isinstance(node, NullableNode):
        return node.inner, True
    return node, isinstance(node, NullNode)


def compare_schemas(baseline: AnyNode, current: AnyNode, path: str = "$") -> List[SchemaDiff]:
    """
    Structural diff of two shapes.

    A type change at a node stops recursion into that node's children.
    """
    base_node, base_nullable = _unwrap(baseline)
    curr_node, curr_nullable = _unwrap(current)

    if isinstance(base_node, NullNode) or isinstance(curr_node, NullNode):
        # a bare null carries no base kind to compare against
        return []

    if base_node.kind != curr_node.kind:
        return [
            SchemaDiff(
                type=DiffType.TYPE_CHANGED,
                path=path,
                detail=f"was {base_node.kind}, now {curr_node.kind}",
            )
        ]

    diffs: List[SchemaDiff] = []

    if base_nullable and not curr_nullable:
        diffs.append(
            SchemaDiff(
                type=DiffType.NULL_CHANGED,
                path=path,
                detail=f"was nullable, now always {curr_node.kind}",
            )
        )
    elif curr_nullable and not base_nullable:
        diffs.append(
            SchemaDiff(
                type=DiffType.NULL_CHANGED,
                path=path,
                detail=f"was {base_node.kind}, now nullable",
            )
        )

    if isinstance(base_node, ObjectNode) and isinstance(curr_node, ObjectNode):
        for key, base_field in base_node.fields.items():
            field_path = f"{path}.{key}"
            curr_field = curr_node.fields.get(key)
            if curr_field is None:
                diffs.append(
                    SchemaDiff(
                        type=DiffType.REMOVED,
                        path=field_path,
                        detail=f"field removed (was {kind_label(base_field)})",
                    )
                )
            else:
                diffs.extend(compare_schemas(base_field, curr_field, field_path))

        for key, curr_field in curr_node.fields.items():
            if key not in base_node.fields:
                diffs.append(
                    SchemaDiff(
                        type=DiffType.ADDED,
                        path=f"{path}.{key}",
                        detail=f"new field ({kind_label(curr_field)})",
                    )
                )

    if isinstance(base_node, ArrayNode) and isinstance(curr_node, ArrayNode):
        if base_node.items is not None and curr_node.items is not None:
            diffs.extend(compare_schemas(base_node.items, curr_node.items, f"{path}[]"))

    return diffs
