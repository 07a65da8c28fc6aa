"""
Unit tests for shape inference and structural comparison.
"""

from tracewarden.schema_drift.inference import compare_schemas, infer_schema, kind_label
from tracewarden.schema_drift.schemas import (
    ArrayNode,
    BooleanNode,
    DiffType,
    NullableNode,
    NumberNode,
    ObjectNode,
    StringNode,
)


class TestInferSchema:
    def test_bool_is_not_a_number(self):
        assert isinstance(infer_schema(True), BooleanNode)
        assert isinstance(infer_schema(3), NumberNode)

    def test_array_uses_first_element(self):
        node = infer_schema([{"id": 1}, "mixed"])
        assert isinstance(node, ArrayNode)
        assert isinstance(node.items, ObjectNode)

    def test_empty_array_has_unknown_items(self):
        assert infer_schema([]) == ArrayNode(items=None)

    def test_kind_label(self):
        assert kind_label(infer_schema([1])) == "number[]"
        assert kind_label(NullableNode(inner=StringNode())) == "string?"


class TestCompareSchemas:
    def test_identical_shapes_have_no_diff(self):
        shape = infer_schema({"user": {"id": 1, "tags": ["a"]}})
        assert compare_schemas(shape, shape) == []

    def test_type_change_at_field(self):
        diffs = compare_schemas(infer_schema({"a": "x"}), infer_schema({"a": 1}))
        assert len(diffs) == 1
        assert diffs[0].type == DiffType.TYPE_CHANGED
        assert diffs[0].path == "$.a"

    def test_added_and_removed_fields(self):
        diffs = compare_schemas(
            infer_schema({"id": 1, "name": "a"}),
            infer_schema({"id": 1, "email": "a@b.c"}),
        )
        assert {(d.type, d.path) for d in diffs} == {
            (DiffType.REMOVED, "$.name"),
            (DiffType.ADDED, "$.email"),
        }

    def test_type_change_does_not_recurse(self):
        diffs = compare_schemas(
            infer_schema({"user": {"id": 1, "name": "a"}}),
            infer_schema({"user": "gone"}),
        )
        assert [(d.type, d.path) for d in diffs] == [(DiffType.TYPE_CHANGED, "$.user")]

    def test_array_items_compared(self):
        diffs = compare_schemas(
            infer_schema({"items": [{"id": 1}]}),
            infer_schema({"items": [{"id": "1"}]}),
        )
        assert [(d.type, d.path) for d in diffs] == [(DiffType.TYPE_CHANGED, "$.items[].id")]

    def test_value_becoming_null_is_not_drift(self):
        assert compare_schemas(infer_schema({"a": "x"}), infer_schema({"a": None})) == []

    def test_null_becoming_value_is_not_drift(self):
        assert compare_schemas(infer_schema({"a": None}), infer_schema({"a": 3})) == []

    def test_nullable_change_with_same_kind(self):
        diffs = compare_schemas(NullableNode(inner=StringNode()), StringNode())
        assert [d.type for d in diffs] == [DiffType.NULL_CHANGED]

    def test_nullable_versus_null_is_compatible(self):
        assert compare_schemas(NullableNode(inner=StringNode()), infer_schema(None)) == []
