"""
Shape descriptors for JSON response bodies, drift diffs and per-route baselines.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class NullNode(_Node):
    kind: Literal["null"] = "null"


class BooleanNode(_Node):
    kind: Literal["boolean"] = "boolean"


class NumberNode(_Node):
    kind: Literal["number"] = "number"


class StringNode(_Node):
    kind: Literal["string"] = "string"


class ArrayNode(_Node):
    kind: Literal["array"] = "array"
    items: Optional["SchemaNode"] = None  # None: empty array, item shape unknown


class ObjectNode(_Node):
    kind: Literal["object"] = "object"
    fields: Dict[str, "SchemaNode"] = Field(default_factory=dict)


class NullableNode(_Node):
    kind: Literal["nullable"] = "nullable"
    inner: "SchemaNode"


AnyNode = Union[
    NullNode, BooleanNode, NumberNode, StringNode, ArrayNode, ObjectNode, NullableNode
]
SchemaNode = Annotated[AnyNode, Field(discriminator="kind")]

ArrayNode.model_rebuild()
ObjectNode.model_rebuild()
NullableNode.model_rebuild()


class DiffType(str, Enum):
    REMOVED = "removed"
    ADDED = "added"
    TYPE_CHANGED = "type_changed"
    NULL_CHANGED = "null_changed"


BREAKING_DIFF_TYPES = {DiffType.REMOVED, DiffType.TYPE_CHANGED, DiffType.NULL_CHANGED}


class SchemaDiff(BaseModel):
    type: DiffType
    path: str  # JSONPath-like: $.user.id, $.items[].name
    detail: str

    @property
    def is_breaking(self) -> bool:
        return self.type in BREAKING_DIFF_TYPES


@dataclass
class SchemaBaseline:
    """Per (method, route) baseline plus the pending candidate shape."""

    schema: AnyNode
    consecutive_matches: int = 1
    pending_schema: Optional[AnyNode] = None
    pending_matches: int = 0
