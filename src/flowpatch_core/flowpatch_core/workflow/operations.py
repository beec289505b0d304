# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Typed diff operations.

Each operation arrives as a plain mapping discriminated by ``type`` and is
parsed into one of the models below. Field names follow the wire format
(``nodeName``, ``sourceOutput``, ...) through aliases, so a model can be
built from either spelling.
"""

from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from flowpatch_common.constants import MAIN_CATEGORY


class _Operation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    description: Optional[str] = None


class _NodeReference(_Operation):
    node_name: Optional[str] = Field(default=None, alias="nodeName")
    node_id: Optional[str] = Field(default=None, alias="nodeId")

    @model_validator(mode="after")
    def _has_reference(self):
        if not self.node_name and not self.node_id:
            raise ValueError("nodeName or nodeId is required")
        return self

    @property
    def reference(self) -> str:
        return self.node_id or self.node_name or ""


class AddNode(_Operation):
    type: Literal["addNode"] = "addNode"
    node: Dict[str, Any]

    @field_validator("node")
    @classmethod
    def _named_and_typed(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        for key in ("name", "type"):
            if not isinstance(v.get(key), str) or not v[key]:
                raise ValueError(f"node.{key} must be a non-empty string")
        return v


class RemoveNode(_NodeReference):
    type: Literal["removeNode"] = "removeNode"


class UpdateNode(_NodeReference):
    type: Literal["updateNode"] = "updateNode"
    changes: Dict[str, Any]


class MoveNode(_NodeReference):
    type: Literal["moveNode"] = "moveNode"
    position: Tuple[Union[int, float], Union[int, float]]


class SetEnabled(_NodeReference):
    type: Literal["setEnabled"] = "setEnabled"
    enabled: bool


class AddConnection(_Operation):
    type: Literal["addConnection"] = "addConnection"
    source: str
    target: str
    source_output: str = Field(default=MAIN_CATEGORY, alias="sourceOutput")
    target_input: str = Field(default=MAIN_CATEGORY, alias="targetInput")
    source_index: int = Field(default=0, alias="sourceIndex", ge=0)
    target_index: int = Field(default=0, alias="targetIndex", ge=0)


class RemoveConnection(_Operation):
    type: Literal["removeConnection"] = "removeConnection"
    source: str
    target: str
    source_output: str = Field(default=MAIN_CATEGORY, alias="sourceOutput")
    source_index: Optional[int] = Field(default=None, alias="sourceIndex", ge=0)


class RewireConnection(_Operation):
    type: Literal["rewireConnection"] = "rewireConnection"
    source: str
    from_node: str = Field(alias="from")
    to_node: str = Field(alias="to")
    source_output: str = Field(default=MAIN_CATEGORY, alias="sourceOutput")
    source_index: Optional[int] = Field(default=None, alias="sourceIndex", ge=0)


class UpdateSettings(_Operation):
    type: Literal["updateSettings"] = "updateSettings"
    settings: Dict[str, Any]


class RenameWorkflow(_Operation):
    type: Literal["renameWorkflow"] = "renameWorkflow"
    name: str

    @field_validator("name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be empty")
        return v


class AddTag(_Operation):
    type: Literal["addTag"] = "addTag"
    tag: str


class RemoveTag(_Operation):
    type: Literal["removeTag"] = "removeTag"
    tag: str


DiffOperation = Union[
    AddNode,
    RemoveNode,
    UpdateNode,
    MoveNode,
    SetEnabled,
    AddConnection,
    RemoveConnection,
    RewireConnection,
    UpdateSettings,
    RenameWorkflow,
    AddTag,
    RemoveTag,
]

OPERATION_TYPES: Dict[str, Type[_Operation]] = {
    "addNode": AddNode,
    "removeNode": RemoveNode,
    "updateNode": UpdateNode,
    "moveNode": MoveNode,
    "setEnabled": SetEnabled,
    "addConnection": AddConnection,
    "removeConnection": RemoveConnection,
    "rewireConnection": RewireConnection,
    "updateSettings": UpdateSettings,
    "renameWorkflow": RenameWorkflow,
    "addTag": AddTag,
    "removeTag": RemoveTag,
}

# Applied in the first pass; everything else waits until all nodes exist.
NODE_OPERATION_TYPES = frozenset({"addNode", "removeNode", "updateNode", "moveNode", "setEnabled"})


class OperationParseError(ValueError):
    """An operation entry could not be turned into a ``DiffOperation``."""


def _describe(error: ValidationError) -> str:
    parts: List[str] = []
    for item in error.errors():
        where = ".".join(str(p) for p in item.get("loc", ()))
        msg = item.get("msg", "invalid value")
        parts.append(f"{where}: {msg}" if where else msg)
    return "; ".join(parts)


def parse_operation(raw: Any) -> DiffOperation:
    """Build the typed operation for one raw entry.

    Raises ``OperationParseError`` with a readable message when the entry is
    not a mapping, names an unknown type, or carries an invalid payload.
    """
    if not isinstance(raw, Mapping):
        raise OperationParseError(f"Operation must be an object, got {type(raw).__name__}")
    op_type = raw.get("type")
    model = OPERATION_TYPES.get(op_type) if isinstance(op_type, str) else None
    if model is None:
        raise OperationParseError(f"Unknown operation type: {op_type}")
    try:
        return model.model_validate(dict(raw))
    except ValidationError as e:
        raise OperationParseError(f"Invalid {op_type} operation: {_describe(e)}") from e
