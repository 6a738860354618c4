"""Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire, matching the
editor's JSON.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Flow graph -------------------------------------------------------------

class NodeDataSchema(CamelModel):
    label: str = ""
    config: dict[str, Any] = {}
    errors: list[str] = []
    warnings: list[str] = []
    description: str = ""
    editable: bool = True
    deletable: bool = True


class NodeSchema(CamelModel):
    id: str
    type: str
    position: dict[str, float] = {"x": 0.0, "y": 0.0}
    data: NodeDataSchema = NodeDataSchema()


class EdgeSchema(CamelModel):
    id: str
    source: str
    target: str
    source_handle: str | None = None


class VariableSchema(CamelModel):
    name: str
    type: str = "string"
    default_value: Any = None
    description: str = ""


class MetadataSchema(CamelModel):
    created_at: int | None = None
    updated_at: int | None = None
    author: str | None = None


class FlowSchema(CamelModel):
    id: str = ""
    name: str = ""
    description: str = ""
    version: int = 1
    nodes: list[NodeSchema] = []
    edges: list[EdgeSchema] = []
    variables: list[VariableSchema] = []
    metadata: MetadataSchema | None = None


# --- Node catalog -----------------------------------------------------------

class PortSchema(CamelModel):
    id: str
    label: str
    port_type: str = "default"
    max_connections: int | None = None


class FieldSchema(CamelModel):
    dtype: str
    title: str
    required: bool = False
    minimum: float | None = None
    maximum: float | None = None
    choices: list[Any] | None = None


class NodeDefinitionResponse(CamelModel):
    node_type: str
    display_name: str
    category: str
    description: str
    inputs: list[PortSchema]
    outputs: list[PortSchema]
    default_config: dict[str, Any]
    config_schema: dict[str, FieldSchema]
    executable: bool


class ConfigValidationResponse(CamelModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class CreateNodeRequest(CamelModel):
    position: dict[str, float] = {"x": 0.0, "y": 0.0}
    label: str | None = None


# --- Validation / compilation -----------------------------------------------

class ValidationIssueSchema(CamelModel):
    type: str
    message: str
    node_id: str | None = None
    edge_id: str | None = None


class ValidationResponse(CamelModel):
    valid: bool
    errors: list[ValidationIssueSchema] = []
    warnings: list[ValidationIssueSchema] = []


class CompileRequest(CamelModel):
    flow: FlowSchema
    indent: int | None = None
    include_metadata: bool | None = None


class CompileResponse(CamelModel):
    content: str
    step_count: int
    warnings: list[str] = []
    errors: list[str] = []


class ExportResponse(CamelModel):
    filename: str
    content: str


class DecompileRequest(CamelModel):
    content: str
    flow_name: str | None = None


class DecompileResponse(CamelModel):
    flow: FlowSchema
    errors: list[str] = []
    warnings: list[str] = []


# --- Execution planning -----------------------------------------------------

class ExecutionStepSchema(CamelModel):
    node_id: str
    node_type: str
    label: str
    depth: int
    parent_id: str | None = None
    source_handle: str | None = None
    in_loop: bool = False
    in_condition: bool = False
    condition_branch: str | None = None


class TaskStepSchema(CamelModel):
    id: str
    original_text: str
    status: str = "pending"


class PlanResponse(CamelModel):
    valid: bool
    errors: list[str] = []
    steps: list[ExecutionStepSchema] = []
    tasks: list[TaskStepSchema] = []
