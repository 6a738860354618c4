"""REST API routes."""
import logging
import re

from fastapi import APIRouter, HTTPException

from ..engine.compiler import (
    CompileOptions, export_program, flow_to_step_program, step_program_to_flow,
)
from ..engine.graph import (
    FlowGraph, FlowMetadata, GraphEdge, GraphNode, NodeData, VariableDefinition,
)
from ..engine.planner import prepare_execution
from ..engine.validator import ValidationIssue, validate_flow
from ..models.schemas import (
    CompileRequest, CompileResponse, ConfigValidationResponse, CreateNodeRequest,
    DecompileRequest, DecompileResponse, EdgeSchema, ExecutionStepSchema,
    ExportResponse, FieldSchema, FlowSchema, MetadataSchema, NodeDataSchema,
    NodeDefinitionResponse, NodeSchema, PlanResponse, PortSchema, TaskStepSchema,
    ValidationIssueSchema, ValidationResponse, VariableSchema,
)
from ..nodes.base import NodeDefinition
from ..nodes.registry import NodeRegistry, UnknownNodeType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _schema_to_flow(schema: FlowSchema) -> FlowGraph:
    nodes = [
        GraphNode(
            id=n.id, type=n.type,
            position=dict(n.position),
            data=NodeData(**n.data.model_dump()),
        )
        for n in schema.nodes
    ]
    edges = [
        GraphEdge(id=e.id, source=e.source, target=e.target, source_handle=e.source_handle)
        for e in schema.edges
    ]
    variables = [
        VariableDefinition(name=v.name, type=v.type,
                           default_value=v.default_value, description=v.description)
        for v in schema.variables
    ]
    metadata = FlowMetadata()
    if schema.metadata is not None:
        if schema.metadata.created_at is not None:
            metadata.created_at = schema.metadata.created_at
        if schema.metadata.updated_at is not None:
            metadata.updated_at = schema.metadata.updated_at
        metadata.author = schema.metadata.author
    return FlowGraph(
        id=schema.id, name=schema.name, description=schema.description,
        version=schema.version, nodes=nodes, edges=edges,
        variables=variables, metadata=metadata,
    )


def _node_to_schema(node: GraphNode) -> NodeSchema:
    data = node.data
    return NodeSchema(
        id=node.id, type=node.type, position=dict(node.position),
        data=NodeDataSchema(
            label=data.label, config=data.config, errors=data.errors,
            warnings=data.warnings, description=data.description,
            editable=data.editable, deletable=data.deletable,
        ),
    )


def _flow_to_schema(flow: FlowGraph) -> FlowSchema:
    return FlowSchema(
        id=flow.id, name=flow.name, description=flow.description, version=flow.version,
        nodes=[_node_to_schema(n) for n in flow.nodes],
        edges=[
            EdgeSchema(id=e.id, source=e.source, target=e.target, source_handle=e.source_handle)
            for e in flow.edges
        ],
        variables=[
            VariableSchema(name=v.name, type=v.type,
                           default_value=v.default_value, description=v.description)
            for v in flow.variables
        ],
        metadata=MetadataSchema(
            created_at=flow.metadata.created_at,
            updated_at=flow.metadata.updated_at,
            author=flow.metadata.author,
        ),
    )


def _issue_to_schema(issue: ValidationIssue) -> ValidationIssueSchema:
    return ValidationIssueSchema(type=issue.type, message=issue.message,
                                 node_id=issue.node_id, edge_id=issue.edge_id)


def _definition_to_schema(defn: NodeDefinition) -> NodeDefinitionResponse:
    def port(p):
        return PortSchema(id=p.id, label=p.label, port_type=p.port_type.value,
                          max_connections=p.max_connections)

    return NodeDefinitionResponse(
        node_type=defn.node_type,
        display_name=defn.display_name,
        category=defn.category.value,
        description=defn.description,
        inputs=[port(p) for p in defn.inputs],
        outputs=[port(p) for p in defn.outputs],
        default_config=defn.default_config,
        config_schema={
            key: FieldSchema(dtype=f.dtype.value, title=f.title, required=f.required,
                             minimum=f.minimum, maximum=f.maximum, choices=f.choices)
            for key, f in defn.config_schema.items()
        },
        executable=defn.executable,
    )


def _get_node_class(node_type: str):
    try:
        return NodeRegistry.get(node_type)
    except UnknownNodeType as e:
        raise HTTPException(status_code=404, detail=str(e))


# --- Node catalog -----------------------------------------------------------

@router.get("/nodes", response_model=dict[str, NodeDefinitionResponse])
async def list_nodes():
    """Return all registered node definitions."""
    return {
        name: _definition_to_schema(defn)
        for name, defn in NodeRegistry.all_definitions().items()
    }


@router.get("/nodes/categories", response_model=dict[str, list[str]])
async def list_node_categories():
    """Node types grouped by palette category."""
    return {
        category.value: list(NodeRegistry.by_category(category))
        for category in NodeRegistry.categories()
    }


@router.get("/nodes/{node_type}", response_model=NodeDefinitionResponse)
async def get_node(node_type: str):
    node_cls = _get_node_class(node_type)
    return _definition_to_schema(node_cls.get_definition(node_type))


@router.post("/nodes/{node_type}/validate", response_model=ConfigValidationResponse)
async def validate_node_config(node_type: str, config: dict):
    _get_node_class(node_type)
    result = NodeRegistry.validate_config(node_type, config)
    return ConfigValidationResponse(valid=result.valid, errors=result.errors,
                                    warnings=result.warnings)


@router.post("/nodes/{node_type}/create", response_model=NodeSchema)
async def create_node(node_type: str, request: CreateNodeRequest):
    _get_node_class(node_type)
    node = NodeRegistry.create_node(node_type, request.position)
    if request.label:
        node.data.label = request.label
    return _node_to_schema(node)


# --- Flows ------------------------------------------------------------------

@router.post("/flows/validate", response_model=ValidationResponse)
async def validate_flow_endpoint(flow: FlowSchema):
    result = validate_flow(_schema_to_flow(flow))
    return ValidationResponse(
        valid=result.valid,
        errors=[_issue_to_schema(i) for i in result.errors],
        warnings=[_issue_to_schema(i) for i in result.warnings],
    )


def _compile_options(request: CompileRequest) -> CompileOptions:
    options = CompileOptions()
    if request.indent is not None:
        options.indent = request.indent
    if request.include_metadata is not None:
        options.include_metadata = request.include_metadata
    return options


@router.post("/flows/compile", response_model=CompileResponse)
async def compile_flow(request: CompileRequest):
    """Compile a flow into step program text. Invalid flows come back with errors."""
    result = flow_to_step_program(_schema_to_flow(request.flow), _compile_options(request))
    return CompileResponse(content=result.content, step_count=result.step_count,
                           warnings=result.warnings, errors=result.errors)


@router.post("/flows/export", response_model=ExportResponse)
async def export_flow(request: CompileRequest):
    graph = _schema_to_flow(request.flow)
    compiled = flow_to_step_program(graph, _compile_options(request))
    if compiled.errors:
        logger.info("Export of flow %s refused: %s", graph.id, "; ".join(compiled.errors))
        raise HTTPException(status_code=400, detail={"errors": compiled.errors})
    stem = re.sub(r"[^A-Za-z0-9_-]+", "-", graph.name or graph.id).strip("-") or "flow"
    return ExportResponse(filename=f"{stem}.yaml",
                          content=export_program(graph, _compile_options(request)))


@router.post("/programs/decompile", response_model=DecompileResponse)
async def decompile_program(request: DecompileRequest):
    result = step_program_to_flow(request.content, request.flow_name)
    return DecompileResponse(flow=_flow_to_schema(result.flow),
                             errors=result.errors, warnings=result.warnings)


@router.post("/flows/plan", response_model=PlanResponse)
async def plan_flow(flow: FlowSchema):
    plan = prepare_execution(_schema_to_flow(flow))
    return PlanResponse(
        valid=plan.valid,
        errors=plan.errors,
        steps=[
            ExecutionStepSchema(
                node_id=s.node_id, node_type=s.node.type, label=s.node.data.label,
                depth=s.depth, parent_id=s.parent_id, source_handle=s.source_handle,
                in_loop=s.in_loop, in_condition=s.in_condition,
                condition_branch=s.condition_branch,
            )
            for s in plan.steps
        ],
        tasks=[
            TaskStepSchema(id=t.id, original_text=t.original_text, status=t.status)
            for t in plan.tasks
        ],
    )
