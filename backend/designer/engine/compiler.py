"""Compile flow graphs to step programs and rebuild graphs from programs.

Forward compilation walks the graph from its start node. Each node is lowered
through its catalog descriptor; control nodes receive the compiled steps of
their structural ports (``true``/``false``/``body``) through ``attach``, and
any other output continues the walk at the same nesting level.

Reverse compilation parses serialized program text and lays the step tree
back out as nodes and edges, top to bottom.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..config import settings
from ..nodes.registry import NodeRegistry, generate_id
from ..nodes.validation import assert_node_type
from .graph import (
    FlowGraph, FlowMetadata, GraphEdge, GraphNode, VariableDefinition,
    now_ms, outgoing_index,
)
from .steps import (
    ProgramParseError, StepNode, StepProgram, count_steps, dump_program, load_program,
)
from .validator import validate_flow

logger = logging.getLogger(__name__)

# action.type -> node type; ``assert`` is resolved by assert_node_type.
ACTION_NODE_TYPES = {
    "click": "click",
    "input": "input",
    "wait": "wait",
    "navigate": "navigate",
    "scroll": "scroll",
    "hover": "hover",
    "drag": "drag",
}
VARIABLE_NODE_TYPES = {"set": "setVariable", "extract": "extractData"}

DEFAULT_FLOW_NAME = "Untitled Flow"


@dataclass
class CompileOptions:
    indent: int = field(default_factory=lambda: settings.yaml_indent)
    include_metadata: bool = field(default_factory=lambda: settings.include_metadata)
    max_depth: int = field(default_factory=lambda: settings.max_traversal_depth)


@dataclass
class CompileResult:
    content: str = ""
    step_count: int = 0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    program: StepProgram | None = None


@dataclass
class ParseResult:
    flow: FlowGraph
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Graph -> program
# ---------------------------------------------------------------------------

class _FlowWalker:
    def __init__(self, graph: FlowGraph, max_depth: int):
        self.nodes = graph.node_map()
        self.index = outgoing_index(graph.edges)
        self.max_depth = max_depth
        self.warnings: list[str] = []
        self._descriptors = {}

    def descriptor(self, node_type: str):
        if node_type not in self._descriptors:
            self._descriptors[node_type] = NodeRegistry.create(node_type)
        return self._descriptors[node_type]

    def walk(self, node_id: str, visited: set[str], depth: int = 0) -> tuple[list[StepNode], set[str]]:
        """Compile the chain that starts at ``node_id``.

        Returns the steps and the visited set after the walk. Nested branches
        get a copy of ``visited`` so the same node may appear in both arms.
        """
        steps: list[StepNode] = []
        current: str | None = node_id
        while current is not None and current not in visited:
            node = self.nodes.get(current)
            if node is None:
                break
            visited.add(current)
            descriptor = self.descriptor(node.type)
            outgoing = self.index.get(current, [])
            lowered = descriptor.lower(node)

            if not lowered:
                if node.type == "parallel" and len(outgoing) > 1:
                    self.warnings.append(
                        f"Parallel branches of {node.data.label or node.id} are compiled sequentially"
                    )
                if len(outgoing) == 1:
                    current = outgoing[0].target
                    continue
                for edge in outgoing:
                    sub, visited = self.walk(edge.target, visited, depth)
                    steps.extend(sub)
                break

            steps.extend(lowered)
            structural = descriptor.structural_handles()
            if structural:
                if depth >= self.max_depth:
                    logger.warning("Nesting deeper than %d at node %s, children dropped",
                                   self.max_depth, node.id)
                else:
                    for edge in outgoing:
                        if edge.source_handle in structural:
                            children, _ = self.walk(edge.target, set(visited), depth + 1)
                            descriptor.attach(lowered[0], edge.source_handle, children)

            continuation = [e for e in outgoing if e.source_handle not in structural]
            if len(continuation) > 1:
                self.warnings.append(
                    f"Node {node.data.label or node.id} has {len(continuation)} outgoing "
                    f"connections; only the first is followed"
                )
            current = continuation[0].target if continuation else None
        return steps, visited


def flow_to_step_program(graph: FlowGraph, options: CompileOptions | None = None) -> CompileResult:
    """Compile a flow graph into serialized step program text.

    Invalid graphs are not compiled: the result carries the validation errors
    and empty content.
    """
    options = options or CompileOptions()
    validation = validate_flow(graph)
    warnings = [w.message for w in validation.warnings]
    if not validation.valid:
        return CompileResult(warnings=warnings, errors=[e.message for e in validation.errors])

    start = graph.find_nodes("start")[0]
    walker = _FlowWalker(graph, options.max_depth)
    steps, _ = walker.walk(start.id, set())
    warnings.extend(walker.warnings)

    program = StepProgram(
        id=graph.id,
        name=graph.name,
        description=graph.description,
        steps=steps,
        variables={v.name: v.default_value for v in graph.variables},
        created_at=graph.metadata.created_at,
        updated_at=graph.metadata.updated_at,
    )
    content = dump_program(program, indent=options.indent, include_metadata=options.include_metadata)
    step_count = count_steps(steps)
    logger.info("Compiled flow %s: %d steps", graph.id, step_count)
    return CompileResult(content=content, step_count=step_count, warnings=warnings, program=program)


# ---------------------------------------------------------------------------
# Program -> graph
# ---------------------------------------------------------------------------

def infer_variable_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "string"


def node_type_for_step(step: StepNode) -> str | None:
    """Node type that lowers to ``step``, or None when it cannot be told."""
    if step.action is not None:
        if step.action.type == "assert":
            return assert_node_type(step.action)
        return ACTION_NODE_TYPES.get(step.action.type)
    if step.condition is not None:
        return "ifElse"
    if step.loop is not None:
        return "loop"
    if step.variable is not None:
        return VARIABLE_NODE_TYPES.get(step.variable.operation)
    return None


class _FlowBuilder:
    def __init__(self):
        self.nodes: list[GraphNode] = []
        self.edges: list[GraphEdge] = []
        self.warnings: list[str] = []
        self.y = 200
        self.last_id: str | None = None
        self._ids: set[str] = set()

    def add_node(self, node_type: str, x: float, y: float, node_id: str | None = None) -> GraphNode:
        node = NodeRegistry.create_node(node_type, {"x": x, "y": y})
        if node_id and node_id not in self._ids:
            node.id = node_id
        self._ids.add(node.id)
        self.nodes.append(node)
        return node

    def connect(self, source: str, target: str, handle: str | None = None) -> None:
        self.edges.append(GraphEdge(id=generate_id("edge"), source=source, target=target,
                                    source_handle=handle))

    def add_step(self, step: StepNode, nested: bool) -> GraphNode:
        node_type = node_type_for_step(step)
        x = 400 if nested else 200
        if node_type is None:
            self.warnings.append(f"Step {step.id} has no recognizable action; imported as click")
            node = self.add_node("click", x, self.y, node_id=step.id)
            node.data.label = step.description or node.data.label
        else:
            node = self.add_node(node_type, x, self.y, node_id=step.id)
            config, label = NodeRegistry.create(node_type).lift(step)
            node.data.config = config
            node.data.label = label
        node.data.description = step.description
        return node

    def emit(self, steps: list[StepNode], parent_id: str | None,
             handle: str | None = None, nested: bool = False) -> None:
        """Lay out ``steps`` in pre-order.

        The first step is wired from ``parent_id`` through ``handle``; every
        later step is wired from its previous sibling.
        """
        previous: str | None = None
        for step in steps:
            node = self.add_step(step, nested)
            if previous is not None:
                self.connect(previous, node.id)
            elif parent_id is not None:
                self.connect(parent_id, node.id, handle)
            self.last_id = node.id

            if step.condition is not None:
                self.y += 150
                self.emit(step.condition.then_steps, node.id, "true", nested=True)
                if step.condition.else_steps:
                    self.y += 150
                    self.emit(step.condition.else_steps, node.id, "false", nested=True)
            elif step.loop is not None:
                self.y += 150
                self.emit(step.loop.body, node.id, "body", nested=True)
            self.y += 100 if nested else 150
            previous = node.id


def _empty_flow(flow_name: str | None) -> FlowGraph:
    return FlowGraph(id=generate_id("flow"), name=flow_name or DEFAULT_FLOW_NAME)


def step_program_to_flow(content: str, flow_name: str | None = None) -> ParseResult:
    """Rebuild an editable flow graph from serialized program text.

    Never raises for bad input: parse problems come back in ``errors`` along
    with an empty flow. Steps nested deeper than ``max_traversal_depth`` are
    rejected the same way.

    The end node is wired from the last node laid out only. A graph whose
    ``ifElse`` arms both run into ``end`` comes back with one edge fewer,
    so edge counts survive a round trip only when at most one branch tail
    reaches the end node directly.
    """
    try:
        program = load_program(content, max_depth=settings.max_traversal_depth)
    except ProgramParseError as e:
        logger.info("Program text rejected: %s", e)
        return ParseResult(flow=_empty_flow(flow_name), errors=[f"Program parse error: {e}"])
    if program is None:
        return ParseResult(flow=_empty_flow(flow_name), errors=["Program content is empty"])

    builder = _FlowBuilder()
    start = builder.add_node("start", 100, 100)
    builder.emit(program.steps, start.id)
    end = builder.add_node("end", 200, builder.y + 100)
    builder.connect(builder.last_id or start.id, end.id)

    now = now_ms()
    flow = FlowGraph(
        id=program.id or generate_id("flow"),
        name=flow_name or program.name or DEFAULT_FLOW_NAME,
        description=program.description,
        nodes=builder.nodes,
        edges=builder.edges,
        variables=[
            VariableDefinition(name=str(name), type=infer_variable_type(value), default_value=value)
            for name, value in program.variables.items()
        ],
        metadata=FlowMetadata(
            created_at=program.created_at or now,
            updated_at=program.updated_at or now,
        ),
    )
    return ParseResult(flow=flow, warnings=builder.warnings)


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def export_program(graph: FlowGraph, options: CompileOptions | None = None) -> str:
    """Compiled program text prefixed with a comment header."""
    result = flow_to_step_program(graph, options)
    generated_at = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    header = (
        f"# {graph.name}\n"
        f"# {graph.description or 'Auto-generated by Visual Designer'}\n"
        f"# Generated at: {generated_at}\n"
    )
    return header + result.content


def import_program(content: str, flow_name: str | None = None) -> FlowGraph | None:
    result = step_program_to_flow(content, flow_name)
    if result.errors:
        logger.error("Program import failed: %s", "; ".join(result.errors))
        return None
    return result.flow


def program_preview(graph: FlowGraph, line_count: int = 20) -> str:
    """First ``line_count`` lines of the compiled program."""
    lines = flow_to_step_program(graph).content.split("\n")
    preview = "\n".join(lines[:line_count])
    if len(lines) > line_count:
        preview += "\n..."
    return preview
