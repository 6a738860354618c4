"""Execution planning: flatten a flow graph into ordered, context-tagged steps.

Unlike the compiler, the planner produces no nested tree. Every executable
node appears once, in depth-first order from the start node, annotated with
whether it runs inside a loop body or a condition branch.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..config import settings
from ..nodes.registry import NodeRegistry
from .graph import FlowGraph, GraphEdge, GraphNode, VariableDefinition, outgoing_index
from .validator import validate_flow, validate_nodes_and_edges

logger = logging.getLogger(__name__)

_VARIABLE_REF = re.compile(r"\$\{(\w+)\}")


@dataclass
class ExecutionStep:
    node_id: str
    node: GraphNode
    depth: int
    parent_id: str | None = None
    source_handle: str | None = None
    in_loop: bool = False
    in_condition: bool = False
    condition_branch: str | None = None  # "true" | "false"


@dataclass
class TaskStep:
    id: str
    original_text: str
    status: str = "pending"


@dataclass
class ExecutionPlan:
    valid: bool
    errors: list[str] = field(default_factory=list)
    steps: list[ExecutionStep] = field(default_factory=list)
    tasks: list[TaskStep] = field(default_factory=list)


def _is_executable(node_type: str) -> bool:
    return NodeRegistry.has(node_type) and NodeRegistry.get(node_type).EXECUTABLE


def build_execution_order(nodes: list[GraphNode], edges: list[GraphEdge]) -> list[ExecutionStep]:
    """Depth-first execution order from the start node.

    Returns an empty list for graphs that fail validation or have no start
    node. Start, end, comment and group nodes are walked through but never
    emitted. Loop and condition flags, once set, stay set for all descendants.
    """
    validation = validate_nodes_and_edges(nodes, edges)
    if not validation.valid:
        logger.info("Not planning an invalid flow: %s",
                    "; ".join(e.message for e in validation.errors))
        return []

    node_map: dict[str, GraphNode] = {}
    for node in nodes:
        node_map.setdefault(node.id, node)
    start = next((n for n in nodes if n.type == "start"), None)
    if start is None:
        return []

    index = outgoing_index(edges)
    max_depth = settings.max_traversal_depth
    order: list[ExecutionStep] = []
    visited: set[str] = set()
    # (node_id, depth, nesting, parent_id, source_handle, in_loop, in_condition, branch)
    stack: list[tuple] = [(start.id, 0, 0, None, None, False, False, None)]

    while stack:
        node_id, depth, nesting, parent_id, handle, in_loop, in_condition, branch = stack.pop()
        if node_id in visited:
            continue
        if nesting > max_depth:
            logger.warning("Execution order truncated at nesting level %d (node %s)", nesting, node_id)
            continue
        node = node_map.get(node_id)
        if node is None:
            continue
        visited.add(node_id)

        if _is_executable(node.type):
            order.append(ExecutionStep(
                node_id=node_id,
                node=node,
                depth=depth,
                parent_id=parent_id,
                source_handle=handle,
                in_loop=in_loop,
                in_condition=in_condition,
                condition_branch=branch,
            ))

        children = []
        for edge in index.get(node_id, []):
            child_loop, child_condition, child_branch = in_loop, in_condition, branch
            child_nesting = nesting
            if node.type == "loop" and edge.source_handle == "body":
                child_loop = True
                child_nesting += 1
            if node.type == "ifElse" and edge.source_handle in ("true", "false"):
                child_condition = True
                child_branch = edge.source_handle
                child_nesting += 1
            children.append((edge.target, depth + 1, child_nesting, node_id, edge.source_handle,
                             child_loop, child_condition, child_branch))
        # Reversed so the first edge is popped first.
        stack.extend(reversed(children))

    return order


def substitute_variables(text: Any, values: dict[str, Any]) -> str:
    """Replace ``${name}`` references; unknown names are left as written."""
    if text is None:
        return ""

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in values and values[name] is not None:
            return str(values[name])
        return match.group(0)

    return _VARIABLE_REF.sub(_replace, str(text))


def describe_step(node: GraphNode, variables: list[VariableDefinition]) -> str:
    """Human-readable instruction for one node, as handed to the execution engine."""
    values = {v.name: v.default_value for v in variables}
    text = None
    if NodeRegistry.has(node.type):
        text = NodeRegistry.create(node.type).instruction(
            node.config, lambda value: substitute_variables(value, values),
        )
    return text or node.data.label or node.type


def prepare_execution(graph: FlowGraph) -> ExecutionPlan:
    """Validate a flow and turn it into the task list for the execution engine."""
    validation = validate_flow(graph)
    if not validation.valid:
        return ExecutionPlan(valid=False, errors=[e.message for e in validation.errors])
    if not any(_is_executable(n.type) for n in graph.nodes):
        return ExecutionPlan(valid=False, errors=["Flow has no executable nodes"])

    steps = build_execution_order(graph.nodes, graph.edges)
    tasks = [
        TaskStep(id=step.node_id, original_text=describe_step(step.node, graph.variables))
        for step in steps
    ]
    logger.info("Prepared flow %s for execution: %d steps", graph.id, len(tasks))
    return ExecutionPlan(valid=True, steps=steps, tasks=tasks)
