"""Flow validation: structure, connections, cycles, isolated nodes, node configs.

Problems are reported as data. ``validate_flow`` never raises for user input;
every check runs and the results accumulate.
"""
import logging
from dataclasses import dataclass, field

from ..config import settings
from ..nodes.registry import NodeRegistry
from .graph import FlowGraph, GraphEdge, GraphNode, outgoing_index

logger = logging.getLogger(__name__)

# Node types exempt from the isolated-node warning.
_DECORATION_TYPES = {"start", "end", "comment", "group"}


@dataclass
class ValidationIssue:
    type: str  # structure | connection | cycle | configuration | isolated | unreachable
    message: str
    node_id: str | None = None
    edge_id: str | None = None


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def validate_flow(graph: FlowGraph) -> ValidationResult:
    """Validate a flow graph. ``valid`` is true iff no error was found."""
    return validate_nodes_and_edges(graph.nodes, graph.edges)


def validate_nodes_and_edges(nodes: list[GraphNode], edges: list[GraphEdge]) -> ValidationResult:
    result = ValidationResult()
    if not nodes:
        result.errors.append(ValidationIssue("structure", "Flow has no nodes"))
        return result

    _check_duplicates(nodes, edges, result)
    _check_sentinels(nodes, result)
    _check_node_types(nodes, result)
    _check_edges(nodes, edges, result)
    _check_cycles(nodes, edges, result)
    _check_isolated(nodes, edges, result)
    _check_configs(nodes, result)
    if settings.warn_unreachable:
        _check_reachability(nodes, edges, result)

    if result.errors:
        logger.debug("Validation found %d error(s)", len(result.errors))
    return result


def _check_duplicates(nodes, edges, result: ValidationResult) -> None:
    seen: set[str] = set()
    reported: set[str] = set()
    for node in nodes:
        if node.id in seen and node.id not in reported:
            result.errors.append(ValidationIssue(
                "structure", f"Duplicate node id: {node.id}", node_id=node.id,
            ))
            reported.add(node.id)
        seen.add(node.id)

    seen.clear()
    reported.clear()
    for edge in edges:
        if edge.id in seen and edge.id not in reported:
            result.errors.append(ValidationIssue(
                "structure", f"Duplicate edge id: {edge.id}", edge_id=edge.id,
            ))
            reported.add(edge.id)
        seen.add(edge.id)


def _check_sentinels(nodes, result: ValidationResult) -> None:
    starts = [n for n in nodes if n.type == "start"]
    if not starts:
        result.errors.append(ValidationIssue("structure", "Flow is missing a start node"))
    elif len(starts) > 1:
        result.warnings.append(ValidationIssue(
            "structure",
            f"Flow has {len(starts)} start nodes; only the first is used",
            node_id=starts[1].id,
        ))
    if not any(n.type == "end" for n in nodes):
        result.warnings.append(ValidationIssue("structure", "Flow has no end node"))


def _check_node_types(nodes, result: ValidationResult) -> None:
    for node in nodes:
        if not NodeRegistry.has(node.type):
            result.errors.append(ValidationIssue(
                "structure", f"Unknown node type: {node.type}", node_id=node.id,
            ))


def _check_edges(nodes, edges, result: ValidationResult) -> None:
    by_id = {}
    for node in nodes:
        by_id.setdefault(node.id, node)

    for edge in edges:
        missing = [end for end in (edge.source, edge.target) if end not in by_id]
        if missing:
            result.errors.append(ValidationIssue(
                "connection",
                f"Edge {edge.id} references missing node {missing[0]}",
                edge_id=edge.id,
            ))
            continue
        if edge.source_handle is None:
            continue
        source = by_id[edge.source]
        if not NodeRegistry.has(source.type):
            continue
        ports = {p.id for p in NodeRegistry.get(source.type).OUTPUT_PORTS()}
        if edge.source_handle not in ports:
            result.warnings.append(ValidationIssue(
                "connection",
                f"Edge {edge.id} leaves {source.type} node {source.id} "
                f"through undeclared port '{edge.source_handle}'",
                node_id=source.id,
            ))


def find_cycles(node_ids: list[str], edges: list[GraphEdge]) -> list[list[str]]:
    """Depth-first search with a recursion stack.

    Roots are the in-degree-zero nodes first, then any node left unvisited
    (a graph that is entirely cyclic has no such root). Each back edge yields
    one cycle path, closed on the node it started from.
    """
    known = set(node_ids)
    index = outgoing_index([e for e in edges if e.source in known and e.target in known])
    in_degree = {nid: 0 for nid in node_ids}
    for targets in index.values():
        for edge in targets:
            in_degree[edge.target] += 1

    roots = [nid for nid in node_ids if in_degree[nid] == 0] + list(node_ids)
    visited: set[str] = set()
    cycles: list[list[str]] = []

    for root in roots:
        if root in visited:
            continue
        visited.add(root)
        path = [root]
        on_path = {root}
        stack = [iter(index.get(root, []))]
        while stack:
            edge = next(stack[-1], None)
            if edge is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            nxt = edge.target
            if nxt in on_path:
                cycles.append(path[path.index(nxt):] + [nxt])
            elif nxt not in visited:
                visited.add(nxt)
                path.append(nxt)
                on_path.add(nxt)
                stack.append(iter(index.get(nxt, [])))
    return cycles


def _check_cycles(nodes, edges, result: ValidationResult) -> None:
    node_ids = list(dict.fromkeys(n.id for n in nodes))
    for cycle in find_cycles(node_ids, edges):
        result.errors.append(ValidationIssue(
            "cycle", f"Cycle detected: {' -> '.join(cycle)}", node_id=cycle[0],
        ))


def _check_isolated(nodes, edges, result: ValidationResult) -> None:
    if len(nodes) <= 1:
        return
    connected = {e.source for e in edges} | {e.target for e in edges}
    for node in nodes:
        if node.type in _DECORATION_TYPES or node.id in connected:
            continue
        result.warnings.append(ValidationIssue(
            "isolated",
            f"Node {node.data.label or node.id} is not connected to the flow",
            node_id=node.id,
        ))


def _check_configs(nodes, result: ValidationResult) -> None:
    for node in nodes:
        if not NodeRegistry.has(node.type):
            continue
        check = NodeRegistry.validate_config(node.type, node.config)
        label = node.data.label or node.id
        for message in check.errors + check.warnings:
            result.warnings.append(ValidationIssue(
                "configuration", f"{label}: {message}", node_id=node.id,
            ))


def _check_reachability(nodes, edges, result: ValidationResult) -> None:
    start = next((n for n in nodes if n.type == "start"), None)
    if start is None:
        return
    index = outgoing_index(edges)
    reached = {start.id}
    frontier = [start.id]
    while frontier:
        current = frontier.pop()
        for edge in index.get(current, []):
            if edge.target not in reached:
                reached.add(edge.target)
                frontier.append(edge.target)
    for node in nodes:
        if node.id in reached or node.type in _DECORATION_TYPES:
            continue
        result.warnings.append(ValidationIssue(
            "unreachable",
            f"Node {node.data.label or node.id} cannot be reached from start",
            node_id=node.id,
        ))
