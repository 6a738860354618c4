"""Graph data structures for the flow designer."""
import time
from dataclasses import dataclass, field
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class NodeData:
    label: str
    config: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    description: str = ""
    editable: bool = True
    deletable: bool = True


@dataclass
class GraphNode:
    id: str
    type: str
    position: dict[str, float] = field(default_factory=lambda: {"x": 0.0, "y": 0.0})
    data: NodeData = field(default_factory=lambda: NodeData(label=""))

    @property
    def config(self) -> dict[str, Any]:
        return self.data.config


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    source_handle: str | None = None  # output port; None = default output


@dataclass
class VariableDefinition:
    name: str
    type: str = "string"  # string | number | boolean | array | object
    default_value: Any = None
    description: str = ""


@dataclass
class FlowMetadata:
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    author: str | None = None


@dataclass
class FlowGraph:
    id: str
    name: str
    description: str = ""
    version: int = 1
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    variables: list[VariableDefinition] = field(default_factory=list)
    metadata: FlowMetadata = field(default_factory=FlowMetadata)

    def node_map(self) -> dict[str, GraphNode]:
        """Map node id to node. The first node wins when ids are duplicated."""
        mapping: dict[str, GraphNode] = {}
        for node in self.nodes:
            mapping.setdefault(node.id, node)
        return mapping

    def find_nodes(self, node_type: str) -> list[GraphNode]:
        return [n for n in self.nodes if n.type == node_type]


def outgoing_index(edges: list[GraphEdge]) -> dict[str, list[GraphEdge]]:
    """Group edges by source, preserving edge order."""
    index: dict[str, list[GraphEdge]] = {}
    for edge in edges:
        index.setdefault(edge.source, []).append(edge)
    return index
