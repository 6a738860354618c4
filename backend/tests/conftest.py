"""Shared test fixtures for flow designer backend tests."""
import sys
from pathlib import Path

import pytest

# Ensure designer package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from designer.engine.graph import FlowGraph, GraphEdge, GraphNode, NodeData, VariableDefinition


def make_node(node_id: str, node_type: str, label: str = "", **config) -> GraphNode:
    return GraphNode(id=node_id, type=node_type, data=NodeData(label=label, config=config))


def make_edge(source: str, target: str, handle: str | None = None) -> GraphEdge:
    suffix = f"-{handle}" if handle else ""
    return GraphEdge(id=f"e-{source}-{target}{suffix}", source=source, target=target,
                     source_handle=handle)


def make_flow(nodes, edges, variables=None, flow_id="flow-1", name="Test flow") -> FlowGraph:
    return FlowGraph(id=flow_id, name=name, nodes=list(nodes), edges=list(edges),
                     variables=list(variables or []))


@pytest.fixture(scope="session", autouse=True)
def register_nodes():
    """Discover and register all node types once per test session."""
    from designer.nodes.registry import NodeRegistry
    NodeRegistry.discover("designer.nodes")


@pytest.fixture
def linear_flow():
    """start -> navigate -> input -> input -> click -> assertExists -> end."""
    nodes = [
        make_node("start", "start"),
        make_node("nav", "navigate", "Open login", url="https://example.com/login"),
        make_node("user", "input", "Type user", target="#user", value="${username}"),
        make_node("pass", "input", "Type password", target="#pass", value="secret"),
        make_node("submit", "click", "Submit", target="button[type=submit]"),
        make_node("check", "assertExists", "Dashboard shown", target="#dashboard", state="visible"),
        make_node("end", "end"),
    ]
    ids = [n.id for n in nodes]
    edges = [make_edge(a, b) for a, b in zip(ids, ids[1:])]
    variables = [VariableDefinition(name="username", default_value="alice")]
    return make_flow(nodes, edges, variables)


@pytest.fixture
def branch_flow():
    """start -> ifElse; true -> click; false -> wait. Branch ends are not merged."""
    nodes = [
        make_node("start", "start"),
        make_node("cond", "ifElse", "Logged in?", condition="${loggedIn} == true"),
        make_node("yes", "click", "Logout", target="#logout"),
        make_node("no", "wait", "Pause", duration=500),
        make_node("end", "end"),
    ]
    edges = [
        make_edge("start", "cond"),
        make_edge("cond", "yes", "true"),
        make_edge("cond", "no", "false"),
        make_edge("yes", "end"),
    ]
    return make_flow(nodes, edges)


@pytest.fixture
def loop_flow():
    """start -> navigate -> loop{body: click -> click} -> assertText -> end."""
    nodes = [
        make_node("start", "start"),
        make_node("nav", "navigate", "Open list", url="https://example.com/items"),
        make_node("loop", "loop", "Page through", type="count", count=3, maxIterations=10),
        make_node("next", "click", "Next page", target=".next"),
        make_node("more", "click", "Load more", target=".more"),
        make_node("check", "assertText", "Footer", target="footer", operator="contains", text="End"),
        make_node("end", "end"),
    ]
    edges = [
        make_edge("start", "nav"),
        make_edge("nav", "loop"),
        make_edge("loop", "next", "body"),
        make_edge("next", "more"),
        make_edge("loop", "check", "out"),
        make_edge("check", "end"),
    ]
    return make_flow(nodes, edges, [VariableDefinition(name="pages", type="number", default_value=3)])
