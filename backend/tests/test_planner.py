"""Tests for execution planning: order, context flags, step text."""
from designer.config import settings
from designer.engine.graph import VariableDefinition
from designer.engine.planner import (
    build_execution_order, describe_step, prepare_execution, substitute_variables,
)

from conftest import make_edge, make_flow, make_node


class TestExecutionOrder:
    def test_linear_order(self, linear_flow):
        order = build_execution_order(linear_flow.nodes, linear_flow.edges)
        assert [s.node_id for s in order] == ["nav", "user", "pass", "submit", "check"]
        assert [s.depth for s in order] == [1, 2, 3, 4, 5]
        assert order[0].parent_id == "start"
        assert not any(s.in_loop or s.in_condition for s in order)

    def test_loop_context(self, loop_flow):
        order = {s.node_id: s for s in build_execution_order(loop_flow.nodes, loop_flow.edges)}
        assert list(order) == ["nav", "loop", "next", "more", "check"]
        assert order["next"].in_loop and order["next"].source_handle == "body"
        assert order["more"].in_loop
        assert not order["loop"].in_loop
        assert not order["check"].in_loop

    def test_condition_branches(self, branch_flow):
        order = {s.node_id: s for s in build_execution_order(branch_flow.nodes, branch_flow.edges)}
        assert order["yes"].in_condition and order["yes"].condition_branch == "true"
        assert order["no"].in_condition and order["no"].condition_branch == "false"
        assert order["cond"].condition_branch is None

    def test_flags_are_monotonic(self):
        nodes = [
            make_node("start", "start"),
            make_node("loop", "loop", type="count", count=2),
            make_node("cond", "ifElse", condition="x"),
            make_node("deep", "click", target="#deep"),
            make_node("end", "end"),
        ]
        edges = [make_edge("start", "loop"), make_edge("loop", "cond", "body"),
                 make_edge("cond", "deep", "true"), make_edge("deep", "end")]
        order = {s.node_id: s for s in build_execution_order(nodes, edges)}
        assert order["deep"].in_loop and order["deep"].in_condition
        assert order["deep"].condition_branch == "true"

    def test_shared_node_emitted_once(self, branch_flow):
        branch_flow.edges.append(make_edge("no", "end"))
        order = build_execution_order(branch_flow.nodes, branch_flow.edges)
        ids = [s.node_id for s in order]
        assert len(ids) == len(set(ids))
        assert "end" not in ids

    def test_missing_start_gives_empty_plan(self):
        nodes = [make_node("c", "click", target="#a")]
        assert build_execution_order(nodes, []) == []

    def test_invalid_graph_gives_empty_plan(self, linear_flow):
        linear_flow.edges.append(make_edge("submit", "nav"))
        assert build_execution_order(linear_flow.nodes, linear_flow.edges) == []

    def test_nesting_cap(self, loop_flow):
        original = settings.max_traversal_depth
        settings.max_traversal_depth = 0
        try:
            order = build_execution_order(loop_flow.nodes, loop_flow.edges)
        finally:
            settings.max_traversal_depth = original
        assert [s.node_id for s in order] == ["nav", "loop", "check"]


class TestStepText:
    def test_substitution(self):
        assert substitute_variables("Hi ${name}!", {"name": "Ann"}) == "Hi Ann!"
        assert substitute_variables("Hi ${who}", {}) == "Hi ${who}"
        assert substitute_variables(None, {}) == ""

    def test_describe_step(self, linear_flow):
        user = linear_flow.node_map()["user"]
        assert describe_step(user, linear_flow.variables) == 'Type "alice" into #user'

    def test_describe_falls_back_to_label(self):
        node = make_node("p", "parallel", "Fan out")
        assert describe_step(node, []) == "Fan out"

    def test_describe_loop_and_wait(self):
        assert describe_step(make_node("l", "loop", type="count", count=4), []) == "Repeat 4 times"
        assert describe_step(make_node("w", "wait", duration=250), []) == "Wait 250 milliseconds"


class TestPrepareExecution:
    def test_plan_with_tasks(self, linear_flow):
        plan = prepare_execution(linear_flow)
        assert plan.valid
        assert [t.id for t in plan.tasks] == [s.node_id for s in plan.steps]
        assert plan.tasks[0].original_text == "Open https://example.com/login"
        assert all(t.status == "pending" for t in plan.tasks)

    def test_no_executable_nodes(self):
        flow = make_flow([make_node("start", "start"), make_node("end", "end")],
                         [make_edge("start", "end")])
        plan = prepare_execution(flow)
        assert not plan.valid
        assert plan.errors == ["Flow has no executable nodes"]

    def test_invalid_flow(self):
        flow = make_flow([], [], [VariableDefinition(name="x")])
        plan = prepare_execution(flow)
        assert not plan.valid and plan.errors
