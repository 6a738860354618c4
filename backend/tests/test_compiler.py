"""Tests for graph <-> step program compilation."""
import yaml

from designer.config import settings
from designer.engine.compiler import (
    CompileOptions, export_program, flow_to_step_program, import_program,
    program_preview, step_program_to_flow,
)
from designer.engine.graph import VariableDefinition

from conftest import make_edge, make_flow, make_node


def _load(result):
    return yaml.safe_load(result.content)


def _nested_conditions(levels):
    """Program text with ``levels`` conditions nested through thenSteps."""
    step = "{id: leaf, action: {type: click, target: '#x'}}"
    for i in range(levels):
        step = f"{{id: c{i}, condition: {{expression: 'true', thenSteps: [{step}]}}}}"
    return f"steps: [{step}]\n"


class TestForwardCompile:
    def test_linear_step_count(self, linear_flow):
        result = flow_to_step_program(linear_flow)
        assert result.errors == []
        assert result.step_count == 5
        doc = _load(result)
        assert [s["id"] for s in doc["steps"]] == ["nav", "user", "pass", "submit", "check"]
        assert doc["steps"][0]["action"] == {"type": "navigate", "target": "https://example.com/login"}

    def test_document_key_order(self, linear_flow):
        doc = _load(flow_to_step_program(linear_flow))
        assert list(doc) == ["id", "name", "description", "steps", "variables", "config",
                             "createdAt", "updatedAt"]
        assert doc["variables"] == {"username": "alice"}
        assert doc["config"]["maxLoopIterations"] == 50

    def test_metadata_optional(self, linear_flow):
        doc = _load(flow_to_step_program(linear_flow, CompileOptions(include_metadata=False)))
        assert "createdAt" not in doc and "updatedAt" not in doc

    def test_indent_option(self, linear_flow):
        content = flow_to_step_program(linear_flow, CompileOptions(indent=4)).content
        assert "\n    - id: nav" in content or "\n-   id: nav" in content

    def test_branches(self, branch_flow):
        result = flow_to_step_program(branch_flow)
        [cond] = _load(result)["steps"]
        assert cond["type"] == "condition"
        assert cond["condition"]["expression"] == "${loggedIn} == true"
        assert [s["id"] for s in cond["condition"]["thenSteps"]] == ["yes"]
        assert [s["id"] for s in cond["condition"]["elseSteps"]] == ["no"]
        assert result.step_count == 3

    def test_else_steps_omitted_without_false_branch(self, branch_flow):
        branch_flow.edges = [e for e in branch_flow.edges if e.source_handle != "false"]
        branch_flow.nodes = [n for n in branch_flow.nodes if n.id != "no"]
        [cond] = _load(flow_to_step_program(branch_flow))["steps"]
        assert "elseSteps" not in cond["condition"]
        assert "elseSteps:" not in flow_to_step_program(branch_flow).content

    def test_diamond_appears_in_both_branches(self, branch_flow):
        branch_flow.edges.append(make_edge("no", "end"))
        branch_flow.nodes.insert(-1, make_node("after", "click", "After", target="#after"))
        branch_flow.edges = [e for e in branch_flow.edges if e.target != "end"]
        branch_flow.edges += [make_edge("yes", "after"), make_edge("no", "after"),
                              make_edge("after", "end")]
        [cond] = _load(flow_to_step_program(branch_flow))["steps"]
        assert [s["id"] for s in cond["condition"]["thenSteps"]] == ["yes", "after"]
        assert [s["id"] for s in cond["condition"]["elseSteps"]] == ["no", "after"]

    def test_loop_body_and_continuation(self, loop_flow):
        result = flow_to_step_program(loop_flow)
        steps = _load(result)["steps"]
        assert [s["id"] for s in steps] == ["nav", "loop", "check"]
        loop = steps[1]["loop"]
        assert loop["type"] == "count" and loop["count"] == 3 and loop["maxIterations"] == 10
        assert [s["id"] for s in loop["body"]] == ["next", "more"]
        assert result.step_count == 5

    def test_transparent_nodes_skipped(self, linear_flow):
        linear_flow.nodes.append(make_node("note", "comment", content="hi"))
        linear_flow.nodes.append(make_node("grp", "group"))
        linear_flow.edges = [e for e in linear_flow.edges if e.source != "pass"]
        linear_flow.edges += [make_edge("pass", "grp"), make_edge("grp", "submit")]
        result = flow_to_step_program(linear_flow)
        assert result.step_count == 5
        assert "grp" not in result.content

    def test_parallel_flattened_with_warning(self):
        nodes = [
            make_node("start", "start"),
            make_node("par", "parallel", branches=2),
            make_node("a", "click", target="#a"),
            make_node("b", "click", target="#b"),
            make_node("end", "end"),
        ]
        edges = [make_edge("start", "par"), make_edge("par", "a"), make_edge("par", "b"),
                 make_edge("a", "end"), make_edge("b", "end")]
        result = flow_to_step_program(make_flow(nodes, edges))
        assert [s["id"] for s in _load(result)["steps"]] == ["a", "b"]
        assert any("sequentially" in w for w in result.warnings)

    def test_invalid_flow_not_compiled(self, linear_flow):
        linear_flow.edges.append(make_edge("submit", "user"))
        result = flow_to_step_program(linear_flow)
        assert result.content == ""
        assert result.step_count == 0
        assert any("Cycle detected" in e for e in result.errors)

    def test_missing_start_not_compiled(self):
        flow = make_flow([make_node("c", "click", target="#a")], [])
        result = flow_to_step_program(flow)
        assert result.content == "" and result.errors


class TestReverseCompile:
    def test_malformed_yaml(self):
        result = step_program_to_flow("steps: [unclosed", flow_name="Broken")
        assert result.errors
        assert result.flow.name == "Broken"
        assert result.flow.nodes == [] and result.flow.edges == []

    def test_wrong_shape(self):
        result = step_program_to_flow("- just\n- a list\n")
        assert result.errors and result.flow.nodes == []

    def test_empty_document(self):
        result = step_program_to_flow("")
        assert result.errors == ["Program content is empty"]

    def test_rebuilds_nodes_from_steps(self):
        content = """
id: prog-1
name: Search
steps:
  - id: s1
    type: action
    description: Open home
    action: {type: navigate, target: "https://shop.test"}
  - id: s2
    type: action
    description: Check title
    action: {type: assert, target: h1, value: 'text equals "Shop"'}
  - id: s3
    type: action
    description: Cart
    action: {type: assert, target: "cart is empty", value: ai}
  - id: s4
    type: variable
    description: Price
    variable: {operation: extract, name: price, source: .price}
variables:
  query: shoes
  limit: 5
  strict: true
"""
        result = step_program_to_flow(content)
        assert result.errors == []
        flow = result.flow
        assert [n.type for n in flow.nodes] == [
            "start", "navigate", "assertText", "aiAssert", "extractData", "end",
        ]
        by_id = flow.node_map()
        assert by_id["s1"].config["url"] == "https://shop.test"
        assert by_id["s2"].config["operator"] == "equals"
        assert by_id["s2"].config["text"] == "Shop"
        assert by_id["s4"].config["variable"] == "price"
        assert by_id["s1"].data.description == "Open home"
        assert {v.name: v.type for v in flow.variables} == {
            "query": "string", "limit": "number", "strict": "boolean",
        }
        assert len(flow.edges) == 5

    def test_nested_wiring(self):
        content = """
id: p
name: Nested
steps:
  - id: c
    type: condition
    description: check
    condition:
      expression: "true"
      thenSteps:
        - {id: t1, type: action, description: a, action: {type: click, target: "#a"}}
        - {id: t2, type: action, description: b, action: {type: click, target: "#b"}}
      elseSteps:
        - {id: f1, type: action, description: c, action: {type: hover, target: "#c"}}
  - id: after
    type: action
    description: after
    action: {type: wait, target: "", value: "200"}
"""
        flow = step_program_to_flow(content).flow
        wiring = {(e.source, e.target, e.source_handle) for e in flow.edges}
        start = flow.find_nodes("start")[0].id
        end = flow.find_nodes("end")[0].id
        assert wiring == {
            (start, "c", None),
            ("c", "t1", "true"),
            ("t1", "t2", None),
            ("c", "f1", "false"),
            ("c", "after", None),
            ("after", end, None),
        }
        assert flow.node_map()["after"].config["duration"] == 200

    def test_unrecognized_step_becomes_click(self):
        result = step_program_to_flow("steps:\n  - {id: x, description: mystery}\n")
        assert [n.type for n in result.flow.nodes] == ["start", "click", "end"]
        assert result.warnings

    def test_duplicate_step_ids_get_fresh_node_ids(self):
        content = "steps:\n  - {id: a, action: {type: click, target: '#1'}}\n" \
                  "  - {id: a, action: {type: click, target: '#2'}}\n"
        flow = step_program_to_flow(content).flow
        assert len({n.id for n in flow.nodes}) == len(flow.nodes) == 4

    def test_nesting_past_depth_cap_is_an_error(self):
        original = settings.max_traversal_depth
        settings.max_traversal_depth = 3
        try:
            shallow = step_program_to_flow(_nested_conditions(3))
            deep = step_program_to_flow(_nested_conditions(4), flow_name="Deep")
        finally:
            settings.max_traversal_depth = original
        assert shallow.errors == []
        assert len(shallow.flow.find_nodes("ifElse")) == 3
        assert deep.flow.name == "Deep" and deep.flow.nodes == []
        assert any("nested deeper than 3" in e for e in deep.errors)

    def test_very_deep_nesting_does_not_raise(self):
        result = step_program_to_flow(_nested_conditions(400))
        assert result.errors
        assert result.flow.nodes == [] and result.flow.edges == []


class TestRoundTrip:
    def test_linear_round_trip(self, linear_flow):
        rebuilt = step_program_to_flow(flow_to_step_program(linear_flow).content).flow
        assert len(rebuilt.edges) == len(linear_flow.edges)
        assert len(rebuilt.variables) == len(linear_flow.variables)
        assert [n.type for n in rebuilt.nodes] == [n.type for n in linear_flow.nodes]

    def test_loop_round_trip(self, loop_flow):
        rebuilt = step_program_to_flow(flow_to_step_program(loop_flow).content).flow
        assert len(rebuilt.edges) == len(loop_flow.edges)
        assert rebuilt.variables[0].default_value == 3
        again = flow_to_step_program(rebuilt)
        assert again.errors == []
        assert again.step_count == 5

    def test_branch_round_trip(self, branch_flow):
        branch_flow.variables = [VariableDefinition(name="loggedIn", default_value=True)]
        rebuilt = step_program_to_flow(flow_to_step_program(branch_flow).content).flow
        assert len(rebuilt.edges) == len(branch_flow.edges) == 4
        assert len(rebuilt.variables) == 1
        assert {e.source_handle for e in rebuilt.edges} == {None, "true", "false"}
        again = flow_to_step_program(rebuilt)
        assert again.errors == []
        assert again.step_count == 3

    def test_merge_diamond_round_trip(self):
        nodes = [
            make_node("start", "start"),
            make_node("cond", "ifElse", "Has items?", condition="${count} > 0"),
            make_node("a", "click", "Open cart", target="#cart"),
            make_node("b", "navigate", "Browse", url="https://shop.test"),
            make_node("c", "assertExists", "Header", target="header"),
            make_node("end", "end"),
        ]
        edges = [
            make_edge("start", "cond"),
            make_edge("cond", "a", "true"),
            make_edge("cond", "b", "false"),
            make_edge("a", "c"),
            make_edge("b", "c"),
            make_edge("c", "end"),
        ]
        flow = make_flow(nodes, edges, [VariableDefinition(name="count", default_value=0)])
        rebuilt = step_program_to_flow(flow_to_step_program(flow).content).flow
        assert len(rebuilt.edges) == 6
        assert len(rebuilt.variables) == 1
        # The merge node is laid out once per branch.
        assert len(rebuilt.find_nodes("assertExists")) == 2

    def test_both_arms_into_end_lose_one_edge(self):
        nodes = [
            make_node("start", "start"),
            make_node("cond", "ifElse", condition="true"),
            make_node("a", "click", target="#a"),
            make_node("b", "click", target="#b"),
            make_node("end", "end"),
        ]
        edges = [
            make_edge("start", "cond"),
            make_edge("cond", "a", "true"),
            make_edge("cond", "b", "false"),
            make_edge("a", "end"),
            make_edge("b", "end"),
        ]
        rebuilt = step_program_to_flow(flow_to_step_program(make_flow(nodes, edges)).content).flow
        assert len(rebuilt.edges) == 4
        end = rebuilt.find_nodes("end")[0].id
        assert [e.source for e in rebuilt.edges if e.target == end] == ["b"]

    def test_comment_nodes_dropped(self, linear_flow):
        linear_flow.nodes.append(make_node("note", "comment", content="docs"))
        rebuilt = step_program_to_flow(flow_to_step_program(linear_flow).content).flow
        assert len(rebuilt.nodes) == len(linear_flow.nodes) - 1


class TestFileHelpers:
    def test_export_header(self, linear_flow):
        content = export_program(linear_flow)
        lines = content.splitlines()
        assert lines[0] == "# Test flow"
        assert lines[1] == "# Auto-generated by Visual Designer"
        assert lines[2].startswith("# Generated at: ")
        assert yaml.safe_load(content)["name"] == "Test flow"

    def test_import(self, linear_flow):
        flow = import_program(export_program(linear_flow), flow_name="Imported")
        assert flow is not None and flow.name == "Imported"
        assert import_program("{{{") is None

    def test_preview_truncates(self, linear_flow):
        preview = program_preview(linear_flow, line_count=3)
        assert len(preview.split("\n")) == 4
        assert preview.endswith("\n...")

    def test_preview_short_program(self):
        flow = make_flow([make_node("start", "start"), make_node("end", "end")],
                         [make_edge("start", "end")],
                         [VariableDefinition(name="x", default_value=1)])
        preview = program_preview(flow, line_count=500)
        assert not preview.endswith("...")
