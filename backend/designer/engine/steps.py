"""Step program IR: the nested, serializable form compiled from a flow graph.

The dict shape produced by ``program_to_dict`` is the wire format consumed by
the execution engine and by persistence. Keys are camelCase, optional fields
are omitted rather than written as null, and ``elseSteps`` only appears when
the false branch has steps.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import yaml


class StepType(str, Enum):
    ACTION = "action"
    CONDITION = "condition"
    LOOP = "loop"
    VARIABLE = "variable"


ACTION_TYPES = ("click", "input", "assert", "wait", "navigate", "scroll", "hover", "drag")
LOOP_TYPES = ("count", "while", "forEach")
VARIABLE_OPERATIONS = ("set", "extract")

# Execution engine defaults written into every program's ``config`` block.
DEFAULT_PROGRAM_CONFIG: dict[str, Any] = {
    "maxLoopIterations": 50,
    "maxNestedDepth": 3,
    "loopIterationTimeout": 30000,
    "totalTimeout": 300000,
    "conditionEvaluationTimeout": 10000,
    "defaultConditionFallback": False,
    "enablePathOptimization": True,
    "trackPathStatistics": True,
    "enableDebugLogging": False,
    "saveVariableSnapshots": False,
}


class ProgramParseError(ValueError):
    """Raised when a serialized step program does not match the IR shape."""


@dataclass
class Action:
    type: str
    target: str
    value: str | None = None


@dataclass
class Condition:
    expression: str
    then_steps: list["StepNode"] = field(default_factory=list)
    else_steps: list["StepNode"] | None = None


@dataclass
class LoopSpec:
    type: str
    body: list["StepNode"] = field(default_factory=list)
    max_iterations: int = 50
    count: int | None = None
    condition: str | None = None
    collection: str | None = None
    item_var: str | None = None


@dataclass
class VariableOp:
    operation: str
    name: str
    value: Any = None
    source: str | None = None


@dataclass
class StepNode:
    id: str
    type: StepType
    description: str
    action: Action | None = None
    condition: Condition | None = None
    loop: LoopSpec | None = None
    variable: VariableOp | None = None

    def children(self) -> list["StepNode"]:
        if self.condition:
            return self.condition.then_steps + (self.condition.else_steps or [])
        if self.loop:
            return list(self.loop.body)
        return []


@dataclass
class StepProgram:
    id: str
    name: str
    description: str = ""
    steps: list[StepNode] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_PROGRAM_CONFIG))
    created_at: int | None = None
    updated_at: int | None = None


def count_steps(steps: list[StepNode]) -> int:
    """Count every step in the tree, nested branch and body steps included."""
    return sum(1 + count_steps(step.children()) for step in steps)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def step_to_dict(step: StepNode) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": step.id,
        "type": step.type.value,
        "description": step.description,
    }
    if step.action is not None:
        action: dict[str, Any] = {"type": step.action.type, "target": step.action.target}
        if step.action.value is not None:
            action["value"] = step.action.value
        out["action"] = action
    if step.condition is not None:
        cond: dict[str, Any] = {
            "expression": step.condition.expression,
            "thenSteps": [step_to_dict(s) for s in step.condition.then_steps],
        }
        if step.condition.else_steps:
            cond["elseSteps"] = [step_to_dict(s) for s in step.condition.else_steps]
        out["condition"] = cond
    if step.loop is not None:
        loop: dict[str, Any] = {"type": step.loop.type}
        for key, value in (
            ("count", step.loop.count),
            ("condition", step.loop.condition),
            ("collection", step.loop.collection),
            ("itemVar", step.loop.item_var),
        ):
            if value is not None:
                loop[key] = value
        loop["body"] = [step_to_dict(s) for s in step.loop.body]
        loop["maxIterations"] = step.loop.max_iterations
        out["loop"] = loop
    if step.variable is not None:
        var: dict[str, Any] = {
            "operation": step.variable.operation,
            "name": step.variable.name,
        }
        if step.variable.value is not None:
            var["value"] = step.variable.value
        if step.variable.source is not None:
            var["source"] = step.variable.source
        out["variable"] = var
    return out


def program_to_dict(program: StepProgram, include_metadata: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": program.id,
        "name": program.name,
        "description": program.description,
        "steps": [step_to_dict(s) for s in program.steps],
        "variables": dict(program.variables),
        "config": dict(program.config),
    }
    if include_metadata:
        if program.created_at is not None:
            out["createdAt"] = program.created_at
        if program.updated_at is not None:
            out["updatedAt"] = program.updated_at
    return out


class _ProgramDumper(yaml.SafeDumper):
    """SafeDumper that never emits anchors/aliases for shared objects."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def dump_program(program: StepProgram, indent: int = 2, include_metadata: bool = True) -> str:
    return yaml.dump(
        program_to_dict(program, include_metadata=include_metadata),
        Dumper=_ProgramDumper,
        indent=indent,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _require_mapping(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ProgramParseError(f"{where}: expected a mapping, got {type(value).__name__}")
    return value


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _steps_from_list(value: Any, where: str, depth: int, max_depth: int | None) -> list[StepNode]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProgramParseError(f"{where}: expected a list of steps")
    if max_depth is not None and depth > max_depth:
        raise ProgramParseError(f"{where}: steps nested deeper than {max_depth} levels")
    return [
        step_from_dict(item, f"{where}[{i}]", depth, max_depth)
        for i, item in enumerate(value)
    ]


def step_from_dict(data: Any, where: str = "step", depth: int = 0,
                   max_depth: int | None = None) -> StepNode:
    """Decode one step. Nested branch and body lists sit at ``depth + 1``."""
    raw = _require_mapping(data, where)
    step_id = raw.get("id")
    if step_id is None or str(step_id).strip() == "":
        raise ProgramParseError(f"{where}: missing step id")

    action = condition = loop = variable = None

    if raw.get("action") is not None:
        a = _require_mapping(raw["action"], f"{where}.action")
        if "type" not in a:
            raise ProgramParseError(f"{where}.action: missing type")
        action = Action(
            type=str(a["type"]),
            target=str(a.get("target") or ""),
            value=_optional_text(a.get("value")),
        )

    if raw.get("condition") is not None:
        c = _require_mapping(raw["condition"], f"{where}.condition")
        else_raw = c.get("elseSteps")
        condition = Condition(
            expression=str(c.get("expression") or "true"),
            then_steps=_steps_from_list(c.get("thenSteps"), f"{where}.condition.thenSteps",
                                        depth + 1, max_depth),
            else_steps=(
                _steps_from_list(else_raw, f"{where}.condition.elseSteps",
                                 depth + 1, max_depth)
                if else_raw is not None else None
            ),
        )

    if raw.get("loop") is not None:
        lp = _require_mapping(raw["loop"], f"{where}.loop")
        loop_type = str(lp.get("type") or "count")
        if loop_type not in LOOP_TYPES:
            raise ProgramParseError(f"{where}.loop: unknown loop type '{loop_type}'")
        count = lp.get("count")
        max_iterations = lp.get("maxIterations", DEFAULT_PROGRAM_CONFIG["maxLoopIterations"])
        try:
            count = int(count) if count is not None else None
            max_iterations = int(max_iterations)
        except (TypeError, ValueError) as e:
            raise ProgramParseError(f"{where}.loop: {e}") from e
        loop = LoopSpec(
            type=loop_type,
            body=_steps_from_list(lp.get("body"), f"{where}.loop.body", depth + 1, max_depth),
            max_iterations=max_iterations,
            count=count,
            condition=_optional_text(lp.get("condition")),
            collection=_optional_text(lp.get("collection")),
            item_var=_optional_text(lp.get("itemVar")),
        )

    if raw.get("variable") is not None:
        v = _require_mapping(raw["variable"], f"{where}.variable")
        operation = str(v.get("operation") or "")
        if operation not in VARIABLE_OPERATIONS:
            raise ProgramParseError(f"{where}.variable: unknown operation '{operation}'")
        variable = VariableOp(
            operation=operation,
            name=str(v.get("name") or ""),
            value=v.get("value"),
            source=_optional_text(v.get("source")),
        )

    declared = raw.get("type")
    if declared is not None:
        try:
            step_type = StepType(declared)
        except ValueError as e:
            raise ProgramParseError(f"{where}: unknown step type '{declared}'") from e
    elif condition is not None:
        step_type = StepType.CONDITION
    elif loop is not None:
        step_type = StepType.LOOP
    elif variable is not None:
        step_type = StepType.VARIABLE
    else:
        step_type = StepType.ACTION

    return StepNode(
        id=str(step_id),
        type=step_type,
        description=str(raw.get("description") or ""),
        action=action,
        condition=condition,
        loop=loop,
        variable=variable,
    )


def program_from_dict(data: Any, max_depth: int | None = None) -> StepProgram:
    raw = _require_mapping(data, "program")
    variables = raw.get("variables") or {}
    if not isinstance(variables, dict):
        raise ProgramParseError("program.variables: expected a mapping of name to default value")
    config = raw.get("config") or {}
    if not isinstance(config, dict):
        raise ProgramParseError("program.config: expected a mapping")
    return StepProgram(
        id=str(raw.get("id") or ""),
        name=str(raw.get("name") or ""),
        description=str(raw.get("description") or ""),
        steps=_steps_from_list(raw.get("steps"), "steps", 0, max_depth),
        variables=dict(variables),
        config={**DEFAULT_PROGRAM_CONFIG, **config},
        created_at=_optional_timestamp(raw.get("createdAt")),
        updated_at=_optional_timestamp(raw.get("updatedAt")),
    )


def _optional_timestamp(value: Any) -> int | None:
    # Epoch milliseconds; anything else is dropped and re-stamped on import.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def load_program(content: str, max_depth: int | None = None) -> StepProgram | None:
    """Parse serialized program text. Returns None for an empty document.

    ``max_depth`` bounds how deeply branch and loop bodies may nest.
    """
    try:
        data = yaml.safe_load(content)
        if data is None:
            return None
        return program_from_dict(data, max_depth=max_depth)
    except yaml.YAMLError as e:
        raise ProgramParseError(f"invalid YAML: {e}") from e
    except RecursionError as e:
        raise ProgramParseError("program is nested too deeply to parse") from e
