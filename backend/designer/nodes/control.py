"""Control-flow nodes: IfElse, Loop, Parallel, Group.

IfElse and Loop lower to a single structural step; the compiler walks the
edges leaving their conditional/loop ports and hands the compiled children
back through ``attach``. Parallel and Group have no step representation.
"""
from .base import (
    BaseNode, ConfigType, FieldSpec, NodeCategory, PassthroughNode,
    PortSpec, PortType, MULTI_INPUT, on_failure_field, timeout_field,
    validate_against_schema,
)
from .registry import NodeRegistry
from ..config import settings
from ..engine.steps import Condition, LoopSpec, StepNode, StepType, LOOP_TYPES

TRUE_HANDLE = "true"
FALSE_HANDLE = "false"
BODY_HANDLE = "body"


@NodeRegistry.register("ifElse")
class IfElseNode(BaseNode):
    CATEGORY = NodeCategory.CONTROL
    DISPLAY_NAME = "If / Else"
    DESCRIPTION = "Branch on a condition"

    @classmethod
    def OUTPUT_PORTS(cls):
        return [
            PortSpec(TRUE_HANDLE, "True", PortType.CONDITIONAL),
            PortSpec(FALSE_HANDLE, "False", PortType.CONDITIONAL),
        ]

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "condition": FieldSpec(ConfigType.STRING, "Condition", required=True),
            "trueLabel": FieldSpec(ConfigType.STRING, "True branch label"),
            "falseLabel": FieldSpec(ConfigType.STRING, "False branch label"),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"condition": "", "trueLabel": "True", "falseLabel": "False",
                "timeout": 30000, "onFailure": "stop"}

    def lower(self, node):
        return [StepNode(
            id=node.id,
            type=StepType.CONDITION,
            description=self.describe(node),
            condition=Condition(expression=node.config.get("condition") or "true"),
        )]

    def attach(self, step, handle, children):
        if handle == TRUE_HANDLE:
            step.condition.then_steps.extend(children)
        elif handle == FALSE_HANDLE:
            # elseSteps stays absent unless the false branch produced steps
            if children:
                step.condition.else_steps = (step.condition.else_steps or []) + children
        else:
            super().attach(step, handle, children)

    def lift(self, step):
        config = {**self.DEFAULT_CONFIG(), "condition": step.condition.expression}
        return config, "Condition"

    def instruction(self, config, render):
        return f"Check condition: {config.get('condition') or 'true'}"


@NodeRegistry.register("loop")
class LoopNode(BaseNode):
    CATEGORY = NodeCategory.CONTROL
    DISPLAY_NAME = "Loop"
    DESCRIPTION = "Repeat the body a number of times, while a condition holds, or per item"

    @classmethod
    def OUTPUT_PORTS(cls):
        return [
            PortSpec(BODY_HANDLE, "Body", PortType.LOOP),
            PortSpec("out", "Output"),
        ]

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "type": FieldSpec(ConfigType.STRING, "Loop type", required=True, choices=list(LOOP_TYPES)),
            "count": FieldSpec(ConfigType.NUMBER, "Iterations", minimum=1, maximum=1000),
            "whileCondition": FieldSpec(ConfigType.STRING, "While condition"),
            "forEachCollection": FieldSpec(ConfigType.STRING, "Collection"),
            "itemVariable": FieldSpec(ConfigType.STRING, "Item variable"),
            "maxIterations": FieldSpec(ConfigType.NUMBER, "Max iterations", minimum=1, maximum=1000),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"type": "count", "count": 3, "maxIterations": settings.default_max_iterations,
                "timeout": 30000, "onFailure": "stop"}

    def validate(self, config):
        result = validate_against_schema(config, self.CONFIG_SCHEMA())
        loop_type = config.get("type")
        required = {
            "count": ("count", "Iterations"),
            "while": ("whileCondition", "While condition"),
            "forEach": ("forEachCollection", "Collection"),
        }.get(loop_type)
        if required and config.get(required[0]) in (None, ""):
            result.errors.append(f"{required[1]} is required for a {loop_type} loop")
        return result

    def lower(self, node):
        cfg = node.config
        loop_type = cfg.get("type") or cfg.get("loopType")
        if loop_type not in LOOP_TYPES:
            loop_type = "count"
        try:
            max_iterations = int(cfg.get("maxIterations") or settings.default_max_iterations)
        except (TypeError, ValueError):
            max_iterations = settings.default_max_iterations
        spec = LoopSpec(type=loop_type, max_iterations=max_iterations)
        if loop_type == "count":
            count = cfg.get("count")
            spec.count = count if isinstance(count, int) and not isinstance(count, bool) else None
        elif loop_type == "while":
            spec.condition = cfg.get("whileCondition")
        else:
            spec.collection = cfg.get("forEachCollection")
            spec.item_var = cfg.get("itemVariable")
        return [StepNode(id=node.id, type=StepType.LOOP,
                         description=self.describe(node), loop=spec)]

    def attach(self, step, handle, children):
        if handle != BODY_HANDLE:
            super().attach(step, handle, children)
        step.loop.body.extend(children)

    def lift(self, step):
        loop = step.loop
        config = {**self.DEFAULT_CONFIG(), "type": loop.type, "maxIterations": loop.max_iterations}
        if loop.type == "count":
            config["count"] = loop.count
        else:
            config.pop("count", None)
        if loop.condition is not None:
            config["whileCondition"] = loop.condition
        if loop.collection is not None:
            config["forEachCollection"] = loop.collection
        if loop.item_var is not None:
            config["itemVariable"] = loop.item_var
        return config, "Loop"

    def instruction(self, config, render):
        loop_type = config.get("type") or config.get("loopType") or "count"
        if loop_type == "count":
            return f"Repeat {config.get('count') or 1} times"
        if loop_type == "forEach":
            return f"Repeat for each item in {render(config.get('forEachCollection'))}"
        return f"Repeat while {config.get('whileCondition') or 'false'}"


@NodeRegistry.register("parallel")
class ParallelNode(PassthroughNode):
    """Branches are flattened into sequential steps by the compiler."""

    CATEGORY = NodeCategory.CONTROL
    DISPLAY_NAME = "Parallel"
    DESCRIPTION = "Run several branches side by side"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "branches": FieldSpec(ConfigType.NUMBER, "Branches", required=True, minimum=2, maximum=10),
            "waitAll": FieldSpec(ConfigType.BOOLEAN, "Wait for all branches"),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"branches": 2, "waitAll": True, "timeout": 30000, "onFailure": "stop"}


@NodeRegistry.register("group")
class GroupNode(PassthroughNode):
    CATEGORY = NodeCategory.CONTROL
    DISPLAY_NAME = "Group"
    DESCRIPTION = "Visual container for related nodes"
    EXECUTABLE = False

    @classmethod
    def INPUT_PORTS(cls):
        return list(MULTI_INPUT)

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "label": FieldSpec(ConfigType.STRING, "Group label"),
            "collapsed": FieldSpec(ConfigType.BOOLEAN, "Collapsed"),
            "color": FieldSpec(ConfigType.STRING, "Background color"),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"label": "", "collapsed": False, "color": "#e3f2fd"}
