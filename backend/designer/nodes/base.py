"""Base node descriptor abstraction, port and config-schema definitions."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ..engine.graph import GraphNode
from ..engine.steps import Action, StepNode, StepType


class NodeCategory(str, Enum):
    SPECIAL = "special"
    ACTION = "action"
    VALIDATION = "validation"
    CONTROL = "control"
    DATA = "data"


class PortType(str, Enum):
    DEFAULT = "default"
    CONDITIONAL = "conditional"
    LOOP = "loop"


class ConfigType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"


@dataclass
class PortSpec:
    id: str
    label: str
    port_type: PortType = PortType.DEFAULT
    max_connections: int | None = None


@dataclass
class FieldSpec:
    dtype: ConfigType
    title: str
    required: bool = False
    minimum: float | None = None
    maximum: float | None = None
    choices: list[Any] | None = None


@dataclass
class ConfigValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class NodeDefinition:
    """Serializable node definition sent to the editor."""
    node_type: str
    display_name: str
    category: NodeCategory
    description: str
    inputs: list[PortSpec]
    outputs: list[PortSpec]
    default_config: dict[str, Any]
    config_schema: dict[str, FieldSpec]
    executable: bool


SINGLE_INPUT = [PortSpec("in", "Input", max_connections=1)]
MULTI_INPUT = [PortSpec("in", "Input")]
SINGLE_OUTPUT = [PortSpec("out", "Output")]
NO_PORTS: list[PortSpec] = []

ON_FAILURE_CHOICES = ["stop", "skip", "retry"]


def timeout_field() -> FieldSpec:
    return FieldSpec(ConfigType.NUMBER, "Timeout (ms)", minimum=1000, maximum=300000)


def on_failure_field() -> FieldSpec:
    return FieldSpec(ConfigType.STRING, "On failure", choices=ON_FAILURE_CHOICES)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_against_schema(config: dict[str, Any], schema: dict[str, FieldSpec]) -> ConfigValidation:
    """Generic check: required fields, numeric bounds, enumerated choices."""
    result = ConfigValidation()
    for key, spec in schema.items():
        value = config.get(key)
        if spec.required and _is_blank(value):
            result.errors.append(f"{spec.title} is required")
            continue
        if value is None:
            continue
        if _is_number(value):
            if spec.minimum is not None and value < spec.minimum:
                result.errors.append(f"{spec.title} must be at least {spec.minimum:g}")
            if spec.maximum is not None and value > spec.maximum:
                result.errors.append(f"{spec.title} must be at most {spec.maximum:g}")
        if spec.choices and value not in spec.choices and not _is_blank(value):
            result.warnings.append(
                f"{spec.title} should be one of {', '.join(map(str, spec.choices))}"
            )
    return result


class BaseNode(ABC):
    """Abstract descriptor for one node type in the designer catalog."""

    CATEGORY: NodeCategory = NodeCategory.ACTION
    DISPLAY_NAME: str = ""
    DESCRIPTION: str = ""
    # Non-executable nodes are skipped by the execution planner.
    EXECUTABLE: bool = True

    @classmethod
    def INPUT_PORTS(cls) -> list[PortSpec]:
        return list(SINGLE_INPUT)

    @classmethod
    def OUTPUT_PORTS(cls) -> list[PortSpec]:
        return list(SINGLE_OUTPUT)

    @classmethod
    @abstractmethod
    def CONFIG_SCHEMA(cls) -> dict[str, FieldSpec]:
        ...

    @classmethod
    @abstractmethod
    def DEFAULT_CONFIG(cls) -> dict[str, Any]:
        ...

    @abstractmethod
    def lower(self, node: GraphNode) -> list[StepNode]:
        """Convert one graph node into zero or more step fragments."""
        ...

    def validate(self, config: dict[str, Any]) -> ConfigValidation:
        return validate_against_schema(config, self.CONFIG_SCHEMA())

    def attach(self, step: StepNode, handle: str, children: list[StepNode]) -> None:
        """Place compiled children of a structural output port into ``step``."""
        raise ValueError(f"{type(self).__name__} has no structural port '{handle}'")

    def lift(self, step: StepNode) -> tuple[dict[str, Any], str]:
        """Rebuild (config, label) for this node type from a compiled step."""
        raise NotImplementedError(f"{type(self).__name__} cannot be rebuilt from a step")

    def describe(self, node: GraphNode) -> str:
        return node.data.label or self.DISPLAY_NAME

    def instruction(self, config: dict[str, Any], render: Callable[[Any], str]) -> str | None:
        """Plain-language step text for the execution engine.

        ``render`` turns a config value into text with ``${name}`` variable
        references substituted. None means "use the node label".
        """
        return None

    @classmethod
    def structural_handles(cls) -> set[str]:
        return {p.id for p in cls.OUTPUT_PORTS() if p.port_type != PortType.DEFAULT}

    @classmethod
    def get_definition(cls, node_type: str) -> NodeDefinition:
        return NodeDefinition(
            node_type=node_type,
            display_name=cls.DISPLAY_NAME or cls.__name__,
            category=cls.CATEGORY,
            description=cls.DESCRIPTION or cls.__doc__ or "",
            inputs=cls.INPUT_PORTS(),
            outputs=cls.OUTPUT_PORTS(),
            default_config=cls.DEFAULT_CONFIG(),
            config_schema=cls.CONFIG_SCHEMA(),
            executable=cls.EXECUTABLE,
        )


class ActionNode(BaseNode):
    """Node that lowers to exactly one ``action`` step."""

    @abstractmethod
    def to_action(self, config: dict[str, Any]) -> Action:
        ...

    def lower(self, node: GraphNode) -> list[StepNode]:
        action = self.to_action(node.config)
        return [StepNode(
            id=node.id,
            type=StepType.ACTION,
            description=self.describe(node),
            action=action,
        )]


class PassthroughNode(BaseNode):
    """Node with no representation in the step program."""

    def lower(self, node: GraphNode) -> list[StepNode]:
        return []
