"""Node registry with auto-discovery."""
import copy
import importlib
import logging
import pkgutil
import secrets
import string
import time
from typing import Any

from ..engine.graph import GraphNode, NodeData
from ..engine.steps import StepNode
from .base import BaseNode, ConfigValidation, NodeCategory, NodeDefinition

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits

# Start and end are fixed anchors in the editor.
_LOCKED_TYPES = {"start", "end"}


class UnknownNodeType(KeyError):
    """Raised when a node type tag has no registered descriptor."""

    def __init__(self, node_type: str):
        self.node_type = node_type
        super().__init__(f"Unknown node type: {node_type}")

    def __str__(self) -> str:
        return self.args[0]


def generate_id(prefix: str = "node") -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


class NodeRegistry:
    """Singleton registry mapping node type strings to BaseNode subclasses."""

    _nodes: dict[str, type[BaseNode]] = {}

    @classmethod
    def register(cls, node_type: str | None = None):
        """Decorator to register a node class.

        Usage:
            @NodeRegistry.register("click")
            class ClickNode(ActionNode):
                ...
        """
        def decorator(node_cls: type[BaseNode]) -> type[BaseNode]:
            name = node_type or node_cls.__name__
            cls._nodes[name] = node_cls
            return node_cls
        return decorator

    @classmethod
    def get(cls, node_type: str) -> type[BaseNode]:
        if node_type not in cls._nodes:
            raise UnknownNodeType(node_type)
        return cls._nodes[node_type]

    @classmethod
    def has(cls, node_type: str) -> bool:
        return node_type in cls._nodes

    @classmethod
    def create(cls, node_type: str) -> BaseNode:
        return cls.get(node_type)()

    @classmethod
    def create_node(
        cls,
        node_type: str,
        position: dict[str, float],
        overrides: dict[str, Any] | None = None,
    ) -> GraphNode:
        """Build a fresh graph node carrying the descriptor's defaults."""
        node_cls = cls.get(node_type)
        locked = node_type in _LOCKED_TYPES
        node = GraphNode(
            id=generate_id(node_type),
            type=node_type,
            position=dict(position),
            data=NodeData(
                label=node_cls.DISPLAY_NAME or node_type,
                config=copy.deepcopy(node_cls.DEFAULT_CONFIG()),
                editable=not locked,
                deletable=not locked,
            ),
        )
        for key, value in (overrides or {}).items():
            if not hasattr(node, key):
                raise AttributeError(f"GraphNode has no field '{key}'")
            setattr(node, key, value)
        return node

    @classmethod
    def validate_config(cls, node_type: str, config: dict[str, Any]) -> ConfigValidation:
        try:
            descriptor = cls.create(node_type)
        except UnknownNodeType as e:
            return ConfigValidation(errors=[str(e)])
        return descriptor.validate(config or {})

    @classmethod
    def lower(cls, node: GraphNode) -> list[StepNode]:
        return cls.create(node.type).lower(node)

    @classmethod
    def all_definitions(cls) -> dict[str, NodeDefinition]:
        return {
            name: node_cls.get_definition(name)
            for name, node_cls in cls._nodes.items()
        }

    @classmethod
    def by_category(cls, category: NodeCategory) -> dict[str, NodeDefinition]:
        return {
            name: defn for name, defn in cls.all_definitions().items()
            if defn.category == category
        }

    @classmethod
    def categories(cls) -> list[NodeCategory]:
        return list(NodeCategory)

    @classmethod
    def discover(cls, package_name: str) -> None:
        """Import all modules in the given package to trigger @register decorators."""
        try:
            package = importlib.import_module(package_name)
        except ImportError:
            logger.warning("Node package %s could not be imported", package_name)
            return
        if not hasattr(package, "__path__"):
            return
        for _, module_name, _ in pkgutil.iter_modules(package.__path__):
            if module_name.startswith("_") or module_name in ("base", "registry"):
                continue
            importlib.import_module(f"{package_name}.{module_name}")
        logger.debug("Registered %d node types from %s", len(cls._nodes), package_name)

    @classmethod
    def clear(cls) -> None:
        cls._nodes.clear()
