"""Data nodes: SetVariable, ExtractData, ExternalData."""
from .base import BaseNode, ConfigType, FieldSpec, NodeCategory, on_failure_field, timeout_field
from .registry import NodeRegistry
from ..engine.steps import StepNode, StepType, VariableOp

VALUE_TYPES = ["string", "number", "boolean", "array", "object"]


class _VariableNode(BaseNode):
    CATEGORY = NodeCategory.DATA

    def _variable_step(self, node, op: VariableOp) -> list[StepNode]:
        return [StepNode(id=node.id, type=StepType.VARIABLE,
                         description=self.describe(node), variable=op)]


@NodeRegistry.register("setVariable")
class SetVariableNode(_VariableNode):
    DISPLAY_NAME = "Set Variable"
    DESCRIPTION = "Assign a value to a flow variable"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "name": FieldSpec(ConfigType.STRING, "Variable name", required=True),
            "value": FieldSpec(ConfigType.STRING, "Value", required=True),
            "valueType": FieldSpec(ConfigType.STRING, "Value type", choices=VALUE_TYPES),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"name": "", "value": "", "valueType": "string"}

    def lower(self, node):
        cfg = node.config
        return self._variable_step(
            node, VariableOp(operation="set", name=str(cfg.get("name") or ""), value=cfg.get("value")),
        )

    def lift(self, step):
        var = step.variable
        config = {**self.DEFAULT_CONFIG(), "name": var.name, "value": var.value}
        return config, f"Set variable: {var.name}"

    def instruction(self, config, render):
        return f'Set variable {config.get("name")} to "{render(config.get("value"))}"'


@NodeRegistry.register("extractData")
class ExtractDataNode(_VariableNode):
    DISPLAY_NAME = "Extract Data"
    DESCRIPTION = "Read text, an attribute or a count from the page into a variable"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "target": FieldSpec(ConfigType.STRING, "Target element", required=True),
            "extractType": FieldSpec(ConfigType.STRING, "Extract",
                                     choices=["text", "attribute", "count", "boundingRect"]),
            "attribute": FieldSpec(ConfigType.STRING, "Attribute name"),
            "variable": FieldSpec(ConfigType.STRING, "Store in variable", required=True),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"target": "", "extractType": "text", "variable": "",
                "timeout": 30000, "onFailure": "stop"}

    def lower(self, node):
        cfg = node.config
        return self._variable_step(node, VariableOp(
            operation="extract",
            name=str(cfg.get("variable") or ""),
            source=cfg.get("target"),
        ))

    def lift(self, step):
        var = step.variable
        config = {**self.DEFAULT_CONFIG(), "target": var.source or "", "variable": var.name}
        return config, f"Extract data: {var.name}"

    def instruction(self, config, render):
        return f"Extract data from {render(config.get('target'))} into variable {config.get('variable')}"


@NodeRegistry.register("externalData")
class ExternalDataNode(_VariableNode):
    """Loads external data; compiled as a plain ``set`` of the source reference."""

    DISPLAY_NAME = "External Data"
    DESCRIPTION = "Load JSON, CSV or YAML data into a variable"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "source": FieldSpec(ConfigType.STRING, "Source URL", required=True),
            "format": FieldSpec(ConfigType.STRING, "Format", choices=["json", "csv", "yaml"]),
            "variable": FieldSpec(ConfigType.STRING, "Store in variable", required=True),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"source": "", "format": "json", "variable": "",
                "timeout": 30000, "onFailure": "stop"}

    def lower(self, node):
        cfg = node.config
        return self._variable_step(node, VariableOp(
            operation="set",
            name=str(cfg.get("variable") or ""),
            value=cfg.get("source"),
        ))

    def instruction(self, config, render):
        return f"Load external data into variable {config.get('variable')}"
