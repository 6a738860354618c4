"""Special nodes: Start, End, Comment, Subflow.

None of these appear in the compiled step program. Start and End anchor the
flow, Comment is canvas decoration, and Subflow references another flow that
the step program format cannot inline.
"""
from .base import (
    ConfigType, ConfigValidation, FieldSpec, NodeCategory, PassthroughNode,
    NO_PORTS, SINGLE_INPUT, on_failure_field, timeout_field,
)
from .registry import NodeRegistry


@NodeRegistry.register("start")
class StartNode(PassthroughNode):
    CATEGORY = NodeCategory.SPECIAL
    DISPLAY_NAME = "Start"
    DESCRIPTION = "Entry point of the flow"
    EXECUTABLE = False

    @classmethod
    def INPUT_PORTS(cls):
        return list(NO_PORTS)

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {"variables": FieldSpec(ConfigType.OBJECT, "Initial variables")}

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"variables": {}}


@NodeRegistry.register("end")
class EndNode(PassthroughNode):
    CATEGORY = NodeCategory.SPECIAL
    DISPLAY_NAME = "End"
    DESCRIPTION = "Terminates the flow"
    EXECUTABLE = False

    @classmethod
    def INPUT_PORTS(cls):
        return list(SINGLE_INPUT)

    @classmethod
    def OUTPUT_PORTS(cls):
        return list(NO_PORTS)

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {"returnValue": FieldSpec(ConfigType.STRING, "Return value")}

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"returnValue": ""}


@NodeRegistry.register("comment")
class CommentNode(PassthroughNode):
    CATEGORY = NodeCategory.SPECIAL
    DISPLAY_NAME = "Comment"
    DESCRIPTION = "Free-text note on the canvas"
    EXECUTABLE = False

    @classmethod
    def INPUT_PORTS(cls):
        return list(NO_PORTS)

    @classmethod
    def OUTPUT_PORTS(cls):
        return list(NO_PORTS)

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "content": FieldSpec(ConfigType.STRING, "Comment", required=True),
            "color": FieldSpec(ConfigType.STRING, "Background color"),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"content": "", "color": "#fff9c4"}

    def validate(self, config):
        content = config.get("content")
        if not isinstance(content, str) or not content.strip():
            return ConfigValidation(errors=["Comment content must not be empty"])
        return ConfigValidation()


@NodeRegistry.register("subflow")
class SubflowNode(PassthroughNode):
    CATEGORY = NodeCategory.SPECIAL
    DISPLAY_NAME = "Subflow"
    DESCRIPTION = "Runs another saved flow"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "subflowId": FieldSpec(ConfigType.STRING, "Subflow ID", required=True),
            "parameters": FieldSpec(ConfigType.OBJECT, "Parameter mapping"),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"subflowId": "", "parameters": {}, "timeout": 30000, "onFailure": "stop"}
