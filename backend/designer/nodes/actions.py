"""Browser action nodes: Click, Input, Scroll, Wait, Navigate, Hover, Drag.

Each lowers to exactly one ``action`` step whose ``target``/``value`` pair is
taken from the node configuration.
"""
from .base import ActionNode, ConfigType, FieldSpec, on_failure_field, timeout_field
from .registry import NodeRegistry
from ..engine.steps import Action


def _text(value) -> str:
    return "" if value is None else str(value)


@NodeRegistry.register("click")
class ClickNode(ActionNode):
    DISPLAY_NAME = "Click"
    DESCRIPTION = "Click an element"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "target": FieldSpec(ConfigType.STRING, "Target element", required=True),
            "count": FieldSpec(ConfigType.NUMBER, "Click count", minimum=1, maximum=10),
            "doubleClick": FieldSpec(ConfigType.BOOLEAN, "Double click"),
            "rightClick": FieldSpec(ConfigType.BOOLEAN, "Right click"),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"target": "", "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        value = config.get("value")
        return Action(type="click", target=_text(config.get("target")),
                      value=None if value is None else str(value))

    def lift(self, step):
        target = step.action.target
        return {**self.DEFAULT_CONFIG(), "target": target}, target or self.DISPLAY_NAME

    def instruction(self, config, render):
        return f"Click {render(config.get('target')) or 'the element'}"


@NodeRegistry.register("input")
class InputNode(ActionNode):
    DISPLAY_NAME = "Input"
    DESCRIPTION = "Type text into a field"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "target": FieldSpec(ConfigType.STRING, "Target element", required=True),
            "value": FieldSpec(ConfigType.STRING, "Text", required=True),
            "clearBefore": FieldSpec(ConfigType.BOOLEAN, "Clear before typing"),
            "submitKey": FieldSpec(ConfigType.STRING, "Submit key", choices=["enter", "tab", "none"]),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"target": "", "value": "", "clearBefore": True, "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="input", target=_text(config.get("target")),
                      value=_text(config.get("value")))

    def lift(self, step):
        action = step.action
        config = {**self.DEFAULT_CONFIG(), "target": action.target, "value": action.value or ""}
        return config, f"Input: {action.target}"

    def instruction(self, config, render):
        return f'Type "{render(config.get("value"))}" into {render(config.get("target"))}'


@NodeRegistry.register("scroll")
class ScrollNode(ActionNode):
    DISPLAY_NAME = "Scroll"
    DESCRIPTION = "Scroll the page or an element"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "target": FieldSpec(ConfigType.STRING, "Target element"),
            "direction": FieldSpec(ConfigType.STRING, "Direction",
                                   choices=["up", "down", "left", "right", "intoView"]),
            "distance": FieldSpec(ConfigType.NUMBER, "Distance (px)", minimum=10, maximum=10000),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"target": "", "direction": "down", "distance": 300, "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="scroll", target=_text(config.get("target")),
                      value=config.get("direction") or "down")

    def lift(self, step):
        action = step.action
        direction = action.value or "down"
        config = {**self.DEFAULT_CONFIG(), "target": action.target, "direction": direction}
        return config, f"Scroll {direction}"

    def instruction(self, config, render):
        direction = config.get("direction") or "down"
        text = "Scroll into view" if direction == "intoView" else f"Scroll {direction}"
        target = render(config.get("target"))
        return f"{text} {target}" if target else text


@NodeRegistry.register("wait")
class WaitNode(ActionNode):
    DISPLAY_NAME = "Wait"
    DESCRIPTION = "Pause for a fixed duration"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "duration": FieldSpec(ConfigType.NUMBER, "Duration (ms)", required=True,
                                  minimum=100, maximum=60000),
            "waitForElement": FieldSpec(ConfigType.STRING, "Wait for element"),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"duration": 1000, "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="wait", target="", value=str(config.get("duration") or 1000))

    def lift(self, step):
        try:
            duration = int(step.action.value or 1000)
        except ValueError:
            duration = 1000
        return {**self.DEFAULT_CONFIG(), "duration": duration}, f"Wait {duration}ms"

    def instruction(self, config, render):
        return f"Wait {config.get('duration') or 1000} milliseconds"


@NodeRegistry.register("navigate")
class NavigateNode(ActionNode):
    DISPLAY_NAME = "Navigate"
    DESCRIPTION = "Open a URL"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "url": FieldSpec(ConfigType.STRING, "URL", required=True),
            "waitForLoad": FieldSpec(ConfigType.BOOLEAN, "Wait for load"),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"url": "", "waitForLoad": True, "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="navigate", target=_text(config.get("url")))

    def lift(self, step):
        url = step.action.target
        return {**self.DEFAULT_CONFIG(), "url": url}, f"Navigate to {url}"

    def instruction(self, config, render):
        return f"Open {render(config.get('url'))}"


@NodeRegistry.register("hover")
class HoverNode(ActionNode):
    DISPLAY_NAME = "Hover"
    DESCRIPTION = "Move the pointer over an element"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "target": FieldSpec(ConfigType.STRING, "Target element", required=True),
            "duration": FieldSpec(ConfigType.NUMBER, "Duration (ms)", minimum=100, maximum=10000),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"target": "", "duration": 500, "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="hover", target=_text(config.get("target")))

    def lift(self, step):
        target = step.action.target
        return {**self.DEFAULT_CONFIG(), "target": target}, f"Hover: {target}"

    def instruction(self, config, render):
        return f"Hover over {render(config.get('target'))}"


@NodeRegistry.register("drag")
class DragNode(ActionNode):
    DISPLAY_NAME = "Drag"
    DESCRIPTION = "Drag one element onto another"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "from": FieldSpec(ConfigType.STRING, "Source element", required=True),
            "to": FieldSpec(ConfigType.STRING, "Drop target", required=True),
            "duration": FieldSpec(ConfigType.NUMBER, "Duration (ms)", minimum=100, maximum=5000),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"from": "", "to": "", "duration": 500, "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="drag", target=_text(config.get("from") or config.get("target")),
                      value=_text(config.get("to")))

    def lift(self, step):
        action = step.action
        config = {**self.DEFAULT_CONFIG(), "from": action.target, "to": action.value or ""}
        return config, f"Drag: {action.target}"

    def instruction(self, config, render):
        return f"Drag {render(config.get('from'))} to {render(config.get('to'))}"
