"""Assertion nodes: AssertExists, AssertText, AssertState, AiAssert.

All of them lower to an ``assert`` action; the ``value`` field tells the
engine which kind of check to run.
"""
import re

from .base import ActionNode, ConfigType, FieldSpec, NodeCategory, on_failure_field, timeout_field
from .registry import NodeRegistry
from ..engine.steps import Action

AI_ASSERT_MARKER = "ai"
TEXT_OPERATORS = ["equals", "contains", "matches", "startsWith", "endsWith"]
ELEMENT_STATES = ["checked", "unchecked", "selected", "focused", "readonly"]

_TEXT_ASSERT = re.compile(r'^text (\w+) "(.*)"$', re.DOTALL)


def parse_text_assertion(value: str | None) -> tuple[str, str] | None:
    """Split a ``text <operator> "<text>"`` assertion value into its parts."""
    if not value:
        return None
    match = _TEXT_ASSERT.match(value)
    if match is None or match.group(1) not in TEXT_OPERATORS:
        return None
    return match.group(1), match.group(2)


def assert_node_type(action: Action) -> str:
    """Pick the assertion node type that produced an ``assert`` action."""
    if action.value == AI_ASSERT_MARKER:
        return "aiAssert"
    if parse_text_assertion(action.value) is not None:
        return "assertText"
    if action.value in ELEMENT_STATES:
        return "assertState"
    return "assertExists"


class _AssertNode(ActionNode):
    CATEGORY = NodeCategory.VALIDATION


@NodeRegistry.register("assertExists")
class AssertExistsNode(_AssertNode):
    DISPLAY_NAME = "Assert Exists"
    DESCRIPTION = "Check that an element is present in a given state"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "target": FieldSpec(ConfigType.STRING, "Target element", required=True),
            "state": FieldSpec(ConfigType.STRING, "Expected state",
                               choices=["visible", "hidden", "enabled", "disabled", "exists"]),
            "negate": FieldSpec(ConfigType.BOOLEAN, "Negate"),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"target": "", "state": "visible", "negate": False, "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="assert", target=str(config.get("target") or ""),
                      value=config.get("state") or "exists")

    def lift(self, step):
        action = step.action
        config = {**self.DEFAULT_CONFIG(), "target": action.target, "state": action.value or "exists"}
        return config, f"Assert: {action.target}"

    def instruction(self, config, render):
        target = render(config.get("target"))
        state = config.get("state") or "visible"
        if config.get("negate"):
            return f"Verify {target} is not {state}"
        return f"Verify {target} is {state}"


@NodeRegistry.register("assertText")
class AssertTextNode(_AssertNode):
    DISPLAY_NAME = "Assert Text"
    DESCRIPTION = "Check the text content of an element"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "target": FieldSpec(ConfigType.STRING, "Target element", required=True),
            "text": FieldSpec(ConfigType.STRING, "Expected text", required=True),
            "operator": FieldSpec(ConfigType.STRING, "Match", choices=TEXT_OPERATORS),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"target": "", "text": "", "operator": "contains", "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        operator = config.get("operator") or "contains"
        text = config.get("text") or ""
        return Action(type="assert", target=str(config.get("target") or ""),
                      value=f'text {operator} "{text}"')

    def lift(self, step):
        action = step.action
        operator, text = parse_text_assertion(action.value) or ("contains", "")
        config = {**self.DEFAULT_CONFIG(), "target": action.target,
                  "operator": operator, "text": text}
        return config, f"Assert text: {action.target}"

    def instruction(self, config, render):
        operator = config.get("operator") or "contains"
        return f'Verify the text of {render(config.get("target"))} {operator} "{render(config.get("text"))}"'


@NodeRegistry.register("assertState")
class AssertStateNode(_AssertNode):
    DISPLAY_NAME = "Assert State"
    DESCRIPTION = "Check a form element state such as checked or focused"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "target": FieldSpec(ConfigType.STRING, "Target element", required=True),
            "state": FieldSpec(ConfigType.STRING, "Expected state", required=True,
                               choices=ELEMENT_STATES),
            "negate": FieldSpec(ConfigType.BOOLEAN, "Negate"),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"target": "", "state": "checked", "negate": False, "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="assert", target=str(config.get("target") or ""),
                      value=config.get("state") or "checked")

    def lift(self, step):
        action = step.action
        config = {**self.DEFAULT_CONFIG(), "target": action.target, "state": action.value}
        return config, f"Assert state: {action.target}"

    def instruction(self, config, render):
        return f'Verify the state of {render(config.get("target"))} is "{config.get("state") or "checked"}"'


@NodeRegistry.register("aiAssert")
class AiAssertNode(_AssertNode):
    DISPLAY_NAME = "AI Assert"
    DESCRIPTION = "Natural-language assertion evaluated by the AI engine"

    @classmethod
    def CONFIG_SCHEMA(cls):
        return {
            "assertion": FieldSpec(ConfigType.STRING, "Assertion", required=True),
            "timeout": timeout_field(),
            "onFailure": on_failure_field(),
        }

    @classmethod
    def DEFAULT_CONFIG(cls):
        return {"assertion": "", "timeout": 30000, "onFailure": "stop"}

    def to_action(self, config):
        return Action(type="assert", target=str(config.get("assertion") or ""),
                      value=AI_ASSERT_MARKER)

    def lift(self, step):
        assertion = step.action.target
        return {**self.DEFAULT_CONFIG(), "assertion": assertion}, assertion or self.DISPLAY_NAME

    def instruction(self, config, render):
        return f"Verify: {render(config.get('assertion'))}"
