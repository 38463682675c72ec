"""
Node handlers - one per node type.

Each handler owns its node type's input contract (required inputs, defaults,
allowed values), builds the action request from resolved inputs, maps the
action boundary response to node outputs, and declares which variable store
writes a successful run produces.
"""

from typing import Any

from client.base import ActionClient, ActionResponse
from core.errors import ActionFailure, NodeInputError
from graph.model import Node, ValueType
from graph.variables import ExecutionContext
from .types import NodeType, NodeExecutionResult


# (variable name, value, output key)
VariableWrite = tuple[str, Any, str]


class NodeHandler:
    """
    Base handler: validate -> build payload -> call action boundary -> map outputs.

    Subclasses declare their contract through class attributes and override
    build_payload()/map_outputs() where the request or response shape differs.
    """

    node_type: NodeType
    required: tuple[str, ...] = ()
    # Required inputs for which an empty string is a valid value
    allow_empty: tuple[str, ...] = ()
    defaults: dict[str, Any] = {}
    choices: dict[str, tuple[Any, ...]] = {}
    # Fields sent across the action boundary
    payload_fields: tuple[str, ...] = ()
    outputs: dict[str, ValueType] = {"success": ValueType.BOOLEAN}
    failure_message: str = "Action failed"

    def apply_defaults(self, inputs: dict[str, Any]) -> dict[str, Any]:
        merged = dict(inputs)
        for key, value in self.defaults.items():
            if merged.get(key) is None:
                merged[key] = value
        return merged

    def validate(self, node: Node, inputs: dict[str, Any]) -> None:
        """Raise NodeInputError for a missing required input or a disallowed value."""
        for name in self.required:
            value = inputs.get(name)
            if value is None or (value == "" and name not in self.allow_empty):
                raise NodeInputError(
                    f"Missing required input '{name}' for {self.node_type.value} node",
                    field=name,
                    node_id=node.id,
                    node_type=node.type,
                )

        for name, allowed in self.choices.items():
            value = inputs.get(name)
            if value is not None and value not in allowed:
                raise NodeInputError(
                    f"Invalid {name} '{value}' for {self.node_type.value} node; "
                    f"expected one of: {', '.join(str(a) for a in allowed)}",
                    field=name,
                    node_id=node.id,
                    node_type=node.type,
                )

    def build_payload(self, inputs: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
        return {
            key: inputs[key] for key in self.payload_fields
            if inputs.get(key) is not None
        }

    def map_outputs(self, response: ActionResponse) -> dict[str, Any]:
        return {"success": True}

    def variable_writes(self, node: Node, result: NodeExecutionResult) -> list[VariableWrite]:
        """Variable store writes produced by a successful result."""
        return []

    async def execute(
        self,
        node: Node,
        inputs: dict[str, Any],
        context: ExecutionContext,
        client: ActionClient,
    ) -> NodeExecutionResult:
        """
        Run the node against the action boundary.

        Args:
            node: The node being executed
            inputs: Node data with variables already resolved
            context: Run context (read-only here; writes happen on commit)
            client: Action boundary client

        Raises:
            NodeInputError: input contract violated
            ActionFailure: boundary answered success: false
            TransportError: boundary call failed
        """
        inputs = self.apply_defaults(inputs)
        self.validate(node, inputs)
        payload = self.build_payload(inputs, context)

        response = await client.execute(self.node_type.value, payload)
        if not response.success:
            raise ActionFailure(
                response.error or self.failure_message,
                node_id=node.id,
                node_type=node.type,
            )

        return NodeExecutionResult.ok(self.map_outputs(response))


class OpenUrlHandler(NodeHandler):
    node_type = NodeType.OPEN_URL
    required = ("url",)
    defaults = {"waitForLoad": True, "timeout": 30000}
    payload_fields = ("url", "waitForLoad", "timeout")
    outputs = {
        "success": ValueType.BOOLEAN,
        "pageTitle": ValueType.TEXT,
        "pageUrl": ValueType.TEXT,
    }
    failure_message = "Failed to open URL"

    def map_outputs(self, response: ActionResponse) -> dict[str, Any]:
        return {
            "success": True,
            "pageTitle": response.get("pageTitle"),
            "pageUrl": response.get("pageUrl"),
        }


class ClickHandler(NodeHandler):
    node_type = NodeType.CLICK
    required = ("selector",)
    defaults = {"button": "left", "clickCount": 1, "timeout": 5000}
    choices = {"button": ("left", "right", "middle")}
    payload_fields = ("selector", "button", "clickCount", "timeout")
    failure_message = "Failed to click element"


class InputHandler(NodeHandler):
    node_type = NodeType.INPUT
    required = ("selector", "value")
    allow_empty = ("value",)
    defaults = {"clearFirst": True, "timeout": 5000}
    payload_fields = ("selector", "value", "clearFirst", "timeout")
    failure_message = "Failed to input text"


class SubmitHandler(NodeHandler):
    node_type = NodeType.SUBMIT
    required = ("selector",)
    defaults = {"waitForNavigation": True, "timeout": 5000}
    payload_fields = ("selector", "waitForNavigation", "timeout")
    failure_message = "Failed to submit form"


class WaitHandler(NodeHandler):
    node_type = NodeType.WAIT
    required = ("condition",)
    defaults = {"delay": 1000, "timeout": 5000}
    choices = {"condition": ("delay", "element", "networkIdle")}
    payload_fields = ("condition", "selector", "delay", "timeout")
    failure_message = "Wait condition failed"

    def validate(self, node: Node, inputs: dict[str, Any]) -> None:
        super().validate(node, inputs)
        if inputs.get("condition") == "element" and not inputs.get("selector"):
            raise NodeInputError(
                "Missing required input 'selector' for wait node with element condition",
                field="selector",
                node_id=node.id,
                node_type=node.type,
            )


class ConditionHandler(NodeHandler):
    node_type = NodeType.CONDITION
    required = ("selector", "condition")
    defaults = {"timeout": 5000}
    choices = {"condition": ("exists", "visible", "text", "attribute")}
    payload_fields = ("selector", "condition", "value", "attribute", "timeout")
    failure_message = "Condition check failed"

    def map_outputs(self, response: ActionResponse) -> dict[str, Any]:
        # The branch outcome travels as outputs.success
        return {"success": response.get("conditionMet") is True}


class LoopHandler(NodeHandler):
    """
    Loop node: one atomic action call.

    For forEach loops the items reference is resolved to an array before the
    call; iterating it is the action boundary's job, and the outputs report
    the aggregate iteration state.
    """

    node_type = NodeType.LOOP
    required = ("selector", "condition")
    defaults = {"maxIterations": 10, "timeout": 5000}
    choices = {"condition": ("while", "forEach")}
    payload_fields = ("condition", "selector", "items", "maxIterations", "timeout")
    outputs = {
        "currentItem": ValueType.OBJECT,
        "index": ValueType.NUMBER,
        "completed": ValueType.BOOLEAN,
    }
    failure_message = "Loop execution failed"

    async def execute(
        self,
        node: Node,
        inputs: dict[str, Any],
        context: ExecutionContext,
        client: ActionClient,
    ) -> NodeExecutionResult:
        inputs = dict(inputs)
        inputs["items"] = self.resolve_items(node.data.get("items"), inputs, context)
        return await super().execute(node, inputs, context, client)

    def resolve_items(self, raw: Any, inputs: dict[str, Any], context: ExecutionContext) -> list[Any]:
        """
        The forEach items as a list.

        `raw` is the unresolved node input. A string left untouched by the
        resolver is a bare variable name (or an unbound ${ref}) and is looked
        up once; a resolved value is never looked up again.
        """
        if inputs.get("condition") != "forEach":
            return []
        items = inputs.get("items")
        if isinstance(items, str) and items == raw:
            items = context.get(items)
        if isinstance(items, (list, tuple)):
            return list(items)
        return []

    def map_outputs(self, response: ActionResponse) -> dict[str, Any]:
        return {
            "currentItem": response.get("currentItem"),
            "index": response.get("index"),
            "completed": response.get("completed"),
        }


class ExtractHandler(NodeHandler):
    node_type = NodeType.EXTRACT
    required = ("selector", "extractType")
    defaults = {"timeout": 5000}
    choices = {"extractType": ("text", "attribute", "innerHTML", "list")}
    payload_fields = ("selector", "extractType", "attribute", "timeout")
    outputs = {
        "extractedValue": ValueType.TEXT,
        "success": ValueType.BOOLEAN,
    }
    failure_message = "Failed to extract data"

    def map_outputs(self, response: ActionResponse) -> dict[str, Any]:
        value = response.get("value")
        if value is None:
            value = response.get("extractedValue")
        return {"extractedValue": value, "success": True}

    def variable_writes(self, node: Node, result: NodeExecutionResult) -> list[VariableWrite]:
        name = node.data.get("variableName")
        if not name:
            return []
        return [(name, result.outputs.get("extractedValue"), "extractedValue")]


class VariableHandler(NodeHandler):
    """Assigns a resolved value to a variable; never calls the action boundary."""

    node_type = NodeType.VARIABLE
    required = ("name", "value", "scope")
    allow_empty = ("value",)
    choices = {"scope": ("local", "global")}
    outputs = {"value": ValueType.TEXT}
    failure_message = "Failed to set variable"

    async def execute(
        self,
        node: Node,
        inputs: dict[str, Any],
        context: ExecutionContext,
        client: ActionClient,
    ) -> NodeExecutionResult:
        inputs = self.apply_defaults(inputs)
        self.validate(node, inputs)
        return NodeExecutionResult.ok({"value": inputs["value"]})

    def variable_writes(self, node: Node, result: NodeExecutionResult) -> list[VariableWrite]:
        return [(node.data["name"], result.outputs.get("value"), "value")]


BUILTIN_HANDLERS: tuple[type[NodeHandler], ...] = (
    OpenUrlHandler,
    ClickHandler,
    InputHandler,
    SubmitHandler,
    WaitHandler,
    ConditionHandler,
    LoopHandler,
    ExtractHandler,
    VariableHandler,
)


def default_handlers() -> dict[NodeType, NodeHandler]:
    """Fresh instances of every built-in handler keyed by node type."""
    return {cls.node_type: cls() for cls in BUILTIN_HANDLERS}

