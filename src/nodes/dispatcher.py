"""Node Action Dispatcher - maps a node's type tag to its handler."""

import asyncio
import time
from typing import Any, Optional

import structlog

from client.base import ActionClient
from core.errors import ConfigError, FrameworkError, UnknownNodeTypeError
from graph.model import Node
from graph.resolver import VariableResolver
from graph.variables import ExecutionContext
from .handlers import NodeHandler, default_handlers
from .types import NodeType, NodeExecutionResult

logger = structlog.get_logger()


# Node data keys that are never treated as resolvable inputs
NON_INPUT_KEYS = frozenset({"label", "outputs", "variableReferences", "type", "id"})

# Binding targets: the variable *name* is never substituted
BINDING_KEYS = frozenset({"name", "variableName"})


class NodeDispatcher:
    """
    Dispatches nodes to their handlers.

    Execution is split in two phases so that the scheduler controls the order
    of variable store writes:

    - dispatch(): resolve inputs, run the handler, return a result. Never
      writes to the variable store and never raises.
    - commit(): apply the variable store writes of a successful result.
    """

    def __init__(
        self,
        client: ActionClient,
        handlers: Optional[dict[NodeType, NodeHandler]] = None,
    ):
        self.client = client
        self._handlers: dict[NodeType, NodeHandler] = default_handlers()
        if handlers:
            self._handlers.update(handlers)
        self._check_exhaustive()

    def _check_exhaustive(self) -> None:
        missing = [t.value for t in NodeType if t not in self._handlers]
        if missing:
            raise ConfigError(f"No handler registered for node types: {', '.join(missing)}")

    def register(self, handler: NodeHandler) -> None:
        """Register a handler, replacing the one for the same node type."""
        self._handlers[handler.node_type] = handler

    def get_handler(self, node_type: str) -> Optional[NodeHandler]:
        parsed = NodeType.parse(node_type)
        return self._handlers.get(parsed) if parsed else None

    def list_node_types(self) -> list[str]:
        return [t.value for t in self._handlers]

    def resolve_inputs(self, node: Node, context: ExecutionContext) -> dict[str, Any]:
        """Node data with every input passed through the resolver."""
        resolver = VariableResolver(context.store)
        inputs: dict[str, Any] = {}
        for key, value in node.data.items():
            if key in NON_INPUT_KEYS:
                continue
            inputs[key] = value if key in BINDING_KEYS else resolver.resolve(value)
        return inputs

    async def dispatch(self, node: Node, context: ExecutionContext) -> NodeExecutionResult:
        """Execute one node and convert every failure into a failed result."""
        start_time = time.monotonic()
        log = logger.bind(node_id=node.id, node_type=node.type)

        def elapsed() -> float:
            return (time.monotonic() - start_time) * 1000

        handler = self.get_handler(node.type)
        if handler is None:
            error = UnknownNodeTypeError(
                f"Unknown node type: {node.type}",
                node_id=node.id,
                node_type=node.type,
            )
            log.debug("node_type_unknown", error=error.message)
            return NodeExecutionResult.failed(error.message, error.error_type, elapsed())

        try:
            inputs = self.resolve_inputs(node, context)
            result = await handler.execute(node, inputs, context, self.client)

        except asyncio.CancelledError:
            raise

        except FrameworkError as e:
            if e.context.get("node_id") is None:
                e.context["node_id"] = node.id
            log.debug("node_action_failed", error=e.message, error_type=e.error_type)
            return NodeExecutionResult.failed(e.message, e.error_type, elapsed())

        except Exception as e:
            log.exception("node_error")
            return NodeExecutionResult.failed(
                str(e) or handler.failure_message,
                "error",
                elapsed(),
            )

        return NodeExecutionResult(
            success=result.success,
            outputs=result.outputs,
            error=result.error,
            error_type=result.error_type,
            duration_ms=elapsed(),
        )

    def commit(self, node: Node, result: NodeExecutionResult, context: ExecutionContext) -> None:
        """Apply the variable store writes of a successful result."""
        if not result.success:
            return
        handler = self.get_handler(node.type)
        if handler is None:
            return
        for name, value, output_key in handler.variable_writes(node, result):
            context.set(name, value, source_node_id=node.id, output_key=output_key)
