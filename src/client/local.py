"""In-process action client backed by a handler registry."""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union

from core.errors import FrameworkError, TransportError
from .base import ActionClient, ActionResponse


# Handlers may answer with a plain response body or an ActionResponse
LocalHandler = Callable[[dict[str, Any]], Awaitable[Union[dict[str, Any], ActionResponse]]]


class LocalActionClient(ActionClient):
    """
    Action client that calls registered async handlers directly.

    Used to embed the engine next to an in-process browser driver and as the
    action boundary in tests. Every call is recorded in `calls`.
    """

    def __init__(self, handlers: Optional[dict[str, LocalHandler]] = None):
        self._handlers: dict[str, LocalHandler] = dict(handlers or {})
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def register(self, node_type: str, handler: LocalHandler) -> None:
        """Register a handler for a node type."""
        self._handlers[node_type] = handler

    def unregister(self, node_type: str) -> None:
        self._handlers.pop(node_type, None)

    def list_actions(self) -> list[str]:
        return list(self._handlers.keys())

    async def execute(self, node_type: str, payload: dict[str, Any]) -> ActionResponse:
        self.calls.append((node_type, payload))

        handler = self._handlers.get(node_type)
        if not handler:
            return ActionResponse(
                success=False,
                error=f"No action handler registered for: {node_type}",
            )

        try:
            result = await handler(payload)
        except asyncio.CancelledError:
            raise
        except FrameworkError:
            raise
        except Exception as e:
            raise TransportError(str(e) or e.__class__.__name__, node_type=node_type) from e

        if isinstance(result, ActionResponse):
            return result
        if not isinstance(result, dict):
            raise TransportError(
                f"Handler for {node_type} returned {type(result).__name__}, expected a mapping",
                node_type=node_type,
            )
        return ActionResponse.from_body(result)
