"""Node types, handlers and the action dispatcher."""

from .types import NodeType, NodeExecutionResult
from .handlers import NodeHandler, default_handlers
from .dispatcher import NodeDispatcher

__all__ = [
    "NodeType",
    "NodeExecutionResult",
    "NodeHandler",
    "default_handlers",
    "NodeDispatcher",
]
