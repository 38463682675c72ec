"""Core engine components."""

from .config import ConfigLoader, EngineConfig, WorkflowDefinition
from .errors import (
    FrameworkError,
    ConfigError,
    StructuralError,
    ActionFailure,
    TransportError,
    UnknownNodeTypeError,
    NodeInputError,
    ExecutionCancelled,
)

__all__ = [
    "ConfigLoader",
    "EngineConfig",
    "WorkflowDefinition",
    "FrameworkError",
    "ConfigError",
    "StructuralError",
    "ActionFailure",
    "TransportError",
    "UnknownNodeTypeError",
    "NodeInputError",
    "ExecutionCancelled",
]
