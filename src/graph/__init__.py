"""Workflow graph model, variable store and resolver."""

from .model import Graph, Node, Edge, EdgeKind, NodeOutput, ValueType
from .variables import VariableStore, RuntimeValue, ExecutionContext
from .resolver import VariableResolver, resolve_variables, tokenize

__all__ = [
    "Graph",
    "Node",
    "Edge",
    "EdgeKind",
    "NodeOutput",
    "ValueType",
    "VariableStore",
    "RuntimeValue",
    "ExecutionContext",
    "VariableResolver",
    "resolve_variables",
    "tokenize",
]
