"""Workflow execution (scheduler) module."""

from .executor import (
    WorkflowExecutor,
    WorkflowExecutionResult,
    ExecutionStep,
    StepStatus,
    run_workflow,
)

__all__ = [
    "WorkflowExecutor",
    "WorkflowExecutionResult",
    "ExecutionStep",
    "StepStatus",
    "run_workflow",
]
