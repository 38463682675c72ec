"""Node type tags and per-node execution results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class NodeType(Enum):
    """Closed set of node types the dispatcher can execute."""
    OPEN_URL = "openUrl"
    CLICK = "click"
    INPUT = "input"
    SUBMIT = "submit"
    WAIT = "wait"
    CONDITION = "condition"
    LOOP = "loop"
    EXTRACT = "extract"
    VARIABLE = "variable"

    @classmethod
    def parse(cls, value: str) -> Optional["NodeType"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class NodeExecutionResult:
    """Outcome of one node; recorded once per node id and never changed."""
    success: bool
    outputs: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_ms: float = 0

    @classmethod
    def ok(cls, outputs: Optional[dict[str, Any]] = None, duration_ms: float = 0) -> "NodeExecutionResult":
        return cls(success=True, outputs=dict(outputs or {}), duration_ms=duration_ms)

    @classmethod
    def failed(
        cls,
        error: str,
        error_type: str = "action_failure",
        duration_ms: float = 0,
    ) -> "NodeExecutionResult":
        return cls(success=False, error=error, error_type=error_type, duration_ms=duration_ms)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.outputs:
            data["outputs"] = self.outputs
        if self.error is not None:
            data["error"] = self.error
            data["error_type"] = self.error_type
        data["duration_ms"] = round(self.duration_ms, 2)
        return data
