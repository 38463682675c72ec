"""Engine error definitions."""

from typing import Optional, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"           # Informational, run continues
    MEDIUM = "medium"     # Branch halted
    HIGH = "high"         # Run cannot start
    CRITICAL = "critical" # Engine misconfigured


class ErrorCategory(Enum):
    """Error categories for routing and reporting."""
    STRUCTURAL = "structural"     # Malformed graph
    ACTION = "action"             # Action boundary reported failure
    TRANSPORT = "transport"       # Network, serialization, timeout
    VALIDATION = "validation"     # Node input or definition validation
    CONFIGURATION = "configuration"
    CANCELLATION = "cancellation"


class FrameworkError(Exception):
    """Base exception for all engine errors."""

    # Tag recorded on a failed NodeExecutionResult
    error_type: str = "error"

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.ACTION,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.retryable = retryable

    def fingerprint(self) -> str:
        """Generate error fingerprint for deduplication."""
        import hashlib
        components = [
            self.__class__.__name__,
            self.category.value,
            str(self.context.get("node_id", "")),
            str(self.context.get("node_type", "")),
        ]
        return hashlib.sha256(":".join(components).encode()).hexdigest()[:16]

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging/reporting."""
        return {
            "type": self.__class__.__name__,
            "error_type": self.error_type,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "retryable": self.retryable,
            "fingerprint": self.fingerprint(),
        }


class ConfigError(FrameworkError):
    """Configuration or workflow definition loading error."""

    error_type = "config"

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path


class StructuralError(FrameworkError):
    """Malformed graph: dangling edge, duplicate node id, no start node."""

    error_type = "structural"

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        edge_id: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.STRUCTURAL)
        super().__init__(message, **kwargs)
        self.context["node_id"] = node_id
        self.context["edge_id"] = edge_id


class NodeError(FrameworkError):
    """Failure attributed to a single node."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        node_type: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.context["node_id"] = node_id
        self.context["node_type"] = node_type


class ActionFailure(NodeError):
    """The action boundary answered with success: false."""

    error_type = "action_failure"


class TransportError(NodeError):
    """The action call itself failed (network, status code, serialization)."""

    error_type = "transport"

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.TRANSPORT)
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
        self.context["status_code"] = status_code


class UnknownNodeTypeError(NodeError):
    """Node type outside the dispatcher's closed set."""

    error_type = "unknown_node_type"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        super().__init__(message, **kwargs)


class NodeInputError(NodeError):
    """Missing required input or a value outside its allowed set."""

    error_type = "invalid_input"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        super().__init__(message, **kwargs)
        self.context["field"] = field


class ExecutionCancelled(FrameworkError):
    """Run aborted through its cancellation signal."""

    error_type = "cancelled"

    def __init__(self, message: str = "Workflow execution cancelled", **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("category", ErrorCategory.CANCELLATION)
        super().__init__(message, **kwargs)
