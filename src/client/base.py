"""Action boundary contract shared by every action client."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ActionResponse:
    """
    Uniform action boundary response.

    `data` holds the type-specific fields (pageTitle, conditionMet, value, ...)
    alongside success/error.
    """
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "ActionResponse":
        data = {k: v for k, v in body.items() if k not in ("success", "error")}
        error = body.get("error")
        return cls(
            success=body.get("success") is True,
            data=data,
            error=str(error) if error is not None else None,
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


class ActionClient(ABC):
    """
    Sends one resolved action request per node across the execution boundary.

    Implementations return an ActionResponse for every answer the boundary
    gives (including success: false) and raise TransportError when no usable
    answer was received.
    """

    @abstractmethod
    async def execute(self, node_type: str, payload: dict[str, Any]) -> ActionResponse:
        """Execute one action and return the boundary's response."""

    async def close(self) -> None:
        """Release transport resources."""

    async def __aenter__(self) -> "ActionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
