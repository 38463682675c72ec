"""HTTP action client: one POST endpoint per node type."""

from typing import Any, Optional

import httpx
import structlog

from core.config import ActionClientConfig
from core.errors import TransportError
from .base import ActionClient, ActionResponse

logger = structlog.get_logger()


class HttpActionClient(ActionClient):
    """
    Posts resolved node payloads to {base_url}{endpoint_prefix}/{node_type}.

    A non-2xx status, a network error, a timeout or a non-JSON body raise
    TransportError; a JSON body is turned into an ActionResponse as-is.
    """

    def __init__(
        self,
        config: Optional[ActionClientConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            config: Transport configuration (defaults apply when omitted)
            client: Pre-built httpx client; owned by the caller when given
        """
        self.config = config or ActionClientConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def endpoint(self, node_type: str) -> str:
        return f"{self.config.base_url}{self.config.endpoint_prefix}/{node_type}"

    def request_timeout(self, payload: dict[str, Any]) -> float:
        """Node timeout (ms) plus grace, in seconds."""
        timeout_ms = payload.get("timeout")
        if isinstance(timeout_ms, (int, float)) and not isinstance(timeout_ms, bool) and timeout_ms > 0:
            return timeout_ms / 1000 + self.config.timeout_grace_seconds
        return self.config.default_timeout_seconds

    async def execute(self, node_type: str, payload: dict[str, Any]) -> ActionResponse:
        url = self.endpoint(node_type)
        timeout = self.request_timeout(payload)

        try:
            response = await self._get_client().post(
                url,
                json=payload,
                headers=self.config.headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Action request timed out after {timeout:.1f}s: {url}",
                node_type=node_type,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Action request failed: {e}",
                node_type=node_type,
            ) from e

        body = self._parse_body(response)

        if not response.is_success:
            message = None
            if isinstance(body, dict):
                message = body.get("error") or body.get("message")
            raise TransportError(
                str(message) if message else f"Action endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
                node_type=node_type,
            )

        if not isinstance(body, dict):
            raise TransportError(
                "Action endpoint returned a non-JSON or non-object body",
                status_code=response.status_code,
                node_type=node_type,
            )

        logger.debug(
            "action_response",
            node_type=node_type,
            status_code=response.status_code,
            success=body.get("success"),
        )
        return ActionResponse.from_body(body)

    def _parse_body(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
