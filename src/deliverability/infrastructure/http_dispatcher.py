"""Provider dispatch adapters."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from shared.infrastructure.observability.logger import get_logger

from ..domain.exceptions import DispatchFailure
from ..domain.protocols.dispatcher import Dispatcher
from ..domain.value_objects import Channel

logger = get_logger(__name__)


class HttpDispatcher(Dispatcher):
    """
    Posts messages to the delivery provider's send endpoint.

    5xx, 429 and transport errors are retryable; other 4xx are not.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def dispatch(self, recipient: str, channel: Channel, payload: Dict[str, Any]) -> Optional[str]:
        url = f"{self.base_url}/{channel.value}/send"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await self.client.post(url, headers=headers, json={"to": recipient, **payload})
        except httpx.TimeoutException as e:
            logger.error("Provider timeout", channel=channel.value, recipient=recipient)
            raise DispatchFailure("Provider request timed out", retryable=True) from e
        except httpx.HTTPError as e:
            logger.error("Provider transport error", channel=channel.value, error=str(e))
            raise DispatchFailure(f"Provider request failed: {e}", retryable=True) from e

        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                return None
            message_id = (data.get("messageId") or data.get("id")) if isinstance(data, dict) else None
            return str(message_id) if message_id else None

        retryable = response.status_code >= 500 or response.status_code == 429
        raise DispatchFailure(
            f"Provider returned HTTP {response.status_code}",
            retryable=retryable,
            details={"providerStatus": response.status_code},
        )

    async def aclose(self) -> None:
        await self.client.aclose()


class LoggingDispatcher(Dispatcher):
    """Local/dev stand-in used when no provider URL is configured."""

    async def dispatch(self, recipient: str, channel: Channel, payload: Dict[str, Any]) -> Optional[str]:
        logger.info("Dispatch (log only)", recipient=recipient, channel=channel.value, payload_keys=sorted(payload))
        return None

    async def aclose(self) -> None:
        return None
