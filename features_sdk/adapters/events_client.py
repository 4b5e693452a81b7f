"""
Event delivery client for the feature analytics endpoints.
"""

import httpx
from typing import Any, Dict, List, Sequence

from shared.errors import NetworkError, ProtocolError
from shared.logging import get_logger

from ..models import BufferedEvent, FeatureEvent
from .version import SDK_VERSION, SDK_VERSION_HEADER_NAME


class EventsClient:
    """Posts single feature events and bulk batches."""

    EVENTS_PATH = "features/events"
    BULK_PATH = "bulk"

    def __init__(self, api_base_url: str, publishable_key: str, timeout_ms: float = 10_000):
        self.api_base_url = api_base_url.rstrip("/")
        self.publishable_key = publishable_key
        self.timeout_ms = timeout_ms
        self.logger = get_logger("features_sdk.events_client")

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            SDK_VERSION_HEADER_NAME: SDK_VERSION,
            "Authorization": f"Bearer {self.publishable_key}",
        }

    async def _post(self, path: str, body: Any) -> None:
        url = f"{self.api_base_url}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_ms / 1000) as client:
                response = await client.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            self.logger.warning("Event delivery HTTP error", path=path, error=str(e))
            raise NetworkError(
                "Events endpoint unavailable",
                details={"path": path, "http_error": str(e)}
            ) from e

        if not response.is_success:
            raise ProtocolError(
                response.status_code,
                "Unexpected response code from events endpoint",
                details={"path": path}
            )

        self.logger.debug("Post request succeeded", path=path, status_code=response.status_code)

    async def post_event(self, event: FeatureEvent) -> None:
        """Deliver one check/evaluate event immediately."""
        body = event.model_dump(by_alias=True, exclude_none=True, exclude={"type"})
        await self._post(self.EVENTS_PATH, body)

    async def post_bulk(self, events: Sequence[BufferedEvent]) -> None:
        """Deliver a batch of buffered events in one request."""
        body: List[Dict[str, Any]] = [event.to_wire() for event in events]
        await self._post(self.BULK_PATH, body)
