"""Crisp API adapter.

Implements the UpstreamGateway interface for Crisp, using the REST API for
point fetches and listings and Crisp web hooks for live events.

Usage:
    adapter = CrispAdapter(
        identifier="...",
        key="...",
        tier="plugin",
    )

    conversations = await adapter.list_conversations(website_id, page=1, per_page=20)
    messages = await adapter.list_messages(website_id, session_id)

    adapter.subscribe(ingestor.enqueue)
    await adapter.dispatch(webhook_body)
"""

from typing import Any, Optional

import httpx

from crispsync_core.observability.logging import get_logger
from crispsync_core.providers.base import (
    EventHandler,
    EventKind,
    UpstreamError,
    UpstreamEvent,
    UpstreamGateway,
)

logger = get_logger(__name__)


class CrispAPIError(UpstreamError):
    """Raised when a Crisp API call fails."""

    pass


class CrispAdapter(UpstreamGateway):
    """Crisp upstream gateway.

    Each call opens a short-lived HTTP client; the adapter itself only holds
    credentials and registered event handlers.
    """

    BASE_URL = "https://api.crisp.chat/v1"

    def __init__(
        self,
        identifier: str,
        key: str,
        tier: str = "plugin",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """Initialize the Crisp adapter.

        Args:
            identifier: Crisp token identifier.
            key: Crisp token key.
            tier: Token tier sent in the X-Crisp-Tier header.
            base_url: Override for the REST API root.
            timeout: Per-request timeout in seconds.
        """
        self.identifier = identifier
        self.key = key
        self.tier = tier
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self._handlers: list[EventHandler] = []

    def _get_headers(self) -> dict[str, str]:
        return {
            "X-Crisp-Tier": self.tier,
            "Accept": "application/json",
        }

    async def _api_request(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """GET an endpoint and unwrap the Crisp response envelope.

        Returns:
            The ``data`` member of the response body.

        Raises:
            CrispAPIError: On transport failure, non-200 status, or an
                ``error: true`` body.
        """
        url = f"{self.base_url}{endpoint}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    url,
                    headers=self._get_headers(),
                    params=params,
                    auth=(self.identifier, self.key),
                )
        except httpx.HTTPError as e:
            raise CrispAPIError(f"Crisp request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code != 200:
            reason = body.get("reason") if isinstance(body, dict) else None
            raise CrispAPIError(
                f"Crisp API returned {response.status_code} for {endpoint}",
                status_code=response.status_code,
                reason=reason,
            )

        if isinstance(body, dict):
            if body.get("error"):
                raise CrispAPIError(
                    f"Crisp API error for {endpoint}: {body.get('reason')}",
                    status_code=response.status_code,
                    reason=body.get("reason"),
                )
            if "data" in body:
                return body["data"]

        return body

    async def list_conversations(
        self,
        website_id: str,
        page: int,
        per_page: int,
    ) -> list[dict[str, Any]]:
        """List one page of conversations for a website."""
        data = await self._api_request(
            f"/website/{website_id}/conversations/{page}",
            params={"per_page": per_page},
        )
        if not isinstance(data, list):
            return []
        return data

    async def get_conversation(
        self,
        website_id: str,
        session_id: str,
    ) -> dict[str, Any]:
        """Fetch full details of one conversation."""
        data = await self._api_request(
            f"/website/{website_id}/conversation/{session_id}"
        )
        if not isinstance(data, dict):
            raise CrispAPIError(f"Malformed conversation payload for {session_id}")
        return data

    async def list_messages(
        self,
        website_id: str,
        session_id: str,
    ) -> list[dict[str, Any]]:
        """Fetch the messages of one conversation."""
        data = await self._api_request(
            f"/website/{website_id}/conversation/{session_id}/messages"
        )
        if not isinstance(data, list):
            return []
        return data

    def subscribe(self, handler: EventHandler) -> None:
        """Register a coroutine handler for live events."""
        self._handlers.append(handler)

    async def dispatch(self, payload: dict[str, Any]) -> bool:
        """Deliver one web hook body to every subscribed handler.

        Args:
            payload: Crisp web hook body ``{"event", "website_id", "data"}``.

        Returns:
            True if the event was recognised and delivered, False otherwise.
        """
        name = payload.get("event")
        try:
            kind = EventKind(name)
        except ValueError:
            logger.debug("Ignoring unsupported Crisp event", event_name=name)
            return False

        data = payload.get("data")
        if not isinstance(data, dict):
            data = {}

        website_id = payload.get("website_id") or data.get("website_id")
        if website_id and not data.get("website_id"):
            data = {**data, "website_id": website_id}

        event = UpstreamEvent(kind=kind, payload=data, website_id=website_id)
        for handler in list(self._handlers):
            await handler(event)
        return True
