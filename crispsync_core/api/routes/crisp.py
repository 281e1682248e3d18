"""Crisp ingestion API routes.

Provides endpoints for:
- POST /crisp/websites/{website_id}/backfill - Backfill a website's history
- GET /crisp/messages/{website_id}/{session_id} - Sync one conversation's messages
- POST /crisp/webhooks - Receive Crisp web hook events
"""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Body, HTTPException, status

from crispsync_core.api.deps import BackfillCoordinatorDep, GatewayDep, MessageSyncDep
from crispsync_core.api.schemas.conversation import BackfillResponse, MessageSyncResponse
from crispsync_core.api.schemas.envelope import envelope
from crispsync_core.providers.base import UpstreamError

router = APIRouter(prefix="/crisp", tags=["crisp"])


@router.post("/websites/{website_id}/backfill")
async def run_backfill(
    website_id: str,
    coordinator: BackfillCoordinatorDep,
) -> dict[str, Any]:
    """Backfill all conversations and messages of a website.

    A failure after the first page still returns 200 with ``partial`` set
    and the totals accumulated so far.
    """
    result = await coordinator.run(website_id)
    data = BackfillResponse(**asdict(result)).model_dump()
    message = "Backfill partially completed" if result.partial else "Backfill completed"
    return envelope(data=data, message=message)


@router.get("/messages/{website_id}/{session_id}")
async def sync_conversation_messages(
    website_id: str,
    session_id: str,
    service: MessageSyncDep,
) -> dict[str, Any]:
    """Fetch one conversation's messages from Crisp and store them."""
    try:
        result = await service.sync(website_id, session_id)
    except UpstreamError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch messages: {e}",
        ) from e

    return envelope(
        data=MessageSyncResponse(**asdict(result)).model_dump(),
        message="Messages retrieved and saved successfully",
    )


@router.post("/webhooks")
async def receive_webhook(
    gateway: GatewayDep,
    payload: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """Hand a Crisp web hook body to the event subscription."""
    delivered = await gateway.dispatch(payload)
    return envelope(
        data={"accepted": delivered},
        message="Event accepted" if delivered else "Event ignored",
    )
