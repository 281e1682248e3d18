"""Read-back and purge API routes over the local mirror.

Provides endpoints for:
- GET /crisp-db/conversations - List stored conversations
- GET /crisp-db/messages/{session_id} - List stored messages of a conversation
- DELETE /crisp-db/conversations - Delete all conversations (and messages)
- DELETE /crisp-db/messages - Delete all messages
"""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from crispsync_core.api.deps import RecordStoreDep
from crispsync_core.api.schemas.conversation import ConversationResponse, MessageResponse
from crispsync_core.api.schemas.envelope import envelope
from crispsync_core.domain.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_CONVERSATION_PAGE_SIZE,
    MAX_MESSAGE_PAGE_SIZE,
)
from crispsync_core.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/crisp-db", tags=["crisp-db"])


def _store_failure(action: str, error: SQLAlchemyError) -> HTTPException:
    logger.error(f"Failed to {action}", exc_info=True, error=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.get("/conversations")
async def list_conversations(
    store: RecordStoreDep,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_CONVERSATION_PAGE_SIZE),
    website_id: Optional[str] = Query(None),
) -> dict[str, Any]:
    """List stored conversations, most recently updated first."""
    try:
        result = store.list_local(website_id=website_id, page=page, limit=limit)
    except SQLAlchemyError as e:
        raise _store_failure("list conversations", e)

    return envelope(
        data=[
            ConversationResponse.model_validate(item).model_dump(mode="json")
            for item in result.items
        ],
        message="Conversations fetched",
        pagination=result.to_dict(),
    )


@router.get("/messages/{session_id}")
async def list_messages(
    session_id: str,
    store: RecordStoreDep,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=MAX_MESSAGE_PAGE_SIZE),
) -> dict[str, Any]:
    """List the stored messages of one conversation, oldest first."""
    try:
        result = store.list_local_messages(session_id, page=page, limit=limit)
    except SQLAlchemyError as e:
        raise _store_failure("list messages", e)

    return envelope(
        data=[
            MessageResponse.model_validate(item).model_dump(mode="json", by_alias=True)
            for item in result.items
        ],
        message="Messages fetched",
        pagination=result.to_dict(),
    )


@router.delete("/conversations")
async def purge_conversations(store: RecordStoreDep) -> dict[str, Any]:
    """Delete every stored conversation together with its messages."""
    try:
        result = store.purge_conversations()
    except SQLAlchemyError as e:
        raise _store_failure("delete conversations", e)

    return envelope(data=result.to_dict(), message="Conversations deleted")


@router.delete("/messages")
async def purge_messages(store: RecordStoreDep) -> dict[str, Any]:
    """Delete every stored message."""
    try:
        result = store.purge_messages()
    except SQLAlchemyError as e:
        raise _store_failure("delete messages", e)

    return envelope(data=result.to_dict(), message="Messages deleted")
