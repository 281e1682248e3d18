"""API schemas."""

from crispsync_core.api.schemas.conversation import (
    BackfillResponse,
    ConversationResponse,
    MessageResponse,
    MessageSyncResponse,
)
from crispsync_core.api.schemas.envelope import ApiResponse, PaginationMeta, envelope

__all__ = [
    "ApiResponse",
    "BackfillResponse",
    "ConversationResponse",
    "envelope",
    "MessageResponse",
    "MessageSyncResponse",
    "PaginationMeta",
]
