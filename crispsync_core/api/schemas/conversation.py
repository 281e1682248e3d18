"""Conversation and message API schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConversationResponse(BaseModel):
    """Response schema for a stored conversation."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: str
    website_id: str
    active_last: Optional[int] = None
    active_now: bool = False
    availability: Optional[str] = None
    is_blocked: bool = False
    state: Optional[str] = None
    status: int = 0
    unread_operator: int = 0
    unread_visitor: int = 0
    waiting_since: Optional[int] = None
    assigned_user_id: Optional[str] = None
    people_id: Optional[str] = None
    meta_nickname: Optional[str] = None
    meta_email: Optional[str] = None
    meta_phone: Optional[str] = None
    meta_avatar: Optional[str] = None
    meta_ip: Optional[str] = None
    meta_origin: Optional[str] = None
    meta_segments: Optional[Any] = None
    meta_data: Optional[Any] = None
    meta_device: Optional[Any] = None
    meta_connection: Optional[Any] = None
    mentions: Optional[Any] = None
    participants: Optional[Any] = None
    verifications: Optional[Any] = None
    compose: Optional[Any] = None
    last_message: Optional[str] = None
    preview_message_type: Optional[str] = None
    preview_message_from: Optional[str] = None
    preview_message_excerpt: Optional[str] = None
    preview_message_fingerprint: Optional[int] = None
    created_at_crisp: int
    updated_at_crisp: int
    is_provisional: bool = False
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    """Response schema for a stored message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    fingerprint: int
    session_id: str
    website_id: str
    type: str
    from_: str = Field(serialization_alias="from")
    origin: Optional[str] = None
    content: str = ""
    user_id: Optional[str] = None
    user_nickname: Optional[str] = None
    preview: Optional[Any] = None
    mentions: Optional[Any] = None
    read: Optional[str] = None
    delivered: Optional[str] = None
    stamped: bool = False
    timestamp: int
    created_at: datetime
    updated_at: datetime


class BackfillResponse(BaseModel):
    """Totals reported by a backfill run."""

    model_config = ConfigDict(from_attributes=True)

    website_id: str
    conversation_count: int
    message_count: int
    pages_processed: int
    pages_fetched: int
    partial: bool = False
    cancelled: bool = False
    error: Optional[str] = None


class MessageSyncResponse(BaseModel):
    """Result of syncing one conversation's messages on demand."""

    website_id: str
    session_id: str
    fetched: int
    stored: int
    conversation_created: bool = False
    messages: list[dict[str, Any]] = Field(default_factory=list)
