"""Base upstream gateway interface and event types.

This module defines the boundary between the sync engine and the upstream
conversational platform. Gateways return raw upstream payloads (plain
dicts); converting them into strict records is the job of
``crispsync_core.domain.services.normalize``.

Usage:
    class CrispAdapter(UpstreamGateway):
        async def list_conversations(self, website_id, page, per_page):
            ...

    gateway.subscribe(ingestor.enqueue)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional


# =============================================================================
# ENUMS
# =============================================================================


class EventKind(str, Enum):
    """Live events delivered by the upstream subscription."""

    CONVERSATION_INITIATED = "session:request:initiated"
    MESSAGE_SENT = "message:send"
    MESSAGE_RECEIVED = "message:received"


class MessageActor(str, Enum):
    """Who authored a message, as known from the event direction."""

    VISITOR = "visitor"
    OPERATOR = "operator"


# Sent events come from the remote counterpart, received events from the local one
EVENT_ACTORS: dict[EventKind, MessageActor] = {
    EventKind.MESSAGE_SENT: MessageActor.VISITOR,
    EventKind.MESSAGE_RECEIVED: MessageActor.OPERATOR,
}


# =============================================================================
# EVENTS AND ERRORS
# =============================================================================


@dataclass
class UpstreamEvent:
    """One event pushed by the upstream platform."""

    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)
    website_id: Optional[str] = None

    @property
    def is_message(self) -> bool:
        return self.kind in EVENT_ACTORS

    @property
    def actor(self) -> Optional[MessageActor]:
        return EVENT_ACTORS.get(self.kind)


EventHandler = Callable[[UpstreamEvent], Awaitable[None]]


class UpstreamError(Exception):
    """Raised when an upstream API call fails."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


# =============================================================================
# GATEWAY INTERFACE
# =============================================================================


class UpstreamGateway(ABC):
    """Abstract base class for upstream gateways.

    Methods:
        list_conversations: List one page of conversations for a website
        get_conversation: Fetch one conversation
        list_messages: Fetch the messages of one conversation
        subscribe: Register a handler for live events
    """

    @abstractmethod
    async def list_conversations(
        self,
        website_id: str,
        page: int,
        per_page: int,
    ) -> list[dict[str, Any]]:
        """List one page of conversations.

        An empty list signals there is no more data.
        """
        ...

    @abstractmethod
    async def get_conversation(
        self,
        website_id: str,
        session_id: str,
    ) -> dict[str, Any]:
        """Fetch full details of one conversation.

        Raises:
            UpstreamError: If the conversation cannot be fetched.
        """
        ...

    @abstractmethod
    async def list_messages(
        self,
        website_id: str,
        session_id: str,
    ) -> list[dict[str, Any]]:
        """Fetch the messages of one conversation."""
        ...

    @abstractmethod
    def subscribe(self, handler: EventHandler) -> None:
        """Register a coroutine handler for live events.

        Delivery is asynchronous and at-least-once, with no ordering
        guarantee across sessions.
        """
        ...
