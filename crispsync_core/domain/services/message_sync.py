"""On-demand message sync for one conversation.

Fetches a conversation's full message listing from upstream and stores it
through the same dedupe, normalize and upsert steps a backfill page uses.
The parent conversation is resolved first so the listing can always be
written.

Usage:
    service = MessageSyncService(gateway, resolver, writer)
    result = await service.sync(website_id, session_id)
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from crispsync_core.domain.records import WriteResult
from crispsync_core.domain.services.dedupe import deduplicate_messages
from crispsync_core.domain.services.normalize import normalize_message
from crispsync_core.domain.services.resolver import ConversationResolver
from crispsync_core.domain.services.writer import IdempotentWriter
from crispsync_core.observability.logging import SyncContext, get_logger
from crispsync_core.observability.metrics import MetricsCollector, get_metrics
from crispsync_core.providers.base import UpstreamGateway

logger = get_logger(__name__)


@dataclass
class MessageSyncResult:
    """Outcome of syncing one conversation's messages."""

    website_id: str
    session_id: str
    fetched: int = 0
    stored: int = 0
    conversation_created: bool = False
    messages: list[dict[str, Any]] = field(default_factory=list)


def with_scope(
    raw_messages: Iterable[Any],
    website_id: str,
    session_id: str,
) -> list[dict[str, Any]]:
    """Fill in the scope a listing was requested for.

    Listings may omit ``session_id``/``website_id`` on each message;
    entries that are not objects are dropped.
    """
    return [
        {
            **raw,
            "session_id": raw.get("session_id") or session_id,
            "website_id": raw.get("website_id") or website_id,
        }
        for raw in raw_messages
        if isinstance(raw, dict)
    ]


def store_raw_messages(
    writer: IdempotentWriter,
    raw_messages: list[dict[str, Any]],
) -> WriteResult:
    """Deduplicate, normalize and upsert a batch of raw messages.

    Args:
        writer: Writer for the message batch.
        raw_messages: Raw upstream messages, possibly with repeats.

    Returns:
        The writer's result for the batch.
    """
    records = [
        record
        for record in (
            normalize_message(raw) for raw in deduplicate_messages(raw_messages).values()
        )
        if record is not None
    ]
    return writer.upsert_messages(records)


class MessageSyncService:
    """Fetches and stores the messages of a single conversation."""

    def __init__(
        self,
        gateway: UpstreamGateway,
        resolver: ConversationResolver,
        writer: IdempotentWriter,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.gateway = gateway
        self.resolver = resolver
        self.writer = writer
        self.metrics = metrics or get_metrics()

    async def sync(self, website_id: str, session_id: str) -> MessageSyncResult:
        """Fetch a conversation's messages and upsert them.

        Args:
            website_id: Website the conversation belongs to.
            session_id: Conversation to sync.

        Returns:
            MessageSyncResult with the upstream listing and counts.

        Raises:
            UpstreamError: If the message listing cannot be fetched.
        """
        context = SyncContext(website_id=website_id, session_id=session_id)
        result = MessageSyncResult(website_id=website_id, session_id=session_id)

        raw_messages = with_scope(
            await self.gateway.list_messages(website_id, session_id),
            website_id,
            session_id,
        )
        result.fetched = len(raw_messages)
        result.messages = raw_messages

        result.conversation_created = await self.resolver.ensure(session_id, website_id)

        write = store_raw_messages(self.writer, raw_messages)
        result.stored = write.saved

        self.metrics.increment("message_syncs")
        logger.info(
            "Conversation messages synced",
            context=context,
            fetched=result.fetched,
            stored=result.stored,
        )
        return result
