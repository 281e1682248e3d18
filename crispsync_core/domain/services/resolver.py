"""Parent conversation resolution.

A message must never be written without its conversation. The resolver
guarantees the parent row exists, fetching it from upstream on a miss and
falling back to a minimal stub when the fetch fails, so messages are
never dropped for lack of conversation context.

Usage:
    resolver = ConversationResolver(gateway=adapter, writer=writer)
    await resolver.ensure(session_id, website_id)
"""

from typing import Optional, Sequence

from crispsync_core.domain.records import ConversationRecord, WriteResult
from crispsync_core.domain.services.normalize import (
    build_stub_conversation,
    normalize_conversation,
)
from crispsync_core.domain.services.writer import IdempotentWriter
from crispsync_core.observability.logging import SyncContext, get_logger
from crispsync_core.observability.metrics import MetricsCollector, get_metrics
from crispsync_core.providers.base import UpstreamGateway

logger = get_logger(__name__)


class ConversationResolver:
    """Makes sure a Conversation row exists before messages reference it."""

    def __init__(
        self,
        gateway: UpstreamGateway,
        writer: IdempotentWriter,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the resolver.

        Args:
            gateway: Upstream gateway used for point fetches on a miss.
            writer: Writer used to persist the resolved conversation.
            metrics: Metrics collector (defaults to the process-wide one).
        """
        self.gateway = gateway
        self.writer = writer
        self.metrics = metrics or get_metrics()

    async def ensure(self, session_id: str, website_id: str) -> bool:
        """Guarantee a conversation exists for ``session_id``.

        Returns immediately, without any network call, when the row is
        already present.

        Returns:
            True if this call created the row (full or stub).
        """
        if self.writer.conversation_exists(session_id):
            return False

        context = SyncContext(website_id=website_id, session_id=session_id)
        record = await self._fetch(session_id, website_id, context)

        if record is None:
            record = build_stub_conversation(session_id, website_id)
            logger.warning("Inserting stub conversation", context=context)
            self.metrics.increment("resolver_stubs_created")
        else:
            self.metrics.increment("resolver_conversations_fetched")

        return self.writer.insert_conversation_if_absent(record)

    async def _fetch(
        self,
        session_id: str,
        website_id: str,
        context: SyncContext,
    ) -> Optional[ConversationRecord]:
        try:
            raw = await self.gateway.get_conversation(website_id, session_id)
        except Exception as e:
            logger.warning(
                "Failed to fetch conversation details",
                context=context,
                error=str(e),
            )
            return None

        record = normalize_conversation(raw)
        if record is None:
            return None

        # A payload for another session is as good as a failed fetch
        if record.session_id != session_id:
            logger.warning(
                "Fetched conversation does not match requested session",
                context=context,
                fetched_session_id=record.session_id,
            )
            return None

        return record

    def upsert_known(self, records: Sequence[ConversationRecord]) -> WriteResult:
        """Full-detail path: the records are already known, e.g. from a page."""
        return self.writer.upsert_conversations(records)
