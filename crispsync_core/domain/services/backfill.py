"""Paginated bulk ingestion of conversations and messages.

The coordinator walks the upstream conversation list page by page:

1. Fetch page N (fixed page size).
2. Stop on an empty page.
3. Upsert the page's conversations, then fetch the messages of every
   conversation concurrently, deduplicate them and upsert them.
4. Stop after a short page, otherwise advance to page N + 1.

A failure on page 1 is a hard failure. A failure on a later page stops
the loop and reports the totals accumulated so far as a partial result.
Cancellation is honored between pages; a page already being processed
is always finished first.

Usage:
    coordinator = BackfillCoordinator(gateway, resolver, writer)
    result = await coordinator.run(website_id)
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from crispsync_core.domain.records import ConversationRecord
from crispsync_core.domain.services.dedupe import deduplicate_conversations
from crispsync_core.domain.services.message_sync import store_raw_messages, with_scope
from crispsync_core.domain.services.normalize import normalize_conversation
from crispsync_core.domain.services.resolver import ConversationResolver
from crispsync_core.domain.services.writer import IdempotentWriter
from crispsync_core.observability.logging import SyncContext, get_logger
from crispsync_core.observability.metrics import MetricsCollector, get_metrics
from crispsync_core.providers.base import UpstreamGateway

logger = get_logger(__name__)

# Used both as the requested page size and as the short-page threshold;
# the two must match or the loop never sees a last page.
BACKFILL_PAGE_SIZE = 20

DEFAULT_MAX_CONCURRENCY = 5


class BackfillError(Exception):
    """Raised when a backfill fails before any page was processed."""

    def __init__(self, website_id: str, cause: BaseException):
        super().__init__(f"Backfill failed for website {website_id}: {cause}")
        self.website_id = website_id
        self.cause = cause


@dataclass
class BackfillResult:
    """Accumulated totals of one backfill run.

    ``pages_processed`` counts pages that carried conversations and were
    written; ``pages_fetched`` counts every list call, including the empty
    page that ends a run. Pages [20, 20, 0] therefore give 2 and 3.
    """

    website_id: str
    conversation_count: int = 0
    message_count: int = 0
    pages_processed: int = 0
    pages_fetched: int = 0
    partial: bool = False
    cancelled: bool = False
    error: Optional[str] = None


class BackfillCoordinator:
    """Drives the page loop for one website."""

    def __init__(
        self,
        gateway: UpstreamGateway,
        resolver: ConversationResolver,
        writer: IdempotentWriter,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the coordinator.

        Args:
            gateway: Upstream gateway for page and message fetches.
            resolver: Resolver whose full-detail path stores conversations.
            writer: Writer for messages.
            max_concurrency: Concurrent message fetches within one page.
            metrics: Metrics collector (defaults to the process-wide one).
        """
        self.gateway = gateway
        self.resolver = resolver
        self.writer = writer
        self.metrics = metrics or get_metrics()
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._cancel_requested = False

    def cancel(self) -> None:
        """Request the loop to stop before the next page."""
        self._cancel_requested = True

    async def run(self, website_id: str) -> BackfillResult:
        """Backfill all conversations and messages of a website.

        Raises:
            BackfillError: If page 1 cannot be fetched or processed.
        """
        result = BackfillResult(website_id=website_id)
        page = 1

        run_context = SyncContext(website_id=website_id)
        logger.info("Backfill started", context=run_context)

        while True:
            context = run_context.with_fields(page=page)

            if self._cancel_requested:
                result.cancelled = True
                logger.info("Backfill cancelled between pages", context=context)
                break

            try:
                result.pages_fetched += 1
                raw_page = await self.gateway.list_conversations(
                    website_id, page, BACKFILL_PAGE_SIZE
                )
                if not raw_page:
                    break

                conversations, messages = await self._process_page_to_end(
                    website_id, page, raw_page
                )
            except Exception as e:
                if page == 1:
                    logger.error("Backfill failed on first page", context=context, error=str(e))
                    self.metrics.increment("backfill_runs", labels={"outcome": "failed"})
                    raise BackfillError(website_id, e) from e

                logger.warning(
                    "Backfill stopped early, keeping processed pages",
                    context=context,
                    error=str(e),
                )
                result.partial = True
                result.error = str(e)
                break

            result.conversation_count += conversations
            result.message_count += messages
            result.pages_processed += 1
            self.metrics.increment("backfill_pages_processed")

            if len(raw_page) < BACKFILL_PAGE_SIZE:
                break
            page += 1

        outcome = "partial" if result.partial else "cancelled" if result.cancelled else "completed"
        self.metrics.increment("backfill_runs", labels={"outcome": outcome})
        logger.info(
            "Backfill finished",
            context=run_context,
            outcome=outcome,
            conversation_count=result.conversation_count,
            message_count=result.message_count,
            pages_processed=result.pages_processed,
        )
        return result

    async def _process_page_to_end(
        self,
        website_id: str,
        page: int,
        raw_page: list[dict[str, Any]],
    ) -> tuple[int, int]:
        task = asyncio.ensure_future(self._process_page(website_id, page, raw_page))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Never leave a page half written
            if not task.done():
                await task
            raise

    async def _process_page(
        self,
        website_id: str,
        page: int,
        raw_page: list[dict[str, Any]],
    ) -> tuple[int, int]:
        """Store one page of conversations and all their messages.

        Returns:
            Conversations and messages stored from this page.
        """
        records = [
            record
            for record in (normalize_conversation(raw) for raw in raw_page)
            if record is not None
        ]
        conversations = list(deduplicate_conversations(records).values())

        conv_result = self.resolver.upsert_known(conversations)
        failed = set(conv_result.failed_identities)
        stored = [c for c in conversations if c.session_id not in failed]

        message_lists = await asyncio.gather(
            *(self._fetch_messages(website_id, conversation) for conversation in stored)
        )
        raw_messages = [raw for messages in message_lists for raw in messages]

        msg_result = store_raw_messages(self.writer, raw_messages)

        logger.info(
            "Backfill page processed",
            context=SyncContext(website_id=website_id, page=page),
            conversations=len(stored),
            messages=msg_result.saved,
        )
        return len(stored), msg_result.saved

    async def _fetch_messages(
        self,
        website_id: str,
        conversation: ConversationRecord,
    ) -> list[dict[str, Any]]:
        """Fetch one conversation's messages; a failure yields none."""
        async with self._semaphore:
            try:
                raw_messages = await self.gateway.list_messages(
                    website_id, conversation.session_id
                )
            except Exception as e:
                logger.warning(
                    "Failed to fetch messages, skipping conversation",
                    context=SyncContext(
                        website_id=website_id, session_id=conversation.session_id
                    ),
                    error=str(e),
                )
                self.metrics.increment("backfill_message_fetch_failures")
                return []

        return with_scope(raw_messages, conversation.website_id, conversation.session_id)
