"""Live event ingestion.

Upstream events are delivered through the gateway subscription into a
bounded queue and consumed by a small pool of worker tasks. A full queue
makes the subscription handler wait, so a slow store slows delivery down
instead of buffering without limit.

Each event is handled with single-record idempotency:

- session initiated: the conversation is built from the payload and
  inserted unless it already exists.
- message sent / received: skipped if the fingerprint is already stored
  (duplicate delivery). Otherwise the parent conversation is resolved, the
  authoritative message is looked up in the conversation's listing and,
  failing that, the event payload itself is stored with the actor taken
  from the event direction. Two deliveries racing on the same fingerprint
  end with one row and no error.

Usage:
    ingestor = EventIngestor(gateway, resolver, writer)
    ingestor.start()
    ...
    await ingestor.stop()
"""

import asyncio
from typing import Any, Optional

from crispsync_core.domain.services.normalize import (
    coerce_fingerprint,
    conversation_from_initiated_event,
    normalize_message,
)
from crispsync_core.domain.services.resolver import ConversationResolver
from crispsync_core.domain.services.writer import IdempotentWriter
from crispsync_core.observability.logging import SyncContext, get_logger
from crispsync_core.observability.metrics import MetricsCollector, get_metrics
from crispsync_core.providers.base import EventKind, UpstreamEvent, UpstreamGateway

logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class EventIngestor:
    """Consumes upstream events and reconciles them into the store."""

    def __init__(
        self,
        gateway: UpstreamGateway,
        resolver: ConversationResolver,
        writer: IdempotentWriter,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        workers: int = 1,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the ingestor.

        Args:
            gateway: Upstream gateway to subscribe to and re-fetch from.
            resolver: Resolver guaranteeing parent conversations.
            writer: Writer for single-record inserts.
            queue_size: Capacity of the event queue.
            workers: Number of consumer tasks.
            metrics: Metrics collector (defaults to the process-wide one).
        """
        self.gateway = gateway
        self.resolver = resolver
        self.writer = writer
        self.metrics = metrics or get_metrics()
        self.workers = workers
        self._queue: asyncio.Queue[UpstreamEvent] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task] = []
        self._subscribed = False

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Subscribe to the gateway and start the consumer tasks."""
        if not self._subscribed:
            self.gateway.subscribe(self.enqueue)
            self._subscribed = True

        if self._tasks:
            return

        for index in range(self.workers):
            self._tasks.append(
                asyncio.create_task(self._consume(), name=f"event-consumer-{index}")
            )
        logger.info("Event ingestor started", workers=self.workers)

    async def stop(self, drain: bool = True) -> None:
        """Stop the consumer tasks.

        Args:
            drain: Wait for queued events to be processed first.
        """
        if drain and self._tasks:
            await self._queue.join()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Event ingestor stopped")

    async def enqueue(self, event: UpstreamEvent) -> None:
        """Subscription handler; waits while the queue is full."""
        await self._queue.put(event)
        self.metrics.increment("events_received", labels={"kind": event.kind.value})
        self.metrics.set_gauge("event_queue_depth", self._queue.qsize())

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.process(event)
            except Exception as e:
                # One bad event must not stop the stream
                logger.error(
                    "Failed to process event",
                    exc_info=True,
                    event_kind=event.kind.value,
                    error=str(e),
                )
                self.metrics.increment(
                    "events_processed",
                    labels={"kind": event.kind.value, "outcome": "failed"},
                )
            finally:
                self._queue.task_done()
                self.metrics.set_gauge("event_queue_depth", self._queue.qsize())

    # =========================================================================
    # EVENT HANDLING
    # =========================================================================

    async def process(self, event: UpstreamEvent) -> bool:
        """Handle one event.

        Returns:
            True if the event created a row, False if it was a no-op.
        """
        if event.kind == EventKind.CONVERSATION_INITIATED:
            created = self._handle_initiated(event)
        elif event.is_message:
            created = await self._handle_message(event)
        else:
            logger.debug("Ignoring unsupported event", event_kind=str(event.kind))
            return False

        self.metrics.increment(
            "events_processed",
            labels={
                "kind": event.kind.value,
                "outcome": "stored" if created else "skipped",
            },
        )
        return created

    def _handle_initiated(self, event: UpstreamEvent) -> bool:
        payload = dict(event.payload)
        payload.setdefault("website_id", event.website_id)

        record = conversation_from_initiated_event(payload)
        if record is None:
            return False

        created = self.writer.insert_conversation_if_absent(record)
        if created:
            logger.info(
                "Conversation created from event",
                context=SyncContext(
                    website_id=record.website_id, session_id=record.session_id
                ),
            )
        return created

    async def _handle_message(self, event: UpstreamEvent) -> bool:
        payload = event.payload
        fingerprint = coerce_fingerprint(payload.get("fingerprint"))
        if fingerprint is None:
            fingerprint = coerce_fingerprint(payload.get("message_id"))
        session_id = payload.get("session_id")
        website_id = payload.get("website_id") or event.website_id

        context = SyncContext(
            website_id=website_id, session_id=session_id, fingerprint=fingerprint
        )

        if fingerprint is None or not session_id or not website_id:
            logger.warning("Dropping message event without identity", context=context)
            return False

        if self.writer.message_exists(fingerprint):
            logger.debug("Message already stored, skipping event", context=context)
            return False

        await self.resolver.ensure(session_id, website_id)

        raw = await self._fetch_authoritative(website_id, session_id, fingerprint, context)
        if raw is None:
            logger.info("Storing message from event payload", context=context)
            raw = {**payload, "from": event.actor.value}

        record = normalize_message(
            {
                **raw,
                "fingerprint": fingerprint,
                "session_id": session_id,
                "website_id": website_id,
            },
            default_from=event.actor.value,
        )
        if record is None:
            return False

        return self.writer.insert_message_if_absent(record)

    async def _fetch_authoritative(
        self,
        website_id: str,
        session_id: str,
        fingerprint: int,
        context: SyncContext,
    ) -> Optional[dict[str, Any]]:
        """Find the full message in its conversation's listing."""
        try:
            messages = await self.gateway.list_messages(website_id, session_id)
        except Exception as e:
            logger.warning(
                "Failed to re-fetch message, falling back to event payload",
                context=context,
                error=str(e),
            )
            return None

        for raw in messages:
            if isinstance(raw, dict) and coerce_fingerprint(raw.get("fingerprint")) == fingerprint:
                return raw
        return None
