"""Domain services for CrispSync."""

from crispsync_core.domain.services.backfill import (
    BACKFILL_PAGE_SIZE,
    BackfillCoordinator,
    BackfillError,
    BackfillResult,
)
from crispsync_core.domain.services.events import EventIngestor
from crispsync_core.domain.services.message_sync import MessageSyncResult, MessageSyncService
from crispsync_core.domain.services.resolver import ConversationResolver
from crispsync_core.domain.services.store import PurgeResult, RecordStoreService
from crispsync_core.domain.services.writer import IdempotentWriter, is_unique_violation

__all__ = [
    "BACKFILL_PAGE_SIZE",
    "BackfillCoordinator",
    "BackfillError",
    "BackfillResult",
    "ConversationResolver",
    "EventIngestor",
    "IdempotentWriter",
    "MessageSyncResult",
    "MessageSyncService",
    "is_unique_violation",
    "PurgeResult",
    "RecordStoreService",
]
