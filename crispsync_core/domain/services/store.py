"""Read-back and purge operations on the record store.

These are plain CRUD queries over the mirrored tables; errors propagate
to the caller unchanged.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from crispsync_core.domain.models import Conversation, Message
from crispsync_core.domain.pagination import (
    MAX_CONVERSATION_PAGE_SIZE,
    MAX_MESSAGE_PAGE_SIZE,
    PaginatedResult,
    PaginationParams,
    paginate_query,
)
from crispsync_core.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PurgeResult:
    """Rows removed by a purge."""

    deleted_messages: int = 0
    deleted_conversations: Optional[int] = None

    def to_dict(self) -> dict[str, int]:
        result = {"deleted_messages": self.deleted_messages}
        if self.deleted_conversations is not None:
            result["deleted_conversations"] = self.deleted_conversations
        return result


class RecordStoreService:
    """Read-back and purge over Conversations and Messages."""

    def __init__(self, db: Session):
        self.db = db

    def list_local(
        self,
        website_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> PaginatedResult[Conversation]:
        """List stored conversations, most recently updated upstream first."""
        params = PaginationParams(
            page=page, page_size=limit, max_page_size=MAX_CONVERSATION_PAGE_SIZE
        )
        query = select(Conversation)
        if website_id:
            query = query.where(Conversation.website_id == website_id)
        query = query.order_by(Conversation.updated_at_crisp.desc(), Conversation.id.desc())
        return paginate_query(self.db, query, params)

    def list_local_messages(
        self,
        session_id: str,
        page: int = 1,
        limit: int = 100,
    ) -> PaginatedResult[Message]:
        """List the stored messages of one conversation in chronological order."""
        params = PaginationParams(
            page=page, page_size=limit, max_page_size=MAX_MESSAGE_PAGE_SIZE
        )
        query = (
            select(Message)
            .where(Message.session_id == session_id)
            .order_by(Message.timestamp.asc(), Message.id.asc())
        )
        return paginate_query(self.db, query, params)

    def purge_conversations(self) -> PurgeResult:
        """Delete every conversation; their messages go with them."""
        result = PurgeResult(
            deleted_conversations=self._count(Conversation),
            deleted_messages=self._count(Message),
        )
        self.db.execute(delete(Conversation))
        self.db.commit()

        logger.warning(
            "Purged all conversations",
            deleted_conversations=result.deleted_conversations,
            deleted_messages=result.deleted_messages,
        )
        return result

    def purge_messages(self) -> PurgeResult:
        """Delete every message, keeping conversations."""
        result = PurgeResult(deleted_messages=self._count(Message))
        self.db.execute(delete(Message))
        self.db.commit()

        logger.warning("Purged all messages", deleted_messages=result.deleted_messages)
        return result

    def _count(self, model: type) -> int:
        return self.db.execute(select(func.count()).select_from(model)).scalar() or 0
