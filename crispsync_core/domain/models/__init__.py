"""Domain models for CrispSync.

This module defines the SQLAlchemy ORM models of the record store: one
Conversation per upstream session and one Message per upstream chat event.

Upstream logical times (``*_crisp``, ``timestamp``, ``active_last``,
``waiting_since``) are kept as epoch milliseconds, exactly as the upstream
assigns them. ``created_at``/``updated_at`` are local write times.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# SQLite only autoincrements INTEGER PRIMARY KEY
PrimaryKey = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    """Naive UTC now, the way the store keeps local write times."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ConversationState(str):
    """Conversation state values."""

    PENDING = "pending"
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    ACTIVE = "active"


class Conversation(Base):
    """Mirrored upstream conversation (one per session)."""

    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    website_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Lifecycle / state
    active_last: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    active_now: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    availability: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unread_operator: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unread_visitor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    waiting_since: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    assigned_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    people_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Contact metadata (opaque to the sync engine)
    meta_nickname: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    meta_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    meta_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    meta_avatar: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_ip: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    meta_origin: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    meta_segments: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    meta_data: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    meta_device: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    meta_connection: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    mentions: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    participants: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    verifications: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    compose: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    # Denormalized last message preview
    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preview_message_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    preview_message_from: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    preview_message_excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preview_message_fingerprint: Mapped[Optional[int]] = mapped_column(
        BigInteger, nullable=True
    )

    # Upstream logical times
    created_at_crisp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at_crisp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Set when the times above come from the local clock (stubs, bare events)
    is_provisional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_session_id", "session_id", unique=True),
        Index("idx_conv_website_updated", "website_id", "updated_at_crisp"),
    )

    # Relationships
    messages: Mapped[list["Message"]] = relationship(
        back_populates="conversation",
        passive_deletes=True,
    )


class Message(Base):
    """Mirrored upstream message, identified by its fingerprint."""

    __tablename__ = "conversation_messages"

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    fingerprint: Mapped[int] = mapped_column(BigInteger, nullable=False)
    session_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("conversations.session_id", ondelete="CASCADE"),
        nullable=False,
    )
    website_id: Mapped[str] = mapped_column(String(255), nullable=False)

    type: Mapped[str] = mapped_column(String(50), nullable=False)
    from_: Mapped[str] = mapped_column("from", String(50), nullable=False)
    origin: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_nickname: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    preview: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    mentions: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    read: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    delivered: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    stamped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Upstream logical time
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_fingerprint", "fingerprint", unique=True),
        Index("idx_msg_session_time", "session_id", "timestamp"),
    )

    # Relationships
    conversation: Mapped["Conversation"] = relationship(back_populates="messages")
