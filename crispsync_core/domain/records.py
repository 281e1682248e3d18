"""Normalized record shapes.

Every upstream payload is converted into one of these records before any
sync component sees it. Field names match the ORM columns so a record can
be written onto a model with ``as_fields()``.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class ConversationRecord:
    """Normalized conversation, keyed by ``session_id``."""

    session_id: str
    website_id: str
    created_at_crisp: int
    updated_at_crisp: int
    is_provisional: bool = False

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

    @property
    def identity(self) -> str:
        return self.session_id

    @property
    def logical_time(self) -> int:
        return self.updated_at_crisp

    def supersedes(self, stored_time: int, stored_provisional: bool) -> bool:
        """Whether this record may overwrite a stored conversation.

        Local clock times are only compared with each other: an upstream
        record always replaces a provisional row, and a provisional record
        never replaces an upstream-timed one.
        """
        if stored_provisional:
            return True
        if self.is_provisional:
            return False
        return self.logical_time >= stored_time

    def as_fields(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MessageRecord:
    """Normalized message, keyed by ``fingerprint``."""

    fingerprint: int
    session_id: str
    website_id: str
    type: str
    from_: str
    timestamp: int
    content: str = ""

    origin: Optional[str] = None
    user_id: Optional[str] = None
    user_nickname: Optional[str] = None
    preview: Optional[Any] = None
    mentions: Optional[Any] = None
    read: Optional[str] = None
    delivered: Optional[str] = None
    stamped: bool = False

    @property
    def identity(self) -> int:
        return self.fingerprint

    @property
    def logical_time(self) -> int:
        return self.timestamp

    def as_fields(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class WriteResult:
    """Outcome of one Idempotent Writer call."""

    inserted: int = 0
    updated: int = 0
    skipped_stale: int = 0
    conflicts_recovered: int = 0
    failed: int = 0
    failed_identities: list[Any] = field(default_factory=list)

    @property
    def saved(self) -> int:
        """Records now present in the store with this batch's fields."""
        return self.inserted + self.updated

    def merge(self, other: "WriteResult") -> "WriteResult":
        return WriteResult(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            skipped_stale=self.skipped_stale + other.skipped_stale,
            conflicts_recovered=self.conflicts_recovered + other.conflicts_recovered,
            failed=self.failed + other.failed,
            failed_identities=self.failed_identities + other.failed_identities,
        )
