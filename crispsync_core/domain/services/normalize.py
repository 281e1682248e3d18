"""Normalization of raw upstream payloads.

Upstream payloads are loosely shaped JSON: any nested object may be absent.
These functions read them with explicit defaults and return strict records,
or None when the payload lacks the identity the store needs.
"""

import json
import time
from typing import Any, Optional

from crispsync_core.domain.models import ConversationState
from crispsync_core.domain.records import ConversationRecord, MessageRecord
from crispsync_core.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MESSAGE_TYPE = "text"


def now_ms() -> int:
    """Local clock in epoch milliseconds, the upstream's time unit."""
    return int(time.time() * 1000)


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    return value if isinstance(value, dict) else {}


def coerce_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def coerce_fingerprint(value: Any) -> Optional[int]:
    """Fingerprints are integers upstream but may arrive as strings."""
    return coerce_int(value)


def normalize_conversation(raw: Any) -> Optional[ConversationRecord]:
    """Convert a raw upstream conversation into a ConversationRecord.

    Returns:
        The record, or None if ``session_id`` or ``website_id`` is missing.
    """
    if not isinstance(raw, dict):
        logger.warning("Dropping malformed conversation payload")
        return None

    session_id = _as_text(raw.get("session_id"))
    website_id = _as_text(raw.get("website_id"))
    if not session_id or not website_id:
        logger.warning(
            "Dropping conversation without session_id or website_id",
            session_id=session_id,
            website_id=website_id,
        )
        return None

    active = _section(raw, "active")
    meta = _section(raw, "meta")
    unread = _section(raw, "unread")
    preview = _section(raw, "preview_message")
    assigned = _section(raw, "assigned")

    clock = now_ms()
    created_at = coerce_int(raw.get("created_at")) or clock
    upstream_updated_at = coerce_int(raw.get("updated_at"))

    return ConversationRecord(
        session_id=session_id,
        website_id=website_id,
        created_at_crisp=created_at,
        updated_at_crisp=upstream_updated_at or created_at,
        # Without an upstream update time the record cannot be ordered
        # against other upstream observations
        is_provisional=upstream_updated_at is None,
        active_last=coerce_int(active.get("last")),
        active_now=bool(active.get("now", False)),
        availability=_as_text(raw.get("availability")),
        is_blocked=bool(raw.get("is_blocked", False)),
        state=_as_text(raw.get("state")),
        status=coerce_int(raw.get("status")) or 0,
        unread_operator=coerce_int(unread.get("operator")) or 0,
        unread_visitor=coerce_int(unread.get("visitor")) or 0,
        waiting_since=coerce_int(raw.get("waiting_since")),
        assigned_user_id=_as_text(assigned.get("user_id")),
        people_id=_as_text(raw.get("people_id")),
        meta_nickname=_as_text(meta.get("nickname")),
        meta_email=_as_text(meta.get("email")),
        meta_phone=_as_text(meta.get("phone")),
        meta_avatar=_as_text(meta.get("avatar")),
        meta_ip=_as_text(meta.get("ip")),
        meta_origin=_as_text(meta.get("origin")),
        meta_segments=meta.get("segments"),
        meta_data=meta.get("data"),
        meta_device=meta.get("device"),
        meta_connection=meta.get("connection"),
        mentions=raw.get("mentions"),
        participants=raw.get("participants"),
        verifications=raw.get("verifications"),
        compose=raw.get("compose"),
        last_message=_as_text(raw.get("last_message")),
        preview_message_type=_as_text(preview.get("type")),
        preview_message_from=_as_text(preview.get("from")),
        preview_message_excerpt=_as_text(preview.get("excerpt")),
        preview_message_fingerprint=coerce_int(preview.get("fingerprint")),
    )


def build_stub_conversation(session_id: str, website_id: str) -> ConversationRecord:
    """Minimal conversation used when full details cannot be fetched."""
    clock = now_ms()
    return ConversationRecord(
        session_id=session_id,
        website_id=website_id,
        created_at_crisp=clock,
        updated_at_crisp=clock,
        is_provisional=True,
        status=0,
        state=ConversationState.ACTIVE,
        active_now=True,
        is_blocked=False,
        unread_operator=0,
        unread_visitor=0,
    )


def conversation_from_initiated_event(payload: dict[str, Any]) -> Optional[ConversationRecord]:
    """Build a conversation straight from a session-initiated event."""
    record = normalize_conversation(payload)
    if record is None:
        return None
    if record.state is None:
        record.state = ConversationState.ACTIVE
    if "active" not in payload:
        record.active_now = True
    if record.participants is None:
        record.participants = []
    return record


def _content_text(value: Any) -> str:
    # File, animation and picker messages carry structured content
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def normalize_message(
    raw: Any,
    default_from: Optional[str] = None,
) -> Optional[MessageRecord]:
    """Convert a raw upstream message into a MessageRecord.

    Args:
        raw: Upstream message payload.
        default_from: Actor used when the payload does not name one.

    Returns:
        The record, or None if fingerprint, ``session_id`` or ``website_id``
        is missing.
    """
    if not isinstance(raw, dict):
        logger.warning("Dropping malformed message payload")
        return None

    fingerprint = coerce_fingerprint(raw.get("fingerprint"))
    session_id = _as_text(raw.get("session_id"))
    website_id = _as_text(raw.get("website_id"))
    if fingerprint is None or not session_id or not website_id:
        logger.warning(
            "Dropping message without fingerprint, session_id or website_id",
            fingerprint=fingerprint,
            session_id=session_id,
            website_id=website_id,
        )
        return None

    user = _section(raw, "user")

    return MessageRecord(
        fingerprint=fingerprint,
        session_id=session_id,
        website_id=website_id,
        type=_as_text(raw.get("type")) or DEFAULT_MESSAGE_TYPE,
        from_=_as_text(raw.get("from")) or default_from or "",
        timestamp=coerce_int(raw.get("timestamp")) or now_ms(),
        content=_content_text(raw.get("content")),
        origin=_as_text(raw.get("origin")),
        user_id=_as_text(user.get("user_id")),
        user_nickname=_as_text(user.get("nickname")),
        preview=raw.get("preview"),
        mentions=raw.get("mentions"),
        read=_as_text(raw.get("read")),
        delivered=_as_text(raw.get("delivered")),
        stamped=bool(raw.get("stamped", False)),
    )
