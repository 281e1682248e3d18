"""Batch deduplication by identity key.

The same message can appear in several upstream pages or events. Before a
batch reaches the writer it is collapsed to one item per identity, keeping
the item with the highest logical timestamp. When timestamps tie, or either
side has none, the item observed later wins.
"""

from typing import Any, Callable, Hashable, Iterable, Optional, TypeVar

from crispsync_core.domain.records import ConversationRecord
from crispsync_core.domain.services.normalize import coerce_fingerprint, coerce_int

T = TypeVar("T")


def deduplicate(
    items: Iterable[T],
    key: Callable[[T], Optional[Hashable]],
    timestamp: Callable[[T], Optional[int]],
) -> dict[Hashable, T]:
    """Collapse items to one per identity key.

    Items whose key is None are dropped.

    Returns:
        Mapping of identity key to the winning item.
    """
    result: dict[Hashable, T] = {}
    for item in items:
        identity = key(item)
        if identity is None:
            continue

        current = result.get(identity)
        if current is None:
            result[identity] = item
            continue

        new_ts = timestamp(item)
        current_ts = timestamp(current)
        if new_ts is None or current_ts is None or new_ts >= current_ts:
            result[identity] = item

    return result


def _raw_fingerprint(raw: Any) -> Optional[int]:
    if not isinstance(raw, dict):
        return None
    return coerce_fingerprint(raw.get("fingerprint"))


def _raw_timestamp(raw: Any) -> Optional[int]:
    return coerce_int(raw.get("timestamp"))


def deduplicate_messages(raw_messages: Iterable[Any]) -> dict[int, dict[str, Any]]:
    """Deduplicate raw upstream messages by fingerprint."""
    return deduplicate(raw_messages, key=_raw_fingerprint, timestamp=_raw_timestamp)


def deduplicate_conversations(
    records: Iterable[ConversationRecord],
) -> dict[str, ConversationRecord]:
    """Deduplicate normalized conversations by session id."""
    return deduplicate(
        records,
        key=lambda record: record.identity,
        timestamp=lambda record: record.logical_time,
    )
