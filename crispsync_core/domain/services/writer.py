"""Idempotent writer for conversations and messages.

Both ingestion paths (paginated backfill and live events) converge here.
A batch call:

1. Looks up which identities already exist, in one query for the batch.
2. Inserts the missing ones as one batch.
3. Overwrites the existing ones as one batch (creation metadata kept).

If the batch insert hits a uniqueness conflict (another writer inserted
one of the identities in between), the insert is retried one record at a
time, and any record that still conflicts is fetched and updated instead.
Each call uses its own session and commits independently, so replaying a
batch is safe and converges on one row per identity.

Conversations are last-writer-wins on the upstream ``updated_at``; an
incoming record older than the stored one is skipped. Provisional rows
(stubs and records timed by the local clock) are always replaced by an
upstream-timed record and never replace one. Messages are overwritten in
full on every re-observation.

Usage:
    writer = IdempotentWriter(session_factory)
    result = writer.upsert_messages(records)
    created = writer.insert_message_if_absent(record)
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from crispsync_core.domain.models import Base, Conversation, Message
from crispsync_core.domain.records import (
    ConversationRecord,
    MessageRecord,
    WriteResult,
)
from crispsync_core.observability.logging import get_logger
from crispsync_core.observability.metrics import MetricsCollector, get_metrics

logger = get_logger(__name__)

Record = Union[ConversationRecord, MessageRecord]

# SQLSTATE / driver codes for unique-constraint violations
PG_UNIQUE_VIOLATION = "23505"
MYSQL_DUPLICATE_ENTRY = 1062


def is_unique_violation(exc: IntegrityError) -> bool:
    """Tell a uniqueness conflict apart from other integrity errors."""
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == PG_UNIQUE_VIOLATION:
        return True

    args = getattr(orig, "args", ())
    if args and args[0] == MYSQL_DUPLICATE_ENTRY:
        return True

    message = str(orig).lower()
    return (
        "unique constraint" in message
        or "duplicate entry" in message
        or "duplicate key" in message
    )


@dataclass(frozen=True)
class _Target:
    """Where and how one record type is written."""

    model: type[Base]
    key: str
    label: str
    last_writer_wins: bool


CONVERSATIONS = _Target(
    model=Conversation,
    key="session_id",
    label="conversation",
    last_writer_wins=True,
)
MESSAGES = _Target(
    model=Message,
    key="fingerprint",
    label="message",
    last_writer_wins=False,
)


class IdempotentWriter:
    """Batched, conflict-tolerant upserts against the record store."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the writer.

        Args:
            session_factory: Factory for record store sessions.
            metrics: Metrics collector (defaults to the process-wide one).
        """
        self.session_factory = session_factory
        self.metrics = metrics or get_metrics()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def upsert_conversations(self, records: Sequence[ConversationRecord]) -> WriteResult:
        """Insert or update a batch of conversations."""
        return self._upsert(CONVERSATIONS, records)

    def upsert_messages(self, records: Sequence[MessageRecord]) -> WriteResult:
        """Insert or update a batch of messages."""
        return self._upsert(MESSAGES, records)

    def insert_conversation_if_absent(self, record: ConversationRecord) -> bool:
        """Insert one conversation unless its session already exists.

        Returns:
            True if this call created the row.
        """
        return self._insert_if_absent(CONVERSATIONS, record)

    def insert_message_if_absent(self, record: MessageRecord) -> bool:
        """Insert one message unless its fingerprint already exists.

        A concurrent insert of the same fingerprint is absorbed.

        Returns:
            True if this call created the row.
        """
        return self._insert_if_absent(MESSAGES, record)

    def conversation_exists(self, session_id: str) -> bool:
        return self._exists(CONVERSATIONS, session_id)

    def message_exists(self, fingerprint: int) -> bool:
        return self._exists(MESSAGES, fingerprint)

    # =========================================================================
    # BATCH UPSERT
    # =========================================================================

    def _upsert(self, target: _Target, records: Sequence[Record]) -> WriteResult:
        # Last occurrence wins if the caller passed repeats
        batch: dict[Any, Record] = {}
        for record in records:
            batch[record.identity] = record

        if not batch:
            return WriteResult()

        result = WriteResult()
        with self.session_factory() as db:
            existing = self._find_existing(db, target, list(batch.keys()))

            to_insert = [r for key, r in batch.items() if key not in existing]
            to_update = [r for key, r in batch.items() if key in existing]

            if to_insert:
                result = result.merge(self._insert_batch(db, target, to_insert))

            if to_update:
                for record in to_update:
                    if self._apply(target, existing[record.identity], record):
                        result.updated += 1
                    else:
                        result.skipped_stale += 1
                db.commit()

        self._record_metrics(target, result)
        return result

    def _find_existing(
        self,
        db: Session,
        target: _Target,
        keys: list[Any],
    ) -> dict[Any, Base]:
        """Single batched existence lookup by identity key."""
        column = getattr(target.model, target.key)
        rows = db.scalars(select(target.model).where(column.in_(keys))).all()
        return {getattr(row, target.key): row for row in rows}

    def _get_one(self, db: Session, target: _Target, identity: Any) -> Optional[Base]:
        column = getattr(target.model, target.key)
        return db.scalars(select(target.model).where(column == identity)).first()

    def _insert_batch(
        self,
        db: Session,
        target: _Target,
        records: list[Record],
    ) -> WriteResult:
        db.add_all([target.model(**record.as_fields()) for record in records])
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if not is_unique_violation(e):
                raise
            logger.warning(
                "Batch insert hit an identity conflict, falling back to single inserts",
                entity=target.label,
                batch_size=len(records),
            )
            return self._insert_one_by_one(db, target, records)

        return WriteResult(inserted=len(records))

    def _insert_one_by_one(
        self,
        db: Session,
        target: _Target,
        records: list[Record],
    ) -> WriteResult:
        result = WriteResult()
        for record in records:
            db.add(target.model(**record.as_fields()))
            try:
                db.commit()
                result.inserted += 1
                continue
            except IntegrityError as e:
                db.rollback()
                if not is_unique_violation(e):
                    logger.error(
                        "Failed to insert record",
                        entity=target.label,
                        identity=str(record.identity),
                        error=str(e.orig),
                    )
                    result.failed += 1
                    result.failed_identities.append(record.identity)
                    continue

            # Someone else inserted it first: treat as existing and update
            row = self._get_one(db, target, record.identity)
            if row is None:
                logger.error(
                    "Conflicting record vanished before update",
                    entity=target.label,
                    identity=str(record.identity),
                )
                result.failed += 1
                result.failed_identities.append(record.identity)
                continue

            if self._apply(target, row, record):
                result.updated += 1
            else:
                result.skipped_stale += 1
            db.commit()
            result.conflicts_recovered += 1

        return result

    def _apply(self, target: _Target, row: Base, record: Record) -> bool:
        """Overwrite stored fields with incoming ones.

        Returns:
            False if the incoming record must not replace the stored one.
        """
        if target.last_writer_wins and not record.supersedes(
            row.updated_at_crisp, bool(row.is_provisional)
        ):
            return False

        for name, value in record.as_fields().items():
            if name == target.key:
                continue
            setattr(row, name, value)
        return True

    # =========================================================================
    # SINGLE RECORD
    # =========================================================================

    def _insert_if_absent(self, target: _Target, record: Record) -> bool:
        with self.session_factory() as db:
            if self._get_one(db, target, record.identity) is not None:
                return False

            db.add(target.model(**record.as_fields()))
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                if not is_unique_violation(e):
                    raise
                logger.debug(
                    "Record was inserted concurrently, skipping",
                    entity=target.label,
                    identity=str(record.identity),
                )
                self.metrics.increment(
                    "writer_conflicts_absorbed", labels={"entity": target.label}
                )
                return False

        self.metrics.increment("writer_records_inserted", labels={"entity": target.label})
        return True

    def _exists(self, target: _Target, identity: Any) -> bool:
        with self.session_factory() as db:
            return self._get_one(db, target, identity) is not None

    def _record_metrics(self, target: _Target, result: WriteResult) -> None:
        labels = {"entity": target.label}
        if result.inserted:
            self.metrics.increment("writer_records_inserted", result.inserted, labels)
        if result.updated:
            self.metrics.increment("writer_records_updated", result.updated, labels)
        if result.skipped_stale:
            self.metrics.increment("writer_records_stale", result.skipped_stale, labels)
        if result.conflicts_recovered:
            self.metrics.increment(
                "writer_conflicts_recovered", result.conflicts_recovered, labels
            )
        if result.failed:
            self.metrics.increment("writer_records_failed", result.failed, labels)
