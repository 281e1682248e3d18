"""API dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from crispsync_core.config import Settings, get_settings
from crispsync_core.domain.services.backfill import BackfillCoordinator
from crispsync_core.domain.services.events import EventIngestor
from crispsync_core.domain.services.message_sync import MessageSyncService
from crispsync_core.domain.services.resolver import ConversationResolver
from crispsync_core.domain.services.store import RecordStoreService
from crispsync_core.domain.services.writer import IdempotentWriter
from crispsync_core.infra.db import get_sync_session_factory
from crispsync_core.providers.crisp import CrispAdapter


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session_factory() -> sessionmaker[Session]:
    """Session factory for components that manage their own transactions."""
    return get_sync_session_factory()


def get_gateway(request: Request) -> CrispAdapter:
    """Get the upstream gateway built at startup."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upstream gateway is not configured",
        )
    return gateway


def get_ingestor(request: Request) -> EventIngestor:
    """Get the running event ingestor."""
    ingestor = getattr(request.app.state, "ingestor", None)
    if ingestor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event ingestor is not running",
        )
    return ingestor


def get_writer(
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> IdempotentWriter:
    return IdempotentWriter(session_factory)


def get_backfill_coordinator(
    gateway: Annotated[CrispAdapter, Depends(get_gateway)],
    writer: Annotated[IdempotentWriter, Depends(get_writer)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> BackfillCoordinator:
    """Build a coordinator for one backfill run."""
    resolver = ConversationResolver(gateway=gateway, writer=writer)
    return BackfillCoordinator(
        gateway=gateway,
        resolver=resolver,
        writer=writer,
        max_concurrency=settings.backfill_max_concurrency,
    )


def get_message_sync_service(
    gateway: Annotated[CrispAdapter, Depends(get_gateway)],
    writer: Annotated[IdempotentWriter, Depends(get_writer)],
) -> MessageSyncService:
    return MessageSyncService(
        gateway=gateway,
        resolver=ConversationResolver(gateway=gateway, writer=writer),
        writer=writer,
    )


def get_store_service(db: Annotated[Session, Depends(get_db)]) -> RecordStoreService:
    return RecordStoreService(db)


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
GatewayDep = Annotated[CrispAdapter, Depends(get_gateway)]
IngestorDep = Annotated[EventIngestor, Depends(get_ingestor)]
BackfillCoordinatorDep = Annotated[BackfillCoordinator, Depends(get_backfill_coordinator)]
MessageSyncDep = Annotated[MessageSyncService, Depends(get_message_sync_service)]
RecordStoreDep = Annotated[RecordStoreService, Depends(get_store_service)]
