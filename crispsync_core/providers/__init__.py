"""Upstream gateways for CrispSync."""

from crispsync_core.providers.base import (
    EventHandler,
    EventKind,
    MessageActor,
    UpstreamError,
    UpstreamEvent,
    UpstreamGateway,
)

__all__ = [
    "EventHandler",
    "EventKind",
    "MessageActor",
    "UpstreamError",
    "UpstreamEvent",
    "UpstreamGateway",
]
