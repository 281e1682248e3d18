"""API routes."""

from crispsync_core.api.routes import crisp, crisp_db

__all__ = ["crisp", "crisp_db"]
