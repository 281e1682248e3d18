"""Response envelope shared by every endpoint."""

from typing import Any, Optional

from pydantic import BaseModel


class PaginationMeta(BaseModel):
    """Pagination block of a list response."""

    total: int
    page: int
    page_per_record: int


class ApiResponse(BaseModel):
    """Envelope wrapping every response body."""

    statusCode: int
    message: str
    data: Any = None
    pagination: Optional[PaginationMeta] = None


def envelope(
    data: Any = None,
    message: str = "OK",
    status_code: int = 200,
    pagination: Optional[dict[str, int]] = None,
) -> dict[str, Any]:
    """Build an envelope body ready to be returned from a route."""
    response = ApiResponse(
        statusCode=status_code,
        message=message,
        data=data,
        pagination=PaginationMeta(**pagination) if pagination else None,
    )
    return response.model_dump(mode="json", exclude_none=False)
