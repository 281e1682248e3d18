"""Offset-based pagination for read-back queries.

Conversations and messages are read back page by page with a 1-indexed
page number and a per-page limit.
"""

import math
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

T = TypeVar("T")


# Default pagination limits
DEFAULT_PAGE_SIZE = 20
MAX_CONVERSATION_PAGE_SIZE = 100
MAX_MESSAGE_PAGE_SIZE = 1000


@dataclass
class PaginationParams:
    """Parameters for offset-based pagination.

    Attributes:
        page: Current page number (1-indexed)
        page_size: Number of items per page
        max_page_size: Maximum allowed page size
    """

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_CONVERSATION_PAGE_SIZE

    def __post_init__(self):
        """Validate and normalize pagination parameters."""
        if self.page < 1:
            self.page = 1

        if self.page_size < 1:
            self.page_size = 1

        # Clamp page_size to maximum
        if self.page_size > self.max_page_size:
            self.page_size = self.max_page_size

    @property
    def offset(self) -> int:
        """Calculate offset from page and page_size."""
        return (self.page - 1) * self.page_size


@dataclass
class PaginatedResult(Generic[T]):
    """Result container for offset-based pagination.

    Attributes:
        items: List of items for current page
        total: Total number of items across all pages
        page: Current page number
        page_size: Number of items per page
    """

    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    def to_dict(self) -> dict[str, Any]:
        """Pagination block of the API envelope."""
        return {
            "total": self.total,
            "page": self.page,
            "page_per_record": self.page_size,
        }


def paginate_query(
    session: Session,
    query: Select,
    params: PaginationParams,
) -> PaginatedResult:
    """Apply offset-based pagination to a SQLAlchemy query.

    Args:
        session: Database session
        query: SQLAlchemy select query (already ordered)
        params: Pagination parameters

    Returns:
        PaginatedResult with items and metadata
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = session.execute(count_query).scalar() or 0

    paginated_query = query.offset(params.offset).limit(params.page_size)
    items = list(session.scalars(paginated_query).all())

    return PaginatedResult(
        items=items,
        total=total,
        page=params.page,
        page_size=params.page_size,
    )
