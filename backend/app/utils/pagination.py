"""
Pagination Utility Module

Provides standardized pagination helpers for all list endpoints.
Responses carry the rows under their plural key plus a ``pagination`` block.
"""
from typing import List, Optional, Any, Dict
from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class PaginationParams(BaseModel):
    """Standard pagination parameters"""
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    search: Optional[str] = None

    @classmethod
    def clamp(cls, page: Optional[int], limit: Optional[int], search: Optional[str] = None) -> "PaginationParams":
        page = max(1, page or DEFAULT_PAGE)
        limit = max(1, min(MAX_LIMIT, limit or DEFAULT_LIMIT))
        search = search.strip() if search and search.strip() else None
        return cls(page=page, limit=limit, search=search)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def pagination_params(
    page: int = Query(DEFAULT_PAGE, description="Page number (1-based)"),
    limit: int = Query(DEFAULT_LIMIT, description="Items per page (max 100)"),
    search: Optional[str] = Query(None, description="Free-text search"),
) -> PaginationParams:
    """FastAPI dependency for the standard page/limit/search query parameters"""
    return PaginationParams.clamp(page, limit, search)


def build_pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    """Pagination block with total_pages = ceil(total / limit)"""
    total_pages = (total + limit - 1) // limit if limit > 0 else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
    }


async def paginate(
    db: AsyncSession,
    query: Select,
    params: PaginationParams,
    count_query: Optional[Select] = None,
) -> tuple[List[Any], Dict[str, int]]:
    """
    Apply pagination to a SQLAlchemy query.

    Args:
        db: Database session
        query: Base SQLAlchemy query, already filtered and ordered
        params: Clamped pagination parameters
        count_query: Optional custom count query

    Returns:
        (rows for the current page, pagination block)
    """
    if count_query is None:
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset(params.offset).limit(params.limit))
    items = list(result.scalars().unique().all())

    return items, build_pagination(params.page, params.limit, total)
