"""
Page/size pagination for ledger and payout listings
"""

from math import ceil
from typing import Any, Dict, Generic, List, TypeVar
from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

T = TypeVar("T")


class PaginationParams(BaseModel):
    page: int = Field(1, ge=1)
    size: int = Field(20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of results; `pages` is 0 when there is nothing to show"""
    items: List[T]
    total: int
    page: int
    size: int
    pages: int


async def paginate(db: AsyncSession, query: Select, params: PaginationParams) -> Dict[str, Any]:
    """
    Run an ordered select for one page

    The count ignores the query's ORDER BY; items keep it.
    """
    total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery())) or 0
    rows = await db.scalars(query.offset(params.offset).limit(params.size))

    return {
        "items": list(rows),
        "total": total,
        "page": params.page,
        "size": params.size,
        "pages": ceil(total / params.size),
    }
