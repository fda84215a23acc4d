"""
Common dependencies for FastAPI
"""

from uuid import UUID
from fastapi import Query, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import NotFoundException
from app.models import Vendor
from .pagination import PaginationParams

def get_pagination_params(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Page size")
) -> PaginationParams:
    """Get pagination parameters from query"""
    return PaginationParams(page=page, size=size)

async def get_vendor_or_404(
    vendor_id: UUID,
    db: AsyncSession = Depends(get_db)
) -> Vendor:
    """
    Resolve the vendor named in the path
    
    Raises:
        NotFoundException: If vendor doesn't exist
    """
    vendor = await db.get(Vendor, vendor_id)
    if not vendor:
        raise NotFoundException("Vendor not found", error_code="VENDOR_NOT_FOUND")
    return vendor
