"""Health check and monitoring endpoints"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.monitoring import get_health_status, metrics_response

router = APIRouter()

@router.get("/health")
async def health_check(
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """Service and database health"""
    health = await get_health_status(db)
    if health["status"] != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return health

@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics"""
    return metrics_response()
