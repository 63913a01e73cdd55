"""
Database operational endpoints: health and connection statistics
"""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from app.core.settings import settings
from app.db.session import database_health_check, get_database_stats

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health",
    responses={
        200: {"description": "Database is healthy"},
        503: {"description": "Database is unhealthy"}
    },
    summary="Database health check",
    description="Check database connectivity and connection pool status"
)
async def get_database_health():
    health_info = await database_health_check()
    status_code = (
        status.HTTP_200_OK if health_info["status"] == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(status_code=status_code, content=health_info)


@router.get("/stats",
    responses={
        200: {"description": "Database connection statistics"},
        500: {"description": "Failed to retrieve statistics"}
    },
    summary="Database statistics",
    description="Get database connection pool statistics and metrics"
)
async def get_database_statistics():
    try:
        stats = get_database_stats()
        stats["computed_metrics"] = {
            "connection_utilization": stats["active_connections"] / max(settings.DB_POOL_SIZE, 1) * 100,
            "error_rate": stats["failed_connections"] / max(stats["total_connections"], 1) * 100,
        }
        return stats

    except Exception as e:
        logger.error(f"Failed to retrieve database statistics: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve database statistics"
        )
