from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, status

from echoecho.core.logger.logger import get_logger
from echoecho.infra.config.settings import settings
from echoecho.infra.database import DatabaseManager, get_database_manager

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


async def check_database_health(db_manager: DatabaseManager) -> Dict[str, str]:
    """Check database connection health."""
    try:
        await db_manager.ping()
        return {"status": "healthy", "message": "Connected"}
    except Exception as e:
        logger.error("Database health check failed", extra={"error": str(e)})
        return {"status": "unhealthy", "message": f"Connection failed: {str(e)}"}


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(db_manager: DatabaseManager = Depends(get_database_manager)):
    """
    Health check endpoint.
    Returns service identity and database connectivity.
    """
    database = await check_database_health(db_manager)

    return {
        "status": "ok" if database["status"] == "healthy" else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "services": {"database": database},
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
