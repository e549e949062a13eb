"""Health check endpoints."""
from fastapi import APIRouter
import logging

from ..core.config import settings
from ..core.database import health_check_db, get_pool_status
from ..core.cache import cache
from ..core.performance_monitor import performance_metrics

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

@router.get("/")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "MissionHub Roster API",
        "version": settings.app_version,
        "environment": settings.environment,
    }

@router.get("/db-health")
async def database_health():
    """Database connectivity and pool status"""
    healthy = await health_check_db()
    if not healthy:
        logger.warning("Database health check reported unhealthy")
    return {
        "status": "healthy" if healthy else "unhealthy",
        "pool": await get_pool_status(),
    }

@router.get("/cache-health")
async def cache_health():
    """Redis cache health check"""
    if not cache.enabled:
        return {"status": "disabled"}
    try:
        await cache.connect()
        await cache.redis.ping()
        return {"status": "healthy"}
    except Exception as e:
        logger.error(f"Cache health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}

@router.get("/metrics")
async def operation_metrics():
    """Counts and timings of monitored roster operations"""
    return {"status": "healthy", "operations": performance_metrics.get_metrics()}
