"""
Health check endpoints.

Reports status for the database and the Redis cache.
"""

import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from saveplate.core.database import get_db

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, str]:
    """
    Basic health check endpoint.

    Returns 200 OK if the service is running.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }


@router.get("/health/detailed", status_code=status.HTTP_200_OK)
async def detailed_health_check(request: Request, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Detailed health check with dependency status.

    Checks:
    - Database connectivity
    - Redis availability (verification codes, OAuth state, rate limits)
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "checks": {}
    }

    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": "Database unavailable"
        }

    redis_client = getattr(request.app.state, "redis", None)
    if redis_client is None:
        health_status["checks"]["cache"] = {
            "status": "unknown",
            "message": "Redis client not configured"
        }
    else:
        try:
            await redis_client.ping()
            health_status["checks"]["cache"] = {
                "status": "healthy",
                "message": "Redis reachable"
            }
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            health_status["status"] = "unhealthy"
            health_status["checks"]["cache"] = {
                "status": "unhealthy",
                "message": "Redis unavailable"
            }

    return health_status
