"""
Health checks

- GET /health/live: the process is up
- GET /health/ready: the database answers and the schema exists (503 otherwise)
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status

from app.core.config import settings
from app.core.database import ping_database
from app.core.logging_config import logger
from app.core.redis_client import redis_client

router = APIRouter(prefix="/health", tags=["Health Checks"])


async def check_database() -> Dict[str, Any]:
    try:
        result = await ping_database()
    except Exception as e:
        logger.error(f"[Health] Database unreachable: {e}")
        return {"status": "unhealthy", "tables_ready": False, "error": str(e)}
    return {"status": "healthy", **result}


async def check_redis() -> Dict[str, Any]:
    """Informational only; the API serves requests without Redis"""
    if not (settings.NOTIFICATION_PUBSUB_ENABLED or settings.TASK_QUEUE_ENABLED):
        return {"status": "disabled"}
    started = time.perf_counter()
    try:
        if redis_client.redis is None:
            await redis_client.connect()
        await redis_client.redis.ping()
    except Exception as e:
        logger.warning(f"[Health] Redis unreachable: {e}")
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}


@router.get("/live")
async def liveness_check():
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/ready")
async def readiness_check():
    database, redis = await asyncio.gather(check_database(), check_redis())
    ready = database["status"] == "healthy" and database["tables_ready"]

    body = {
        "status": "ready" if ready else "not_ready",
        "timestamp": datetime.utcnow().isoformat(),
        "checks": {"database": database, "redis": redis},
    }
    if not ready:
        logger.warning(f"[Health] Not ready: {body['checks']}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=body)
    return body
