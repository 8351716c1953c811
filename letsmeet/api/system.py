"""
System Router - Health checks and monitoring
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session
import redis

from letsmeet.config import settings
from letsmeet.dependencies import get_db
from letsmeet.timeutils import utcnow
from letsmeet.worker.celery_app import celery_app

logger = logging.getLogger(__name__)
router = APIRouter()


def routed_queues():
    """Queue names the worker tasks are routed to"""
    return sorted({route["queue"] for route in celery_app.conf.task_routes.values()})


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint returning status of the database and broker.
    """
    database_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")

    redis_status = "unhealthy"
    worker_queue_depth = 0
    try:
        r = redis.from_url(settings.REDIS_URL, socket_connect_timeout=1, socket_timeout=1)
        r.ping()
        redis_status = "healthy"
        worker_queue_depth = sum(r.llen(queue) or 0 for queue in routed_queues())
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")

    return {
        "database": database_status,
        "redis": redis_status,
        "worker_queue_depth": worker_queue_depth,
        "timestamp": utcnow().isoformat() + "Z"
    }
