"""
Celery Application Configuration
"""
from celery import Celery
from letsmeet.config import settings

# Create Celery app
celery_app = Celery(
    "letsmeet_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "letsmeet.worker.tasks"
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=270,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,  # Results expire after 1 hour
)

# Task routing
celery_app.conf.task_routes = {
    "letsmeet.worker.tasks.resolve_attendance": {"queue": "scores"},
    "letsmeet.worker.tasks.verify_trust_score": {"queue": "scores"},
    "letsmeet.worker.tasks.*": {"queue": "default"},
}

# Periodic jobs
celery_app.conf.beat_schedule = {
    "complete-past-meetings": {
        "task": "letsmeet.worker.tasks.complete_past_meetings",
        "schedule": 15 * 60,
    },
}
