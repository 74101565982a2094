"""Celery tasks for DeathCast Market.

This module configures Celery and registers all periodic tasks.
"""

from celery import Celery

from app.config import get_settings

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "deathcast_market",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.tasks.predictions",
        "app.tasks.settlement",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task behavior
    task_track_started=True,
    task_time_limit=600,  # 10 minute hard limit
    task_soft_time_limit=540,  # 9 minute soft limit
    # Result expiration
    result_expires=3600,  # 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Prediction intake - every 5 minutes
    "ingest-predictions": {
        "task": "app.tasks.predictions.ingest_predictions",
        "schedule": 300.0,  # 5 minutes
        "options": {"expires": 280},  # Expire before next run
    },
    # Verification polling and settlement - every 15 minutes
    "poll-verifications": {
        "task": "app.tasks.settlement.poll_verifications",
        "schedule": 900.0,  # 15 minutes
        "options": {"expires": 840},
    },
}
