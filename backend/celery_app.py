"""
Celery application for background notification delivery.

Start a worker with:
    celery -A celery_app worker --loglevel=info
"""

from celery import Celery

from config import config

celery_app = Celery(
    "carpool",
    broker=config.REDIS_URL,
    backend=config.REDIS_URL,
    include=["tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=config.CELERY_TASK_TIME_LIMIT,
    worker_prefetch_multiplier=config.CELERY_WORKER_PREFETCH_MULTIPLIER,
    task_acks_late=True,
    result_expires=3600,
)
