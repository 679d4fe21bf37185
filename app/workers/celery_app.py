from celery import Celery

from app.core.config import get_settings
from app.workers.schedules import CELERY_BEAT_SCHEDULE

settings = get_settings()

celery = Celery(
    "swipehire_autoapply",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.workers.tasks"],
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_default_queue="applications",
    # One browser session at a time; the queue file has a single writer.
    worker_concurrency=1,
    worker_prefetch_multiplier=1,
    # Chromium leaks memory across long-lived workers.
    worker_max_tasks_per_child=25,
    result_expires=24 * 60 * 60,
    beat_schedule=CELERY_BEAT_SCHEDULE,
)
