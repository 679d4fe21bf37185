from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    "drain-application-queue": {
        "task": "app.workers.tasks.drain_application_queue",
        "schedule": crontab(minute="*/5"),
    },
}
