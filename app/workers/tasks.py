import logging

from app.core.logging import setup_logging
from app.services.application_queue import get_queue_processor
from app.workers.celery_app import celery

setup_logging(logging.INFO)


@celery.task(name="app.workers.tasks.process_next_application")
def process_next_application():
    return get_queue_processor().process_next()


@celery.task(name="app.workers.tasks.drain_application_queue")
def drain_application_queue(force: bool = False):
    # Scheduled runs respect the auto-submit preference; manual runs may force.
    return get_queue_processor().drain(force=force)
