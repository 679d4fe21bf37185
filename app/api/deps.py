from app.db.store import QueueStore
from app.services.application_queue import ApplicationQueueProcessor, get_queue_processor


def get_queue_store() -> QueueStore:
    return get_queue_processor().store


def get_processor() -> ApplicationQueueProcessor:
    return get_queue_processor()
