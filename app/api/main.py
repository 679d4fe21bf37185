import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import routes_apply, routes_queue
from app.api.deps import get_processor
from app.core.config import get_settings
from app.core.enums import ApplicationStatus
from app.core.logging import get_logger, setup_logging
from app.db import crud
from app.services.application_queue import ApplicationQueueProcessor, get_queue_processor

settings = get_settings()
setup_logging(logging.DEBUG if settings.debug else logging.INFO)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Creating the processor fails over any record a previous process left mid-attempt.
    processor = get_queue_processor()
    logger.info("Queue ready", extra={"extra": {"queue_path": str(processor.store.queue_path)}})
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/healthz")
def healthz(processor: ApplicationQueueProcessor = Depends(get_processor)):
    records = crud.list_applications(processor.store)
    return {
        "status": "ok",
        "service": settings.app_name,
        "processing": processor.is_processing,
        "queued": sum(1 for record in records if record.status == ApplicationStatus.QUEUED),
        "failed": sum(1 for record in records if record.status == ApplicationStatus.FAILED),
    }


app.include_router(routes_apply.router)
app.include_router(routes_queue.router)
