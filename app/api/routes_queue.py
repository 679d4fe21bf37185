from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from app.api.deps import get_processor, get_queue_store
from app.api.schemas import (
    ApplicationResponse,
    ApplicationUpdateRequest,
    AutoSubmitPreference,
    EnqueueRequest,
    ProcessRequest,
    ProcessResponse,
)
from app.core.config import get_settings
from app.core.enums import ApplicationStatus
from app.core.exceptions import InvalidTransitionError, ProcessorBusyError, RecordNotFoundError
from app.db import crud
from app.db.store import QueueStore
from app.services.application_queue import ApplicationQueueProcessor

router = APIRouter(tags=["queue"])

CALLER_STATUSES = {ApplicationStatus.QUEUED}


@router.get("/applications", response_model=list[ApplicationResponse])
def list_applications(status: ApplicationStatus | None = None, store: QueueStore = Depends(get_queue_store)):
    return crud.list_applications(store, status=status)


@router.post("/applications", response_model=ApplicationResponse, status_code=201)
def enqueue_application(payload: EnqueueRequest, store: QueueStore = Depends(get_queue_store)):
    try:
        record = crud.build_record(payload.job, payload.profile)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc
    try:
        return crud.enqueue_application(store, record)
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/applications/next", response_model=ApplicationResponse | None)
def next_application(store: QueueStore = Depends(get_queue_store)):
    return crud.get_next_eligible(store)


@router.post("/applications/process", response_model=ProcessResponse)
def process_applications(
    payload: ProcessRequest | None = None,
    processor: ApplicationQueueProcessor = Depends(get_processor),
):
    payload = payload or ProcessRequest()
    if payload.drain:
        return processor.drain(force=payload.force)
    return processor.process_next()


@router.get("/applications/{job_id}", response_model=ApplicationResponse)
def get_application(job_id: str, store: QueueStore = Depends(get_queue_store)):
    record = crud.get_application(store, job_id)
    if not record:
        raise HTTPException(status_code=404, detail="Application not found")
    return record


@router.patch("/applications/{job_id}", response_model=ApplicationResponse)
def update_application(
    job_id: str,
    payload: ApplicationUpdateRequest,
    store: QueueStore = Depends(get_queue_store),
):
    changes = payload.model_dump(exclude_none=True)
    status = changes.get("status")
    if status is not None and status not in CALLER_STATUSES:
        # applying, applied and failed belong to the queue processor
        raise HTTPException(status_code=409, detail=f"Status {status.value} is set by the queue processor")
    try:
        return crud.update_application(store, job_id, **changes)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Application not found") from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc


@router.delete("/applications/{job_id}", status_code=204)
def remove_application(job_id: str, store: QueueStore = Depends(get_queue_store)):
    if not crud.remove_application(store, job_id):
        raise HTTPException(status_code=404, detail="Application not found")


@router.post("/applications/{job_id}/retry", response_model=ApplicationResponse)
def retry_application(job_id: str, store: QueueStore = Depends(get_queue_store)):
    try:
        return crud.retry_application(store, job_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Application not found") from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.delete("/applications", status_code=204)
def clear_applications(
    store: QueueStore = Depends(get_queue_store),
    processor: ApplicationQueueProcessor = Depends(get_processor),
):
    try:
        with processor.exclusive():
            crud.clear_queue(store)
    except ProcessorBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/preferences/auto-submit", response_model=AutoSubmitPreference)
def get_auto_submit(store: QueueStore = Depends(get_queue_store)):
    return AutoSubmitPreference(enabled=crud.get_auto_submit_preference(store, get_settings().auto_submit_default))


@router.put("/preferences/auto-submit", response_model=AutoSubmitPreference)
def set_auto_submit(payload: AutoSubmitPreference, store: QueueStore = Depends(get_queue_store)):
    crud.set_auto_submit_preference(store, payload.enabled)
    return payload
