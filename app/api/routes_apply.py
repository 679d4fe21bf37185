from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_processor
from app.api.schemas import ApplyRequest, ApplyResponse
from app.core.exceptions import ProcessorBusyError
from app.db.models import JobRef
from app.services.application_queue import ApplicationQueueProcessor
from app.services.form_submission_service import apply_to_job

router = APIRouter(tags=["apply"])


@router.post("/apply", response_model=ApplyResponse)
def apply(payload: ApplyRequest, processor: ApplicationQueueProcessor = Depends(get_processor)):
    job = JobRef(
        id=payload.job_url,
        title=payload.job_title or "",
        company=payload.company or "",
        apply_url=payload.job_url,
    )
    try:
        with processor.exclusive():
            return apply_to_job(payload.job_url, payload.profile, payload.mode, job=job)
    except ProcessorBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
