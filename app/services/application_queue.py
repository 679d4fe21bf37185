import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator

from app.core.config import get_settings
from app.core.enums import ApplicationStatus, SwipeAction
from app.core.exceptions import ProcessorBusyError, RecordNotFoundError
from app.core.logging import get_logger, log_context
from app.db import crud
from app.db.models import ApplicationRecord, utc_now
from app.db.store import QueueStore
from app.services.form_submission_service import submit_application_record

logger = get_logger(__name__)

SubmitFn = Callable[[ApplicationRecord], dict[str, Any]]


class ApplicationQueueProcessor:
    """Drains the queue one record at a time.

    The lock is taken without blocking, so a second caller while an attempt
    is in flight gets ``{"status": "busy"}`` instead of waiting.
    """

    def __init__(self, store: QueueStore, submit: SubmitFn | None = None) -> None:
        self.store = store
        self.submit = submit or submit_application_record
        self._lock = threading.Lock()

    @property
    def is_processing(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the submission lock, raising ``ProcessorBusyError`` if it is taken.

        Direct applies and queue attempts share this lock, so only one browser
        session submits at a time.
        """
        if not self._lock.acquire(blocking=False):
            raise ProcessorBusyError("An application is already being submitted")
        try:
            yield
        finally:
            self._lock.release()

    def process_next(self, exclude: Iterable[str] = ()) -> dict[str, Any]:
        try:
            with self.exclusive():
                return self._process_locked(exclude)
        except ProcessorBusyError:
            return {"status": "busy"}

    def _process_locked(self, exclude: Iterable[str]) -> dict[str, Any]:
        record = crud.get_next_eligible(self.store, exclude=exclude)
        if record is None:
            return {"status": "idle"}

        job_id = record.job_id
        if record.status == ApplicationStatus.FAILED:
            record = crud.retry_application(self.store, job_id)
        record = crud.update_application(self.store, job_id, status=ApplicationStatus.APPLYING)
        logger.info("Processing application", extra={"extra": {"job_id": job_id, "url": record.job.apply_url}})

        with log_context(job_id=job_id):
            try:
                result = self.submit(record)
            except Exception as exc:
                logger.error("Submission raised", extra={"extra": {"job_id": job_id}}, exc_info=True)
                result = {"ok": False, "error": f"{type(exc).__name__}: {exc}"}

        try:
            if result.get("ok"):
                crud.update_application(self.store, job_id, status=ApplicationStatus.APPLIED, applied_at=utc_now())
                crud.record_swipe(self.store, job_id, SwipeAction.APPLIED)
                logger.info("Application submitted", extra={"extra": {"job_id": job_id}})
                return {"status": ApplicationStatus.APPLIED.value, "job_id": job_id, "result": result}

            error = str(result.get("error") or "Application failed")
            crud.update_application(self.store, job_id, status=ApplicationStatus.FAILED, error=error)
            logger.warning("Application failed", extra={"extra": {"job_id": job_id, "error": error}})
            return {"status": ApplicationStatus.FAILED.value, "job_id": job_id, "result": result}
        except RecordNotFoundError:
            logger.warning("Application removed while it was being submitted", extra={"extra": {"job_id": job_id}})
            return {"status": "removed", "job_id": job_id, "result": result}

    def drain(self, *, force: bool = False) -> dict[str, Any]:
        """Process eligible records until none remain. Each record is attempted at most once per call."""
        if not force and not crud.get_auto_submit_preference(self.store, get_settings().auto_submit_default):
            return {"status": "disabled", "processed": []}

        attempted: list[str] = []
        processed: list[dict[str, Any]] = []
        while True:
            outcome = self.process_next(exclude=attempted)
            if outcome["status"] in {"idle", "busy"}:
                return {"status": outcome["status"] if not processed else "done", "processed": processed}
            attempted.append(outcome["job_id"])
            processed.append({"job_id": outcome["job_id"], "status": outcome["status"]})

    def recover(self) -> list[str]:
        recovered = crud.recover_interrupted(self.store)
        if recovered:
            logger.warning("Recovered interrupted applications", extra={"extra": {"job_ids": recovered}})
        return recovered


_processor: ApplicationQueueProcessor | None = None


def get_queue_processor() -> ApplicationQueueProcessor:
    global _processor
    if _processor is None:
        _processor = ApplicationQueueProcessor(QueueStore.from_settings())
        _processor.recover()
    return _processor
