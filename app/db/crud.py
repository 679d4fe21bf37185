from typing import Any, Iterable, Optional

from app.core.enums import ApplicationStatus, SwipeAction
from app.core.exceptions import InvalidTransitionError, RecordNotFoundError
from app.db.models import (
    ApplicantProfile,
    ApplicationRecord,
    JobRef,
    JobSwipe,
    split_full_name,
    utc_now,
)
from app.db.store import QueueStore

AUTO_SUBMIT_KEY = "auto_submit_enabled"

ALLOWED_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.QUEUED: {ApplicationStatus.APPLYING},
    ApplicationStatus.APPLYING: {ApplicationStatus.APPLIED, ApplicationStatus.FAILED},
    ApplicationStatus.APPLIED: set(),
    ApplicationStatus.FAILED: {ApplicationStatus.QUEUED},
}

ELIGIBLE_STATUSES = {ApplicationStatus.QUEUED, ApplicationStatus.FAILED}


def assert_transition(current: ApplicationStatus, target: ApplicationStatus) -> None:
    if current == target:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move application from {current.value} to {target.value}")


def build_record(job: JobRef | dict[str, Any], profile: dict[str, Any]) -> ApplicationRecord:
    """Create a fresh queued record, splitting a single ``name`` into first/last when needed."""
    data = dict(profile)
    if not data.get("first_name") and not data.get("last_name") and data.get("name"):
        data["first_name"], data["last_name"] = split_full_name(str(data["name"]))
    job_ref = job if isinstance(job, JobRef) else JobRef.model_validate(job)
    return ApplicationRecord(
        job_id=job_ref.id,
        job=job_ref,
        profile=ApplicantProfile.model_validate(data),
        status=ApplicationStatus.QUEUED,
        updated_at=utc_now(),
    )


def list_applications(store: QueueStore, status: ApplicationStatus | None = None) -> list[ApplicationRecord]:
    records = store.load_records()
    if status:
        records = [record for record in records if record.status == status]
    return records


def get_application(store: QueueStore, job_id: str) -> Optional[ApplicationRecord]:
    for record in store.load_records():
        if record.job_id == job_id:
            return record
    return None


def enqueue_application(store: QueueStore, record: ApplicationRecord) -> ApplicationRecord:
    queue = store.load_records()
    for existing in queue:
        if existing.job_id == record.job_id and existing.status == ApplicationStatus.APPLYING:
            raise InvalidTransitionError(f"Application {record.job_id} is currently being submitted")
    queue = [existing for existing in queue if existing.job_id != record.job_id]
    queue.append(record)
    store.save_records(queue)
    return record


def update_application(store: QueueStore, job_id: str, **changes: Any) -> ApplicationRecord:
    queue = store.load_records()
    for idx, record in enumerate(queue):
        if record.job_id != job_id:
            continue

        data = record.model_dump()
        profile_changes = changes.pop("profile", None) or {}
        if isinstance(profile_changes, ApplicantProfile):
            profile_changes = profile_changes.model_dump()
        data["profile"] = {**data["profile"], **profile_changes}

        new_status = changes.get("status")
        if new_status is not None:
            new_status = ApplicationStatus(new_status)
            assert_transition(record.status, new_status)
            changes["status"] = new_status
            changes.setdefault("updated_at", utc_now())
            if new_status != ApplicationStatus.FAILED:
                changes.setdefault("error", None)

        data.update(changes)
        updated = ApplicationRecord.model_validate(data)
        queue[idx] = updated
        store.save_records(queue)
        return updated

    raise RecordNotFoundError(job_id)


def remove_application(store: QueueStore, job_id: str) -> bool:
    queue = store.load_records()
    remaining = [record for record in queue if record.job_id != job_id]
    if len(remaining) == len(queue):
        return False
    store.save_records(remaining)
    return True


def clear_queue(store: QueueStore) -> None:
    store.clear_records()


def get_next_eligible(store: QueueStore, exclude: Iterable[str] = ()) -> Optional[ApplicationRecord]:
    skipped = set(exclude)
    for record in store.load_records():
        if record.job_id in skipped:
            continue
        if record.status in ELIGIBLE_STATUSES:
            return record
    return None


def retry_application(store: QueueStore, job_id: str) -> ApplicationRecord:
    return update_application(store, job_id, status=ApplicationStatus.QUEUED)


def recover_interrupted(store: QueueStore) -> list[str]:
    """Fail records left ``applying`` by a process that died mid-attempt."""
    queue = store.load_records()
    recovered: list[str] = []
    now = utc_now()
    for idx, record in enumerate(queue):
        if record.status != ApplicationStatus.APPLYING:
            continue
        queue[idx] = record.model_copy(
            update={
                "status": ApplicationStatus.FAILED,
                "updated_at": now,
                "error": "Attempt interrupted before completion",
            }
        )
        recovered.append(record.job_id)
    if recovered:
        store.save_records(queue)
    return recovered


def get_auto_submit_preference(store: QueueStore, default: bool = True) -> bool:
    value = store.get_preference(AUTO_SUBMIT_KEY, default)
    return value is True if isinstance(value, bool) else default


def set_auto_submit_preference(store: QueueStore, enabled: bool) -> None:
    store.set_preference(AUTO_SUBMIT_KEY, bool(enabled))


def record_swipe(store: QueueStore, job_id: str, action: SwipeAction) -> JobSwipe:
    swipes = [swipe for swipe in store.load_swipes() if swipe.job_id != job_id]
    swipe = JobSwipe(job_id=job_id, action=action)
    swipes.append(swipe)
    store.save_swipes(swipes)
    return swipe


def list_swiped_job_ids(store: QueueStore, action: SwipeAction | None = None) -> list[str]:
    return [swipe.job_id for swipe in store.load_swipes() if action is None or swipe.action == action]


def filter_unswiped(store: QueueStore, job_ids: Iterable[str]) -> list[str]:
    swiped = set(list_swiped_job_ids(store))
    return [job_id for job_id in job_ids if job_id not in swiped]
