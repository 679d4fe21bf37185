"""JSON-file persistence for the application queue.

Every mutation rewrites the whole document through a temp file and
``os.replace`` so readers never observe a half-written queue. The store
assumes a single writer process.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.db.models import ApplicationRecord, JobSwipe

logger = get_logger(__name__)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.error("Failed to read persisted state", extra={"extra": {"path": str(path)}}, exc_info=True)
        return default


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, default=str)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class QueueStore:
    def __init__(self, *, queue_path: Path, preferences_path: Path, swipes_path: Path) -> None:
        self.queue_path = queue_path
        self.preferences_path = preferences_path
        self.swipes_path = swipes_path

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "QueueStore":
        settings = settings or get_settings()
        return cls(
            queue_path=settings.queue_path,
            preferences_path=settings.preferences_path,
            swipes_path=settings.swipes_path,
        )

    def load_records(self) -> list[ApplicationRecord]:
        raw = _read_json(self.queue_path, [])
        if not isinstance(raw, list):
            logger.error("Queue file is not a list; ignoring", extra={"extra": {"path": str(self.queue_path)}})
            return []
        records: list[ApplicationRecord] = []
        for item in raw:
            try:
                records.append(ApplicationRecord.model_validate(item))
            except ValidationError:
                logger.warning("Dropping unreadable queue entry", extra={"extra": {"entry": item}})
        return records

    def save_records(self, records: list[ApplicationRecord]) -> None:
        _write_json(self.queue_path, [record.model_dump(mode="json") for record in records])

    def clear_records(self) -> None:
        self.queue_path.unlink(missing_ok=True)

    def get_preference(self, key: str, default: Any = None) -> Any:
        prefs = _read_json(self.preferences_path, {})
        if not isinstance(prefs, dict):
            return default
        return prefs.get(key, default)

    def set_preference(self, key: str, value: Any) -> None:
        prefs = _read_json(self.preferences_path, {})
        if not isinstance(prefs, dict):
            prefs = {}
        prefs[key] = value
        _write_json(self.preferences_path, prefs)

    def load_swipes(self) -> list[JobSwipe]:
        raw = _read_json(self.swipes_path, [])
        if not isinstance(raw, list):
            return []
        swipes: list[JobSwipe] = []
        for item in raw:
            try:
                swipes.append(JobSwipe.model_validate(item))
            except ValidationError:
                continue
        return swipes

    def save_swipes(self, swipes: list[JobSwipe]) -> None:
        _write_json(self.swipes_path, [swipe.model_dump(mode="json") for swipe in swipes])
