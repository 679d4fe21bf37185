from enum import Enum


class ApplicationStatus(str, Enum):
    QUEUED = "queued"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"


class ApplyMode(str, Enum):
    AUTO = "auto"
    CONFIRM = "confirm"


class SwipeAction(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"


class FieldKind(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    FILE = "file"


class FieldTag(str, Enum):
    SKIP_EEO = "skip_eeo"
    SKIP_IDENTITY = "skip_identity"
    UPLOAD = "upload"
    CHOICE = "choice"
    CHOICE_GROUP = "choice_group"
    BOOLEAN = "boolean"
    OPEN_ENDED = "open_ended"
