class ApplyError(RuntimeError):
    """Fatal failure of a single application attempt."""


class ResumeNotFoundError(FileNotFoundError):
    pass


class FormNavigationError(ApplyError):
    pass


class ValidationRetriesExhausted(ApplyError):
    def __init__(self, message: str, *, error_text: str, missing_fields: list[str], attempts: int) -> None:
        super().__init__(message)
        self.error_text = error_text
        self.missing_fields = missing_fields
        self.attempts = attempts


class InvalidTransitionError(ValueError):
    pass


class RecordNotFoundError(KeyError):
    pass


class ProcessorBusyError(RuntimeError):
    """Another submission already holds the browser."""
