"""
Error taxonomy for depflow.

Every failure surfaced by the engine is one of three kinds, each mapped
1:1 onto a CLI exit code:

    ValidationError  -> 2  (bad input, rule violation, illegal transition)
    SystemFailure    -> 1  (storage I/O, marshal/unmarshal failures)
    PermissionDenied -> 3  (write path not writable)

There is no retry logic anywhere; callers surface the message verbatim.
"""

EXIT_SUCCESS = 0
EXIT_SYSTEM_ERROR = 1
EXIT_VALIDATION_ERROR = 2
EXIT_PERMISSION_ERROR = 3


class WorkflowError(Exception):
    """Base class for all engine errors."""

    exit_code = EXIT_SYSTEM_ERROR

    def __init__(self, message: str, cause: BaseException | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}\n{self.cause}"
        return self.message


class ValidationError(WorkflowError):
    """Malformed input, rule violation or illegal state change."""

    exit_code = EXIT_VALIDATION_ERROR


class NotFound(ValidationError):
    """A referenced record does not exist."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} not found: {entity_id}")


class IDFormatError(ValidationError):
    """A composite ID could not be parsed."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Invalid {kind} ID format: {entity_id}")


class SystemFailure(WorkflowError):
    """Underlying storage failure. Wraps the originating error."""

    exit_code = EXIT_SYSTEM_ERROR


class PermissionDenied(WorkflowError):
    """Write path failed the pre-flight writability probe."""

    exit_code = EXIT_PERMISSION_ERROR


def exit_code_for(error: BaseException) -> int:
    """Map any exception onto the CLI exit code contract."""
    if isinstance(error, WorkflowError):
        return error.exit_code
    return EXIT_SYSTEM_ERROR
