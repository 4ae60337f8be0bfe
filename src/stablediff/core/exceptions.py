"""Error hierarchy for the generation service.

- StableDiffError: Base for all service errors, carries an HTTP status code
- ValidationError: Request body cannot be parsed as a GenerationRequest
- NotFoundError: Unknown task id
- NotReadyError: Artifact requested for a task without a result
- PipelineError: Degenerate dimensions or model not initialized
- PersistenceError: Task store read/write failure
- ReadOnlyViolationError: Mutation requested through the read-only channel

None of these are retried internally.  A PipelineError raised while a task
is being generated becomes that task's Failed status; all others are turned
into an error envelope at the router boundary.
"""


class StableDiffError(Exception):
    """Base exception for all service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StableDiffError):
    """Malformed generation request."""

    status_code = 400


class NotFoundError(StableDiffError):
    """Requested task does not exist."""

    status_code = 404


class NotReadyError(StableDiffError):
    """Task exists but has no image (still pending, or failed)."""

    status_code = 409


class PipelineError(StableDiffError):
    """Terminal, non-retryable generation failure."""

    status_code = 500


class PersistenceError(StableDiffError):
    """Task store read or write failed."""

    status_code = 500


class ReadOnlyViolationError(StableDiffError):
    """A mutating operation arrived on the read-only channel."""

    status_code = 400
