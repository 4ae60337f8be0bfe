"""Domain models shared by the pipeline, the task store and the API.

Models
------
GenerationRequest
    Immutable text-to-image request.  Every field except ``prompt`` is
    optional; defaults are resolved by the pipeline from configuration.
TaskStatus
    Lifecycle states of a generation task.
TaskRecord
    Stored state of one task.  Serialised as self-describing JSON with the
    image bytes base64-encoded, so records written by older or newer
    versions of the service still load (unknown keys are ignored and new
    fields carry defaults).
"""

from __future__ import annotations

import base64
from enum import Enum

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

U64_MAX = 2**64 - 1


class GenerationRequest(BaseModel):
    """Text-to-image generation parameters.

    Attributes:
        prompt: Text describing the desired image.
        negative_prompt: Optional text describing what to steer away from.
        width: Output width in pixels.  ``0``, or a size above the configured
            maximum, is accepted and produces a Failed task.
        height: Output height in pixels.
        step_count: Number of denoising steps.  ``num_inference_steps`` is
            accepted as an alias.
        guidance_scale: Classifier-free guidance weight.  Must be finite.
        seed: Unsigned 64-bit seed for the latent noise generator.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    prompt: str = Field(..., description="Text prompt.")
    negative_prompt: str | None = Field(default=None, description="Optional negative prompt.")
    width: int | None = Field(default=None, ge=0, le=2**32 - 1)
    height: int | None = Field(default=None, ge=0, le=2**32 - 1)
    step_count: int | None = Field(
        default=None,
        ge=1,
        le=1000,
        validation_alias=AliasChoices("step_count", "num_inference_steps"),
    )
    guidance_scale: float | None = Field(default=None, allow_inf_nan=False)
    seed: int | None = Field(default=None, ge=0, le=U64_MAX)


class TaskStatus(str, Enum):
    """Task lifecycle: Pending -> Processing -> Completed | Failed."""

    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


_TRANSITIONS: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.PENDING: (TaskStatus.PROCESSING,),
    TaskStatus.PROCESSING: (TaskStatus.COMPLETED, TaskStatus.FAILED),
    TaskStatus.COMPLETED: (),
    TaskStatus.FAILED: (),
}


class TaskRecord(BaseModel):
    """Persistent state of a single generation task.

    Timestamps are integer nanoseconds since the epoch.  Exactly one of
    ``result`` and ``error`` is set once the task is terminal; both are
    absent before that.  Transition helpers return new records and never
    mutate the receiver.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: int
    completed_at: int | None = None
    request: GenerationRequest
    result: bytes | None = None
    error: str | None = None

    @field_serializer("result", when_used="json")
    def _serialize_result(self, value: bytes | None) -> str | None:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    @field_validator("result", mode="before")
    @classmethod
    def _decode_result(cls, value):
        if isinstance(value, str):
            return base64.b64decode(value.encode("ascii"), validate=True)
        return value

    @model_validator(mode="after")
    def _check_exclusivity(self) -> TaskRecord:
        if self.status is TaskStatus.COMPLETED:
            if self.result is None or self.error is not None:
                raise ValueError("Completed task must carry a result and no error")
        elif self.status is TaskStatus.FAILED:
            if self.error is None or self.result is not None:
                raise ValueError("Failed task must carry an error and no result")
        elif self.result is not None or self.error is not None:
            raise ValueError(f"{self.status.value} task cannot carry a result or error")

        if self.status.is_terminal and self.completed_at is None:
            raise ValueError("Terminal task must have completed_at set")
        if not self.status.is_terminal and self.completed_at is not None:
            raise ValueError("Non-terminal task cannot have completed_at set")
        return self

    # -- Lifecycle transitions ------------------------------------------------

    def _transition(self, status: TaskStatus, **changes) -> TaskRecord:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Illegal transition {self.status.value} -> {status.value}")
        data = self.model_dump()
        data.update(status=status, **changes)
        return TaskRecord.model_validate(data)

    def begin(self) -> TaskRecord:
        """Move a Pending task to Processing."""
        return self._transition(TaskStatus.PROCESSING)

    def complete(self, result: bytes, completed_at: int) -> TaskRecord:
        """Move a Processing task to Completed with its image bytes."""
        return self._transition(TaskStatus.COMPLETED, result=result, completed_at=completed_at)

    def fail(self, error: str, completed_at: int) -> TaskRecord:
        """Move a Processing task to Failed with an error message."""
        return self._transition(TaskStatus.FAILED, error=error, completed_at=completed_at)

    # -- Serialisation --------------------------------------------------------

    def to_bytes(self) -> bytes:
        """Encode the record as UTF-8 JSON."""
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes | str) -> TaskRecord:
        """Decode a record produced by :meth:`to_bytes`."""
        return cls.model_validate_json(data)
