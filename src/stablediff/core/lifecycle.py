"""Task lifecycle: run a generation and record its terminal state.

A submission walks the state machine Pending -> Processing -> Completed or
Failed entirely in memory and is persisted once, already terminal.  Other
readers therefore never observe a non-terminal or half-written record.
"""

from __future__ import annotations

import logging

from stablediff.core.exceptions import PipelineError
from stablediff.core.models import GenerationRequest, TaskRecord
from stablediff.core.pipeline import GenerationPipeline
from stablediff.core.state import ServiceState

logger = logging.getLogger(__name__)


class TaskLifecycle:
    """Ties :class:`GenerationPipeline` execution to the task store."""

    def __init__(self, state: ServiceState, pipeline: GenerationPipeline | None = None) -> None:
        self._state = state
        self._pipeline = pipeline or GenerationPipeline(state.models, state.config)

    def submit(self, request: GenerationRequest) -> str:
        """Generate an image for *request* and store the terminal record.

        Pipeline failures are captured as a Failed record; the call itself
        only raises if the store cannot allocate an id or write the record.

        Returns:
            The newly assigned task id.

        Raises:
            PersistenceError: If the task store fails.
        """
        store, clock = self._state.store, self._state.clock

        task_id = store.next_task_id()
        record = TaskRecord(id=task_id, created_at=clock(), request=request).begin()
        logger.info("Task %s processing (prompt=%r).", task_id, request.prompt)

        try:
            image = self._pipeline.run(request)
        except PipelineError as exc:
            record = record.fail(exc.message, clock())
            logger.warning("Task %s failed: %s", task_id, exc.message)
        else:
            record = record.complete(image, clock())
            logger.info("Task %s completed (%d bytes).", task_id, len(image))

        store.put(task_id, record)
        return task_id
