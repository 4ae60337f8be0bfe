"""Tests for stablediff.core.lifecycle - submit and terminal records."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from stablediff.core.exceptions import PersistenceError, PipelineError
from stablediff.core.lifecycle import TaskLifecycle
from stablediff.core.models import GenerationRequest, TaskStatus
from stablediff.core.state import ServiceState


class TestSubmit:
    """Tests for TaskLifecycle.submit."""

    def test_completed_record(self, service_state: ServiceState):
        task_id = TaskLifecycle(service_state).submit(GenerationRequest(prompt="a red cat"))

        record = service_state.store.get(task_id)
        assert record.status is TaskStatus.COMPLETED
        assert record.result.startswith(b"BM")
        assert record.error is None
        assert record.request.prompt == "a red cat"

    def test_timestamps_from_clock(self, service_state: ServiceState):
        task_id = TaskLifecycle(service_state).submit(GenerationRequest(prompt="x"))
        record = service_state.store.get(task_id)
        assert record.created_at >= 1000
        assert record.completed_at > record.created_at

    def test_degenerate_size_stored_as_failed(self, service_state: ServiceState):
        task_id = TaskLifecycle(service_state).submit(GenerationRequest(prompt="x", width=0))
        record = service_state.store.get(task_id)
        assert record.status is TaskStatus.FAILED
        assert "Latent size is zero" in record.error
        assert record.result is None
        assert record.completed_at is not None

    def test_oversized_request_stored_as_failed(self, service_state: ServiceState):
        lifecycle = TaskLifecycle(service_state)
        task_id = lifecycle.submit(GenerationRequest(prompt="x", width=2**31, height=2**31))

        record = service_state.store.get(task_id)
        assert record.status is TaskStatus.FAILED
        assert "exceeds the maximum" in record.error
        assert service_state.store.list_ids() == [task_id]
        assert lifecycle.submit(GenerationRequest(prompt="x")) == "task_2"

    def test_uninitialized_model_stored_as_failed(self, service_state: ServiceState):
        service_state.models.unload()
        task_id = TaskLifecycle(service_state).submit(GenerationRequest(prompt="x"))
        record = service_state.store.get(task_id)
        assert record.status is TaskStatus.FAILED
        assert record.error == "Model not initialized"

    def test_ids_unique_in_sequence(self, service_state: ServiceState):
        lifecycle = TaskLifecycle(service_state)
        ids = [
            lifecycle.submit(GenerationRequest(prompt=f"p{i}", width=8, height=8)) for i in range(10)
        ]
        assert len(set(ids)) == 10
        assert ids == [f"task_{n}" for n in range(1, 11)]

    def test_single_write_in_terminal_state(self, service_state: ServiceState):
        """Only the terminal record is ever written."""
        written = []
        original_put = service_state.store.put

        def spy(task_id, record):
            written.append(record.status)
            original_put(task_id, record)

        service_state.store.put = spy
        TaskLifecycle(service_state).submit(GenerationRequest(prompt="x"))
        assert written == [TaskStatus.COMPLETED]

    def test_unexpected_pipeline_error_not_swallowed(self, service_state: ServiceState):
        """Only PipelineError becomes a Failed task."""
        pipeline = MagicMock()
        pipeline.run.side_effect = RuntimeError("bug")
        with pytest.raises(RuntimeError):
            TaskLifecycle(service_state, pipeline).submit(GenerationRequest(prompt="x"))

    def test_pipeline_error_message_recorded(self, service_state: ServiceState):
        pipeline = MagicMock()
        pipeline.run.side_effect = PipelineError("custom failure")
        task_id = TaskLifecycle(service_state, pipeline).submit(GenerationRequest(prompt="x"))
        assert service_state.store.get(task_id).error == "custom failure"

    def test_persistence_error_propagates(self, service_state: ServiceState):
        service_state.store.put = MagicMock(side_effect=PersistenceError("disk full"))
        with pytest.raises(PersistenceError):
            TaskLifecycle(service_state).submit(GenerationRequest(prompt="x"))
