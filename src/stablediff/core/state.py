"""Process-wide service state.

One :class:`ServiceState` is built by the process entry point and passed by
reference to the task lifecycle and the request router.  It owns the
configuration, the durable task store, the model manager and the clock.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from stablediff.core.config import StableDiffConfig
from stablediff.core.model_manager import ModelManager
from stablediff.core.task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceState:
    """Everything a request handler may touch.

    Attributes:
        config: Active configuration.
        store: Durable task store.
        models: Model manager (Uninitialized until ``load_model``).
        clock: Returns the current time in integer nanoseconds.
    """

    config: StableDiffConfig
    store: TaskStore
    models: ModelManager
    clock: Callable[[], int] = field(default=time.time_ns)

    @classmethod
    def create(
        cls,
        config: StableDiffConfig,
        *,
        clock: Callable[[], int] = time.time_ns,
        load_model: bool = True,
    ) -> ServiceState:
        """Open the task store and (by default) initialise the model."""
        state = cls(
            config=config,
            store=TaskStore(config.task_db_path),
            models=ModelManager(config),
            clock=clock,
        )
        if load_model:
            state.models.load_model()
        logger.info("Service state ready (%d stored tasks).", state.store.count())
        return state
