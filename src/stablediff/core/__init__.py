"""Core functionality for the generation service.

- **StableDiffConfig / config**: Pydantic Settings configuration (STABLEDIFF_ prefix)
- **Codecs** (codecs.py): tokenizer, text encoder and BMP decoder
- **Denoising** (denoise.py): latent noise, noise predictor, DDIM scheduler
- **GenerationPipeline**: tokenize -> encode -> denoise -> decode
- **ModelManager**: Uninitialized / Ready model state
- **TaskStore**: SQLite-backed durable task records and id counter
- **TaskLifecycle**: runs a generation and stores its terminal record
- **ServiceState**: the process-wide bundle injected into the API layer
"""

from stablediff.core.config import StableDiffConfig, config
from stablediff.core.lifecycle import TaskLifecycle
from stablediff.core.model_manager import DiffusionModel, ModelManager
from stablediff.core.models import GenerationRequest, TaskRecord, TaskStatus
from stablediff.core.pipeline import GenerationPipeline
from stablediff.core.state import ServiceState
from stablediff.core.task_store import TaskStore

__all__ = [
    "DiffusionModel",
    "GenerationPipeline",
    "GenerationRequest",
    "ModelManager",
    "ServiceState",
    "StableDiffConfig",
    "TaskLifecycle",
    "TaskRecord",
    "TaskStatus",
    "TaskStore",
    "config",
]
