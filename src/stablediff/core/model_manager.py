"""Model lifecycle management for the generation service.

This module provides :class:`ModelManager`, the single point of control for
building and releasing the :class:`DiffusionModel`.  The model is a bundle of
the stateless pipeline components (tokenizer, text encoder, noise predictor,
decoder and scheduler) configured from :class:`StableDiffConfig`.

Key Responsibilities
--------------------
- **Explicit initialisation** - the model starts out *Uninitialized*.  It is
  built by :meth:`ModelManager.load_model` during application startup and
  rebuilt after every restart; it has no persisted state.
- **Rejecting work while uninitialized** - reading :attr:`ModelManager.model`
  before loading raises :class:`PipelineError`, which the task lifecycle
  records as a Failed task.

Usage
-----
::

    from stablediff.core.config import config
    from stablediff.core.model_manager import ModelManager

    mgr = ModelManager(config)
    mgr.load_model()
    tokens = mgr.model.tokenizer.encode("a red cat")
    mgr.unload()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stablediff.core.codecs import ImageDecoder, SimpleTokenizer, TextEncoder
from stablediff.core.config import StableDiffConfig
from stablediff.core.denoise import DDIMScheduler, NoisePredictor
from stablediff.core.exceptions import PipelineError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiffusionModel:
    """The components a generation run needs, built once per process."""

    tokenizer: SimpleTokenizer
    text_encoder: TextEncoder
    unet: NoisePredictor
    decoder: ImageDecoder
    scheduler: DDIMScheduler

    @classmethod
    def from_config(cls, config: StableDiffConfig) -> DiffusionModel:
        return cls(
            tokenizer=SimpleTokenizer(config.vocab_size, config.max_token_length),
            text_encoder=TextEncoder(config.embedding_dim),
            unet=NoisePredictor(config.latent_channels, config.latent_channels),
            decoder=ImageDecoder(config.latent_channels),
            scheduler=DDIMScheduler(
                num_train_timesteps=config.num_train_timesteps,
                beta_start=config.beta_start,
                beta_end=config.beta_end,
            ),
        )


class ModelManager:
    """Holds the process-wide model in one of two states: Uninitialized or Ready.

    Attributes:
        _config (StableDiffConfig):
            Configuration the model is built from.
        _model (DiffusionModel | None):
            The ready model, or ``None`` while uninitialized.
    """

    def __init__(self, config: StableDiffConfig) -> None:
        self._config = config
        self._model: DiffusionModel | None = None

    def load_model(self) -> None:
        """Build the model.  No-op if it is already loaded."""
        if self._model is not None:
            logger.info("Model already loaded - skipping.")
            return

        self._model = DiffusionModel.from_config(self._config)
        logger.info(
            "Model loaded (vocab=%d, embedding_dim=%d, timesteps=%d).",
            self._config.vocab_size,
            self._config.embedding_dim,
            self._config.num_train_timesteps,
        )

    def unload(self) -> None:
        """Release the model.  Safe to call when nothing is loaded."""
        if self._model is None:
            return
        self._model = None
        logger.info("Model unloaded.")

    @property
    def is_loaded(self) -> bool:
        """Whether the model is Ready."""
        return self._model is not None

    @property
    def model(self) -> DiffusionModel:
        """The ready model.

        Raises:
            PipelineError: If :meth:`load_model` has not been called.
        """
        if self._model is None:
            raise PipelineError("Model not initialized")
        return self._model
