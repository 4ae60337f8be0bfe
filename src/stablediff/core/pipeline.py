"""End-to-end text-to-image generation over the placeholder model."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from stablediff.core.config import StableDiffConfig
from stablediff.core.denoise import initial_latents
from stablediff.core.exceptions import PipelineError
from stablediff.core.model_manager import ModelManager
from stablediff.core.models import GenerationRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedRequest:
    """A :class:`GenerationRequest` with every default filled in."""

    prompt: str
    negative_prompt: str | None
    width: int
    height: int
    step_count: int
    guidance_scale: float
    seed: int


class GenerationPipeline:
    """Run tokenize -> encode -> denoise loop -> decode for one request.

    The run is synchronous and has no suspension points.  Identical resolved
    requests always produce byte-identical bitmaps.
    """

    def __init__(self, models: ModelManager, config: StableDiffConfig) -> None:
        self._models = models
        self._config = config

    def resolve(self, request: GenerationRequest) -> ResolvedRequest:
        """Fill in configured defaults for every omitted field.

        Only ``None`` means "omitted"; an explicit ``0`` width or height is
        kept so that it fails in :meth:`run`.
        """
        cfg = self._config

        def pick(value, default):
            return default if value is None else value

        return ResolvedRequest(
            prompt=request.prompt,
            negative_prompt=request.negative_prompt,
            width=pick(request.width, cfg.default_width),
            height=pick(request.height, cfg.default_height),
            step_count=pick(request.step_count, cfg.default_steps),
            guidance_scale=pick(request.guidance_scale, cfg.default_guidance_scale),
            seed=pick(request.seed, cfg.default_seed),
        )

    def latent_size(self, width: int, height: int) -> int:
        factor = self._config.downsample_factor
        return (width // factor) * (height // factor) * self._config.latent_channels

    def run(self, request: GenerationRequest) -> bytes:
        """Generate a BMP for *request*.

        Args:
            request: The generation parameters.

        Returns:
            The encoded bitmap.

        Raises:
            PipelineError: If the model is not initialized, the size is zero
                or above the configured maximum, the step count exceeds the
                training schedule, or the run exhausts memory.
        """
        model = self._models.model
        params = self.resolve(request)

        if params.width > self._config.max_width or params.height > self._config.max_height:
            raise PipelineError(
                f"Requested size {params.width}x{params.height} exceeds the maximum "
                f"{self._config.max_width}x{self._config.max_height}"
            )

        size = self.latent_size(params.width, params.height)
        if size == 0:
            raise PipelineError(
                f"Latent size is zero for {params.width}x{params.height}; "
                f"width and height must be at least {self._config.downsample_factor}"
            )

        try:
            timesteps = model.scheduler.schedule(params.step_count)
        except ValueError as exc:
            raise PipelineError(str(exc)) from exc

        logger.info(
            "Generating %dx%d, %d steps, guidance=%.2f, seed=%d.",
            params.width,
            params.height,
            params.step_count,
            params.guidance_scale,
            params.seed,
        )

        try:
            image = self._generate(model, params, size, timesteps)
        except MemoryError as exc:
            raise PipelineError(
                f"Out of memory generating {params.width}x{params.height}"
            ) from exc

        logger.info("Generated %d-byte bitmap (seed=%d).", len(image), params.seed)
        return image

    def _generate(self, model, params: ResolvedRequest, size: int, timesteps: list[int]) -> bytes:
        """Denoise seeded noise under guidance and decode the final latents."""
        positive = model.text_encoder.encode(model.tokenizer.encode(params.prompt))
        negative = model.text_encoder.encode(model.tokenizer.encode(params.negative_prompt or ""))

        latents = initial_latents(size, params.seed, self._config.latent_scale)
        guidance = np.float32(params.guidance_scale)

        for index, timestep in enumerate(timesteps):
            noise_pos = model.unet.predict_noise(latents, timestep, positive)
            noise_neg = model.unet.predict_noise(latents, timestep, negative)
            noise = noise_neg + guidance * (noise_pos - noise_neg)
            latents = model.scheduler.refine(noise, timestep, latents)
            logger.debug("Step %d/%d (t=%d) done.", index + 1, len(timesteps), timestep)

        if self._config.render_at_request_size:
            out_width, out_height = params.width, params.height
        else:
            out_width = out_height = self._config.preview_size

        return model.decoder.decode(latents, out_width, out_height)
