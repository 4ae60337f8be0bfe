"""Denoising components: latent noise, noise predictor and DDIM scheduler.

The iterative refinement loop of a latent diffusion model needs three
pieces, all implemented here as deterministic placeholders:

- :func:`initial_latents` seeds the loop with reproducible noise from a
  64-bit linear congruential generator.
- :class:`NoisePredictor` stands in for the UNet.  It perturbs the current
  latents as a function of the timestep and the mean of the conditioning.
- :class:`DDIMScheduler` produces the descending timestep schedule and
  applies one update per step.

Every function returns a new array; inputs are never modified in place.
"""

from __future__ import annotations

from functools import lru_cache

import numpy as np

_U64_MASK = 2**64 - 1
_LCG_MULTIPLIER = 1664525
_LCG_INCREMENT = 1013904223
_LCG_BLOCK = 4096
_TIME_SCALE = 1000.0


@lru_cache(maxsize=None)
def _lcg_coefficients(block: int) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(a**k, c * (a**(k-1) + ... + 1))`` mod 2**64 for k = 1..block.

    Advancing a state ``s`` by ``k`` steps is then ``a**k * s + c_k``, which
    uint64 arithmetic evaluates with the same 64-bit wraparound.
    """
    multipliers = np.empty(block, dtype=np.uint64)
    increments = np.empty(block, dtype=np.uint64)
    mul, inc = 1, 0
    for k in range(block):
        mul = (mul * _LCG_MULTIPLIER) & _U64_MASK
        inc = (inc * _LCG_MULTIPLIER + _LCG_INCREMENT) & _U64_MASK
        multipliers[k] = mul
        increments[k] = inc
    return multipliers, increments


def initial_latents(size: int, seed: int, scale: float = 0.18215) -> np.ndarray:
    """Generate ``size`` pseudo-random latents in ``[-scale, scale]``.

    Identical ``size`` and ``seed`` always yield identical output.  States
    are produced a block at a time from the last state of the previous block.

    Args:
        size: Number of latent values.
        seed: Unsigned 64-bit seed.
        scale: Multiplier applied to the uniform ``[-1, 1]`` samples.

    Returns:
        Float32 array of length ``size``.
    """
    multipliers, increments = _lcg_coefficients(_LCG_BLOCK)
    states = np.empty(size, dtype=np.uint64)
    state = seed & _U64_MASK
    for start in range(0, size, _LCG_BLOCK):
        count = min(_LCG_BLOCK, size - start)
        block = multipliers[:count] * np.uint64(state) + increments[:count]
        states[start : start + count] = block
        state = int(block[-1])

    uniform = states.astype(np.float32) / np.float32(2.0**64)
    return ((uniform * np.float32(2.0) - np.float32(1.0)) * np.float32(scale)).astype(np.float32)


class NoisePredictor:
    """Deterministic stand-in for the UNet noise predictor."""

    def __init__(self, in_channels: int = 4, out_channels: int = 4) -> None:
        self.in_channels = in_channels
        self.out_channels = out_channels

    def predict_noise(
        self, latents: np.ndarray, timestep: int, conditioning: np.ndarray
    ) -> np.ndarray:
        """Predict the noise present in *latents* at *timestep*.

        The prediction is ``latents[i] + s * cos(t / 1000) * sin(i) * 0.1``
        where ``s`` is a tenth of the conditioning mean.
        """
        strength = np.float32(conditioning.mean(dtype=np.float32) * 0.1)
        time_factor = np.float32(np.cos(timestep / _TIME_SCALE))
        ripple = np.sin(np.arange(latents.size, dtype=np.float32)) * np.float32(0.1)
        return (latents + strength * time_factor * ripple).astype(np.float32)


class DDIMScheduler:
    """Simplified DDIM sampler over a linear beta range."""

    def __init__(
        self,
        num_train_timesteps: int = 1000,
        beta_start: float = 0.00085,
        beta_end: float = 0.012,
    ) -> None:
        self.num_train_timesteps = num_train_timesteps
        self.beta_start = beta_start
        self.beta_end = beta_end

    def schedule(self, step_count: int) -> list[int]:
        """Return ``step_count`` strictly decreasing, non-negative timesteps.

        The training range is split into equal intervals counted down from
        ``num_train_timesteps - 1``.

        Raises:
            ValueError: If ``step_count`` is outside ``[1, num_train_timesteps]``.
        """
        if not 1 <= step_count <= self.num_train_timesteps:
            raise ValueError(
                f"step_count must be between 1 and {self.num_train_timesteps}, got {step_count}"
            )
        step_size = self.num_train_timesteps // step_count
        return [self.num_train_timesteps - i * step_size - 1 for i in range(step_count)]

    def refine(self, noise_pred: np.ndarray, timestep: int, latents: np.ndarray) -> np.ndarray:
        """Apply one denoising update: ``latents - sqrt(beta_t) * noise_pred``."""
        progress = timestep / self.num_train_timesteps
        alpha = 1.0 - self.beta_start - (self.beta_end - self.beta_start) * progress
        beta = np.float32(1.0 - alpha)
        return (latents - np.sqrt(beta) * noise_pred).astype(np.float32)
