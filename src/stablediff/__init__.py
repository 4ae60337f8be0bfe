"""Stable Diffusion task service - durable, deterministic text-to-image generation."""

__version__ = "0.1.0"

from stablediff.core.config import StableDiffConfig, config

__all__ = [
    "StableDiffConfig",
    "config",
]
