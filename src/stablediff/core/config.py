"""Configuration management for the Stable Diffusion task service.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the STABLEDIFF_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (STABLEDIFF_* prefix)
2. .env file in the project root
3. Default values defined in StableDiffConfig

Example .env file:
    STABLEDIFF_DATA_DIR=data
    STABLEDIFF_SERVER_PORT=8000
    STABLEDIFF_DEFAULT_STEPS=20
    STABLEDIFF_RENDER_AT_REQUEST_SIZE=false

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Components accept an explicit config so tests can inject a temporary one.

Usage Example
-------------
    from stablediff.core.config import config

    print(config.task_db_path)
    print(config.default_steps)

Model Constants
---------------
The numeric pipeline is a deterministic placeholder for a real diffusion
model.  Its "architecture" is fully described by the constants below
(vocabulary size, embedding width, latent channels, DDIM beta range).  They
are reconstructed on every process start and never persisted.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StableDiffConfig(BaseSettings):
    """Main configuration for the Stable Diffusion task service.

    Attributes
    ----------
    Storage:
        data_dir : Path
            Directory holding the SQLite task database
        task_db_name : str
            File name of the task database inside ``data_dir``

    Server:
        server_host : str
            Bind address for uvicorn
        server_port : int
            Bind port (1024-65535)
        log_level : str
            Root logging level used by ``main()``
        cors_origins : list[str]
            Origins allowed by the CORS middleware

    Generation defaults:
        default_width, default_height : int
            Output size used when a request omits it
        max_width, max_height : int
            Larger requests fail instead of being rendered
        default_steps : int
            Denoising steps used when a request omits ``step_count``
        default_guidance_scale : float
            Classifier-free guidance weight
        default_seed : int
            Seed for the latent generator

    Model constants:
        vocab_size, max_token_length, embedding_dim, latent_channels,
        downsample_factor, latent_scale, num_train_timesteps, beta_start,
        beta_end

    Rendering:
        render_at_request_size : bool
            Render the bitmap at the requested width/height.  When False the
            decoder emits the fixed ``preview_size`` square.
        preview_size : int
            Edge length of the fixed preview bitmap
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STABLEDIFF_",
        case_sensitive=False,
    )

    # Storage
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the task database",
    )
    task_db_name: str = Field(
        default="tasks.db",
        description="SQLite file name for the task store",
    )

    # Server
    server_host: str = Field(default="0.0.0.0", description="Server bind address")
    server_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: str = Field(default="INFO", description="Root logging level")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Generation defaults
    default_width: int = Field(default=512, ge=1)
    default_height: int = Field(default=512, ge=1)
    max_width: int = Field(default=2048, ge=1, description="Largest accepted output width")
    max_height: int = Field(default=2048, ge=1, description="Largest accepted output height")
    default_steps: int = Field(default=20, ge=1)
    default_guidance_scale: float = Field(default=7.5, allow_inf_nan=False)
    default_seed: int = Field(default=42, ge=0, le=2**64 - 1)

    # Tokenizer / text encoder (CLIP-sized)
    vocab_size: int = Field(default=49408, ge=3)
    max_token_length: int = Field(default=77, ge=2)
    embedding_dim: int = Field(default=768, ge=1)

    # Latent space
    latent_channels: int = Field(default=4, ge=1)
    downsample_factor: int = Field(default=8, ge=1)
    latent_scale: float = Field(
        default=0.18215,
        description="SD latent scaling factor applied to the initial noise",
    )

    # DDIM scheduler
    num_train_timesteps: int = Field(default=1000, ge=1)
    beta_start: float = Field(default=0.00085)
    beta_end: float = Field(default=0.012)

    # Rendering
    render_at_request_size: bool = Field(
        default=True,
        description="Render at the requested size instead of the fixed preview",
    )
    preview_size: int = Field(default=64, ge=1)

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def task_db_path(self) -> Path:
        """Absolute location of the SQLite task database."""
        return self.data_dir / self.task_db_name


# Global configuration instance, loaded from STABLEDIFF_* variables and .env.
config = StableDiffConfig()
