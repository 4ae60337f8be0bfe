"""Shared pytest fixtures for the generation service tests."""

import itertools
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from stablediff.api.main import create_app
from stablediff.api.router import RequestRouter
from stablediff.core.config import StableDiffConfig
from stablediff.core.state import ServiceState


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> StableDiffConfig:
    """Create a test configuration storing tasks in a temporary directory.

    The defaults match production; only the data directory moves.
    """
    return StableDiffConfig(data_dir=str(temp_dir / "data"), _env_file=None)


@pytest.fixture
def small_config(temp_dir: Path) -> StableDiffConfig:
    """Configuration with small default images and few steps for fast tests."""
    return StableDiffConfig(
        data_dir=str(temp_dir / "data"),
        default_width=64,
        default_height=64,
        default_steps=4,
        _env_file=None,
    )


@pytest.fixture
def fake_clock():
    """Monotonic clock returning 1000, 1001, 1002, ... nanoseconds."""
    counter = itertools.count(1000)
    return lambda: next(counter)


@pytest.fixture
def service_state(small_config: StableDiffConfig, fake_clock) -> ServiceState:
    """Service state with a loaded model and an empty task store."""
    return ServiceState.create(small_config, clock=fake_clock)


@pytest.fixture
def router(service_state: ServiceState) -> RequestRouter:
    """Request router bound to ``service_state``."""
    return RequestRouter(service_state)


@pytest.fixture
def test_client(test_config: StableDiffConfig) -> Generator[TestClient, None, None]:
    """FastAPI TestClient running the full lifespan against a temp database."""
    with TestClient(create_app(test_config)) as client:
        yield client


@pytest.fixture
def sample_prompts() -> list[str]:
    """Sample prompts for testing.

    Returns:
        List of test prompts
    """
    return [
        "",
        "a red cat",
        "   leading and trailing   ",
        "ünïcödé prompt with emoji 🐈 and 漢字",
        "A very long prompt " * 40,
    ]
