"""Shared pytest fixtures for Remix Studio tests."""

from __future__ import annotations

import io
import shutil
import tempfile
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest
from PIL import Image

from remixstudio.core.auth import InMemoryAuthProvider
from remixstudio.core.backends import GenerationBackendBase
from remixstudio.core.catalog import Catalog, load_catalog
from remixstudio.core.config import PACKAGE_DATA_DIR, RemixConfig
from remixstudio.core.models import AuthUser, ImageAsset, Stack, Template
from remixstudio.ui.models import RemixSession
from remixstudio.ui.state import RemixController


def make_png(color: str = "red", size: tuple[int, int] = (8, 8), mode: str = "RGB") -> bytes:
    """Encode a tiny solid-colour PNG."""
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


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
def test_config() -> RemixConfig:
    """Configuration with a dummy API key and the packaged catalog."""
    return RemixConfig(
        gemini_api_key="test-key",
        auth_provider="memory",
        data_dir=PACKAGE_DATA_DIR,
    )


@pytest.fixture
def catalog() -> Catalog:
    return load_catalog(PACKAGE_DATA_DIR)


@pytest.fixture
def single_stack() -> Stack:
    return Stack(id="flex", name="Flex")


@pytest.fixture
def dual_stack() -> Stack:
    return Stack(id="fitit", name="Fit It", requires_secondary=True, expected_results=4)


@pytest.fixture
def single_template() -> Template:
    return Template(
        id="flex-supercar",
        name="Supercar Flex",
        stack_id="flex",
        prompt="Lean against a supercar.",
        aspect_ratio="3:4",
    )


@pytest.fixture
def dual_template() -> Template:
    return Template(
        id="fitit-tryon",
        name="Virtual Try-On",
        stack_id="fitit",
        prompt="Dress the person in the garment.",
        aspect_ratio="3:4",
    )


@pytest.fixture
def png_asset() -> ImageAsset:
    return ImageAsset(data=make_png("red"), mime_type="image/png", filename="selfie.png")


@pytest.fixture
def second_png_asset() -> ImageAsset:
    return ImageAsset(data=make_png("blue"), mime_type="image/png", filename="garment.png")


@pytest.fixture
def result_images() -> list[ImageAsset]:
    """Four distinct generated images."""
    colors = ["red", "green", "blue", "yellow"]
    return [
        ImageAsset(data=make_png(c), mime_type="image/png", filename=f"candidate-{i}")
        for i, c in enumerate(colors)
    ]


@pytest.fixture
def fake_backend() -> Mock:
    """Backend double; tests set ``generate.return_value`` / ``side_effect``."""
    backend = Mock(spec=GenerationBackendBase)
    backend.name = "fake"
    backend.generate.return_value = []
    return backend


@pytest.fixture
def auth() -> InMemoryAuthProvider:
    """In-memory auth provider with nobody signed in."""
    return InMemoryAuthProvider(min_password_length=6)


@pytest.fixture
def user() -> AuthUser:
    """A signed-in user, as resolved from a request's access token."""
    return AuthUser(
        id="user-ada",
        email="ada@example.com",
        name="Ada",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def other_user() -> AuthUser:
    return AuthUser(
        id="user-grace",
        email="grace@example.com",
        name="Grace",
        created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
    )


@pytest.fixture
def single_controller(single_template, single_stack, fake_backend) -> RemixController:
    """Controller for a single-image template."""
    session = RemixSession(template=single_template, stack=single_stack)
    return RemixController(session, backend=fake_backend)


@pytest.fixture
def dual_controller(dual_template, dual_stack, fake_backend) -> RemixController:
    """Controller for a two-image template."""
    session = RemixSession(template=dual_template, stack=dual_stack)
    return RemixController(session, backend=fake_backend)


@pytest.fixture
def test_client(fake_backend, auth):
    """TestClient whose app uses the fake backend and a fresh auth provider.

    The lifespan runs first (loading the packaged catalog); the backend,
    auth provider and session store are then replaced on ``app.state``.
    """
    from fastapi.testclient import TestClient

    from remixstudio.api.main import app
    from remixstudio.api.session_store import SessionStore

    with TestClient(app) as client:
        app.state.backend = fake_backend
        app.state.auth = auth
        app.state.sessions = SessionStore(fake_backend)
        yield client


@pytest.fixture
def png_bytes():
    """Factory fixture returning :func:`make_png`."""
    return make_png
