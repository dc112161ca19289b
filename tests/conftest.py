"""Shared pytest fixtures for genrelay tests."""

from __future__ import annotations

from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from genrelay.api.main import create_app
from genrelay.core.config import GenRelayConfig
from genrelay.core.handler import GenerationHandler

from fakes import (
    IMAGE_URL,
    MP4_BYTES,
    VIDEO_URL,
    WEBP_BYTES,
    FakeProvider,
    FakeRecorder,
    FakeStorage,
    make_handler,
    make_media_client,
)


@pytest.fixture
def test_config(monkeypatch) -> GenRelayConfig:
    """Configuration with fake credentials and callback mode enabled."""
    for name in ("GENRELAY_ENVIRONMENT", "GENRELAY_DISABLE_SAFETY", "GENRELAY_VIDEO_MODE"):
        monkeypatch.delenv(name, raising=False)
    return GenRelayConfig(
        _env_file=None,
        replicate_api_token="r8_test",
        supabase_url="https://project.supabase.test",
        supabase_service_key="service-key",
        callback_url="https://relay.test/api/generate/callback",
        video_mode="callback",
        backoff_min=0.0,
        backoff_max=0.0,
    )


@pytest.fixture
def media_routes() -> dict[str, tuple[int, bytes, str | None]]:
    return {
        IMAGE_URL: (200, WEBP_BYTES, "image/webp"),
        VIDEO_URL: (200, MP4_BYTES, "video/mp4"),
    }


@pytest.fixture
def media_client(media_routes) -> httpx.AsyncClient:
    return make_media_client(media_routes)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(IMAGE_URL)


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_recorder() -> FakeRecorder:
    return FakeRecorder()


@pytest.fixture
def handler(
    test_config: GenRelayConfig,
    fake_provider: FakeProvider,
    fake_storage: FakeStorage,
    fake_recorder: FakeRecorder,
    media_client: httpx.AsyncClient,
) -> GenerationHandler:
    return make_handler(test_config, fake_provider, fake_storage, media_client, fake_recorder)


@pytest.fixture
def test_client(handler: GenerationHandler) -> Generator[TestClient, None, None]:
    """TestClient around an app built from the fake-backed handler."""
    with TestClient(create_app(handler=handler)) as client:
        yield client
