"""Tests for genrelay.core.storage and genrelay.core.references."""

from __future__ import annotations

import json

import httpx
import pytest

from genrelay.core.errors import ReferenceRecordFailed, StorageUploadFailed
from genrelay.core.references import SupabaseReferenceRecorder
from genrelay.core.storage import SupabaseStorage
from genrelay.core.types import MediaKind, StoredArtifact

SUPABASE = "https://project.supabase.test"


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestSupabaseStorage:
    @pytest.mark.asyncio
    async def test_upload_posts_to_bucket_path(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "characters/u1/c1/a.webp"})

        storage = SupabaseStorage(_http(handler), SUPABASE, "service-key", bucket="characters")
        await storage.upload("u1/c1/a.webp", b"data", "image/webp")

        request = seen[0]
        assert str(request.url) == f"{SUPABASE}/storage/v1/object/characters/u1/c1/a.webp"
        assert request.content == b"data"
        assert request.headers["Content-Type"] == "image/webp"
        assert request.headers["x-upsert"] == "false"
        assert request.headers["cache-control"] == "max-age=3600"
        assert request.headers["Authorization"] == "Bearer service-key"

    @pytest.mark.asyncio
    async def test_rejected_upload_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(409, json={"message": "The resource already exists"})

        storage = SupabaseStorage(_http(handler), SUPABASE, "service-key")

        with pytest.raises(StorageUploadFailed, match="already exists") as excinfo:
            await storage.upload("u1/c1/a.webp", b"data", "image/webp")
        assert excinfo.value.status_code == 500
        assert excinfo.value.debug["status"] == 409

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        storage = SupabaseStorage(_http(handler), SUPABASE, "service-key")

        with pytest.raises(StorageUploadFailed):
            await storage.upload("u1/c1/a.webp", b"data", "image/webp")

    def test_public_url(self):
        storage = SupabaseStorage(_http(lambda r: httpx.Response(200)), SUPABASE + "/", "k")
        assert (
            storage.public_url("u1/c1/videos/a.mp4")
            == f"{SUPABASE}/storage/v1/object/public/characters/u1/c1/videos/a.mp4"
        )


@pytest.mark.unit
class TestSupabaseReferenceRecorder:
    ARTIFACT = StoredArtifact(
        storage_path="u1/c1/videos/a.mp4",
        public_url=f"{SUPABASE}/storage/v1/object/public/characters/u1/c1/videos/a.mp4",
        content_type="video/mp4",
    )

    @pytest.mark.asyncio
    async def test_record_inserts_message_row(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        recorder = SupabaseReferenceRecorder(_http(handler), SUPABASE, "service-key")
        await recorder.record(
            self.ARTIFACT, kind=MediaKind.VIDEO, user_id="u1", subject_id="c1", job_id="p1"
        )

        assert str(seen[0].url) == f"{SUPABASE}/rest/v1/messages"
        row = json.loads(seen[0].content)
        assert row["user_id"] == "u1"
        assert row["character_id"] == "c1"
        assert row["type"] == "video"
        assert row["content"] == self.ARTIFACT.public_url
        assert row["prediction_id"] == "p1"

    @pytest.mark.asyncio
    async def test_failed_insert_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text='{"message":"column does not exist"}')

        recorder = SupabaseReferenceRecorder(_http(handler), SUPABASE, "service-key")

        with pytest.raises(ReferenceRecordFailed):
            await recorder.record(
                self.ARTIFACT, kind=MediaKind.VIDEO, user_id="u1", subject_id="c1", job_id=None
            )
