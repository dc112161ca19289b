"""Reference rows pointing chat history at stored media.

After a video callback materializes, the relay inserts a chat-message row so
the client's conversation shows the finished video.  The insert goes through
Supabase's PostgREST endpoint with the service-role key.

Whether a failed insert fails the callback is decided by the handler's
``reference_failure_policy``; this module always raises.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from genrelay.core.errors import ReferenceRecordFailed
from genrelay.core.types import MediaKind, StoredArtifact

logger = logging.getLogger(__name__)


class ReferenceRecorder(Protocol):
    async def record(
        self,
        artifact: StoredArtifact,
        *,
        kind: MediaKind,
        user_id: str,
        subject_id: str,
        job_id: str | None,
    ) -> None: ...


class SupabaseReferenceRecorder:
    """Insert chat-message rows for materialized media."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        supabase_url: str,
        service_key: str,
        table: str = "messages",
    ) -> None:
        self._client = client
        self._service_key = service_key
        self.base_url = supabase_url.rstrip("/")
        self.table = table

    async def record(
        self,
        artifact: StoredArtifact,
        *,
        kind: MediaKind,
        user_id: str,
        subject_id: str,
        job_id: str | None,
    ) -> None:
        row = {
            "user_id": user_id,
            "character_id": subject_id,
            "role": "assistant",
            "type": kind.value,
            "content": artifact.public_url,
            "storage_path": artifact.storage_path,
            "prediction_id": job_id,
        }
        headers = {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
            "Content-Type": "application/json",
            "Prefer": "return=minimal",
        }
        url = f"{self.base_url}/rest/v1/{self.table}"
        try:
            response = await self._client.post(url, json=row, headers=headers)
        except httpx.HTTPError as exc:
            raise ReferenceRecordFailed(f"Failed to record {kind.value} reference: {exc}") from exc

        if not response.is_success:
            raise ReferenceRecordFailed(
                f"Failed to record {kind.value} reference: {response.text[:200]}",
                debug={"status": response.status_code, "table": self.table},
            )
        logger.info("Recorded %s reference for %s/%s.", kind.value, user_id, subject_id)
