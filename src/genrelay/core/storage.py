"""Object storage client (Supabase Storage REST API).

The relay needs exactly two storage operations: write a blob under a path, and
turn that path into a stable public URL.  :class:`Storage` is the structural
interface; :class:`SupabaseStorage` implements it with the service-role key.

Uploads never overwrite (``x-upsert: false``) because every stored path
contains a fresh UUID.  Failed uploads are not retried here; the caller may
retry the whole request.
"""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import quote

import httpx

from genrelay.core.errors import StorageUploadFailed

logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Structural interface of the object store."""

    async def upload(self, path: str, data: bytes, content_type: str) -> None: ...

    def public_url(self, path: str) -> str: ...


class SupabaseStorage:
    """Upload media to a Supabase Storage bucket.

    Attributes:
        bucket: Bucket receiving all uploads.
        cache_control: ``cache-control`` max-age, in seconds, sent with each upload.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        supabase_url: str,
        service_key: str,
        bucket: str = "characters",
        cache_control: int = 3600,
    ) -> None:
        self._client = client
        self._service_key = service_key
        self.base_url = supabase_url.rstrip("/")
        self.bucket = bucket
        self.cache_control = cache_control

    def _object_path(self, path: str) -> str:
        return f"{quote(self.bucket)}/{quote(path.lstrip('/'))}"

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Store ``data`` at ``path`` in the bucket.

        Raises:
            StorageUploadFailed: If the request fails or the backend rejects it.
        """
        url = f"{self.base_url}/storage/v1/object/{self._object_path(path)}"
        headers = {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
            "Content-Type": content_type,
            "cache-control": f"max-age={self.cache_control}",
            "x-upsert": "false",
        }
        try:
            response = await self._client.post(url, content=data, headers=headers)
        except httpx.HTTPError as exc:
            raise StorageUploadFailed(f"Storage upload failed: {exc}") from exc

        if not response.is_success:
            try:
                detail = response.json().get("message") or response.text
            except (ValueError, AttributeError):
                detail = response.text
            raise StorageUploadFailed(
                f"Storage upload failed: {detail}",
                debug={"status": response.status_code, "path": path},
            )
        logger.info("Uploaded %d bytes to %s/%s.", len(data), self.bucket, path)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self._object_path(path)}"
