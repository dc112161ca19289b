"""Result materialization: provider output -> stored media -> public URL.

:class:`ResultMaterializer` resolves the provider's output with
:func:`~genrelay.core.outputs.resolve_output`, downloads it when it is a URL,
picks an extension, uploads the bytes, and returns the
:class:`~genrelay.core.types.StoredArtifact`.

Storage layout
--------------
::

    {user_id}/{subject_id}/{uuid}.{ext}           images
    {user_id}/{subject_id}/videos/{uuid}.{ext}    videos
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx

from genrelay.core.errors import ArtifactDownloadFailed
from genrelay.core.outputs import DEFAULT_CONTENT_TYPES, extension_for, resolve_output
from genrelay.core.storage import Storage
from genrelay.core.types import Immediate, MediaKind, RemoteUrl, StoredArtifact

logger = logging.getLogger(__name__)


def storage_path_for(kind: MediaKind, user_id: str, subject_id: str, ext: str) -> str:
    """Build a fresh storage path for one artifact."""
    filename = f"{uuid.uuid4()}.{ext}"
    if kind is MediaKind.VIDEO:
        return f"{user_id}/{subject_id}/videos/{filename}"
    return f"{user_id}/{subject_id}/{filename}"


class ResultMaterializer:
    """Turn provider output into stored, publicly reachable media."""

    def __init__(self, storage: Storage, http_client: httpx.AsyncClient) -> None:
        self._storage = storage
        self._http = http_client

    async def download(self, url: str) -> Immediate:
        """Fetch a remote artifact with a single GET.

        Raises:
            ArtifactDownloadFailed: On a non-2xx status (carried as
                ``upstream_status``) or a transport error.
        """
        try:
            response = await self._http.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise ArtifactDownloadFailed(f"Failed to download artifact: {exc}") from exc

        if not response.is_success:
            raise ArtifactDownloadFailed(
                f"Failed to download artifact: {response.status_code} {response.reason_phrase}",
                upstream_status=response.status_code,
            )
        return Immediate(response.content, response.headers.get("content-type"))

    async def materialize(
        self,
        output: Any,
        kind: MediaKind,
        user_id: str,
        subject_id: str,
        *,
        preferred_format: str | None = None,
    ) -> StoredArtifact:
        """Store a provider output and return where it lives.

        Args:
            output: Raw provider output, in any supported shape.
            kind: Media kind; selects the path layout and fallbacks.
            user_id: Owner of the artifact.
            subject_id: Character the artifact belongs to.
            preferred_format: Output format the caller asked the model for.

        Raises:
            UnrecognizedOutputShape: If the output can't be resolved.
            ArtifactDownloadFailed: If fetching a remote output fails.
            StorageUploadFailed: If the storage backend rejects the write.
        """
        resolved = resolve_output(output)
        if isinstance(resolved, RemoteUrl):
            logger.info("Downloading %s output from %s", kind.value, resolved.url)
            resolved = await self.download(resolved.url)

        content_type = resolved.content_type or DEFAULT_CONTENT_TYPES[kind]
        ext = extension_for(content_type, kind, preferred_format)
        path = storage_path_for(kind, user_id, subject_id, ext)

        await self._storage.upload(path, resolved.data, content_type)
        return StoredArtifact(
            storage_path=path,
            public_url=self._storage.public_url(path),
            content_type=content_type,
        )
