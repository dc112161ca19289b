"""The generation request handler.

:class:`GenerationHandler` wires the normalizer, the provider invoker, and the
result materializer into the two operations the HTTP layer exposes:

``generate(request)``
    Normalize the request for the configured model, then either wait for the
    provider and store the result (images, and videos in ``sync`` mode), or
    submit the job with a webhook and return a pending acknowledgment (videos
    in ``callback`` mode).

``handle_callback(payload)``
    Materialize a finished prediction delivered by the provider's webhook,
    then record a chat-message reference row for it.

All collaborators are passed in explicitly; the handler holds no
module-level client handles, so tests construct it with fakes.

Serialization gate
------------------
With ``serialize_generations`` enabled, an ``asyncio.Semaphore(1)`` owned by
the handler lets at most one synchronous generation run at a time in this
process.  It is advisory only: it is lost on restart and does nothing across
multiple instances.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from genrelay.core.config import GenRelayConfig
from genrelay.core.errors import MissingCallbackMetadata, ReferenceRecordFailed
from genrelay.core.invoker import META_KEY, ProviderInvoker
from genrelay.core.materializer import ResultMaterializer
from genrelay.core.model_specs import ModelInputSpec, get_model_spec
from genrelay.core.normalizer import effective_parameters, normalize_input
from genrelay.core.references import ReferenceRecorder
from genrelay.core.types import (
    CallbackOutcome,
    GenerationOutcome,
    GenerationRequest,
    MediaKind,
    PendingJob,
    PendingOutcome,
)

logger = logging.getLogger(__name__)


class GenerationHandler:
    """Handle generation requests and provider callbacks.

    Attributes:
        settings: Deployment configuration (models, modes, policies).
    """

    def __init__(
        self,
        settings: GenRelayConfig,
        invoker: ProviderInvoker,
        materializer: ResultMaterializer,
        recorder: ReferenceRecorder | None = None,
    ) -> None:
        self.settings = settings
        self._invoker = invoker
        self._materializer = materializer
        self._recorder = recorder
        self._gate = asyncio.Semaphore(1) if settings.serialize_generations else None

    # -- Model selection ----------------------------------------------------

    def model_for(self, kind: MediaKind) -> ModelInputSpec:
        """Return the input spec of the model configured for ``kind``."""
        model_id = (
            self.settings.video_model_id
            if kind is MediaKind.VIDEO
            else self.settings.image_model_id
        )
        return get_model_spec(model_id)

    def uses_callback(self, kind: MediaKind) -> bool:
        return kind is MediaKind.VIDEO and self.settings.video_mode == "callback"

    @contextlib.asynccontextmanager
    async def _gated(self) -> AsyncIterator[None]:
        if self._gate is None:
            yield
            return
        async with self._gate:
            yield

    # -- Operations ---------------------------------------------------------

    async def generate(self, request: GenerationRequest) -> GenerationOutcome | PendingOutcome:
        """Run one generation request end to end.

        Raises:
            InvalidRequest: Before any external call, for missing fields.
            GenRelayError: Any provider, download, or storage failure.
        """
        spec = self.model_for(request.kind)
        runtime_defaults: dict[str, Any] = {}
        if spec.safety_field:
            runtime_defaults[spec.safety_field] = self.settings.safety_disabled

        normalized = normalize_input(request, spec, runtime_defaults)
        used = effective_parameters(normalized, spec)

        logger.info(
            "Generating %s for character %s with prompt: %s",
            request.kind.value,
            request.subject_id,
            (request.prompt or "")[:100],
        )

        if self.uses_callback(request.kind):
            metadata = {
                "userId": request.user_id,
                "characterId": request.subject_id,
                "type": request.kind.value,
                "parameters": used,
            }
            pending = await self._invoker.submit(spec.model_id, normalized, metadata)
            job = PendingJob(
                job_id=pending.job_id,
                user_id=request.user_id,
                subject_id=request.subject_id,
                original_parameters=dict(request.raw_parameters or {}),
            )
            return PendingOutcome(kind=request.kind, job=job, model=spec.model_id)

        # Only an output format the client asked for overrides the content type.
        preferred_format = None
        if "output_format" in (request.raw_parameters or {}):
            preferred_format = used.get("output_format")

        async with self._gated():
            started = time.perf_counter()
            output = await self._invoker.run(spec.model_id, normalized)
            generation_time = int((time.perf_counter() - started) * 1000)

            artifact = await self._materializer.materialize(
                output,
                request.kind,
                request.user_id,
                request.subject_id,
                preferred_format=preferred_format if isinstance(preferred_format, str) else None,
            )

        logger.info(
            "Stored %s at %s (%d ms in provider).",
            request.kind.value,
            artifact.storage_path,
            generation_time,
        )
        return GenerationOutcome(
            kind=request.kind,
            artifact=artifact,
            model=spec.model_id,
            generation_time=generation_time,
            used=used,
        )

    async def handle_callback(self, payload: dict[str, Any]) -> CallbackOutcome:
        """Materialize a prediction delivered through the provider webhook.

        Callbacks whose status is not ``"succeeded"`` are acknowledged and
        ignored: the job may still be running, or it failed upstream and there
        is nothing to store.

        Raises:
            MissingCallbackMetadata: If the echoed ``_meta`` lacks the user or
                character id, or names an unknown media type.
            GenRelayError: Any download, storage, or (under the ``propagate``
                policy) reference-row failure.
        """
        job_id = payload.get("id")
        status = str(payload.get("status") or "")

        if status != "succeeded":
            logger.info("Ignoring callback for %s with status %r.", job_id, status)
            return CallbackOutcome(job_id=job_id, status=status)

        echoed = payload.get("input")
        meta = echoed.get(META_KEY) if isinstance(echoed, dict) else None
        if not isinstance(meta, dict):
            meta = {}

        user_id = meta.get("userId")
        subject_id = meta.get("characterId")
        if not user_id or not subject_id:
            raise MissingCallbackMetadata(
                "Missing userId/characterId in callback metadata",
                debug={"predictionId": job_id},
            )

        try:
            kind = MediaKind(meta.get("type") or MediaKind.VIDEO.value)
        except ValueError:
            raise MissingCallbackMetadata(
                f"Unknown media type in callback metadata: {meta.get('type')!r}"
            ) from None

        artifact = await self._materializer.materialize(
            payload.get("output"), kind, str(user_id), str(subject_id)
        )
        logger.info("Callback %s stored %s at %s.", job_id, kind.value, artifact.storage_path)

        if self._recorder is not None and self.settings.record_references:
            try:
                await self._recorder.record(
                    artifact,
                    kind=kind,
                    user_id=str(user_id),
                    subject_id=str(subject_id),
                    job_id=job_id,
                )
            except ReferenceRecordFailed as exc:
                if self.settings.reference_failure_policy != "swallow":
                    raise
                logger.warning("Reference row for %s not recorded: %s", job_id, exc)

        return CallbackOutcome(job_id=job_id, status=status, kind=kind, artifact=artifact)

    def describe(self) -> dict[str, Any]:
        """Return the deployment summary served by ``GET /``."""
        return {
            "ok": True,
            "model": self.settings.image_model_id,
            "video_model": self.settings.video_model_id,
            "video_mode": self.settings.video_mode,
            "safety_disabled": self.settings.safety_disabled,
            "endpoints": {
                "generate": "/api/generate",
                "callback": "/api/generate/callback",
            },
        }
