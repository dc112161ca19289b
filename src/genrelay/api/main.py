"""genrelay - FastAPI Application.

This module is the single entry point for the web service.  It defines the
application factory, the module-level ``app`` instance, all routes, and the
``main()`` CLI function that launches the uvicorn server.

Architecture
------------
The service is stateless between requests:

- **Configuration** comes from :data:`~genrelay.core.config.config`
  (``GENRELAY_*`` environment variables / ``.env``).
- **Collaborators** (the Replicate client, Supabase storage, and the
  reference recorder) share one ``httpx.AsyncClient`` created in the
  lifespan and are wired into a :class:`GenerationHandler` stored on
  ``app.state``.  Tests pass a handler built from fakes to
  :func:`create_app` instead.
- **Errors** are always JSON: relay errors, request validation errors,
  Starlette HTTP errors (404/405), and unexpected exceptions all become
  ``{"error": ..., "debug"?: ...}`` bodies.

Endpoints
---------
=======  ===========================  =======================================
Method   Path                         Purpose
=======  ===========================  =======================================
GET      ``/``                        Deployment summary
POST     ``/api/generate``            Generate an image or video
OPTIONS  ``/api/generate``            CORS preflight
POST     ``/api/generate/callback``   Provider webhook (callback mode)
OPTIONS  ``/api/generate/callback``   CORS preflight
=======  ===========================  =======================================

Usage
-----
CLI (installed entry point)::

    genrelay

Direct invocation::

    python -m genrelay.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from genrelay import __version__
from genrelay.api.models import (
    CallbackPayload,
    CallbackResponse,
    GenerateRequest,
    GenerateResponse,
    PendingResponse,
)
from genrelay.core.config import GenRelayConfig, config
from genrelay.core.errors import GenRelayError, MissingCallbackMetadata
from genrelay.core.handler import GenerationHandler
from genrelay.core.invoker import ProviderInvoker
from genrelay.core.materializer import ResultMaterializer
from genrelay.core.provider import ReplicateClient
from genrelay.core.references import SupabaseReferenceRecorder
from genrelay.core.storage import SupabaseStorage
from genrelay.core.types import PendingOutcome

logger = logging.getLogger(__name__)

_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def build_handler(settings: GenRelayConfig, http_client: httpx.AsyncClient) -> GenerationHandler:
    """Wire the production collaborators around one shared HTTP client.

    Args:
        settings: Deployment configuration.
        http_client: Client shared by the provider, storage, downloads, and
            reference rows.  The caller owns its lifetime.

    Returns:
        A ready :class:`GenerationHandler`.
    """
    provider = ReplicateClient(
        http_client,
        api_token=settings.replicate_api_token,
        base_url=settings.replicate_base_url,
        poll_interval=settings.poll_interval,
        sync_wait=settings.sync_wait,
    )
    invoker = ProviderInvoker(
        provider,
        max_attempts=settings.max_attempts,
        backoff_min=settings.backoff_min,
        backoff_max=settings.backoff_max,
        callback_url=settings.callback_url,
    )
    storage = SupabaseStorage(
        http_client,
        supabase_url=settings.supabase_url,
        service_key=settings.supabase_service_key,
        bucket=settings.storage_bucket,
    )
    recorder = None
    if settings.record_references:
        recorder = SupabaseReferenceRecorder(
            http_client,
            supabase_url=settings.supabase_url,
            service_key=settings.supabase_service_key,
            table=settings.messages_table,
        )
    return GenerationHandler(
        settings,
        invoker,
        ResultMaterializer(storage, http_client),
        recorder=recorder,
    )


def _log_startup(settings: GenRelayConfig) -> None:
    def mark(value: object) -> str:
        return "✓" if value else "✗"

    logger.info("- REPLICATE_API_TOKEN: %s", mark(settings.replicate_api_token))
    logger.info("- SUPABASE_URL: %s", mark(settings.supabase_url))
    logger.info("- SUPABASE_SERVICE_KEY: %s", mark(settings.supabase_service_key))
    logger.info("- CALLBACK_URL: %s", mark(settings.callback_url))
    logger.info(
        "- DISABLE_SAFETY: %s",
        "✓ (disabled)" if settings.safety_disabled else "✗ (enabled)",
    )


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    settings: GenRelayConfig | None = None,
    handler: GenerationHandler | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Configuration; defaults to the global ``config``.
        handler: Pre-built handler.  When given, the lifespan does not create
            any HTTP client or provider/storage collaborators.

    Returns:
        The configured application.
    """
    if settings is None:
        settings = handler.settings if handler is not None else config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create the shared HTTP client and handler; close the client on shutdown."""
        if handler is not None:
            app.state.handler = handler
            yield
            return

        _log_startup(settings)
        async with httpx.AsyncClient(timeout=settings.http_timeout) as http_client:
            app.state.handler = build_handler(settings, http_client)
            logger.info("GenerationHandler initialised (model=%s).", settings.image_model_id)
            yield
        logger.info("HTTP client closed on shutdown.")

    app = FastAPI(
        title="genrelay",
        description="Relay generation requests to Replicate and store results in Supabase.",
        version=__version__,
        lifespan=lifespan,
    )

    # Preflights succeed for any origin and requested header; no cookies are sent.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# Error handlers.  Callers parse every response body as JSON.
# ---------------------------------------------------------------------------


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(GenRelayError)
    async def relay_error_handler(request: Request, exc: GenRelayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s", request.url.path, type(exc).__name__, exc)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request body",
                "debug": {"errors": jsonable_encoder(exc.errors())},
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("[%s] unexpected error", request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error"})


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


def _register_routes(app: FastAPI) -> None:
    @app.get("/")
    async def index(request: Request) -> dict:
        """Return the deployment summary: models, callback mode, safety flag."""
        handler: GenerationHandler = request.app.state.handler
        return {"version": __version__, **handler.describe()}

    @app.options("/api/generate")
    @app.options("/api/generate/callback")
    async def preflight() -> Response:
        return Response(status_code=200, headers=_PREFLIGHT_HEADERS)

    @app.post("/api/generate", response_model=None)
    async def generate(req: GenerateRequest, request: Request) -> JSONResponse:
        """Generate an image or video and store it.

        Returns:
            200 with ``{type, path, url, generationTime, model, used}``, or
            202 with ``{type: "video", status: "processing", predictionId}``
            when the video is submitted in callback mode.

        Raises:
            GenRelayError: Converted to a JSON error body by the app's
                exception handlers (400 / 500 / 502).
        """
        handler: GenerationHandler = request.app.state.handler
        outcome = await handler.generate(req.to_generation_request())

        if isinstance(outcome, PendingOutcome):
            body = PendingResponse(predictionId=outcome.job.job_id)
            return JSONResponse(status_code=202, content=body.model_dump())

        body = GenerateResponse(
            type=outcome.kind.value,
            path=outcome.artifact.storage_path,
            url=outcome.artifact.public_url,
            generationTime=outcome.generation_time,
            model=outcome.model,
            used=outcome.used,
        )
        return JSONResponse(status_code=200, content=jsonable_encoder(body.model_dump()))

    @app.post("/api/generate/callback", response_model=None)
    async def generation_callback(payload: CallbackPayload, request: Request) -> JSONResponse:
        """Receive the provider's prediction webhook.

        Returns:
            200 when the result was stored or the status is ignored, 400 when
            the echoed metadata is missing, 500 when materialization fails.
        """
        handler: GenerationHandler = request.app.state.handler
        try:
            outcome = await handler.handle_callback(payload.model_dump())
        except MissingCallbackMetadata:
            raise
        except GenRelayError as exc:
            # Materialization failures are a server-side problem from the
            # provider's point of view, whatever the upstream status was.
            logger.error("[callback %s] %s: %s", payload.id, type(exc).__name__, exc)
            return JSONResponse(status_code=500, content=jsonable_encoder(exc.to_dict()))

        body = CallbackResponse(
            ignored=outcome.ignored,
            status=outcome.status,
            predictionId=outcome.job_id,
            type=outcome.kind.value if outcome.kind else None,
            path=outcome.artifact.storage_path if outcome.artifact else None,
            url=outcome.artifact.public_url if outcome.artifact else None,
        )
        return JSONResponse(status_code=200, content=body.model_dump(exclude_none=True))


# ---------------------------------------------------------------------------
# Module-level application instance.
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~genrelay.core.config.config` (which
    loads from ``GENRELAY_SERVER_HOST`` and ``GENRELAY_SERVER_PORT``).
    Defaults to ``0.0.0.0:3000``.

    Registered as the ``genrelay`` console script in ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "genrelay.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
