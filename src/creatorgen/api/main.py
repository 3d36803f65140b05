"""creatorgen — FastAPI Application.

This module is the entry point for the web service.  It defines the
application factory, the REST routes, and the ``main()`` CLI function that
launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :class:`~creatorgen.core.config.CreatorGenConfig`
  (``CREATORGEN_*`` environment variables).
- **Collaborators** (HTTP client, datastore, object storage, providers,
  orchestrator) are built in the lifespan handler and kept on ``app.state``.
  Route handlers never import them globally, so tests can build an app
  against temporary directories and a mocked HTTP transport.
- **Errors** raised by the core are subclasses of
  :class:`~creatorgen.core.errors.GenerationError`; exception handlers turn
  them into ``{"error": <kind>, "message": <text>, ...details}`` bodies.
- **Stored images** are served by ``StaticFiles`` at ``/storage/<bucket>/``.

Endpoints
---------
========  ==============  ==============================================
Method    Path            Purpose
========  ==============  ==============================================
POST      ``/generate``   Run one generation (multipart or JSON body)
GET       ``/models``     Selectable models
GET       ``/health``     Liveness check
========  ==============  ==============================================

Usage
-----
CLI (installed entry point)::

    creatorgen

Direct invocation::

    python -m creatorgen.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from creatorgen import __version__
from creatorgen.api.models import GenerateRequest, GenerateResponse, ModelInfo
from creatorgen.core.admission import AdmissionController
from creatorgen.core.assets import AssetResolver
from creatorgen.core.config import CreatorGenConfig, config
from creatorgen.core.errors import GenerationError, ValidationError
from creatorgen.core.models import MediaReference
from creatorgen.core.orchestrator import GenerationOrchestrator
from creatorgen.core.outputs import OutputWriter
from creatorgen.core.pause_gate import PauseGate
from creatorgen.core.persistence import PersistenceWriter
from creatorgen.core.providers import ProviderGateway, provider_registry
from creatorgen.core.recharge import HttpRechargeService, RechargeDispatcher
from creatorgen.storage.datastore import SQLiteDatastore
from creatorgen.storage.object_storage import LocalObjectStorage

logger = logging.getLogger(__name__)

# Form fields that may carry uploaded subject images.
IMAGE_FIELDS = ("images", "image")
LOGO_FIELD = "logo_image"


# ---------------------------------------------------------------------------
# Application lifecycle — collaborator setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the request collaborators on startup and release them on shutdown.

    On startup:
        Opens the shared ``httpx.AsyncClient``, the datastore and the object
        storage, instantiates every registered provider, and wires the
        :class:`GenerationOrchestrator`.

    On shutdown:
        Waits for in-flight auto-recharge tasks, then closes the HTTP client.

    Args:
        app: The FastAPI application instance.  ``app.state.config`` and
            ``app.state.http_transport`` are set by :func:`create_app`.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    cfg: CreatorGenConfig = app.state.config

    # --- Startup -----------------------------------------------------------
    http = httpx.AsyncClient(
        timeout=cfg.http_timeout_seconds,
        transport=app.state.http_transport,
    )
    datastore = SQLiteDatastore(cfg.database_path)
    storage = LocalObjectStorage(cfg.storage_dir, cfg.storage_bucket, cfg.public_base_url)
    outputs = OutputWriter(storage)

    providers = {
        name: provider_registry.instantiate(name, cfg, http, outputs)
        for name in provider_registry.list_available()
    }
    gateway = ProviderGateway(cfg, providers)

    recharge = RechargeDispatcher(
        HttpRechargeService(http, cfg.auto_recharge_url, cfg.internal_secret),
        default_threshold=cfg.default_recharge_threshold,
    )

    app.state.http = http
    app.state.datastore = datastore
    app.state.storage = storage
    app.state.gateway = gateway
    app.state.recharge = recharge
    app.state.orchestrator = GenerationOrchestrator(
        admission=AdmissionController(datastore, cfg.privileged_roles, recharge),
        pause_gate=PauseGate(datastore, cfg.privileged_roles),
        assets=AssetResolver(http, storage),
        gateway=gateway,
        persistence=PersistenceWriter(datastore),
        config_store=datastore,
        image_cost=cfg.image_cost,
    )
    logger.info("Orchestrator ready with providers: %s", ", ".join(providers))

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    await recharge.drain()
    await http.aclose()
    logger.info("HTTP client closed on shutdown.")


# ---------------------------------------------------------------------------
# Error handlers.
# ---------------------------------------------------------------------------


async def _generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.kind, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError("Invalid request", errors=_error_messages(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "server_error", "message": "Internal server error"},
    )


def _error_messages(errors: list[dict[str, Any]]) -> list[str]:
    messages = []
    for err in errors:
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return messages


# ---------------------------------------------------------------------------
# Request parsing.
# ---------------------------------------------------------------------------


async def _read_upload(upload: UploadFile) -> MediaReference:
    data = await upload.read()
    return MediaReference(
        data=data,
        mime_type=upload.content_type or "image/png",
        filename=upload.filename,
    )


async def parse_generate_request(
    request: Request,
) -> tuple[GenerateRequest, list[MediaReference], MediaReference | None]:
    """Parse a multipart or JSON body into the request model and uploads.

    Raises:
        ValidationError: Malformed body or field values.
    """
    content_type = request.headers.get("content-type", "")
    uploads: list[MediaReference] = []
    logo: MediaReference | None = None

    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        fields: dict[str, Any] = {}
        urls: list[str] = []

        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key in IMAGE_FIELDS:
                    uploads.append(await _read_upload(value))
                elif key == LOGO_FIELD:
                    logo = await _read_upload(value)
                continue
            if key in IMAGE_FIELDS:
                urls.append(value)
            else:
                fields[key] = value
        fields["images"] = urls
    else:
        try:
            fields = await request.json()
        except ValueError:
            raise ValidationError("Request body must be JSON or multipart form data") from None
        if not isinstance(fields, dict):
            raise ValidationError("Request body must be a JSON object")

    try:
        body = GenerateRequest.model_validate(fields)
    except PydanticValidationError as e:
        messages = _error_messages(e.errors())
        raise ValidationError("; ".join(messages), errors=messages) from None

    return body, uploads, logo


def enforce_upload_limits(
    cfg: CreatorGenConfig,
    body: GenerateRequest,
    uploads: list[MediaReference],
    logo: MediaReference | None,
) -> None:
    """Reject requests over the reference count or byte limits.

    Raises:
        ValidationError: Too many references, a file over the per-file limit,
            or uploads over the total limit.
    """
    reference_count = len(body.images) + len(uploads)
    if reference_count > cfg.max_reference_images:
        raise ValidationError(
            f"Too many reference images (max {cfg.max_reference_images})",
            count=reference_count,
        )

    files = uploads + ([logo] if logo is not None else [])
    limit_mb = cfg.max_file_bytes // (1024 * 1024)
    for ref in files:
        if ref.size > cfg.max_file_bytes:
            raise ValidationError(
                f"File {ref.filename or 'upload'} exceeds {limit_mb}MB limit",
                filename=ref.filename,
            )

    total = sum(ref.size for ref in files)
    if total > cfg.max_total_bytes:
        raise ValidationError(
            f"Total upload size exceeds {cfg.max_total_bytes // (1024 * 1024)}MB limit",
            total_bytes=total,
        )


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------

router = APIRouter()


@router.post("/generate", response_model=GenerateResponse)
async def generate(request: Request) -> GenerateResponse:
    """Run one generation attempt.

    Accepts ``multipart/form-data`` (subject uploads in ``images`` /
    ``image``, the logo in ``logo_image``) or a JSON body with image URLs.

    Returns:
        ``{imageURL, generationID, remainingCredits}``.

    Raises:
        GenerationError: Any terminal failure; converted by the error
            handlers into the matching status code and JSON body.
    """
    cfg: CreatorGenConfig = request.app.state.config
    body, uploads, logo = await parse_generate_request(request)
    enforce_upload_limits(cfg, body, uploads, logo)

    generation = body.to_domain(
        uploads=uploads,
        logo=logo,
        default_aspect_ratio=cfg.default_aspect_ratio,
    )
    logger.info(
        "Generate request from %s: %d reference(s), template=%s, model=%s",
        generation.user_id,
        len(generation.images),
        bool(generation.template_reference_image),
        generation.model_id or "default",
    )

    result = await request.app.state.orchestrator.generate(generation)
    return GenerateResponse(
        image_url=result.image_url,
        generation_id=result.generation_id,
        remaining_credits=result.remaining_credits,
    )


@router.get("/models", response_model=list[ModelInfo])
async def list_models(request: Request) -> list[ModelInfo]:
    """Return the model catalog."""
    gateway: ProviderGateway = request.app.state.gateway
    return [
        ModelInfo(
            id=spec.id,
            label=spec.label,
            description=spec.description,
            provider=spec.provider,
            requires_input_image=spec.requires_input_image,
            max_input_images=spec.max_input_images,
            supports_compositing=spec.supports_compositing,
        )
        for spec in gateway.catalog
    ]


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": __version__}


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    app_config: CreatorGenConfig | None = None,
    *,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        app_config: Configuration to run with.  Defaults to the global
            :data:`~creatorgen.core.config.config`.
        http_transport: Transport for the outbound HTTP client.  Tests pass an
            ``httpx.MockTransport`` here.

    Returns:
        The configured application.  Collaborators are created when its
        lifespan starts.
    """
    cfg = app_config or config

    app = FastAPI(
        title="creatorgen",
        description="Credit-metered image generation orchestrator.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.http_transport = http_transport

    # Allow cross-origin requests from the web client.  In production,
    # restrict ``allow_origins`` to the deployment domain.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GenerationError, _generation_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(router)

    # Serve stored images so that public URLs resolve.
    bucket_dir = cfg.storage_dir / cfg.storage_bucket
    bucket_dir.mkdir(parents=True, exist_ok=True)
    app.mount(
        f"/storage/{cfg.storage_bucket}",
        StaticFiles(directory=str(bucket_dir)),
        name="storage",
    )
    return app


app = create_app()


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~creatorgen.core.config.config`
    (``CREATORGEN_SERVER_HOST`` and ``CREATORGEN_SERVER_PORT``).  Defaults
    to ``0.0.0.0:7860``.

    This function is registered as the ``creatorgen`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "creatorgen.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
