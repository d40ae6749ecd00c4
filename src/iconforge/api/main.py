"""Iconforge - FastAPI Application.

This module is the single entry point for the web application. It defines
the FastAPI ``app`` instance, the REST routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
The application is stateless between requests:

- **Configuration** comes from :data:`~iconforge.core.config.config`.
- **Icon generation** is delegated to :func:`~iconforge.core.service.iconify_batch`,
  which runs every upload through a sequential queue. Nothing is written
  to disk; results travel back in the response body.
- **Progress** is available as Server-Sent Events from the streaming
  endpoint, one event per work item transition.
- **The HTML page** is served as a raw ``HTMLResponse``.

Endpoints
---------
========  ==========================  ====================================
Method    Path                        Purpose
========  ==========================  ====================================
GET       ``/``                       Serve the upload page
GET       ``/api/config``             Version, model, size, credential flag
GET       ``/api/style``              The baked style preset
POST      ``/api/iconify``            Generate icons, return all results
POST      ``/api/iconify/stream``     Generate icons, stream transitions
========  ==========================  ====================================

Usage
-----
CLI (installed entry point)::

    iconforge

Direct invocation::

    python -m iconforge.api.main
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, StreamingResponse

from iconforge import __version__
from iconforge.api.models import ConfigResponse, IconifyResponse, IconResultModel
from iconforge.core.config import config
from iconforge.core.models import IconResult, SourceImage
from iconforge.core.negotiator import RequestNegotiator
from iconforge.core.service import iconify_batch, iter_batch_events
from iconforge.core.style_preset import STYLE_NAME, style_preset

logger = logging.getLogger(__name__)

TEMPLATES_DIR: Path = Path(__file__).resolve().parent.parent / "templates"

# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Stores the configuration on ``app.state`` and, when a credential is
        configured, one :class:`RequestNegotiator` shared by all requests.
        A missing credential is not fatal here: every batch reports it.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    app.state.config = config
    app.state.negotiator = None
    if config.has_credentials:
        app.state.negotiator = RequestNegotiator.from_config(config)
        logger.info("RequestNegotiator initialised (model=%s).", config.image_model)
    else:
        logger.warning("No OpenAI API key configured; batches will be rejected.")

    yield

    app.state.negotiator = None


app = FastAPI(
    title="Iconforge",
    description="Batch 3D icon generation from reference images.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so the page can be served from a different
# port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Upload helpers.
# ---------------------------------------------------------------------------


async def _read_uploads(images: list[UploadFile]) -> list[SourceImage]:
    """Capture every upload as an immutable :class:`SourceImage`.

    Zero-byte uploads are kept; the queue fails them individually.
    """
    sources: list[SourceImage] = []
    for upload in images:
        content = await upload.read()
        sources.append(
            SourceImage(
                content=content,
                filename=upload.filename or "",
                media_type=upload.content_type or "",
            )
        )
    return sources


def _sse(event: str, payload: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    """Serve the upload page.

    Raises:
        HTTPException: 404 if ``index.html`` is not found.
    """
    index_path = TEMPLATES_DIR / "index.html"
    if index_path.exists():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    raise HTTPException(status_code=404, detail="index.html not found")


@app.get("/api/config", response_model=ConfigResponse)
async def get_config(request: Request) -> ConfigResponse:
    """Return public configuration for the frontend (never the credential)."""
    cfg = request.app.state.config
    return ConfigResponse(
        version=__version__,
        style_name=STYLE_NAME,
        image_model=cfg.image_model,
        image_size=cfg.image_size,
        credentials_configured=cfg.has_credentials,
    )


@app.get("/api/style")
async def get_style() -> dict:
    """Return the baked style preset document."""
    return style_preset()


@app.post(
    "/api/iconify",
    response_model=IconifyResponse,
    response_model_exclude_none=True,
)
async def iconify(request: Request, images: list[UploadFile] = File(default=[])) -> IconifyResponse:
    """Generate one icon per uploaded image.

    The batch runs sequentially in a worker thread. Per-file failures and
    batch-level failures (missing credential, no files) are reported in the
    ``results`` list; the endpoint itself answers 200.

    Args:
        request: Incoming request (used to reach ``app.state``).
        images: Uploaded reference images (multipart field ``images``).

    Returns:
        :class:`IconifyResponse` with one result per file.
    """
    sources = await _read_uploads(images)
    results = await run_in_threadpool(
        iconify_batch,
        sources,
        request.app.state.config,
        request.app.state.negotiator,
    )
    return IconifyResponse(results=[IconResultModel.from_result(r) for r in results])


@app.post("/api/iconify/stream")
async def iconify_stream(
    request: Request, images: list[UploadFile] = File(default=[])
) -> StreamingResponse:
    """Generate icons and stream every work item transition as SSE.

    Each transition is sent as a ``transition`` event carrying
    ``item_id``, ``status``, ``name`` and ``result``. A final ``done`` event
    carries the complete result list.

    Args:
        request: Incoming request (used to reach ``app.state``).
        images: Uploaded reference images (multipart field ``images``).

    Returns:
        A ``text/event-stream`` response.
    """
    sources = await _read_uploads(images)
    cfg = request.app.state.config
    negotiator = request.app.state.negotiator

    def event_stream() -> Iterator[str]:
        results: list[IconResult] = []
        for event in iter_batch_events(sources, cfg, negotiator):
            if event.status.is_terminal:
                results.append(event.to_result())
            yield _sse("transition", event.to_dict())
        yield _sse("done", {"results": [r.to_dict() for r in results]})

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~iconforge.core.config.config`
    (``ICONFORGE_SERVER_HOST``, ``ICONFORGE_SERVER_PORT``,
    ``ICONFORGE_LOG_LEVEL``). Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``iconforge`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "iconforge.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
