"""Stable Diffusion task service - FastAPI Application.

This module is the process entry point.  It builds the FastAPI ``app``,
owns the :class:`~stablediff.core.state.ServiceState` for the lifetime of
the process, and exposes the ``main()`` CLI function that launches uvicorn.

Architecture
------------
- **Service state** (task store, model manager, clock) is created in the
  lifespan handler and stored on ``app.state``.  The model is initialised on
  every startup; the task store reopens the same SQLite file, so task
  records and the id counter survive restarts.
- **Routing** is delegated to :class:`~stablediff.api.router.RequestRouter`.
  A single catch-all route converts the incoming request into an
  :class:`HttpRequest`.  Every verb reaches it; ``GET``, ``HEAD`` and
  ``OPTIONS`` go through the read-only channel and the rest through the
  update channel.  Unrouted verbs get the router's 404 envelope.
- **Execution** is one request at a time on the event loop.  Generation runs
  synchronously inside the handler, so no two submissions overlap.

Endpoints
---------
========  ================  ====================================
Method    Path              Purpose
========  ================  ====================================
GET       ``/health``       Liveness probe
POST      ``/generate``     Submit a generation, returns task id
GET       ``/task/{id}``    Task record
GET       ``/image/{id}``   BMP artifact of a completed task
GET       ``/tasks``        All task ids
========  ================  ====================================

Usage
-----
CLI (installed entry point)::

    stablediff

Direct invocation::

    python -m stablediff.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from stablediff import __version__
from stablediff.api.models import HttpRequest
from stablediff.api.router import RequestRouter
from stablediff.core.config import StableDiffConfig, config
from stablediff.core.state import ServiceState

logger = logging.getLogger(__name__)

SERVICE_NAME = "Stable Diffusion Task Service"
READ_ONLY_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
ROUTED_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]


def create_app(settings: StableDiffConfig | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration to use.  Defaults to the global ``config``.

    Returns:
        A configured :class:`FastAPI` instance.  Service state is created
        when the application starts, not here.
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create service state on startup and release the model on shutdown."""
        # --- Startup -------------------------------------------------------
        state = ServiceState.create(settings)
        app.state.service = state
        app.state.router = RequestRouter(state)
        logger.info("%s %s started.", SERVICE_NAME, __version__)

        yield

        # --- Shutdown ------------------------------------------------------
        state.models.unload()
        logger.info("%s stopped.", SERVICE_NAME)

    app = FastAPI(
        title=SERVICE_NAME,
        description="Durable, deterministic text-to-image generation tasks.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict:
        """Liveness probe."""
        return {"status": "healthy", "service": SERVICE_NAME, "version": __version__}

    @app.api_route("/{path:path}", methods=ROUTED_METHODS)
    async def dispatch(request: Request, path: str) -> Response:
        """Forward any other request to the :class:`RequestRouter`."""
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"

        inbound = HttpRequest(
            method=request.method,
            url=url,
            headers=list(request.headers.items()),
            body=await request.body(),
        )

        router: RequestRouter = request.app.state.router
        if request.method in READ_ONLY_METHODS:
            outbound = router.handle_query(inbound)
        else:
            outbound = router.handle_update(inbound)

        return Response(
            content=outbound.body,
            status_code=outbound.status_code,
            headers=dict(outbound.headers),
        )

    return app


app = create_app()


def main() -> None:
    """Launch the uvicorn ASGI server.

    Host, port and log level come from :data:`~stablediff.core.config.config`
    (``STABLEDIFF_SERVER_HOST``, ``STABLEDIFF_SERVER_PORT`` and
    ``STABLEDIFF_LOG_LEVEL``).  Registered as the ``stablediff`` console script.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "stablediff.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
