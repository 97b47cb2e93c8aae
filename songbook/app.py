"""
FastAPI application for the Songbook service.

FastAPI only carries the transport: every request is handed, unchanged, to the
ordered ``Router`` built in ``handlers.build_router``:

  GET    /                          - Search page (all songs)
  GET    /view/:id                  - Song page, or raw song under text/song
  GET    /search/:query             - Search (also /search?query=...)
  GET    /edit/:id, /new            - Editor (admin)
  GET    /delete/:id                - Delete a song (admin)
  POST   /songs                     - Create a song (admin)
  GET    /songs/:id                 - Fetch a song
  PUT    /songs/:id                 - Update a song (admin)
  DELETE /songs/:id                 - Delete a song (admin)
  GET    /consoleApi, /signin       - Static pages
  GET    /admin, /admin/:s/:c       - Administration (admin)
  GET    *                          - Files under WEB_ROOT
"""

import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .config import Settings
from .context import build_context
from .dispatch import Dispatcher, RequestCall
from .handlers import build_router

METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def _raw_path(request: Request) -> str:
    raw = request.scope.get("raw_path")
    if not raw:
        return request.url.path
    return raw.decode("latin-1").split("?", 1)[0]


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; the service context is created on startup."""

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        active = settings or Settings.from_env()
        ctx = build_context(active)
        app_instance.state.context = ctx
        app_instance.state.dispatcher = Dispatcher(ctx, build_router())
        logger.info(
            f"Songbook ready on {active.host}:{active.port} "
            f"({len(ctx.index)} songs indexed from {ctx.store.root})"
        )
        yield
        logger.info("Songbook stopped")

    app = FastAPI(
        title="Songbook",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"[{request.method}] {request.url.path} -> {response.status_code} in {elapsed_ms} ms")
        return response

    @app.api_route("/{path:path}", methods=METHODS)
    async def dispatch(request: Request):
        call = RequestCall(
            method=request.method,
            path=_raw_path(request),
            query=dict(request.query_params),
            headers=dict(request.headers),
            cookies=dict(request.cookies),
            body=await request.body(),
        )
        return await run_in_threadpool(request.app.state.dispatcher.handle, call)

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    settings = Settings.from_env()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.info(f"Starting Songbook on {settings.host}:{settings.port}")
    uvicorn.run(
        "songbook.app:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
