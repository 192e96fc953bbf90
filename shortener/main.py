"""FastAPI application entry point for the link shortener.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────┐
    │ create_app() │
    │ CORS, metrics│
    │ routes       │
    └──────┬───────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ init_db()   │
    │ services    │
    │ .initialize │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ cleanup()   │
    │ close_redis │
    │ close_db    │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn shortener.main:app --host 0.0.0.0 --port 8080

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8080/api/shorten \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com"}'

    curl -i http://localhost:8080/<short_code>

Key Behaviours
===============
- Tables are created on startup; there is no migration step.
- ``ShortenerError`` subclasses become ``{"error": ...}`` JSON responses with
  the status code each error class declares; 429s carry ``Retry-After``.
- Detached click increments are drained before connections close.
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortener.cache import close_redis
from shortener.config import Settings, get_settings
from shortener.database import close_db, init_db
from shortener.dependencies import ServiceManager
from shortener.errors import RateLimited, ShortenerError
from shortener.routes import router
from shortener.schemas import ErrorResponse


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    services: ServiceManager = app.state.services
    await services.initialize()
    yield
    # Shutdown
    await services.cleanup()
    await close_redis()
    await close_db()


async def shortener_error_handler(request: Request, exc: ShortenerError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message).model_dump(),
        headers=headers,
    )


def create_app(settings: Settings | None = None, services: ServiceManager | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Link shortener with cached redirects",
        lifespan=lifespan,
    )
    app.state.services = services or ServiceManager(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShortenerError, shortener_error_handler)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()
