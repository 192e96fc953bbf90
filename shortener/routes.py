"""FastAPI route definitions for the link shortener REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/shorten
        ├─ LinkCreate (request body)
        └─ LinkCreatedResponse (201) or 400/409/429/503

    GET  /api/links/:short_code
        └─ LinkResponse (200) or 404

    GET  /api/analytics/:short_code
        └─ AnalyticsResponse (200) or 404

    GET  /:short_code
        └─ 301 Redirect or 404

Key Behaviours
===============
- Every endpoint except /health passes admission control first.
- Service errors are raised as ``ShortenerError`` subclasses and turned into
  JSON responses by the handler registered in ``shortener.main``.
- Redirects are permanent and carry ETag, Cache-Control and X-Cache headers.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from shortener.dependencies import (
    RequestContext,
    enforce_admission,
    get_link_service,
    get_request_context,
)
from shortener.enums import HealthStatus
from shortener.errors import ShortenerError
from shortener.link_service import LinkService
from shortener.schemas import (
    AnalyticsResponse,
    HealthResponse,
    LinkCreate,
    LinkCreatedResponse,
    LinkResponse,
)

__all__ = ["router"]

HEALTH_PROBE_KEY = "health_check_dummy"

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    manager = ctx.service_manager
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await manager.store.exists(HEALTH_PROBE_KEY)
    except ShortenerError as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await manager.cache.exists(HEALTH_PROBE_KEY)
    except ShortenerError as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post(
    "/api/shorten",
    response_model=LinkCreatedResponse,
    status_code=201,
    tags=["links"],
    dependencies=[Depends(enforce_admission)],
)
async def shorten_url(
    payload: LinkCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkCreatedResponse:
    ctx.logger.info(f"Shorten requested: {payload.url}")
    created = await service.create_link(
        payload.url,
        custom_code=payload.custom_code,
        expires_in_hours=payload.expires_in_hours,
    )
    ctx.logger.info(f"Shortened {created.short_code} in {ctx.get_duration():.1f}ms")
    return LinkCreatedResponse(short_url=created.short_url, short_code=created.short_code)


@router.get(
    "/api/links/{short_code}",
    response_model=LinkResponse,
    tags=["links"],
    dependencies=[Depends(enforce_admission)],
)
async def get_link(short_code: str, service: LinkService = Depends(get_link_service)) -> LinkResponse:
    link = await service.get_link(short_code)
    return LinkResponse(
        id=link.id,
        short_code=link.short_code,
        original_url=link.original_url,
        short_url=service.short_url_for(link.short_code),
        clicks=link.clicks,
        created_at=link.created_at,
        expires_at=link.expires_at,
    )


@router.get(
    "/api/analytics/{short_code}",
    response_model=AnalyticsResponse,
    tags=["links"],
    dependencies=[Depends(enforce_admission)],
)
async def get_analytics(short_code: str, service: LinkService = Depends(get_link_service)) -> AnalyticsResponse:
    analytics = await service.get_analytics(short_code)
    return AnalyticsResponse(
        short_code=analytics.short_code,
        clicks=analytics.clicks,
        cached_clicks=analytics.cached_clicks,
        total_clicks=analytics.total_clicks,
    )


@router.get("/{short_code}", tags=["redirect"], dependencies=[Depends(enforce_admission)])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> RedirectResponse:
    resolution = await service.resolve(short_code)
    ctx.logger.debug(
        f"Redirect {short_code} -> {resolution.destination_url} ({resolution.cache_status})"
    )
    return RedirectResponse(
        url=resolution.destination_url,
        status_code=301,
        headers={
            "ETag": resolution.etag,
            "Cache-Control": resolution.cache_control,
            "X-Cache": str(resolution.cache_status),
        },
    )
