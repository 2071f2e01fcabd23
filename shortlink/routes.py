"""FastAPI route definitions for the shortlink REST API.

Handlers stay thin: they parse input, call ``LinkService`` and serialize the
result. Domain errors propagate to the exception handlers registered in
``shortlink.main``, which render ``{"error": CODE, "message": text}``.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /api/shorten
        ├─ URLCreate (request body)
        └─ URLResponse (201) or 409/422/503

    GET    /api/urls?limit=&offset=
        └─ PaginatedURLs (200)

    GET    /api/urls/:code
        └─ URLInfo (200) or 404

    DELETE /api/urls/:code
        └─ 204 or 404

    GET    /api/stats
        └─ URLStats (200)

    POST   /api/maintenance/sweep
        └─ SweepResponse (200)

    GET    /:code
        └─ 307 Redirect or 404

Key Behaviours
===============
- 307 redirects preserve the HTTP method.
- Health is ``degraded`` when only Redis is down, ``unhealthy`` when the
  store is down.
- The catch-all ``/{code}`` route is registered last.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse

from shortlink.dependencies import ServiceManager, get_link_service, get_service_manager
from shortlink.enums import HealthStatus
from shortlink.exceptions import StoreUnavailableError
from shortlink.schemas import (
    HealthResponse,
    PaginatedURLs,
    SweepResponse,
    URLCreate,
    URLInfo,
    URLResponse,
    URLStats,
)
from shortlink.url_service import LinkService

__all__ = ["router"]

logger = logging.getLogger(__name__)

router = APIRouter()


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(manager: ServiceManager = Depends(get_service_manager)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await manager.store.ping()
    except StoreUnavailableError as e:
        logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    if not await manager.cache.ping():
        logger.warning("Cache health check failed")
        cache_status = HealthStatus.UNHEALTHY

    if db_status is HealthStatus.UNHEALTHY:
        status = HealthStatus.UNHEALTHY
    elif cache_status is HealthStatus.UNHEALTHY:
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    logger.debug(f"Health check completed: {status}")
    return HealthResponse(status=status, database=db_status, cache=cache_status, timestamp=manager.service.now())


@router.post("/api/shorten", response_model=URLResponse, status_code=201, tags=["urls"])
async def shorten_url(
    payload: URLCreate,
    request: Request,
    service: LinkService = Depends(get_link_service),
) -> URLResponse:
    logger.info(
        f"URL shortening requested: {payload.url}",
        extra={
            "operation": "create_short_url",
            "target_url": payload.url,
            "custom_code": payload.custom_code,
            "client_ip": _client_ip(request),
        },
    )
    record = await service.create(payload)
    return URLResponse.from_record(record, service.settings.BASE_URL)


@router.get("/api/urls", response_model=PaginatedURLs, tags=["urls"])
async def list_urls(
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    service: LinkService = Depends(get_link_service),
) -> PaginatedURLs:
    return await service.list(limit=limit, offset=offset)


@router.get("/api/urls/{code}", response_model=URLInfo, tags=["urls"])
async def get_url_info(code: str, service: LinkService = Depends(get_link_service)) -> URLInfo:
    return await service.info(code)


@router.delete("/api/urls/{code}", status_code=204, tags=["urls"])
async def delete_url(code: str, service: LinkService = Depends(get_link_service)) -> Response:
    await service.delete(code)
    return Response(status_code=204)


@router.get("/api/stats", response_model=URLStats, tags=["urls"])
async def get_stats(service: LinkService = Depends(get_link_service)) -> URLStats:
    return await service.stats()


@router.post("/api/maintenance/sweep", response_model=SweepResponse, tags=["maintenance"])
async def sweep_expired(manager: ServiceManager = Depends(get_service_manager)) -> SweepResponse:
    swept_at = manager.service.now()
    removed = await manager.maintenance.sweep(swept_at)
    return SweepResponse(removed=removed, swept_at=swept_at)


@router.get("/{code}", tags=["redirect"])
async def redirect_to_url(
    code: str,
    request: Request,
    service: LinkService = Depends(get_link_service),
) -> RedirectResponse:
    record = await service.resolve(code)
    logger.info(
        f"Redirect: {code} -> {record.target_url}",
        extra={
            "operation": "redirect",
            "short_code": code,
            "user_agent": request.headers.get("user-agent"),
            "client_ip": _client_ip(request),
        },
    )
    return RedirectResponse(url=record.target_url, status_code=307)
