"""FastAPI application entry point for the shortlink service.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │ create_app() │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ CORS, error  │
    │ handlers,    │
    │ /metrics     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ startup:     │
    │ manager.     │
    │ initialize() │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ shutdown:    │
    │ drain clicks │
    │ close pools  │
    └──────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn shortlink.main:app --host 0.0.0.0 --port 8080

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8080/api/shorten \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com", "expiry_hours": 24}'

    curl -i http://localhost:8080/<code>

Key Behaviours
===============
- Domain errors map to HTTP statuses in one place (ERROR_STATUS below).
- Request body validation failures use the same error envelope.
- ``/metrics`` is exposed before the catch-all redirect route is included.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink.config import Settings, get_settings
from shortlink.dependencies import ServiceManager
from shortlink.exceptions import (
    AllocationExhaustedError,
    CodeTakenError,
    ShortLinkError,
    StoreUnavailableError,
    URLNotFoundError,
    URLValidationError,
)
from shortlink.routes import router
from shortlink.schemas import ErrorResponse

ERROR_STATUS: dict[type[ShortLinkError], int] = {
    URLValidationError: 422,
    CodeTakenError: 409,
    AllocationExhaustedError: 409,
    URLNotFoundError: 404,
    StoreUnavailableError: 503,
}


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(),
    )


async def shortlink_error_handler(request: Request, exc: ShortLinkError) -> JSONResponse:
    status_code = next((status for cls, status in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    return _error_response(status_code, exc.code, str(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in errors)
    return _error_response(422, "VALIDATION_ERROR", message or "Invalid request")


def create_app(settings: Settings | None = None, manager: ServiceManager | None = None) -> FastAPI:
    settings = settings or get_settings()
    manager = manager or ServiceManager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        services: ServiceManager = app.state.services
        await services.initialize()
        yield
        await services.cleanup()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="URL shortener with cached redirects and asynchronous click accounting",
        lifespan=lifespan,
    )
    app.state.services = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShortLinkError, shortlink_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()
