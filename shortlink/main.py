"""FastAPI application entry point for the short link service.

Application Lifecycle Diagram
=============================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ startup:    │
    │ manager.    │
    │ initialize()│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ drain clicks│
    │ close store,│
    │ redis, http │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn shortlink.main:app --host 0.0.0.0 --port 8000 --reload

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8000/api/shorturls \
         -H "Content-Type: application/json" -H "X-Owner-Id: user-1" \
         -d '{"url": "https://example.com", "validity_minutes": 60}'

    curl -i http://localhost:8000/<shortcode>

Key Behaviours
===============
- LinkError subclasses are rendered as {"detail", "error", "reason"?} with
  their own status code.
- Forbidden is reported as 404 while HIDE_FOREIGN_LINKS is set, so callers
  cannot probe for codes they do not own.
- Every request is logged with method, path, status and duration.
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app"]

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink.config import get_settings
from shortlink.dependencies import _service_manager
from shortlink.errors import Forbidden, LinkError, NotFound, UnsafeURL
from shortlink.routes import router

settings = get_settings()

access_logger = logging.getLogger("shortlink.access")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await _service_manager.initialize()
    yield
    # Shutdown
    await _service_manager.cleanup()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="URL shortener with expiring links and click analytics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start_time) * 1000
    access_logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f}ms)")
    return response


@app.exception_handler(LinkError)
async def link_error_handler(request: Request, exc: LinkError) -> JSONResponse:
    hide_foreign = getattr(request.state, "settings", settings).HIDE_FOREIGN_LINKS
    if isinstance(exc, Forbidden) and hide_foreign:
        exc = NotFound()

    content = {"detail": exc.detail, "error": exc.error}
    if isinstance(exc, UnsafeURL):
        content["reason"] = exc.reason
    return JSONResponse(status_code=exc.status_code, content=content)


Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
