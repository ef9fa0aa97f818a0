"""HTTP routes for the short link service.

Request Flow Diagram
====================
::
    ┌─────────────┐
    │ HTTP request│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Depends():  │  RequestContext, owner identity,
    │ context     │  LinkService / Resolver
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ engine call │──── LinkError ───► exception handler (main.py)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ response    │
    │ schema      │
    └─────────────┘

Endpoints:
    GET    /health:                   Health check for monitoring.
    POST   /api/shorturls:            Create a short link (owner required).
    GET    /api/shorturls:            The caller's links with click counts.
    GET    /api/shorturls/{code}:     Stats and click log (owner required).
    PATCH  /api/shorturls/{code}:     Change target and/or extend validity.
    DELETE /api/shorturls/{code}:     Delete a short link.
    POST   /api/security/check:       Standalone security pre-check.
    GET    /{code}:                   307 redirect to the target.

Key Behaviours
===============
- Engine errors are raised as LinkError subclasses and rendered centrally.
- 307 redirects preserve the HTTP method.
- The redirect passes the Referer header and a best-effort country header
  to the click log.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from shortlink.dependencies import (
    RequestContext,
    ServiceManager,
    get_current_owner,
    get_link_service,
    get_request_context,
    get_resolver,
    get_service_manager,
)
from shortlink.enums import HealthStatus
from shortlink.link_service import LinkService
from shortlink.resolver import Resolver
from shortlink.schemas import (
    ClickLog,
    ErrorResponse,
    HealthResponse,
    SecurityCheckRequest,
    SecurityCheckResponse,
    ShortLinkCreate,
    ShortLinkCreated,
    ShortLinkDeleted,
    ShortLinkList,
    ShortLinkStats,
    ShortLinkSummary,
    ShortLinkUpdate,
    ShortLinkUpdated,
)

__all__ = ["router"]

router = APIRouter()

LOCATION_HEADERS = ("cf-ipcountry", "x-country-code")


def _short_link(ctx: RequestContext, code: str) -> str:
    return f"{ctx.settings.BASE_URL.rstrip('/')}/{code}"


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.DISABLED

    try:
        await manager.store.ping()
    except Exception as e:
        ctx.logger.error(f"Store health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    if manager.cache is not None:
        cache_status = HealthStatus.HEALTHY
        try:
            await manager.cache.ping()
        except Exception as e:
            ctx.logger.error(f"Cache health check failed: {e}")
            cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is not HealthStatus.UNHEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post(
    "/api/shorturls",
    response_model=ShortLinkCreated,
    status_code=201,
    tags=["links"],
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_short_link(
    payload: ShortLinkCreate,
    owner: str = Depends(get_current_owner),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> ShortLinkCreated:
    ctx.add_tag("link_creation")
    link = await service.create(
        payload.url,
        owner,
        custom_code=payload.shortcode,
        validity_minutes=payload.validity_minutes,
    )
    ctx.logger.info(
        f"Short link issued: {link.code}",
        extra={"operation": "create", "short_code": link.code, "duration_ms": ctx.get_duration()},
    )
    return ShortLinkCreated(
        short_link=_short_link(ctx, link.code),
        expiry=link.expires_at,
        shortcode=link.code,
    )


@router.get("/api/shorturls", response_model=ShortLinkList, tags=["links"])
async def list_short_links(
    owner: str = Depends(get_current_owner),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> ShortLinkList:
    summaries = await service.list_links(owner)
    now = ctx.clock()
    return ShortLinkList(
        shortened_urls=[
            ShortLinkSummary(
                shortcode=summary.link.code,
                short_link=_short_link(ctx, summary.link.code),
                original_url=summary.link.target,
                created_at=summary.link.created_at,
                expiry_date=summary.link.expires_at,
                click_count=summary.click_count,
                is_active=not summary.link.is_expired(now),
            )
            for summary in summaries
        ],
        total_urls=len(summaries),
    )


@router.get(
    "/api/shorturls/{short_code}",
    response_model=ShortLinkStats,
    tags=["links"],
    responses={404: {"model": ErrorResponse}},
)
async def get_stats(
    short_code: str,
    owner: str = Depends(get_current_owner),
    service: LinkService = Depends(get_link_service),
) -> ShortLinkStats:
    stats = await service.stats(short_code, owner)
    return ShortLinkStats(
        original_url=stats.link.target,
        created_at=stats.link.created_at,
        expiry_date=stats.link.expires_at,
        click_count=stats.click_count,
        click_logs=[ClickLog.model_validate(click) for click in stats.clicks],
    )


@router.patch(
    "/api/shorturls/{short_code}",
    response_model=ShortLinkUpdated,
    tags=["links"],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_short_link(
    short_code: str,
    payload: ShortLinkUpdate,
    owner: str = Depends(get_current_owner),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> ShortLinkUpdated:
    outcome = await service.update(
        short_code,
        owner,
        target=payload.url,
        validity_minutes=payload.validity_minutes,
    )
    return ShortLinkUpdated(
        short_link=_short_link(ctx, outcome.link.code),
        original_url=outcome.link.target,
        expiry=outcome.link.expires_at,
        shortcode=outcome.link.code,
        was_expired=outcome.was_expired,
        is_now_active=outcome.is_now_active,
    )


@router.delete(
    "/api/shorturls/{short_code}",
    response_model=ShortLinkDeleted,
    tags=["links"],
    responses={404: {"model": ErrorResponse}},
)
async def delete_short_link(
    short_code: str,
    owner: str = Depends(get_current_owner),
    service: LinkService = Depends(get_link_service),
) -> ShortLinkDeleted:
    outcome = await service.delete(short_code, owner)
    return ShortLinkDeleted(shortcode=outcome.code, was_expired=outcome.was_expired)


@router.post(
    "/api/security/check",
    response_model=SecurityCheckResponse,
    tags=["security"],
    responses={400: {"model": ErrorResponse}},
)
async def check_url_security(
    payload: SecurityCheckRequest,
    service: LinkService = Depends(get_link_service),
) -> SecurityCheckResponse:
    verdict = await service.check_url(payload.url)
    return SecurityCheckResponse(safe=verdict.safe, reason=verdict.reason, reachability=verdict.reachability)


@router.get(
    "/{short_code}",
    tags=["redirect"],
    responses={404: {"model": ErrorResponse}, 410: {"model": ErrorResponse}},
)
async def redirect_to_target(
    short_code: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    resolver: Resolver = Depends(get_resolver),
) -> RedirectResponse:
    ctx.add_tag("redirect")
    location = next((request.headers[h] for h in LOCATION_HEADERS if request.headers.get(h)), None)
    resolution = await resolver.resolve(
        short_code,
        referrer=request.headers.get("referer"),
        location=location,
    )
    ctx.logger.debug(f"Redirect: {short_code} -> {resolution.target}")
    return RedirectResponse(url=resolution.target, status_code=307)
