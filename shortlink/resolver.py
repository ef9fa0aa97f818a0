"""Resolution of short codes to redirect targets.

Flow Diagram — resolve()
========================
::
    ┌─────────────┐
    │  GET /:code │
    └──────┬──────┘
           ▼
    ┌─────────────┐  hit
    │ Redis cache ├──────────┐
    └──────┬──────┘          │
      miss │                 │
           ▼                 │
    ┌─────────────┐          │
    │ store       │          │
    │ get_by_code │          │
    └──────┬──────┘          │
    found? │                 │
    ┌──────┴─────┐           │
    │ NO          │ YES       │
    ▼             ▼           │
 NotFound   ┌─────────────┐   │
            │ expires_at  │◄──┘
            │ <= now?     │
            └──────┬──────┘
            ┌──────┴─────┐
            │ YES         │ NO
            ▼             ▼
         Expired    ┌─────────────┐
                    │ schedule    │ (fire-and-forget)
                    │ click append│
                    └──────┬──────┘
                           ▼
                    307 → target

Key Behaviours
===============
- Lookup is public: it never filters by owner.
- Expired is reported separately from NotFound and records no click.
- The click append is scheduled, not awaited; the redirect is issued even
  if persistence is slow or fails.
- Storage failures are translated to StoreUnavailable.
"""

import datetime
import logging
import time
from dataclasses import dataclass

from prometheus_client import Counter, Histogram

from shortlink.cache import ResolutionCache
from shortlink.clicks import ClickRecorder
from shortlink.enums import RequestStatus
from shortlink.errors import Expired, NotFound, StorageError, StoreUnavailable
from shortlink.store import ClickEvent, LinkStore
from shortlink.timeutil import Clock, utcnow

__all__ = ["Resolution", "Resolver", "DIRECT_REFERRER"]

DIRECT_REFERRER = "direct"

RESOLUTIONS_TOTAL = Counter(
    "shortlink_resolutions_total",
    "Short code resolutions by outcome",
    ["status"],
)
RESOLUTION_DURATION = Histogram(
    "shortlink_resolution_duration_seconds",
    "Time taken to resolve a short code",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)


@dataclass(frozen=True)
class Resolution:
    code: str
    target: str
    expires_at: datetime.datetime


class Resolver:
    def __init__(
        self,
        store: LinkStore,
        recorder: ClickRecorder,
        logger: logging.Logger | logging.LoggerAdapter,
        cache: ResolutionCache | None = None,
        clock: Clock = utcnow,
        default_location: str = "unknown",
    ):
        self._store = store
        self._recorder = recorder
        self._logger = logger
        self._cache = cache
        self._clock = clock
        self._default_location = default_location

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "Resolver":
        return cls(
            store=ctx.store,
            recorder=ctx.click_recorder,
            logger=ctx.logger,
            cache=ctx.cache,
            clock=ctx.clock,
            default_location=ctx.settings.DEFAULT_CLICK_LOCATION,
        )

    async def resolve(self, code: str, referrer: str | None = None, location: str | None = None) -> Resolution:
        start_time = time.perf_counter()
        try:
            resolution = await self._lookup(code)
            if resolution is None:
                RESOLUTIONS_TOTAL.labels(status=RequestStatus.NOT_FOUND).inc()
                self._logger.info(f"Short code not found: {code}")
                raise NotFound()

            now = self._clock()
            if resolution.expires_at <= now:
                RESOLUTIONS_TOTAL.labels(status=RequestStatus.EXPIRED).inc()
                self._logger.info(f"Short code expired: {code} (expired at {resolution.expires_at.isoformat()})")
                raise Expired()

            self._recorder.record(
                code,
                ClickEvent(
                    timestamp=now,
                    referrer=referrer or DIRECT_REFERRER,
                    location=location or self._default_location,
                ),
            )
            RESOLUTIONS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            return resolution
        finally:
            RESOLUTION_DURATION.observe(time.perf_counter() - start_time)

    async def _lookup(self, code: str) -> Resolution | None:
        if self._cache is not None:
            cached = await self._cache.get(code)
            if cached is not None:
                return Resolution(code=cached.code, target=cached.target, expires_at=cached.expires_at)

        try:
            link = await self._store.get_by_code(code)
        except StorageError as exc:
            RESOLUTIONS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Store lookup failed for {code}: {exc}")
            raise StoreUnavailable() from exc

        if link is None:
            return None
        if self._cache is not None:
            await self._cache.fill(link)
        return Resolution(code=link.code, target=link.target, expires_at=link.expires_at)
