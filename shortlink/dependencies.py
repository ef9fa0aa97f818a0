"""Dependency injection for the short link service.

Shared resources live in a ``ServiceManager`` created once per process and
initialized in the FastAPI lifespan. Each request gets a lightweight
``RequestContext`` that exposes those resources together with a
request-scoped logger, and the engine objects (``LinkService``,
``Resolver``) are built from that context.

Resource Diagram
================
::
    ServiceManager (process)
    ├─ settings
    ├─ logger ("shortlink")
    ├─ engine + SQLLinkStore  | InMemoryLinkStore
    ├─ redis writer / reader → ResolutionCache (optional)
    ├─ httpx.AsyncClient     → ReachabilityProbe (optional)
    └─ ClickRecorder

    RequestContext (request)
    ├─ request_id / trace_id / client_ip / user_agent / tags
    └─ logger → LoggerAdapter(manager.logger, request fields)

How to Use
===========
::
    @router.post("/api/shorturls")
    async def create(
        owner: str = Depends(get_current_owner),
        service: LinkService = Depends(get_link_service),
    ): ...

Key Behaviours
===============
- The owner identity is supplied by an external auth layer through the
  OWNER_HEADER request header; a request without it gets 401.
- Redis and the reachability probe are only set up when enabled.
- cleanup() drains in-flight click appends before closing anything.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import httpx
import redis.asyncio as redis
from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from shortlink.cache import ResolutionCache
from shortlink.clicks import ClickRecorder
from shortlink.config import Settings, get_settings
from shortlink.database import build_engine, build_session_factory, close_db, init_db
from shortlink.link_service import LinkService
from shortlink.memory_store import InMemoryLinkStore
from shortlink.resolver import Resolver
from shortlink.security import ReachabilityProbe
from shortlink.sql_store import SQLLinkStore
from shortlink.store import LinkStore
from shortlink.timeutil import Clock, utcnow

__all__ = [
    "ServiceManager",
    "RequestContext",
    "get_service_manager",
    "get_request_context",
    "get_current_owner",
    "get_link_service",
    "get_resolver",
]


# ============================================================================
# SHARED RESOURCE MANAGER
# ============================================================================


class ServiceManager:
    """Owner of the process-wide resources shared by all requests."""

    def __init__(self) -> None:
        self._initialized = False
        self.engine: Optional[AsyncEngine] = None
        self.cache: Optional[ResolutionCache] = None
        self.cache_writer: Optional[redis.Redis] = None
        self.cache_reader: Optional[redis.Redis] = None
        self.http_client: Optional[httpx.AsyncClient] = None
        self.probe: Optional[ReachabilityProbe] = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        settings: Settings | None = None,
        store: LinkStore | None = None,
        clock: Clock = utcnow,
    ) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        self.settings = settings or get_settings()
        self.clock = clock
        self.logger = self._setup_logger()
        self.store = store or await self._setup_store()
        self._setup_cache()
        self._setup_probe()
        self.click_recorder = ClickRecorder(self.store, self.logger)
        self._initialized = True
        self.logger.info(
            f"Service initialized (store={type(self.store).__name__}, "
            f"cache={'on' if self.cache else 'off'}, probe={'on' if self.probe else 'off'})"
        )

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def _setup_store(self) -> LinkStore:
        if self.settings.STORE_BACKEND == "memory":
            return InMemoryLinkStore()
        self.engine = build_engine(self.settings)
        await init_db(self.engine)
        return SQLLinkStore(build_session_factory(self.engine))

    def _setup_cache(self) -> None:
        if not self.settings.CACHE_ENABLED:
            return
        self.cache_writer = redis.from_url(self.settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        # Use replica URL if available, otherwise fall back to main Redis
        replica_url = self.settings.REDIS_REPLICA_URL or self.settings.REDIS_URL
        self.cache_reader = redis.from_url(replica_url, encoding="utf-8", decode_responses=True)
        self.cache = ResolutionCache(
            self.cache_writer,
            self.cache_reader,
            self.logger,
            ttl_seconds=self.settings.CACHE_TTL_SECONDS,
            tombstone_ttl_seconds=self.settings.CACHE_TOMBSTONE_SECONDS,
        )

    def _setup_probe(self) -> None:
        if not self.settings.SECURITY_PROBE_ENABLED:
            return
        self.http_client = httpx.AsyncClient(max_redirects=self.settings.SECURITY_PROBE_MAX_REDIRECTS)
        self.probe = ReachabilityProbe(self.http_client, timeout=self.settings.SECURITY_PROBE_TIMEOUT_SECONDS)

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if not self._initialized:
            return
        await self.click_recorder.drain()
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.cache_writer is not None:
            await self.cache_writer.aclose()
        if self.cache_reader is not None:
            await self.cache_reader.aclose()
        await self.store.close()
        if self.engine is not None:
            await close_db(self.engine)
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request view of the shared resources plus tracking fields.

    Attributes:
        service_manager: Shared resource manager
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def store(self) -> LinkStore:
        return self.service_manager.store

    @property
    def cache(self) -> Optional[ResolutionCache]:
        return self.service_manager.cache

    @property
    def probe(self) -> Optional[ReachabilityProbe]:
        return self.service_manager.probe

    @property
    def click_recorder(self) -> ClickRecorder:
        return self.service_manager.click_recorder

    @property
    def clock(self) -> Clock:
        return self.service_manager.clock

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying this request's context fields."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    # The exception handlers read settings from request state.
    request.state.settings = manager.settings
    return RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
    )


async def get_current_owner(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> str:
    owner = request.headers.get(manager.settings.OWNER_HEADER, "").strip()
    if not owner:
        raise HTTPException(status_code=401, detail="Authentication required")
    return owner


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    return LinkService.from_context(ctx)


def get_resolver(ctx: RequestContext = Depends(get_request_context)) -> Resolver:
    return Resolver.from_context(ctx)
