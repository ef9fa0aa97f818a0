"""Redis resolution cache for the redirect hot path.

Entries hold only what resolution needs (code, target, expires_at), so the
resolver evaluates expiry identically on a hit and on a store read.

Flow Diagram — Cache Usage
==========================
::
    resolve(code)
        │
        ▼
    ┌─────────────┐  hit   ┌──────────────┐
    │ GET link:.. ├───────►│ use payload  │
    └──────┬──────┘        └──────────────┘
      miss │ (or tombstone)
           ▼
    ┌─────────────┐        ┌──────────────────┐
    │ store read  ├───────►│ SET link:.. NX   │ (TTL)
    └─────────────┘        └──────────────────┘

    update ──► SET link:.. <new payload>   (overwrites)
    delete ──► SET link:.. <tombstone>     (short TTL)

Key Behaviours
===============
- Reads go to the replica client, writes to the primary.
- The resolver only ever fills an empty key (``NX``). A record it read
  before a concurrent update or delete can therefore never overwrite the
  payload or tombstone written by that mutation.
- A tombstone reads as a miss, and because it occupies the key the
  resolver's fill after a stale store read is refused.
- Redis failures are logged and degrade to a store read; they never fail
  a redirect.
"""

import datetime
import json
import logging

import redis.asyncio as redis
from prometheus_client import Counter
from pydantic import BaseModel, ValidationError

from shortlink.store import LinkRecord

__all__ = [
    "CachedLinkPayload",
    "ResolutionCache",
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_TOMBSTONE_TTL_SECONDS",
    "TOMBSTONE",
]

DEFAULT_CACHE_TTL_SECONDS = 30
DEFAULT_TOMBSTONE_TTL_SECONDS = 60

TOMBSTONE = "__deleted__"

CACHE_HITS_TOTAL = Counter(
    "shortlink_cache_hits_total",
    "Resolution cache hits",
)
CACHE_MISSES_TOTAL = Counter(
    "shortlink_cache_misses_total",
    "Resolution cache misses (tombstones included)",
)
CACHE_ERRORS_TOTAL = Counter(
    "shortlink_cache_errors_total",
    "Redis errors on the resolution cache (degraded to store reads)",
)


class CachedLinkPayload(BaseModel):
    """Redis cache payload for a resolvable link."""

    code: str
    target: str
    expires_at: datetime.datetime


class ResolutionCache:
    def __init__(
        self,
        writer: redis.Redis,
        reader: redis.Redis,
        logger: logging.Logger | logging.LoggerAdapter,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        tombstone_ttl_seconds: int = DEFAULT_TOMBSTONE_TTL_SECONDS,
    ):
        self._writer = writer
        self._reader = reader
        self._logger = logger
        self._ttl = ttl_seconds
        self._tombstone_ttl = tombstone_ttl_seconds

    @staticmethod
    def key(code: str) -> str:
        return f"link:{code}"

    @staticmethod
    def _encode(link: LinkRecord) -> str:
        payload = CachedLinkPayload(code=link.code, target=link.target, expires_at=link.expires_at)
        return json.dumps(payload.model_dump(mode="json"))

    async def get(self, code: str) -> CachedLinkPayload | None:
        try:
            cached = await self._reader.get(self.key(code))
        except redis.RedisError as exc:
            CACHE_ERRORS_TOTAL.inc()
            self._logger.warning(f"Cache read failed for {code}: {exc}")
            return None

        if not cached or cached == TOMBSTONE:
            CACHE_MISSES_TOTAL.inc()
            return None

        try:
            payload = CachedLinkPayload.model_validate_json(cached)
        except ValidationError as exc:
            CACHE_ERRORS_TOTAL.inc()
            self._logger.error(f"Cache deserialization error for {code}: {exc}")
            return None
        CACHE_HITS_TOTAL.inc()
        return payload

    async def fill(self, link: LinkRecord) -> bool:
        """Cache a record read from the store, unless the key is already taken."""
        try:
            stored = await self._writer.set(self.key(link.code), self._encode(link), ex=self._ttl, nx=True)
        except redis.RedisError as exc:
            CACHE_ERRORS_TOTAL.inc()
            self._logger.warning(f"Cache fill failed for {link.code}: {exc}")
            return False
        return bool(stored)

    async def replace(self, link: LinkRecord) -> None:
        """Write the post-update record, overwriting whatever is cached."""
        try:
            await self._writer.set(self.key(link.code), self._encode(link), ex=self._ttl)
        except redis.RedisError as exc:
            CACHE_ERRORS_TOTAL.inc()
            self._logger.warning(f"Cache write failed for {link.code}: {exc}")

    async def tombstone(self, code: str) -> None:
        """Mark a deleted code so stale fills are refused until the marker expires."""
        try:
            await self._writer.set(self.key(code), TOMBSTONE, ex=self._tombstone_ttl)
        except redis.RedisError as exc:
            CACHE_ERRORS_TOTAL.inc()
            self._logger.warning(f"Cache tombstone failed for {code}: {exc}")

    async def ping(self) -> None:
        await self._writer.ping()
