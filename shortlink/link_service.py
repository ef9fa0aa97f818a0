"""Lifecycle management for short links.

This module provides the ``LinkService`` class, which owns every
owner-initiated state transition of a short link: create, update (including
reactivation of expired links), delete, and the ownership-scoped stats and
listing views.

Link State Machine
==================
::
                  create()
                     │
                     ▼
    ┌────────────────────────────────┐
    │            Active              │  expires_at > now
    └──────┬─────────────────▲───────┘
   time    │                 │ update(validity_minutes=…)
   passes  ▼                 │ (the only way back)
    ┌────────────────────────┴───────┐
    │            Expired             │  expires_at <= now, record kept
    └──────┬─────────────────────────┘
           │ delete()        (delete() also valid from Active)
           ▼
    ┌────────────────────────────────┐
    │            Deleted             │  terminal, record removed
    └────────────────────────────────┘

Flow Diagram — create()
=======================
::
    ┌─────────────┐
    │ validate    │  url present, validity > 0, custom code rules
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ security    │──── unsafe ───► UnsafeURL(reason)
    │ pre-check   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ arbiter     │──── taken ────► CodeAlreadyInUse
    │ claim code  │──── retries ──► GenerationExhausted
    └──────┬──────┘
           ▼
      LinkRecord

How to Use
===========
::
    service = LinkService.from_context(ctx)
    link = await service.create("https://example.com", owner="user-1", validity_minutes=60)
    outcome = await service.update(link.code, "user-1", validity_minutes=30)
    stats = await service.stats(link.code, "user-1")
    links = await service.list_links("user-1")
    await service.delete(link.code, "user-1")

Key Behaviours
===============
- Ownership is checked against the stored owner; a mismatch raises
  Forbidden, a NotFound subclass, so callers that do not care can treat both
  alike. The HTTP boundary folds it into 404 to hide foreign links.
- Validity defaults to DEFAULT_VALIDITY_MINUTES and must be positive.
- Updates write the new record through to the resolution cache and deletes
  leave a tombstone there, so a resolver holding an older store read cannot
  re-cache it.
- StorageError from the store is translated to StoreUnavailable here.
"""

import datetime
import functools
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

from prometheus_client import Counter, Histogram

from shortlink.arbiter import CodeArbiter
from shortlink.cache import ResolutionCache
from shortlink.config import Settings
from shortlink.enums import RequestStatus
from shortlink.errors import (
    CodeAlreadyInUse,
    Forbidden,
    InvalidInput,
    LinkError,
    NotFound,
    StorageError,
    StoreUnavailable,
    UnsafeURL,
)
from shortlink.security import PolicyCheck, SecurityChecker, SecurityVerdict
from shortlink.shortcode import check_custom_code, generate_short_code
from shortlink.store import ClickEvent, LinkRecord, LinkStore, LinkSummary
from shortlink.timeutil import Clock, utcnow

__all__ = ["LinkService", "UpdateOutcome", "DeleteOutcome", "LinkStats"]

T = TypeVar("T")

LINK_OPERATIONS_TOTAL = Counter(
    "shortlink_operations_total",
    "Lifecycle operations by kind and outcome",
    ["operation", "status"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

_STATUS_BY_ERROR: dict[type[LinkError], RequestStatus] = {
    InvalidInput: RequestStatus.VALIDATION_ERROR,
    UnsafeURL: RequestStatus.VALIDATION_ERROR,
    CodeAlreadyInUse: RequestStatus.CONFLICT,
    NotFound: RequestStatus.NOT_FOUND,
    Forbidden: RequestStatus.NOT_FOUND,
}


@dataclass(frozen=True)
class UpdateOutcome:
    link: LinkRecord
    was_expired: bool
    is_now_active: bool


@dataclass(frozen=True)
class DeleteOutcome:
    code: str
    was_expired: bool


@dataclass(frozen=True)
class LinkStats:
    link: LinkRecord
    clicks: list[ClickEvent]

    @property
    def click_count(self) -> int:
        return len(self.clicks)


class LinkService:
    """Create, update, delete and inspect short links on behalf of their owner.

    Every collaborator is injected: the store, the security checker, the
    resolution cache, the clock and the request-scoped logger. Nothing here
    touches process-global state.
    """

    def __init__(
        self,
        store: LinkStore,
        security: SecurityChecker,
        logger: logging.Logger | logging.LoggerAdapter,
        settings: Settings,
        cache: ResolutionCache | None = None,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._security = security
        self._logger = logger
        self._settings = settings
        self._cache = cache
        self._clock = clock
        self._arbiter = CodeArbiter(
            store,
            logger,
            generator=functools.partial(
                generate_short_code,
                settings.SHORT_CODE_LENGTH,
                settings.SHORT_CODE_ALPHABET,
            ),
            max_attempts=settings.MAX_GENERATION_ATTEMPTS,
        )

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "LinkService":
        """Build a service from a request context, sharing its long-lived resources."""
        security = SecurityChecker(
            PolicyCheck(),
            ctx.logger,
            probe=ctx.probe,
            reject_unreachable=ctx.settings.SECURITY_REJECT_UNREACHABLE,
        )
        return cls(
            store=ctx.store,
            security=security,
            logger=ctx.logger,
            settings=ctx.settings,
            cache=ctx.cache,
            clock=ctx.clock,
        )

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create(
        self,
        target: str | None,
        owner: str,
        custom_code: str | None = None,
        validity_minutes: int | None = None,
    ) -> LinkRecord:
        """Create a short link for ``target`` owned by ``owner``.

        Args:
            target: URL to shorten; must pass the security pre-check.
            owner: Opaque identity of the creating user.
            custom_code: Caller-chosen code; generated when omitted.
            validity_minutes: Lifetime in minutes, defaults to DEFAULT_VALIDITY_MINUTES.

        Returns:
            LinkRecord: The stored link.

        Raises:
            InvalidInput: Missing URL, bad validity or malformed custom code.
            UnsafeURL: The security pre-check rejected the URL.
            CodeAlreadyInUse: The custom code is live.
            GenerationExhausted: No free generated code within the attempt budget.
            StoreUnavailable: The store failed.
        """
        start_time = time.perf_counter()
        custom_code = custom_code or None
        try:
            target = self._require_url(target)
            validity = self._validity(validity_minutes, default=self._settings.DEFAULT_VALIDITY_MINUTES)
            if custom_code is not None:
                problem = check_custom_code(
                    custom_code,
                    self._settings.CUSTOM_CODE_MIN_LENGTH,
                    self._settings.CUSTOM_CODE_MAX_LENGTH,
                )
                if problem:
                    raise InvalidInput(problem)

            await self._ensure_safe(target)

            now = self._clock()
            draft = LinkRecord(
                code=custom_code or "",
                target=target,
                owner=owner,
                created_at=now,
                expires_at=now + datetime.timedelta(minutes=validity),
            )
            if custom_code:
                link = await self._translate(self._arbiter.claim_custom(draft))
            else:
                link = await self._translate(self._arbiter.claim_generated(draft))
        except LinkError as exc:
            self._record("create", exc)
            raise
        finally:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)

        self._record("create")
        self._logger.info(f"Short link created: {link.code} -> {link.target} (expires {link.expires_at.isoformat()})")
        return link

    async def update(
        self,
        code: str,
        owner: str,
        target: str | None = None,
        validity_minutes: int | None = None,
    ) -> UpdateOutcome:
        """Change the target and/or extend the validity of an owned link.

        A new validity sets ``expires_at = now + validity_minutes``, which is
        the only way an expired link becomes active again. Calling with
        neither field changes nothing and reports the current state.
        """
        try:
            if target is not None:
                target = self._require_url(target)
            validity = self._validity(validity_minutes) if validity_minutes is not None else None

            link = await self._owned_link(code, owner)
            now = self._clock()
            was_expired = link.is_expired(now)

            if target is not None:
                await self._ensure_safe(target)

            expires_at = now + datetime.timedelta(minutes=validity) if validity is not None else None
            updated = await self._translate(self._store.update_link(code, owner, target=target, expires_at=expires_at))
            if updated is None:
                raise NotFound()
        except LinkError as exc:
            self._record("update", exc)
            raise

        if self._cache is not None:
            await self._cache.replace(updated)

        is_now_active = not updated.is_expired(now)
        self._record("update")
        if was_expired and is_now_active:
            self._logger.info(f"Short link reactivated: {code} (expires {updated.expires_at.isoformat()})")
        else:
            self._logger.info(f"Short link updated: {code}")
        return UpdateOutcome(link=updated, was_expired=was_expired, is_now_active=is_now_active)

    async def delete(self, code: str, owner: str) -> DeleteOutcome:
        """Remove an owned link; deleting it again raises NotFound."""
        try:
            link = await self._owned_link(code, owner)
            was_expired = link.is_expired(self._clock())
            deleted = await self._translate(self._store.delete(code, owner))
            if not deleted:
                raise NotFound()
        except LinkError as exc:
            self._record("delete", exc)
            raise

        if self._cache is not None:
            await self._cache.tombstone(code)

        self._record("delete")
        self._logger.info(f"Short link deleted: {code} (was expired: {was_expired})")
        return DeleteOutcome(code=code, was_expired=was_expired)

    async def stats(self, code: str, owner: str) -> LinkStats:
        """Return the link and its click log; NotFound when absent or foreign."""
        try:
            link = await self._translate(self._store.get_owned(code, owner))
            if link is None:
                raise NotFound()
            clicks = await self._translate(self._store.list_clicks(code))
        except LinkError as exc:
            self._record("stats", exc)
            raise

        self._record("stats")
        return LinkStats(link=link, clicks=clicks)

    async def list_links(self, owner: str) -> list[LinkSummary]:
        """Every link owned by ``owner``, newest first, expired ones included."""
        try:
            links = await self._translate(self._store.list_owned(owner))
        except LinkError as exc:
            self._record("list", exc)
            raise

        self._record("list")
        return links

    async def check_url(self, url: str | None) -> SecurityVerdict:
        """Standalone security check; never raises UnsafeURL."""
        return await self._security.check(self._require_url(url))

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _owned_link(self, code: str, owner: str) -> LinkRecord:
        link = await self._translate(self._store.get_by_code(code))
        if link is None:
            raise NotFound()
        if link.owner != owner:
            self._logger.warning(f"Owner mismatch on {code}: requested by {owner}")
            raise Forbidden()
        return link

    async def _ensure_safe(self, target: str) -> None:
        verdict = await self._security.check(target)
        if not verdict.safe:
            raise UnsafeURL(verdict.reason)

    async def _translate(self, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except StorageError as exc:
            self._logger.error(f"Link store failure: {exc}")
            raise StoreUnavailable() from exc

    @staticmethod
    def _require_url(url: str | None) -> str:
        if url is None or not url.strip():
            raise InvalidInput("URL is required")
        return url.strip()

    @staticmethod
    def _validity(validity_minutes: int | None, default: int | None = None) -> int:
        if validity_minutes is None:
            validity_minutes = default
        if isinstance(validity_minutes, bool) or not isinstance(validity_minutes, int) or validity_minutes <= 0:
            raise InvalidInput("Validity must be a positive number of minutes")
        return validity_minutes

    def _record(self, operation: str, exc: LinkError | None = None) -> None:
        if exc is None:
            status = RequestStatus.SUCCESS
        else:
            status = _STATUS_BY_ERROR.get(type(exc), RequestStatus.ERROR)
        LINK_OPERATIONS_TOTAL.labels(operation=operation, status=status).inc()
