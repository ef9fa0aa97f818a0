"""Lifecycle tests for LinkService: create, update, delete, stats."""

import datetime
from unittest.mock import AsyncMock

import pytest

from shortlink.errors import (
    CodeAlreadyInUse,
    Forbidden,
    InvalidInput,
    NotFound,
    StorageError,
    StoreUnavailable,
    UnsafeURL,
)
from shortlink.link_service import LinkService
from shortlink.memory_store import InMemoryLinkStore


class FailingStore(InMemoryLinkStore):
    async def insert_if_absent(self, link):
        raise StorageError("database is locked")

    async def get_by_code(self, code):
        raise StorageError("database is locked")


# ============================================================================
# CREATE
# ============================================================================


@pytest.mark.asyncio
async def test_create_with_defaults(link_service, clock, settings) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    assert len(link.code) == settings.SHORT_CODE_LENGTH
    assert link.owner == "owner-1"
    assert link.created_at == clock()
    assert link.expires_at == clock() + datetime.timedelta(minutes=30)


@pytest.mark.asyncio
async def test_create_with_custom_code_and_validity(link_service, clock) -> None:
    link = await link_service.create("https://example.com", "owner-1", custom_code="promo2026", validity_minutes=90)

    assert link.code == "promo2026"
    assert link.expires_at - link.created_at == datetime.timedelta(minutes=90)


@pytest.mark.asyncio
async def test_create_strips_target(link_service) -> None:
    link = await link_service.create("  https://example.com  ", "owner-1")
    assert link.target == "https://example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize("target", [None, "", "   "])
async def test_create_requires_url(link_service, target) -> None:
    with pytest.raises(InvalidInput, match="URL is required"):
        await link_service.create(target, "owner-1")


@pytest.mark.asyncio
@pytest.mark.parametrize("validity", [0, -5, True, 2.5])
async def test_create_rejects_bad_validity(link_service, validity) -> None:
    with pytest.raises(InvalidInput, match="Validity"):
        await link_service.create("https://example.com", "owner-1", validity_minutes=validity)


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["ab", "has-dash", "api"])
async def test_create_rejects_bad_custom_code(link_service, code) -> None:
    with pytest.raises(InvalidInput):
        await link_service.create("https://example.com", "owner-1", custom_code=code)


@pytest.mark.asyncio
async def test_create_rejects_unsafe_url(link_service, memory_store) -> None:
    with pytest.raises(UnsafeURL) as exc_info:
        await link_service.create("javascript:alert(1)", "owner-1")

    assert exc_info.value.reason == "Potentially unsafe URL scheme detected"
    assert len(memory_store) == 0


@pytest.mark.asyncio
async def test_create_custom_code_conflict(link_service) -> None:
    await link_service.create("https://example.com", "owner-1", custom_code="taken1")

    with pytest.raises(CodeAlreadyInUse, match="taken1"):
        await link_service.create("https://other.example.com", "owner-2", custom_code="taken1")


@pytest.mark.asyncio
async def test_create_conflicts_with_expired_link(link_service, clock) -> None:
    await link_service.create("https://example.com", "owner-1", custom_code="stale1", validity_minutes=1)
    clock.advance(hours=1)

    with pytest.raises(CodeAlreadyInUse):
        await link_service.create("https://example.com", "owner-2", custom_code="stale1")


@pytest.mark.asyncio
async def test_create_store_failure(security, logger, settings, clock) -> None:
    service = LinkService(FailingStore(), security, logger, settings, clock=clock)

    with pytest.raises(StoreUnavailable):
        await service.create("https://example.com", "owner-1")


# ============================================================================
# UPDATE
# ============================================================================


@pytest.mark.asyncio
async def test_update_target(link_service) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    outcome = await link_service.update(link.code, "owner-1", target="https://example.org")

    assert outcome.link.target == "https://example.org"
    assert outcome.link.expires_at == link.expires_at
    assert outcome.was_expired is False
    assert outcome.is_now_active is True


@pytest.mark.asyncio
async def test_update_reactivates_expired_link(link_service, clock) -> None:
    link = await link_service.create("https://example.com", "owner-1", validity_minutes=1)
    clock.advance(minutes=10)

    outcome = await link_service.update(link.code, "owner-1", validity_minutes=60)

    assert outcome.was_expired is True
    assert outcome.is_now_active is True
    assert outcome.link.expires_at == clock() + datetime.timedelta(minutes=60)


@pytest.mark.asyncio
async def test_update_target_only_keeps_link_expired(link_service, clock) -> None:
    link = await link_service.create("https://example.com", "owner-1", validity_minutes=1)
    clock.advance(minutes=10)

    outcome = await link_service.update(link.code, "owner-1", target="https://example.org")

    assert outcome.was_expired is True
    assert outcome.is_now_active is False


@pytest.mark.asyncio
async def test_update_without_fields_reports_current_state(link_service) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    outcome = await link_service.update(link.code, "owner-1")

    assert outcome.link.target == link.target
    assert outcome.link.expires_at == link.expires_at


@pytest.mark.asyncio
async def test_update_foreign_link_is_forbidden(link_service) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    with pytest.raises(Forbidden) as exc_info:
        await link_service.update(link.code, "owner-2", target="https://evil.example.com")
    assert isinstance(exc_info.value, NotFound)

    outcome = await link_service.update(link.code, "owner-1")
    assert outcome.link.target == "https://example.com"


@pytest.mark.asyncio
async def test_update_missing_link(link_service) -> None:
    with pytest.raises(NotFound):
        await link_service.update("nope42", "owner-1", validity_minutes=5)


@pytest.mark.asyncio
async def test_update_rejects_unsafe_target(link_service) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    with pytest.raises(UnsafeURL):
        await link_service.update(link.code, "owner-1", target="data:text/html,hi")


@pytest.mark.asyncio
async def test_update_rejects_bad_validity(link_service) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    with pytest.raises(InvalidInput):
        await link_service.update(link.code, "owner-1", validity_minutes=0)


@pytest.mark.asyncio
async def test_update_writes_through_to_cache(memory_store, security, logger, settings, clock) -> None:
    cache = AsyncMock()
    service = LinkService(memory_store, security, logger, settings, cache=cache, clock=clock)
    link = await service.create("https://example.com", "owner-1")

    outcome = await service.update(link.code, "owner-1", target="https://example.org")

    cache.replace.assert_awaited_once_with(outcome.link)


@pytest.mark.asyncio
async def test_delete_leaves_cache_tombstone(memory_store, security, logger, settings, clock) -> None:
    cache = AsyncMock()
    service = LinkService(memory_store, security, logger, settings, cache=cache, clock=clock)
    link = await service.create("https://example.com", "owner-1")

    await service.delete(link.code, "owner-1")

    cache.tombstone.assert_awaited_once_with(link.code)


# ============================================================================
# DELETE
# ============================================================================


@pytest.mark.asyncio
async def test_delete_then_not_found(link_service, memory_store) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    outcome = await link_service.delete(link.code, "owner-1")

    assert outcome.code == link.code
    assert outcome.was_expired is False
    assert await memory_store.get_by_code(link.code) is None
    with pytest.raises(NotFound):
        await link_service.delete(link.code, "owner-1")


@pytest.mark.asyncio
async def test_delete_reports_expired_link(link_service, clock) -> None:
    link = await link_service.create("https://example.com", "owner-1", validity_minutes=1)
    clock.advance(minutes=2)

    outcome = await link_service.delete(link.code, "owner-1")

    assert outcome.was_expired is True


@pytest.mark.asyncio
async def test_delete_foreign_link_is_forbidden(link_service, memory_store) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    with pytest.raises(Forbidden):
        await link_service.delete(link.code, "owner-2")
    assert await memory_store.get_by_code(link.code) is not None


@pytest.mark.asyncio
async def test_deleted_custom_code_can_be_reused(link_service) -> None:
    await link_service.create("https://example.com", "owner-1", custom_code="reuse1")
    await link_service.delete("reuse1", "owner-1")

    link = await link_service.create("https://example.org", "owner-2", custom_code="reuse1")

    assert link.owner == "owner-2"


@pytest.mark.asyncio
async def test_delete_store_failure(security, logger, settings, clock) -> None:
    service = LinkService(FailingStore(), security, logger, settings, clock=clock)

    with pytest.raises(StoreUnavailable):
        await service.delete("abc123", "owner-1")


# ============================================================================
# STATS AND SECURITY CHECK
# ============================================================================


@pytest.mark.asyncio
async def test_stats_lists_clicks(link_service, resolver, recorder) -> None:
    link = await link_service.create("https://example.com", "owner-1")
    await resolver.resolve(link.code, referrer="https://a.example.com")
    await resolver.resolve(link.code)
    await recorder.drain()

    stats = await link_service.stats(link.code, "owner-1")

    assert stats.link.code == link.code
    assert stats.click_count == 2
    assert [click.referrer for click in stats.clicks] == ["https://a.example.com", "direct"]


@pytest.mark.asyncio
async def test_stats_of_expired_link_still_available(link_service, clock) -> None:
    link = await link_service.create("https://example.com", "owner-1", validity_minutes=1)
    clock.advance(days=1)

    stats = await link_service.stats(link.code, "owner-1")

    assert stats.click_count == 0


@pytest.mark.asyncio
async def test_stats_hidden_from_other_owner(link_service) -> None:
    link = await link_service.create("https://example.com", "owner-1")

    with pytest.raises(NotFound):
        await link_service.stats(link.code, "owner-2")


@pytest.mark.asyncio
async def test_check_url(link_service) -> None:
    verdict = await link_service.check_url("https://paypal.com.secure-login.com")
    assert verdict.safe is False
    assert verdict.reason == "Potential phishing URL detected"


@pytest.mark.asyncio
async def test_check_url_requires_url(link_service) -> None:
    with pytest.raises(InvalidInput):
        await link_service.check_url("")


# ============================================================================
# LISTING
# ============================================================================


@pytest.mark.asyncio
async def test_list_links_is_owner_scoped_newest_first(link_service, resolver, recorder) -> None:
    first = await link_service.create("https://one.example.com", "owner-1")
    second = await link_service.create("https://two.example.com", "owner-1", validity_minutes=1)
    await link_service.create("https://other.example.com", "owner-2")
    await resolver.resolve(first.code)
    await recorder.drain()

    summaries = await link_service.list_links("owner-1")

    assert [summary.link.code for summary in summaries] == [second.code, first.code]
    assert [summary.click_count for summary in summaries] == [0, 1]


@pytest.mark.asyncio
async def test_list_links_empty(link_service) -> None:
    assert await link_service.list_links("nobody") == []


@pytest.mark.asyncio
async def test_create_with_empty_custom_code_generates_one(link_service, settings) -> None:
    link = await link_service.create("https://example.com", "owner-1", custom_code="")
    assert len(link.code) == settings.SHORT_CODE_LENGTH
