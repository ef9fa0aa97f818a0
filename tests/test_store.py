"""Contract tests run against both link store implementations."""

import asyncio
import datetime
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from shortlink.database import build_engine, build_session_factory, close_db, init_db
from shortlink.memory_store import InMemoryLinkStore
from shortlink.sql_store import SQLLinkStore
from shortlink.store import ClickEvent, LinkRecord, LinkStore

NOW = datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, settings, tmp_path) -> AsyncGenerator[LinkStore, None]:
    if request.param == "memory":
        yield InMemoryLinkStore()
        return
    engine = build_engine(settings, url=f"sqlite+aiosqlite:///{tmp_path / 'contract.db'}")
    await init_db(engine)
    yield SQLLinkStore(build_session_factory(engine))
    await close_db(engine)


def _link(code: str = "abc123", owner: str = "owner-1", target: str = "https://example.com") -> LinkRecord:
    return LinkRecord(
        code=code,
        target=target,
        owner=owner,
        created_at=NOW,
        expires_at=NOW + datetime.timedelta(minutes=30),
    )


@pytest.mark.asyncio
async def test_insert_if_absent_assigns_id(store) -> None:
    stored = await store.insert_if_absent(_link())
    assert stored is not None
    assert stored.id is not None
    assert stored.code == "abc123"


@pytest.mark.asyncio
async def test_insert_if_absent_rejects_live_code(store) -> None:
    await store.insert_if_absent(_link())
    assert await store.insert_if_absent(_link(owner="owner-2", target="https://other.example.com")) is None

    kept = await store.get_by_code("abc123")
    assert kept.owner == "owner-1"
    assert kept.target == "https://example.com"


@pytest.mark.asyncio
async def test_get_by_code_round_trips_utc_timestamps(store) -> None:
    await store.insert_if_absent(_link())
    link = await store.get_by_code("abc123")
    assert link.created_at == NOW
    assert link.expires_at == NOW + datetime.timedelta(minutes=30)
    assert link.expires_at.tzinfo is not None


@pytest.mark.asyncio
async def test_get_by_code_missing(store) -> None:
    assert await store.get_by_code("nope00") is None


@pytest.mark.asyncio
async def test_get_owned_filters_by_owner(store) -> None:
    await store.insert_if_absent(_link())
    assert (await store.get_owned("abc123", "owner-1")).code == "abc123"
    assert await store.get_owned("abc123", "owner-2") is None


@pytest.mark.asyncio
async def test_update_link_changes_fields(store) -> None:
    await store.insert_if_absent(_link())
    new_expiry = NOW + datetime.timedelta(hours=2)

    updated = await store.update_link("abc123", "owner-1", target="https://new.example.com", expires_at=new_expiry)

    assert updated.target == "https://new.example.com"
    assert updated.expires_at == new_expiry
    assert updated.created_at == NOW
    assert (await store.get_by_code("abc123")).target == "https://new.example.com"


@pytest.mark.asyncio
async def test_update_link_partial(store) -> None:
    await store.insert_if_absent(_link())
    updated = await store.update_link("abc123", "owner-1", target="https://new.example.com")
    assert updated.expires_at == NOW + datetime.timedelta(minutes=30)


@pytest.mark.asyncio
async def test_update_link_requires_owner(store) -> None:
    await store.insert_if_absent(_link())
    assert await store.update_link("abc123", "owner-2", target="https://evil.example.com") is None
    assert (await store.get_by_code("abc123")).target == "https://example.com"


@pytest.mark.asyncio
async def test_append_and_list_clicks_in_order(store) -> None:
    await store.insert_if_absent(_link())
    for i, referrer in enumerate(["direct", "https://news.example.com", "direct"]):
        event = ClickEvent(timestamp=NOW + datetime.timedelta(seconds=i), referrer=referrer, location="IN")
        assert await store.append_click("abc123", event) is True

    clicks = await store.list_clicks("abc123")
    assert [c.referrer for c in clicks] == ["direct", "https://news.example.com", "direct"]
    assert clicks[1].timestamp == NOW + datetime.timedelta(seconds=1)
    assert clicks[0].location == "IN"


@pytest.mark.asyncio
async def test_append_click_to_missing_link(store) -> None:
    assert await store.append_click("nope00", ClickEvent(timestamp=NOW)) is False


@pytest.mark.asyncio
async def test_concurrent_appends_lose_nothing(store) -> None:
    await store.insert_if_absent(_link())
    results = await asyncio.gather(
        *(store.append_click("abc123", ClickEvent(timestamp=NOW)) for _ in range(10))
    )
    assert all(results)
    assert len(await store.list_clicks("abc123")) == 10


@pytest.mark.asyncio
async def test_delete_removes_record_and_clicks(store) -> None:
    await store.insert_if_absent(_link())
    await store.append_click("abc123", ClickEvent(timestamp=NOW))

    assert await store.delete("abc123", "owner-1") is True
    assert await store.get_by_code("abc123") is None
    assert await store.list_clicks("abc123") == []
    assert await store.delete("abc123", "owner-1") is False


@pytest.mark.asyncio
async def test_delete_requires_owner(store) -> None:
    await store.insert_if_absent(_link())
    assert await store.delete("abc123", "owner-2") is False
    assert await store.get_by_code("abc123") is not None


@pytest.mark.asyncio
async def test_code_is_reusable_after_delete(store) -> None:
    await store.insert_if_absent(_link())
    await store.delete("abc123", "owner-1")
    again = await store.insert_if_absent(_link(owner="owner-2"))
    assert again is not None
    assert again.owner == "owner-2"


@pytest.mark.asyncio
async def test_ping(store) -> None:
    await store.ping()


@pytest.mark.asyncio
async def test_concurrent_inserts_of_same_code_have_one_winner(store) -> None:
    results = await asyncio.gather(
        *(store.insert_if_absent(_link(owner=f"owner-{i}", target=f"https://{i}.example.com")) for i in range(20))
    )

    winners = [result for result in results if result is not None]
    assert len(winners) == 1
    kept = await store.get_by_code("abc123")
    assert kept == winners[0]


@pytest.mark.asyncio
async def test_list_owned_newest_first_with_click_counts(store) -> None:
    await store.insert_if_absent(_link("first1"))
    await store.insert_if_absent(_link("second"))
    await store.insert_if_absent(_link("others", owner="owner-2"))
    await store.append_click("first1", ClickEvent(timestamp=NOW))
    await store.append_click("first1", ClickEvent(timestamp=NOW))

    summaries = await store.list_owned("owner-1")

    assert [summary.link.code for summary in summaries] == ["second", "first1"]
    assert [summary.click_count for summary in summaries] == [0, 2]
    assert summaries[0].link.expires_at == NOW + datetime.timedelta(minutes=30)


@pytest.mark.asyncio
async def test_list_owned_without_links(store) -> None:
    assert await store.list_owned("owner-1") == []
