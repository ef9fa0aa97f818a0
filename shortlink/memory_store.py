"""In-process link store.

A dict-backed ``LinkStore`` for local development and tests. It runs on a
single event loop: every mutation happens between two ``await`` points, and
the mutations that check before they write do so under an ``asyncio.Lock``,
so the check and the write cannot interleave with another coroutine.

Records are returned as frozen ``LinkRecord`` copies; the click log of a
link is a list that is only ever appended to.
"""

import asyncio
import dataclasses
import datetime
import itertools

from shortlink.store import ClickEvent, LinkRecord, LinkStore, LinkSummary

__all__ = ["InMemoryLinkStore"]


class InMemoryLinkStore(LinkStore):
    def __init__(self) -> None:
        self._links: dict[str, LinkRecord] = {}
        self._clicks: dict[str, list[ClickEvent]] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def insert_if_absent(self, link: LinkRecord) -> LinkRecord | None:
        async with self._lock:
            if link.code in self._links:
                return None
            stored = dataclasses.replace(link, id=next(self._ids))
            self._links[link.code] = stored
            self._clicks[link.code] = []
            return stored

    async def get_by_code(self, code: str) -> LinkRecord | None:
        return self._links.get(code)

    async def get_owned(self, code: str, owner: str) -> LinkRecord | None:
        link = self._links.get(code)
        if link is None or link.owner != owner:
            return None
        return link

    async def update_link(
        self,
        code: str,
        owner: str,
        target: str | None = None,
        expires_at: datetime.datetime | None = None,
    ) -> LinkRecord | None:
        async with self._lock:
            link = await self.get_owned(code, owner)
            if link is None:
                return None
            changes: dict[str, object] = {}
            if target is not None:
                changes["target"] = target
            if expires_at is not None:
                changes["expires_at"] = expires_at
            updated = dataclasses.replace(link, **changes)
            self._links[code] = updated
            return updated

    async def append_click(self, code: str, event: ClickEvent) -> bool:
        clicks = self._clicks.get(code)
        if clicks is None:
            return False
        clicks.append(event)
        return True

    async def list_clicks(self, code: str) -> list[ClickEvent]:
        return list(self._clicks.get(code, ()))

    async def list_owned(self, owner: str) -> list[LinkSummary]:
        owned = [link for link in self._links.values() if link.owner == owner]
        owned.sort(key=lambda link: link.id, reverse=True)
        return [LinkSummary(link=link, click_count=len(self._clicks[link.code])) for link in owned]

    async def delete(self, code: str, owner: str) -> bool:
        async with self._lock:
            if await self.get_owned(code, owner) is None:
                return False
            del self._links[code]
            del self._clicks[code]
            return True

    def __len__(self) -> int:
        return len(self._links)
