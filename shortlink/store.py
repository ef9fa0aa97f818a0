"""URL record store contract and the records it exchanges.

The engine talks to storage only through ``LinkStore``. Every operation is a
single-record operation; there are no cross-record transactions. Two
implementations ship with the service:

- ``shortlink.sql_store.SQLLinkStore``: SQLAlchemy async (PostgreSQL in
  production, SQLite in tests).
- ``shortlink.memory_store.InMemoryLinkStore``: dict-backed, for development
  and tests.

Contract
========
::
    insert_if_absent(link)        atomic conditional write; None when code taken
    get_by_code(code)             public lookup, never filtered by owner
    get_owned(code, owner)        ownership-scoped lookup
    update_link(code, owner, …)   set target and/or expires_at
    append_click(code, event)     merge-safe append of one click
    list_clicks(code)             click log in arrival order
    list_owned(owner)             owner's links, newest first, with click counts
    delete(code, owner)           remove record and its clicks
    ping() / close()              health and shutdown

Key Behaviours
===============
- insert_if_absent must never be implemented as a read followed by a write.
- append_click must add one event without rewriting existing ones, so
  concurrent redirects of the same code never lose a click.
- Driver failures surface as ``shortlink.errors.StorageError``.
"""

import abc
import datetime
from dataclasses import dataclass

__all__ = ["ClickEvent", "LinkRecord", "LinkSummary", "LinkStore"]


@dataclass(frozen=True)
class ClickEvent:
    timestamp: datetime.datetime
    referrer: str = "direct"
    location: str = "unknown"


@dataclass(frozen=True)
class LinkRecord:
    code: str
    target: str
    owner: str
    created_at: datetime.datetime
    expires_at: datetime.datetime
    id: int | None = None

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class LinkSummary:
    """One row of an owner's link listing."""

    link: LinkRecord
    click_count: int


class LinkStore(abc.ABC):
    """Storage backend for short links."""

    @abc.abstractmethod
    async def insert_if_absent(self, link: LinkRecord) -> LinkRecord | None:
        """Create ``link`` unless its code is already live.

        Returns the stored record (with ``id`` assigned) or ``None`` when the
        code is taken. Check and write happen in one indivisible step.
        """

    @abc.abstractmethod
    async def get_by_code(self, code: str) -> LinkRecord | None: ...

    @abc.abstractmethod
    async def get_owned(self, code: str, owner: str) -> LinkRecord | None: ...

    @abc.abstractmethod
    async def update_link(
        self,
        code: str,
        owner: str,
        target: str | None = None,
        expires_at: datetime.datetime | None = None,
    ) -> LinkRecord | None:
        """Apply the given field changes; ``None`` if no owned record matched."""

    @abc.abstractmethod
    async def append_click(self, code: str, event: ClickEvent) -> bool:
        """Append one click; ``False`` if the link no longer exists."""

    @abc.abstractmethod
    async def list_clicks(self, code: str) -> list[ClickEvent]: ...

    @abc.abstractmethod
    async def list_owned(self, owner: str) -> list[LinkSummary]:
        """Every link of ``owner``, newest first, with its click count."""

    @abc.abstractmethod
    async def delete(self, code: str, owner: str) -> bool: ...

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None
