"""SQLAlchemy-backed link store.

Each operation opens its own short session and transaction, so background
click appends never share state with the request that scheduled them.

Flow Diagram — insert_if_absent
===============================
::
    ┌──────────────┐
    │ INSERT row   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ COMMIT       │
    └──────┬───────┘
    unique index  │
    violated?     │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌──────────┐
│ return  │  │ rollback │
│ record  │  │ → None   │
└─────────┘  └──────────┘

Key Behaviours
===============
- Uniqueness is decided by the database's unique index on ``code``; there is
  no SELECT before the INSERT.
- Click appends are ``INSERT … SELECT id FROM short_links WHERE code = …``:
  one statement, one new row, zero rows when the link is gone.
- SQLAlchemy and driver errors are re-raised as ``StorageError``.
"""

import datetime
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import DateTime, String, delete, func, insert, literal, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.errors import StorageError
from shortlink.models import Click, ShortLink
from shortlink.store import ClickEvent, LinkRecord, LinkStore, LinkSummary
from shortlink.timeutil import ensure_utc

__all__ = ["SQLLinkStore"]


def _to_record(row: ShortLink) -> LinkRecord:
    return LinkRecord(
        id=row.id,
        code=row.code,
        target=row.target,
        owner=row.owner_id,
        created_at=ensure_utc(row.created_at),
        expires_at=ensure_utc(row.expires_at),
    )


def _to_click(row: Click) -> ClickEvent:
    return ClickEvent(
        timestamp=ensure_utc(row.clicked_at),
        referrer=row.referrer,
        location=row.location,
    )


class SQLLinkStore(LinkStore):
    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"{operation} failed: {exc}") from exc

    async def insert_if_absent(self, link: LinkRecord) -> LinkRecord | None:
        async with self._session("insert_if_absent") as session:
            row = ShortLink(
                code=link.code,
                target=link.target,
                owner_id=link.owner,
                created_at=link.created_at,
                expires_at=link.expires_at,
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return None
            return _to_record(row)

    async def get_by_code(self, code: str) -> LinkRecord | None:
        async with self._session("get_by_code") as session:
            row = await session.scalar(select(ShortLink).where(ShortLink.code == code))
            return _to_record(row) if row else None

    async def get_owned(self, code: str, owner: str) -> LinkRecord | None:
        async with self._session("get_owned") as session:
            row = await session.scalar(
                select(ShortLink).where(ShortLink.code == code, ShortLink.owner_id == owner)
            )
            return _to_record(row) if row else None

    async def update_link(
        self,
        code: str,
        owner: str,
        target: str | None = None,
        expires_at: datetime.datetime | None = None,
    ) -> LinkRecord | None:
        values: dict[str, object] = {}
        if target is not None:
            values["target"] = target
        if expires_at is not None:
            values["expires_at"] = expires_at

        owned = (ShortLink.code == code, ShortLink.owner_id == owner)
        async with self._session("update_link") as session:
            if values:
                result = await session.execute(
                    update(ShortLink.__table__).where(*owned).values(**values)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    return None
            row = await session.scalar(select(ShortLink).where(*owned))
            await session.commit()
            return _to_record(row) if row else None

    async def append_click(self, code: str, event: ClickEvent) -> bool:
        source = select(
            ShortLink.id,
            literal(event.timestamp, DateTime(timezone=True)),
            literal(event.referrer, String()),
            literal(event.location, String()),
        ).where(ShortLink.code == code)
        stmt = insert(Click.__table__).from_select(
            ["link_id", "clicked_at", "referrer", "location"],
            source,
        )
        async with self._session("append_click") as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0

    async def list_clicks(self, code: str) -> list[ClickEvent]:
        stmt = (
            select(Click)
            .join(ShortLink, Click.link_id == ShortLink.id)
            .where(ShortLink.code == code)
            .order_by(Click.id)
        )
        async with self._session("list_clicks") as session:
            rows = (await session.scalars(stmt)).all()
            return [_to_click(row) for row in rows]

    async def list_owned(self, owner: str) -> list[LinkSummary]:
        stmt = (
            select(ShortLink, func.count(Click.id))
            .outerjoin(Click, Click.link_id == ShortLink.id)
            .where(ShortLink.owner_id == owner)
            .group_by(ShortLink.id)
            .order_by(ShortLink.id.desc())
        )
        async with self._session("list_owned") as session:
            rows = (await session.execute(stmt)).all()
            return [LinkSummary(link=_to_record(link), click_count=count) for link, count in rows]

    async def delete(self, code: str, owner: str) -> bool:
        async with self._session("delete") as session:
            link_id = await session.scalar(
                select(ShortLink.id).where(ShortLink.code == code, ShortLink.owner_id == owner)
            )
            if link_id is None:
                return False
            await session.execute(delete(Click.__table__).where(Click.__table__.c.link_id == link_id))
            result = await session.execute(
                delete(ShortLink.__table__).where(ShortLink.__table__.c.id == link_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def ping(self) -> None:
        async with self._session("ping") as session:
            await session.execute(text("SELECT 1"))
