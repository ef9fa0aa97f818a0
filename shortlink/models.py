"""SQLAlchemy ORM models for the short link service.

Data Model Layout
=================
::
    short_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ code (VARCHAR(32) UNIQUE, INDEXED)
    ├─ target (TEXT NOT NULL)
    ├─ owner_id (VARCHAR(128) NOT NULL, INDEXED)
    ├─ created_at (TIMESTAMPTZ NOT NULL)
    ├─ expires_at (TIMESTAMPTZ NOT NULL)
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

    click_events table
    ├─ id (SERIAL PRIMARY KEY)  arrival order
    ├─ link_id (FK short_links.id ON DELETE CASCADE, INDEXED)
    ├─ clicked_at (TIMESTAMPTZ NOT NULL)
    ├─ referrer (VARCHAR(2048) DEFAULT 'direct')
    └─ location (VARCHAR(64))

Key Behaviours
===============
- The unique index on code is what makes insert-if-absent atomic: the
  database rejects the second INSERT with an IntegrityError.
- Clicks live in their own table so a redirect appends one row instead of
  rewriting the link.
- created_at and expires_at are written by the application clock, so tests
  can drive expiry deterministically.

Classes:
    ShortLink:  One code → target mapping with owner and expiry.
    Click:  One recorded redirect of a ShortLink.
"""

import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base

__all__ = ["ShortLink", "Click"]


class ShortLink(Base):
    __tablename__ = "short_links"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    target: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, code='{self.code}', owner_id='{self.owner_id}')>"


class Click(Base):
    __tablename__ = "click_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link_id: Mapped[int] = mapped_column(
        ForeignKey("short_links.id", ondelete="CASCADE"), index=True, nullable=False
    )
    clicked_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    referrer: Mapped[str] = mapped_column(String(2048), default="direct", nullable=False)
    location: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<Click(id={self.id}, link_id={self.link_id}, referrer='{self.referrer}')>"
