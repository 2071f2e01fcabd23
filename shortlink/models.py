"""SQLAlchemy ORM model for the shortlink store.

Data Model Layout
=================
::
    short_urls table
    ├─ code (VARCHAR(16) PRIMARY KEY)
    ├─ target_url (TEXT NOT NULL)
    ├─ created_at (TIMESTAMPTZ NOT NULL, INDEXED)
    ├─ expires_at (TIMESTAMPTZ NULL, INDEXED)
    ├─ click_count (BIGINT NOT NULL DEFAULT 0)
    └─ last_clicked_at (TIMESTAMPTZ NULL)

Key Behaviours
===============
- The primary key on code is the only arbiter of code uniqueness.
- expires_at is indexed for the maintenance sweep, created_at for listing.
- click_count and last_clicked_at are only written by UPDATE statements
  issued from ``URLStore.increment_click``.
- All timestamps are written as UTC.

Classes:
    ShortURL:  One shortened URL mapping with click accounting.
"""

import datetime

from sqlalchemy import BigInteger, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.config import MAX_CODE_LENGTH
from shortlink.database import Base

__all__ = ["ShortURL"]


class ShortURL(Base):
    __tablename__ = "short_urls"

    code: Mapped[str] = mapped_column(String(MAX_CODE_LENGTH), primary_key=True)
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    click_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_clicked_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ShortURL(code='{self.code}', click_count={self.click_count})>"
