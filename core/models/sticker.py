"""Sticker (avatar image) cache model."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, CachedMixin

STICKER_SOURCES = ("spy_family", "ichigo", "fallback")


class Sticker(Base, CachedMixin):
    """Sticker image; the URL itself is the identifier."""

    __tablename__ = "stickers"
    __table_args__ = (
        CheckConstraint(
            "source IN (" + ", ".join(f"'{s}'" for s in STICKER_SOURCES) + ")",
            name="ck_stickers_source",
        ),
    )

    url: Mapped[str] = mapped_column(String(512), primary_key=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Sticker(source={self.source}, url={self.url})>"
