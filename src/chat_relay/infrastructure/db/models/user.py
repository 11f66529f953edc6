from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chat_relay.infrastructure.db.base import Base


class UserModel(Base):
    """Chat-side projection of an account. Credentials live elsewhere."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(101), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="offline", server_default=text("'offline'"))
    status_message: Mapped[str] = mapped_column(String(100), nullable=False, default="", server_default=text("''"))
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    last_seen: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    blocks = relationship(
        "UserBlockModel",
        foreign_keys="UserBlockModel.blocker_id",
        lazy="selectin",
        passive_deletes=True,
    )
    blocked_by = relationship(
        "UserBlockModel",
        foreign_keys="UserBlockModel.blocked_id",
        lazy="selectin",
        viewonly=True,
    )

    __table_args__ = (
        Index("ix_users_is_online", "is_online"),
    )


class UserBlockModel(Base):
    """One row per (blocker, blocked); both directions are read from it."""

    __tablename__ = "user_blocks"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    blocker_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    blocked_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="uq_user_block"),
    )
