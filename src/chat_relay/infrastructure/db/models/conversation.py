from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chat_relay.infrastructure.db.base import Base


class ConversationModel(Base):
    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="direct")
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # No FK: the message row is written and committed before the pointer moves.
    last_message_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
        onupdate=text("now()"),
    )

    # relationships
    participants = relationship(
        "ParticipantModel",
        back_populates="conversation",
        lazy="selectin",
        order_by="ParticipantModel.joined_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    pinned = relationship(
        "PinnedMessageModel",
        lazy="selectin",
        order_by="PinnedMessageModel.pinned_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    messages = relationship(
        "MessageModel",
        back_populates="conversation",
        lazy="noload",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_conversations_last_message", last_message_at.desc()),
        Index("ix_conversations_kind", "kind"),
    )


class PinnedMessageModel(Base):
    __tablename__ = "pinned_messages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    message_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("messages.id", ondelete="CASCADE"),
        nullable=False,
    )
    pinned_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pinned_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    __table_args__ = (
        UniqueConstraint("conversation_id", "message_id", name="uq_pinned_message"),
    )
