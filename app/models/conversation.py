"""
Tandem — Conversation and Message models.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Identity,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class ConversationRow(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uq_conversation_pair"),
        CheckConstraint("user_a_id < user_b_id", name="ck_conversation_sorted_pair"),
    )

    id: Mapped[str] = mapped_column(
        String(257), primary_key=True, comment="Sorted participant ids joined by '_'"
    )
    # Byte-order collation so the sorted-pair check agrees with Python's sort.
    user_a_id: Mapped[str] = mapped_column(
        String(128, collation="C"), ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_b_id: Mapped[str] = mapped_column(
        String(128, collation="C"), ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False
    )
    last_message_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    last_message_sender_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    messages: Mapped[list["MessageRow"]] = relationship(
        "MessageRow", back_populates="conversation", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<ConversationRow {self.user_a_id} <-> {self.user_b_id}>"


class MessageRow(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_order", "conversation_id", "created_at", "position"),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    position: Mapped[int] = mapped_column(
        BigInteger, Identity(always=True), unique=True, nullable=False,
        comment="Insertion order, breaks created_at ties",
    )
    conversation_id: Mapped[str] = mapped_column(
        String(257), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # ── Relationships ──────────────────────────────────────────────
    conversation: Mapped["ConversationRow"] = relationship(
        "ConversationRow", back_populates="messages"
    )

    def __repr__(self) -> str:
        return f"<MessageRow {self.id} in {self.conversation_id} from {self.sender_id}>"
