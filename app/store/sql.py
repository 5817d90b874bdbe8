"""
Tandem — PostgreSQL store (async SQLAlchemy).

Conditional creates use ``INSERT ... ON CONFLICT DO NOTHING`` so that the
database, not a read-then-write in Python, decides which concurrent caller
wins.  ``append_message`` takes a row lock on the conversation, inserts the
message and rewrites the summary inside a single transaction.

Any ``SQLAlchemyError`` is rolled back and re-raised as ``InternalError``.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable

import structlog
from sqlalchemy import delete, or_, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.errors import InternalError, NotFoundError
from app.models.conversation import ConversationRow, MessageRow
from app.models.profile import ProfileRow, UserBlockRow
from app.records import Conversation, Identity, Message, UserProfile
from app.store.base import ChatStore, utcnow
from app.store.changes import CONVERSATION, MESSAGE, PROFILE, ChangeEvent, LocalChangeBus

logger = structlog.get_logger("tandem.store.sql")

_DETAIL_FIELDS = ("email", "display_name", "photo_url")


# ──────────────────────────────────────────────────────────────────────────────
# Row → record conversion
# ──────────────────────────────────────────────────────────────────────────────

def _profile_record(row: ProfileRow) -> UserProfile:
    return UserProfile(
        id=row.id,
        email=row.email,
        display_name=row.display_name,
        photo_url=row.photo_url,
        native_language=row.native_language,
        target_language=row.target_language,
        profile_setup_complete=row.profile_setup_complete,
        blocked_users=frozenset(b.blocked_id for b in row.blocks),
        created_at=row.created_at,
    )


def _conversation_record(row: ConversationRow) -> Conversation:
    return Conversation(
        id=row.id,
        user_a_id=row.user_a_id,
        user_b_id=row.user_b_id,
        created_at=row.created_at,
        last_message_text=row.last_message_text,
        last_message_at=row.last_message_at,
        last_message_sender_id=row.last_message_sender_id,
    )


def _message_record(row: MessageRow) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        sender_id=row.sender_id,
        text=row.text,
        created_at=row.created_at,
        position=row.position,
    )


class SqlChatStore(ChatStore):
    """``ChatStore`` backed by the ``profiles`` / ``user_blocks`` /
    ``conversations`` / ``messages`` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        changes: LocalChangeBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(changes)
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _transaction(self, op: str) -> AsyncIterator[AsyncSession]:
        """Yield a session inside ``BEGIN``; commit on success, roll back on error."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except SQLAlchemyError as exc:
                logger.exception("store_failure", op=op)
                raise InternalError(f"Store failure during {op}.") from exc

    async def ping(self) -> None:
        async with self._transaction("ping") as session:
            await session.execute(text("SELECT 1"))

    # ── Profiles ──────────────────────────────────────────────────────────

    async def get_profile(self, uid: str) -> UserProfile | None:
        async with self._transaction("get_profile") as session:
            row = await session.get(ProfileRow, uid)
            return _profile_record(row) if row is not None else None

    async def get_profiles(self, uids: list[str]) -> dict[str, UserProfile]:
        if not uids:
            return {}
        async with self._transaction("get_profiles") as session:
            result = await session.execute(select(ProfileRow).where(ProfileRow.id.in_(uids)))
            return {row.id: _profile_record(row) for row in result.scalars().all()}

    async def create_profile_if_absent(self, identity: Identity) -> tuple[UserProfile, bool]:
        async with self._transaction("create_profile") as session:
            stmt = (
                pg_insert(ProfileRow)
                .values(
                    id=identity.uid,
                    email=identity.email,
                    display_name=identity.display_name,
                    photo_url=identity.photo_url,
                    profile_setup_complete=False,
                )
                .on_conflict_do_nothing(index_elements=[ProfileRow.id])
            )
            result = await session.execute(stmt)
            created = result.rowcount == 1
            row = await session.get(ProfileRow, identity.uid)
            profile = _profile_record(row)

        if created:
            await self._publish(ChangeEvent(PROFILE, identity.uid, (identity.uid,)))
        return profile, created

    async def set_languages(
        self, uid: str, native_language: str, target_language: str
    ) -> UserProfile | None:
        async with self._transaction("set_languages") as session:
            row = await session.get(ProfileRow, uid, with_for_update=True)
            if row is None:
                return None
            row.native_language = native_language
            row.target_language = target_language
            row.profile_setup_complete = True
            await session.flush()
            profile = _profile_record(row)

        await self._publish(ChangeEvent(PROFILE, uid, (uid,)))
        return profile

    async def update_profile_details(self, uid: str, fields: dict) -> UserProfile | None:
        async with self._transaction("update_profile_details") as session:
            row = await session.get(ProfileRow, uid, with_for_update=True)
            if row is None:
                return None
            for name, value in fields.items():
                if name in _DETAIL_FIELDS:
                    setattr(row, name, value)
            await session.flush()
            profile = _profile_record(row)

        await self._publish(ChangeEvent(PROFILE, uid, (uid,)))
        return profile

    async def list_complete_profiles(self) -> list[UserProfile]:
        async with self._transaction("list_complete_profiles") as session:
            stmt = (
                select(ProfileRow)
                .where(ProfileRow.profile_setup_complete.is_(True))
                .order_by(ProfileRow.created_at, ProfileRow.id)
            )
            result = await session.execute(stmt)
            return [_profile_record(row) for row in result.scalars().all()]

    # ── Blocks ────────────────────────────────────────────────────────────

    async def add_block(self, uid: str, target_id: str) -> bool:
        async with self._transaction("add_block") as session:
            if await session.get(ProfileRow, uid) is None:
                raise NotFoundError(f"Profile {uid} not found.")
            stmt = (
                pg_insert(UserBlockRow)
                .values(blocker_id=uid, blocked_id=target_id)
                .on_conflict_do_nothing(constraint="uq_user_block_pair")
            )
            result = await session.execute(stmt)
            added = result.rowcount == 1

        if added:
            await self._publish(ChangeEvent(PROFILE, uid, (uid, target_id)))
        return added

    async def remove_block(self, uid: str, target_id: str) -> bool:
        async with self._transaction("remove_block") as session:
            if await session.get(ProfileRow, uid) is None:
                raise NotFoundError(f"Profile {uid} not found.")
            result = await session.execute(
                delete(UserBlockRow).where(
                    UserBlockRow.blocker_id == uid,
                    UserBlockRow.blocked_id == target_id,
                )
            )
            removed = result.rowcount > 0

        if removed:
            await self._publish(ChangeEvent(PROFILE, uid, (uid, target_id)))
        return removed

    # ── Conversations ─────────────────────────────────────────────────────

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self._transaction("get_conversation") as session:
            row = await session.get(ConversationRow, conversation_id)
            return _conversation_record(row) if row is not None else None

    async def create_conversation_if_absent(
        self, conversation_id: str, user_a_id: str, user_b_id: str
    ) -> tuple[Conversation, bool]:
        async with self._transaction("create_conversation") as session:
            stmt = (
                pg_insert(ConversationRow)
                .values(id=conversation_id, user_a_id=user_a_id, user_b_id=user_b_id)
                .on_conflict_do_nothing()
            )
            result = await session.execute(stmt)
            created = result.rowcount == 1
            row = await session.get(ConversationRow, conversation_id)
            if row is None:
                # Conflict on the pair constraint under a different id.
                raise InternalError(
                    f"Conversation for ({user_a_id}, {user_b_id}) exists under another id."
                )
            conversation = _conversation_record(row)

        if created:
            await self._publish(
                ChangeEvent(CONVERSATION, conversation_id, conversation.participants)
            )
        return conversation, created

    async def list_conversations_for(self, uid: str) -> list[Conversation]:
        async with self._transaction("list_conversations") as session:
            stmt = (
                select(ConversationRow)
                .where(or_(ConversationRow.user_a_id == uid, ConversationRow.user_b_id == uid))
                .order_by(
                    ConversationRow.last_message_at.desc().nulls_last(),
                    ConversationRow.created_at.desc(),
                )
            )
            result = await session.execute(stmt)
            return [_conversation_record(row) for row in result.scalars().all()]

    # ── Messages ──────────────────────────────────────────────────────────

    async def append_message(self, conversation_id: str, sender_id: str, text: str) -> Message:
        async with self._transaction("append_message") as session:
            # Row lock serialises appends per conversation.
            conv = await session.get(ConversationRow, conversation_id, with_for_update=True)
            if conv is None:
                raise NotFoundError(f"Conversation {conversation_id} not found.")

            created_at = self._clock()
            if conv.last_message_at is not None and created_at < conv.last_message_at:
                created_at = conv.last_message_at

            row = MessageRow(
                id=uuid.uuid4().hex,
                conversation_id=conversation_id,
                sender_id=sender_id,
                text=text,
                created_at=created_at,
            )
            session.add(row)

            conv.last_message_text = text
            conv.last_message_at = created_at
            conv.last_message_sender_id = sender_id

            await session.flush()
            message = _message_record(row)
            participants = (conv.user_a_id, conv.user_b_id)

        await self._publish(ChangeEvent(MESSAGE, conversation_id, participants))
        return message

    async def list_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        async with self._transaction("list_messages") as session:
            if limit is None:
                stmt = (
                    select(MessageRow)
                    .where(MessageRow.conversation_id == conversation_id)
                    .order_by(MessageRow.created_at.asc(), MessageRow.position.asc())
                )
                result = await session.execute(stmt)
                return [_message_record(row) for row in result.scalars().all()]

            stmt = (
                select(MessageRow)
                .where(MessageRow.conversation_id == conversation_id)
                .order_by(MessageRow.created_at.desc(), MessageRow.position.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            rows = list(result.scalars().all())
            rows.reverse()
            return [_message_record(row) for row in rows]
