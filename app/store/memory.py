"""
Tandem — In-memory store.

Every write unit runs under a single ``asyncio.Lock`` with no awaits between
the existence check and the mutation, which gives the same create-if-absent
and all-or-nothing guarantees the SQL store gets from the database.
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from app.errors import NotFoundError
from app.records import Conversation, Identity, Message, UserProfile
from app.store.base import ChatStore, utcnow
from app.store.changes import CONVERSATION, MESSAGE, PROFILE, ChangeEvent, LocalChangeBus


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _new_message_id() -> str:
    return uuid.uuid4().hex


def _recency_key(conversation: Conversation) -> tuple:
    # Conversations without messages sort after every active one.
    return (
        conversation.last_message_at is not None,
        conversation.last_message_at or conversation.created_at or _EPOCH,
        conversation.created_at or _EPOCH,
    )


class InMemoryStore(ChatStore):
    """Process-local store for tests and ``STORE_BACKEND=memory``."""

    def __init__(
        self,
        changes: LocalChangeBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(changes)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._profiles: dict[str, UserProfile] = {}
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[Message]] = {}
        self._positions = itertools.count(1)

    async def ping(self) -> None:
        return None

    # ── Profiles ──────────────────────────────────────────────────────────

    async def get_profile(self, uid: str) -> UserProfile | None:
        return self._profiles.get(uid)

    async def get_profiles(self, uids: list[str]) -> dict[str, UserProfile]:
        return {uid: self._profiles[uid] for uid in uids if uid in self._profiles}

    async def create_profile_if_absent(self, identity: Identity) -> tuple[UserProfile, bool]:
        async with self._lock:
            existing = self._profiles.get(identity.uid)
            if existing is not None:
                return existing, False
            profile = UserProfile(
                id=identity.uid,
                email=identity.email,
                display_name=identity.display_name,
                photo_url=identity.photo_url,
                created_at=self._clock(),
            )
            self._profiles[identity.uid] = profile
        await self._publish(ChangeEvent(PROFILE, identity.uid, (identity.uid,)))
        return profile, True

    async def set_languages(
        self, uid: str, native_language: str, target_language: str
    ) -> UserProfile | None:
        return await self._update_profile(
            uid,
            native_language=native_language,
            target_language=target_language,
            profile_setup_complete=True,
        )

    async def update_profile_details(self, uid: str, fields: dict) -> UserProfile | None:
        return await self._update_profile(uid, **fields)

    async def _update_profile(self, uid: str, **fields) -> UserProfile | None:
        async with self._lock:
            profile = self._profiles.get(uid)
            if profile is None:
                return None
            profile = replace(profile, **fields)
            self._profiles[uid] = profile
        await self._publish(ChangeEvent(PROFILE, uid, (uid,)))
        return profile

    async def list_complete_profiles(self) -> list[UserProfile]:
        complete = [p for p in self._profiles.values() if p.profile_setup_complete]
        complete.sort(key=lambda p: (p.created_at or _EPOCH, p.id))
        return complete

    # ── Blocks ────────────────────────────────────────────────────────────

    async def add_block(self, uid: str, target_id: str) -> bool:
        async with self._lock:
            profile = self._profiles.get(uid)
            if profile is None:
                raise NotFoundError(f"Profile {uid} not found.")
            if target_id in profile.blocked_users:
                return False
            self._profiles[uid] = replace(
                profile, blocked_users=profile.blocked_users | {target_id}
            )
        await self._publish(ChangeEvent(PROFILE, uid, (uid, target_id)))
        return True

    async def remove_block(self, uid: str, target_id: str) -> bool:
        async with self._lock:
            profile = self._profiles.get(uid)
            if profile is None:
                raise NotFoundError(f"Profile {uid} not found.")
            if target_id not in profile.blocked_users:
                return False
            self._profiles[uid] = replace(
                profile, blocked_users=profile.blocked_users - {target_id}
            )
        await self._publish(ChangeEvent(PROFILE, uid, (uid, target_id)))
        return True

    # ── Conversations ─────────────────────────────────────────────────────

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    async def create_conversation_if_absent(
        self, conversation_id: str, user_a_id: str, user_b_id: str
    ) -> tuple[Conversation, bool]:
        async with self._lock:
            existing = self._conversations.get(conversation_id)
            if existing is not None:
                return existing, False
            conversation = Conversation(
                id=conversation_id,
                user_a_id=user_a_id,
                user_b_id=user_b_id,
                created_at=self._clock(),
            )
            self._conversations[conversation_id] = conversation
            self._messages[conversation_id] = []
        await self._publish(
            ChangeEvent(CONVERSATION, conversation_id, conversation.participants)
        )
        return conversation, True

    async def list_conversations_for(self, uid: str) -> list[Conversation]:
        mine = [c for c in self._conversations.values() if c.has_participant(uid)]
        mine.sort(key=_recency_key, reverse=True)
        return mine

    # ── Messages ──────────────────────────────────────────────────────────

    async def append_message(self, conversation_id: str, sender_id: str, text: str) -> Message:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found.")
            log = self._messages[conversation_id]

            created_at = self._clock()
            if log and created_at < log[-1].created_at:
                created_at = log[-1].created_at

            message = Message(
                id=_new_message_id(),
                conversation_id=conversation_id,
                sender_id=sender_id,
                text=text,
                created_at=created_at,
                position=next(self._positions),
            )
            summary = replace(
                conversation,
                last_message_text=text,
                last_message_at=created_at,
                last_message_sender_id=sender_id,
            )
            # Both records are fully built before either is stored.
            log.append(message)
            self._conversations[conversation_id] = summary
        await self._publish(
            ChangeEvent(MESSAGE, conversation_id, conversation.participants)
        )
        return message

    async def list_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        log = list(self._messages.get(conversation_id, ()))
        if limit is not None:
            log = log[-limit:] if limit > 0 else []
        return log
