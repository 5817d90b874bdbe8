"""
Tandem — Store abstraction.

Services receive a ``ChatStore`` at construction time and never reach for a
global handle.  Two implementations ship with the app:

* ``app.store.sql.SqlChatStore`` — PostgreSQL through async SQLAlchemy.
* ``app.store.memory.InMemoryStore`` — process-local, used by tests and by
  ``STORE_BACKEND=memory`` for local development.

Contract shared by both:

* ``create_profile_if_absent`` and ``create_conversation_if_absent`` are
  conditional writes.  Exactly one concurrent caller gets ``created=True``
  and nobody overwrites an existing record.
* ``append_message`` inserts the message and refreshes the conversation's
  ``last_message_*`` summary as one unit.  On failure neither is visible.
* Every committed write publishes a ``ChangeEvent`` on ``self.changes``.
  Publishing is best effort: a failure is logged and the write still stands.
"""

from __future__ import annotations

import abc
from datetime import datetime, timezone

import structlog

from app.records import Conversation, Identity, Message, UserProfile
from app.store.changes import ChangeEvent, LocalChangeBus

logger = structlog.get_logger("tandem.store")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatStore(abc.ABC):
    """Persistence boundary for profiles, blocks, conversations and messages."""

    def __init__(self, changes: LocalChangeBus | None = None) -> None:
        self.changes: LocalChangeBus = changes if changes is not None else LocalChangeBus()

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def startup(self) -> None:
        await self.changes.start()

    async def shutdown(self) -> None:
        await self.changes.stop()

    @abc.abstractmethod
    async def ping(self) -> None:
        """Raise if the backing store is unreachable."""

    async def _publish(self, event: ChangeEvent) -> None:
        # Runs after commit: a lost notification must not fail a stored write.
        try:
            await self.changes.publish(event)
        except Exception:
            logger.exception("change_publish_failed", kind=event.kind, key=event.key)

    # ── Profiles ──────────────────────────────────────────────────────────

    @abc.abstractmethod
    async def get_profile(self, uid: str) -> UserProfile | None: ...

    @abc.abstractmethod
    async def get_profiles(self, uids: list[str]) -> dict[str, UserProfile]: ...

    @abc.abstractmethod
    async def create_profile_if_absent(self, identity: Identity) -> tuple[UserProfile, bool]: ...

    @abc.abstractmethod
    async def set_languages(
        self, uid: str, native_language: str, target_language: str
    ) -> UserProfile | None: ...

    @abc.abstractmethod
    async def update_profile_details(self, uid: str, fields: dict) -> UserProfile | None: ...

    @abc.abstractmethod
    async def list_complete_profiles(self) -> list[UserProfile]: ...

    # ── Blocks ────────────────────────────────────────────────────────────

    @abc.abstractmethod
    async def add_block(self, uid: str, target_id: str) -> bool:
        """Add ``target_id`` to ``uid``'s block set.  Returns False if already present."""

    @abc.abstractmethod
    async def remove_block(self, uid: str, target_id: str) -> bool:
        """Remove ``target_id`` from ``uid``'s block set.  Returns False if absent."""

    # ── Conversations ─────────────────────────────────────────────────────

    @abc.abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    @abc.abstractmethod
    async def create_conversation_if_absent(
        self, conversation_id: str, user_a_id: str, user_b_id: str
    ) -> tuple[Conversation, bool]: ...

    @abc.abstractmethod
    async def list_conversations_for(self, uid: str) -> list[Conversation]:
        """Conversations ``uid`` takes part in, most recent activity first."""

    # ── Messages ──────────────────────────────────────────────────────────

    @abc.abstractmethod
    async def append_message(self, conversation_id: str, sender_id: str, text: str) -> Message: ...

    @abc.abstractmethod
    async def list_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        """Oldest first.  With ``limit``, the most recent ``limit`` messages."""
