"""
Tandem — Chat Identity Resolver

Every unordered pair of users owns at most one conversation.  Its id is
derived, not generated:

    conversation_key("bob", "alice") == conversation_key("alice", "bob") == "alice_bob"

so "does a conversation already exist" is a primary-key lookup, and the
store's create-if-absent primitive arbitrates concurrent openers.  Nothing
scans a user's existing conversations.
"""

from __future__ import annotations

import structlog

from app.errors import (
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from app.records import Conversation, ConversationSummary
from app.services.matching_service import is_blocked_either_way
from app.store.base import ChatStore

logger = structlog.get_logger("tandem.conversation_service")

KEY_SEPARATOR = "_"


def conversation_key(user_one: str, user_two: str) -> str:
    """Canonical conversation id for an unordered pair of user ids."""
    low, high = sorted((user_one, user_two))
    return f"{low}{KEY_SEPARATOR}{high}"


class ConversationService:
    """Get-or-create and listing of one-to-one conversations."""

    def __init__(self, store: ChatStore) -> None:
        self.store = store

    async def get_or_create_conversation(
        self,
        user_id: str,
        other_user_id: str,
    ) -> tuple[Conversation, bool]:
        """Return the pair's conversation, creating it on first request.

        Parameters
        ----------
        user_id:
            The caller.
        other_user_id:
            The peer to talk to.  Argument order never changes the result.

        Returns
        -------
        tuple[Conversation, bool]
            The conversation and ``True`` only for the single call whose
            create won.

        Raises
        ------
        InvalidArgumentError
            Missing id, or both ids equal.
        NotFoundError
            Either profile missing.
        PermissionDeniedError
            Either user has blocked the other.
        """
        a = (user_id or "").strip()
        b = (other_user_id or "").strip()
        if not a or not b:
            raise InvalidArgumentError("Both user ids are required.")
        if a == b:
            raise InvalidArgumentError("Cannot open a conversation with yourself.")

        log = logger.bind(user_id=a, other_user_id=b)

        profiles = await self.store.get_profiles([a, b])
        for uid in (a, b):
            if uid not in profiles:
                raise NotFoundError(f"Profile {uid} not found.")

        if is_blocked_either_way(profiles[a], profiles[b]):
            log.warning("conversation_denied_blocked")
            raise PermissionDeniedError("One of the users has blocked the other.")

        key = conversation_key(a, b)
        pair = tuple(sorted((a, b)))

        conversation = await self.store.get_conversation(key)
        created = False
        if conversation is None:
            conversation, created = await self.store.create_conversation_if_absent(
                key, pair[0], pair[1]
            )

        if conversation.participants != pair:
            # Ids containing the separator can map two pairs onto one key.
            log.error("conversation_key_collision", conversation_id=key)
            raise InternalError(f"Conversation key {key!r} belongs to another pair.")
        if created:
            log.info("conversation_created", conversation_id=key)
        else:
            log.debug("conversation_exists", conversation_id=key)
        return conversation, created

    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        """Fetch a conversation the caller participates in."""
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found.")
        if not conversation.has_participant(user_id):
            raise PermissionDeniedError("You are not a participant of this conversation.")
        return conversation

    async def list_conversations(self, user_id: str) -> list[ConversationSummary]:
        """The caller's chat list, most recent activity first, each paired
        with the other participant's profile (``None`` if it vanished)."""
        conversations = await self.store.list_conversations_for(user_id)
        others = [c.other_participant(user_id) for c in conversations]
        profiles = await self.store.get_profiles(sorted(set(others)))

        logger.info("list_conversations", user_id=user_id, count=len(conversations))
        return [
            ConversationSummary(conversation=c, other_user=profiles.get(other))
            for c, other in zip(conversations, others)
        ]
