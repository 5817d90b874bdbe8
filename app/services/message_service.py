"""
Tandem — Message Ledger

Append-only, per-conversation message log plus the denormalised
``last_message_*`` summary on the conversation.  The append checks run in a
fixed order, each with its own failure:

  1. conversation exists                     → NotFoundError
  2. trimmed text non-empty and within limit → InvalidArgumentError
  3. sender is a participant                 → PermissionDeniedError
  4. recipient has not blocked the sender    → PermissionDeniedError

Only then is the store asked for its single atomic write (message + summary).
"""

from __future__ import annotations

import structlog

from app.config import get_settings
from app.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from app.records import Conversation, Message
from app.store.base import ChatStore

logger = structlog.get_logger("tandem.message_service")


class MessageService:
    """Append and list messages of a conversation."""

    def __init__(
        self,
        store: ChatStore,
        max_length: int | None = None,
        page_limit: int | None = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.max_length: int = max_length or settings.MAX_MESSAGE_LENGTH      # 500
        self.page_limit: int = page_limit or settings.MESSAGE_PAGE_LIMIT      # 200

    async def append_message(
        self,
        sender_id: str,
        conversation_id: str,
        text: str | None,
    ) -> Message:
        """Validate and append one message.

        Exactly one store write per call; the returned message is the one
        that was stored.

        Parameters
        ----------
        sender_id:
            Authenticated caller.
        conversation_id:
            Canonical conversation id.
        text:
            Raw message body.  Leading and trailing whitespace is dropped
            before validation and storage.
        """
        log = logger.bind(sender_id=sender_id, conversation_id=conversation_id)

        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found.")

        body = self._clean_text(text)

        if not conversation.has_participant(sender_id):
            log.warning("append_denied_not_participant")
            raise PermissionDeniedError("You are not a participant of this conversation.")

        recipient_id = conversation.other_participant(sender_id)
        recipient = await self.store.get_profile(recipient_id)
        if recipient is not None and recipient.has_blocked(sender_id):
            log.warning("append_denied_blocked", recipient_id=recipient_id)
            raise PermissionDeniedError("The recipient has blocked you.")

        message = await self.store.append_message(conversation_id, sender_id, body)
        log.info("message_appended", message_id=message.id, length=len(body))
        return message

    async def list_messages(
        self,
        user_id: str,
        conversation_id: str,
        limit: int | None = None,
    ) -> list[Message]:
        """Messages oldest first.  ``limit`` keeps the most recent ones and
        is capped at ``page_limit``."""
        await self._participant_conversation(user_id, conversation_id)

        if limit is not None and limit < 1:
            raise InvalidArgumentError("limit must be positive.")
        effective = min(limit or self.page_limit, self.page_limit)

        return await self.store.list_messages(conversation_id, limit=effective)

    async def _participant_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found.")
        if not conversation.has_participant(user_id):
            raise PermissionDeniedError("You are not a participant of this conversation.")
        return conversation

    def _clean_text(self, text: str | None) -> str:
        body = (text or "").strip()
        if not body:
            raise InvalidArgumentError("Message text must not be empty.")
        if len(body) > self.max_length:
            raise InvalidArgumentError(
                f"Message text must be at most {self.max_length} characters."
            )
        return body
