"""
Tandem — Live feeds

A feed is a fixed query plus a filter on the store's change events.  A
``Subscription`` yields the query's current snapshot once, then a fresh
snapshot after every change event the filter accepts:

    async with feeds.subscribe_conversations(uid) as sub:
        async for snapshot in sub:
            render(snapshot)

Leaving the ``async with`` block (or calling ``close()``) detaches the
listener from the bus immediately; an iteration in progress ends with
``StopAsyncIteration`` instead of waiting for the next event.
Stopping the change bus (application shutdown) ends every open feed the
same way.

Feeds:
  * set-up profiles          — ``profile_setup_complete == True``
  * a user's conversations   — participant filter, last message first
  * a conversation's messages — oldest first
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog

from app.records import ConversationSummary, Message, UserProfile
from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService
from app.store import changes
from app.store.base import ChatStore
from app.store.changes import ChangeEvent

logger = structlog.get_logger("tandem.feed_service")

Fetch = Callable[[], Awaitable[Any]]
EventFilter = Callable[[ChangeEvent], bool]


class Subscription:
    """Snapshot stream for one feed.  Not shareable between consumers."""

    def __init__(self, name: str, store: ChatStore, fetch: Fetch, accepts: EventFilter) -> None:
        self.name = name
        self._fetch = fetch
        self._accepts = accepts
        self._listener = store.changes.listen()
        self._sent_initial = False

    @property
    def closed(self) -> bool:
        return self._listener.closed

    def close(self) -> None:
        if not self.closed:
            self._listener.close()
            logger.debug("feed_closed", feed=self.name)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration
        if not self._sent_initial:
            self._sent_initial = True
            return await self._fetch()

        while True:
            event = await self._next_event()
            if event is None:
                raise StopAsyncIteration
            if not self._accepts(event):
                continue
            # Collapse a burst of pending events into one re-read.
            self._drain_pending()
            return await self._fetch()

    async def _next_event(self) -> ChangeEvent | None:
        get_event = asyncio.ensure_future(self._listener.get())
        wait_closed = asyncio.ensure_future(self._listener.wait_closed())
        try:
            done, _ = await asyncio.wait(
                {get_event, wait_closed}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (get_event, wait_closed):
                if not task.done():
                    task.cancel()
        if get_event in done:
            return get_event.result()
        return None

    def _drain_pending(self) -> None:
        while True:
            try:
                self._listener.queue.get_nowait()
            except asyncio.QueueEmpty:
                return


class FeedService:
    """Factory for the three live feeds the client subscribes to."""

    def __init__(
        self,
        store: ChatStore,
        conversations: ConversationService,
        messages: MessageService,
    ) -> None:
        self.store = store
        self.conversations = conversations
        self.messages = messages

    def subscribe_profiles(self) -> Subscription:
        async def fetch() -> list[UserProfile]:
            return await self.store.list_complete_profiles()

        return Subscription(
            "profiles",
            self.store,
            fetch,
            lambda event: event.kind == changes.PROFILE,
        )

    def subscribe_conversations(self, user_id: str) -> Subscription:
        partners: set[str] = set()

        async def fetch() -> list[ConversationSummary]:
            summaries = await self.conversations.list_conversations(user_id)
            partners.clear()
            partners.update(s.conversation.other_participant(user_id) for s in summaries)
            return summaries

        def accepts(event: ChangeEvent) -> bool:
            # A partner's profile edit changes the other-user half of a summary.
            if event.kind == changes.PROFILE:
                return event.key in partners
            return event.kind in (changes.CONVERSATION, changes.MESSAGE) and event.involves(user_id)

        return Subscription(f"conversations:{user_id}", self.store, fetch, accepts)

    async def subscribe_messages(self, user_id: str, conversation_id: str) -> Subscription:
        """Participant check happens up front so a denied caller never
        receives a subscription object."""
        await self.conversations.get_conversation(user_id, conversation_id)

        async def fetch() -> list[Message]:
            return await self.messages.list_messages(user_id, conversation_id)

        return Subscription(
            f"messages:{conversation_id}",
            self.store,
            fetch,
            lambda event: event.kind == changes.MESSAGE and event.key == conversation_id,
        )
