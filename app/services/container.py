"""
Tandem — Service wiring.

One ``Services`` instance is built per process (or per test) around a single
store and hung on ``app.state``; routes reach it through ``app.api.deps``.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.config import Settings, get_settings
from app.services.conversation_service import ConversationService
from app.services.feed_service import FeedService
from app.services.matching_service import MatchingService
from app.services.message_service import MessageService
from app.services.profile_service import ProfileService
from app.store.base import ChatStore
from app.store.changes import LocalChangeBus, RedisChangeBus


@dataclass
class Services:
    store: ChatStore
    profiles: ProfileService
    matching: MatchingService
    conversations: ConversationService
    messages: MessageService
    feeds: FeedService

    @classmethod
    def build(cls, store: ChatStore) -> "Services":
        conversations = ConversationService(store)
        messages = MessageService(store)
        return cls(
            store=store,
            profiles=ProfileService(store),
            matching=MatchingService(store),
            conversations=conversations,
            messages=messages,
            feeds=FeedService(store, conversations, messages),
        )


def build_change_bus(settings: Settings) -> LocalChangeBus:
    if settings.REDIS_URL:
        return RedisChangeBus(settings.REDIS_URL, settings.REDIS_CHANGES_CHANNEL)
    return LocalChangeBus()


def build_store(settings: Settings | None = None) -> ChatStore:
    """Instantiate the store selected by ``STORE_BACKEND``."""
    settings = settings or get_settings()
    changes = build_change_bus(settings)

    if settings.STORE_BACKEND == "memory":
        from app.store.memory import InMemoryStore

        return InMemoryStore(changes=changes)

    from app.database import get_session_factory
    from app.store.sql import SqlChatStore

    return SqlChatStore(get_session_factory(), changes=changes)
