"""Unit tests for ConversationService — one conversation per unordered pair."""
import asyncio

import pytest

from app.errors import InternalError, InvalidArgumentError, NotFoundError, PermissionDeniedError
from app.services.conversation_service import conversation_key
from tests.helpers import make_pair, make_user


class TestConversationKey:
    def test_order_independent(self):
        assert conversation_key("bob", "alice") == conversation_key("alice", "bob") == "alice_bob"

    def test_distinct_pairs_distinct_keys(self):
        assert conversation_key("alice", "bob") != conversation_key("alice", "carol")


class TestGetOrCreate:
    @pytest.mark.asyncio
    async def test_first_call_creates(self, services):
        await make_user(services, "alice", "pt", "en")
        await make_user(services, "bob", "en", "pt")

        conversation, created = await services.conversations.get_or_create_conversation("bob", "alice")

        assert created is True
        assert conversation.id == "alice_bob"
        assert conversation.participants == ("alice", "bob")
        assert conversation.last_message_text is None

    @pytest.mark.asyncio
    async def test_repeat_call_in_either_order_returns_same(self, services):
        first = await make_pair(services)
        again, created = await services.conversations.get_or_create_conversation("bob", "alice")
        assert created is False
        assert again.id == first.id

    @pytest.mark.asyncio
    async def test_concurrent_openers_create_once(self, services, store):
        await make_user(services, "alice", "pt", "en")
        await make_user(services, "bob", "en", "pt")

        calls = [("alice", "bob") if n % 2 == 0 else ("bob", "alice") for n in range(20)]
        results = await asyncio.gather(
            *(services.conversations.get_or_create_conversation(a, b) for a, b in calls)
        )

        assert sum(1 for _, created in results if created) == 1
        assert {c.id for c, _ in results} == {"alice_bob"}
        assert len(await store.list_conversations_for("alice")) == 1

    @pytest.mark.asyncio
    async def test_self_conversation_rejected(self, services):
        await make_user(services, "alice", "pt", "en")
        with pytest.raises(InvalidArgumentError):
            await services.conversations.get_or_create_conversation("alice", "alice")

    @pytest.mark.asyncio
    async def test_missing_id_rejected(self, services):
        with pytest.raises(InvalidArgumentError):
            await services.conversations.get_or_create_conversation("alice", "")

    @pytest.mark.asyncio
    async def test_missing_profile(self, services):
        await make_user(services, "alice", "pt", "en")
        with pytest.raises(NotFoundError):
            await services.conversations.get_or_create_conversation("alice", "ghost")

    @pytest.mark.asyncio
    async def test_blocked_either_way_denied_without_write(self, services, store):
        await make_user(services, "alice", "pt", "en")
        await make_user(services, "bob", "en", "pt")
        await services.profiles.block("bob", "alice")

        for a, b in (("alice", "bob"), ("bob", "alice")):
            with pytest.raises(PermissionDeniedError):
                await services.conversations.get_or_create_conversation(a, b)
        assert await store.get_conversation("alice_bob") is None

    @pytest.mark.asyncio
    async def test_key_collision_detected(self, services):
        for uid in ("a_b", "c", "a", "b_c"):
            await make_user(services, uid)
        await services.conversations.get_or_create_conversation("a_b", "c")

        with pytest.raises(InternalError):
            await services.conversations.get_or_create_conversation("a", "b_c")


class TestGetConversation:
    @pytest.mark.asyncio
    async def test_participant_can_read(self, services):
        conversation = await make_pair(services)
        fetched = await services.conversations.get_conversation("bob", conversation.id)
        assert fetched.id == conversation.id

    @pytest.mark.asyncio
    async def test_outsider_denied(self, services):
        conversation = await make_pair(services)
        await make_user(services, "mallory")
        with pytest.raises(PermissionDeniedError):
            await services.conversations.get_conversation("mallory", conversation.id)

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, services):
        with pytest.raises(NotFoundError):
            await services.conversations.get_conversation("alice", "alice_nobody")


class TestListConversations:
    @pytest.mark.asyncio
    async def test_most_recent_activity_first(self, services):
        await make_user(services, "alice", "pt", "en")
        for uid in ("bob", "carol", "dave"):
            await make_user(services, uid, "en", "pt")
            await services.conversations.get_or_create_conversation("alice", uid)

        await services.messages.append_message("alice", "alice_bob", "first")
        await services.messages.append_message("carol", "alice_carol", "second")

        summaries = await services.conversations.list_conversations("alice")

        assert [s.conversation.id for s in summaries] == ["alice_carol", "alice_bob", "alice_dave"]
        assert [s.other_user.id for s in summaries] == ["carol", "bob", "dave"]

    @pytest.mark.asyncio
    async def test_only_callers_conversations(self, services):
        await make_pair(services, "alice", "bob")
        await make_pair(services, "carol", "dave")
        summaries = await services.conversations.list_conversations("dave")
        assert [s.conversation.id for s in summaries] == ["carol_dave"]
