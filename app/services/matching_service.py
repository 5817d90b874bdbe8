"""
Tandem — Compatibility Matcher

Two users are language-exchange partners when each one's native language is
the other's target language.  ``is_eligible`` is the single rule, used both
by the discovery listing and (for its block and self checks) before a
conversation is opened:

  1. a.id != b.id
  2. neither has blocked the other
  3. a.native == b.target  AND  a.target == b.native
  4. both profiles have finished setup

Matching is exact; there is no partial or fuzzy scoring and no ranking.
"""

from __future__ import annotations

import structlog

from app.errors import NotFoundError
from app.records import UserProfile
from app.store.base import ChatStore

logger = structlog.get_logger("tandem.matching_service")


def is_blocked_either_way(a: UserProfile, b: UserProfile) -> bool:
    return a.has_blocked(b.id) or b.has_blocked(a.id)


def is_complementary(a: UserProfile, b: UserProfile) -> bool:
    if not (a.native_language and a.target_language):
        return False
    return (
        a.native_language == b.target_language
        and a.target_language == b.native_language
    )


def is_eligible(a: UserProfile, b: UserProfile) -> bool:
    """Pure, symmetric predicate: may ``a`` and ``b`` be matched?"""
    if a.id == b.id:
        return False
    if is_blocked_either_way(a, b):
        return False
    if not (a.profile_setup_complete and b.profile_setup_complete):
        return False
    return is_complementary(a, b)


class MatchingService:
    """Discovery listing built on ``is_eligible``."""

    def __init__(self, store: ChatStore) -> None:
        self.store = store

    async def list_partners(self, uid: str) -> list[UserProfile]:
        """Return every set-up profile eligible to chat with ``uid``.

        An incomplete caller profile yields an empty list rather than an
        error: discovery is simply not available until setup is done.

        Raises
        ------
        NotFoundError
            No profile for ``uid``.
        """
        log = logger.bind(user_id=uid)

        me = await self.store.get_profile(uid)
        if me is None:
            raise NotFoundError(f"Profile {uid} not found.")

        if not me.profile_setup_complete:
            log.info("list_partners_setup_incomplete")
            return []

        candidates = await self.store.list_complete_profiles()
        partners = [other for other in candidates if is_eligible(me, other)]

        log.info(
            "list_partners_complete",
            candidates=len(candidates),
            partners=len(partners),
        )
        return partners
