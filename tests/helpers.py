"""Builders shared by the service and API tests."""
import itertools

from app.records import Identity
from app.services.container import Services

_uid_counter = itertools.count(1)


def make_identity(uid: str | None = None, name: str | None = None) -> Identity:
    uid = uid or f"user-{next(_uid_counter):04d}"
    return Identity(uid=uid, email=f"{uid}@example.com", display_name=name or uid.title())


async def make_user(services: Services, uid: str, native: str | None = None, target: str | None = None):
    """Create a profile and, when languages are given, complete its setup."""
    profile, _ = await services.profiles.ensure_profile(make_identity(uid))
    if native and target:
        profile = await services.profiles.complete_setup(uid, native, target)
    return profile


async def make_pair(services: Services, a: str = "alice", b: str = "bob"):
    """Two complementary users and their conversation."""
    await make_user(services, a, "pt", "en")
    await make_user(services, b, "en", "pt")
    conversation, _ = await services.conversations.get_or_create_conversation(a, b)
    return conversation
