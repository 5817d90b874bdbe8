"""
Tandem — Domain records.

Plain immutable values passed between the stores, the services and the API
layer.  Stores convert their own representation (ORM rows, dict entries)
into these before handing them out, so services never touch a session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Language(str, Enum):
    """Closed set of languages a user can speak or learn."""

    PORTUGUESE = "pt"
    ENGLISH = "en"
    SPANISH = "es"
    FRENCH = "fr"
    GERMAN = "de"
    ITALIAN = "it"
    JAPANESE = "ja"
    KOREAN = "ko"
    CHINESE = "zh"
    ARABIC = "ar"


LANGUAGE_NAMES: dict[str, str] = {
    "pt": "Português",
    "en": "English",
    "es": "Español",
    "fr": "Français",
    "de": "Deutsch",
    "it": "Italiano",
    "ja": "日本語",
    "ko": "한국어",
    "zh": "中文",
    "ar": "العربية",
}


@dataclass(frozen=True, slots=True)
class Identity:
    """Verified caller identity as supplied by the auth provider."""

    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None


@dataclass(frozen=True, slots=True)
class UserProfile:
    id: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None
    native_language: str | None = None
    target_language: str | None = None
    profile_setup_complete: bool = False
    blocked_users: frozenset[str] = field(default_factory=frozenset)
    created_at: datetime | None = None

    def has_blocked(self, uid: str) -> bool:
        return uid in self.blocked_users


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    user_a_id: str
    user_b_id: str
    created_at: datetime | None = None
    last_message_text: str | None = None
    last_message_at: datetime | None = None
    last_message_sender_id: str | None = None

    @property
    def participants(self) -> tuple[str, str]:
        return (self.user_a_id, self.user_b_id)

    def has_participant(self, uid: str) -> bool:
        return uid in self.participants

    def other_participant(self, uid: str) -> str:
        """Return the participant that is not ``uid``."""
        if uid == self.user_a_id:
            return self.user_b_id
        if uid == self.user_b_id:
            return self.user_a_id
        raise ValueError(f"{uid!r} is not a participant of {self.id!r}")


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    conversation_id: str
    sender_id: str
    text: str
    created_at: datetime
    position: int = 0


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    """A conversation as seen from one participant's chat list."""

    conversation: Conversation
    other_user: UserProfile | None
