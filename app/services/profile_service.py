"""
Tandem — Profile Store & Block Relation

Owns the per-user profile lifecycle:
  1. ``ensure_profile``  — idempotent creation on first authentication
  2. ``complete_setup``  — set the native / target language pair
  3. ``update_details``  — descriptive fields (display name, photo)
  4. ``block`` / ``unblock`` — the caller's own block set

Validation always runs before the store is touched, so a rejected request
never leaves a partial write behind.
"""

from __future__ import annotations

import structlog

from app.errors import InvalidArgumentError, NotFoundError
from app.records import Identity, Language, UserProfile
from app.store.base import ChatStore

logger = structlog.get_logger("tandem.profile_service")


_LANGUAGE_CODES: frozenset[str] = frozenset(lang.value for lang in Language)


def normalise_language(code: str | None, field: str) -> str:
    """Return ``code`` lower-cased and stripped, or raise ``InvalidArgumentError``."""
    if code is None or not str(code).strip():
        raise InvalidArgumentError(f"{field} is required.")
    value = str(code).strip().lower()
    if value not in _LANGUAGE_CODES:
        raise InvalidArgumentError(
            f"{field} {code!r} is not supported. Choose one of: {', '.join(sorted(_LANGUAGE_CODES))}."
        )
    return value


class ProfileService:
    """Profile creation, language setup and block-list management."""

    DETAIL_FIELDS: tuple[str, ...] = ("display_name", "photo_url")
    MAX_DISPLAY_NAME_LENGTH: int = 80

    def __init__(self, store: ChatStore) -> None:
        self.store = store

    # ══════════════════════════════════════════════════════════════════════
    # Lifecycle
    # ══════════════════════════════════════════════════════════════════════

    async def ensure_profile(self, identity: Identity) -> tuple[UserProfile, bool]:
        """Return the caller's profile, creating an empty one if missing.

        Safe to call from both the auth provider's user-created hook and the
        client after sign-in: whichever runs second sees ``created=False``
        and the existing record is returned untouched.

        Parameters
        ----------
        identity:
            Verified identity supplied by the auth provider.

        Returns
        -------
        tuple[UserProfile, bool]
            The profile and whether this call created it.
        """
        uid = (identity.uid or "").strip()
        if not uid:
            raise InvalidArgumentError("User id is required.")

        log = logger.bind(user_id=uid)

        existing = await self.store.get_profile(uid)
        if existing is not None:
            log.debug("ensure_profile_exists")
            return existing, False

        profile, created = await self.store.create_profile_if_absent(identity)
        if created:
            log.info("profile_created")
        else:
            log.info("profile_create_raced", note="another caller created it first")
        return profile, created

    async def get_profile(self, uid: str) -> UserProfile:
        profile = await self.store.get_profile(uid)
        if profile is None:
            raise NotFoundError(f"Profile {uid} not found.")
        return profile

    async def complete_setup(
        self,
        uid: str,
        native_language: str | None,
        target_language: str | None,
    ) -> UserProfile:
        """Set both languages and mark the profile as set up.

        Re-invoking with a different pair overwrites the previous one.

        Raises
        ------
        InvalidArgumentError
            Either language missing or unknown, or both equal.
        NotFoundError
            No profile for ``uid``.
        """
        native = normalise_language(native_language, "nativeLanguage")
        target = normalise_language(target_language, "targetLanguage")
        if native == target:
            raise InvalidArgumentError("Native and target languages must differ.")

        profile = await self.store.set_languages(uid, native, target)
        if profile is None:
            raise NotFoundError(f"Profile {uid} not found.")

        logger.info(
            "profile_setup_complete",
            user_id=uid,
            native_language=native,
            target_language=target,
        )
        return profile

    async def update_details(self, uid: str, **fields: str | None) -> UserProfile:
        """Update descriptive fields.  Unknown field names are rejected."""
        unknown = set(fields) - set(self.DETAIL_FIELDS)
        if unknown:
            raise InvalidArgumentError(f"Unknown profile fields: {', '.join(sorted(unknown))}.")

        cleaned: dict[str, str | None] = {}
        for name, value in fields.items():
            value = value.strip() if isinstance(value, str) else value
            cleaned[name] = value or None

        display_name = cleaned.get("display_name")
        if display_name and len(display_name) > self.MAX_DISPLAY_NAME_LENGTH:
            raise InvalidArgumentError(
                f"display_name must be at most {self.MAX_DISPLAY_NAME_LENGTH} characters."
            )

        if not cleaned:
            return await self.get_profile(uid)

        profile = await self.store.update_profile_details(uid, cleaned)
        if profile is None:
            raise NotFoundError(f"Profile {uid} not found.")

        logger.info("profile_details_updated", user_id=uid, fields=sorted(cleaned))
        return profile

    # ══════════════════════════════════════════════════════════════════════
    # Block relation
    # ══════════════════════════════════════════════════════════════════════

    async def block(self, uid: str, target_id: str) -> None:
        """Add ``target_id`` to the caller's block set.  Re-blocking is a no-op."""
        target = self._validate_target(uid, target_id)
        added = await self.store.add_block(uid, target)
        logger.info("user_blocked", user_id=uid, target_id=target, changed=added)

    async def unblock(self, uid: str, target_id: str) -> None:
        """Remove ``target_id`` from the caller's block set.  Absent is a no-op,
        and the caller's own id is always absent."""
        target = (target_id or "").strip()
        if not target:
            raise InvalidArgumentError("Target user id is required.")
        if target == uid:
            logger.debug("user_unblock_self_noop", user_id=uid)
            return
        removed = await self.store.remove_block(uid, target)
        logger.info("user_unblocked", user_id=uid, target_id=target, changed=removed)

    async def list_blocked(self, uid: str) -> list[str]:
        profile = await self.get_profile(uid)
        return sorted(profile.blocked_users)

    @staticmethod
    def _validate_target(uid: str, target_id: str | None) -> str:
        target = (target_id or "").strip()
        if not target:
            raise InvalidArgumentError("Target user id is required.")
        if target == uid:
            raise InvalidArgumentError("You cannot block yourself.")
        return target
