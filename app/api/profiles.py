"""
Tandem — Profiles API

Endpoints for the caller's own profile: creation, language setup,
descriptive details and the block list.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response, status

from app.api.deps import get_current_user_id, get_identity, get_services
from app.records import LANGUAGE_NAMES, Identity, UserProfile
from app.schemas.profile import (
    BlockListResponse,
    EnsureProfileResponse,
    LanguageOption,
    LanguageSetupRequest,
    ProfileDetailsUpdate,
    ProfileResponse,
)
from app.services.container import Services

logger = structlog.get_logger("tandem.api.profiles")

router = APIRouter()


def profile_response(profile: UserProfile) -> ProfileResponse:
    response = ProfileResponse.model_validate(profile)
    response.blocked_users = sorted(profile.blocked_users)
    return response


# ──────────────────────────────────────────────────────────────────────────────
# GET /languages — Supported language codes
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/languages",
    response_model=list[LanguageOption],
    summary="List supported languages",
)
async def list_languages() -> list[LanguageOption]:
    return [LanguageOption(code=code, name=name) for code, name in LANGUAGE_NAMES.items()]


# ──────────────────────────────────────────────────────────────────────────────
# POST /me — Ensure the caller has a profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/me",
    response_model=EnsureProfileResponse,
    summary="Create the caller's profile if it does not exist",
)
async def ensure_profile(
    response: Response,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> EnsureProfileResponse:
    """Idempotent: returns 201 when this call created the profile, 200 when
    it already existed (existing fields are never overwritten)."""
    profile, created = await services.profiles.ensure_profile(identity)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return EnsureProfileResponse(created=created, profile=profile_response(profile))


# ──────────────────────────────────────────────────────────────────────────────
# GET /me — Caller's profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/me",
    response_model=ProfileResponse,
    summary="Get the caller's profile",
)
async def get_my_profile(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> ProfileResponse:
    profile = await services.profiles.get_profile(user_id)
    return profile_response(profile)


# ──────────────────────────────────────────────────────────────────────────────
# PUT /me/languages — Complete profile setup
# ──────────────────────────────────────────────────────────────────────────────

@router.put(
    "/me/languages",
    response_model=ProfileResponse,
    summary="Set native and target language",
)
async def complete_setup(
    payload: LanguageSetupRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> ProfileResponse:
    """Set the language pair and mark the profile as set up.

    The two languages must be supported codes and must differ.
    """
    profile = await services.profiles.complete_setup(
        user_id, payload.native_language, payload.target_language
    )
    return profile_response(profile)


# ──────────────────────────────────────────────────────────────────────────────
# PATCH /me — Update descriptive fields
# ──────────────────────────────────────────────────────────────────────────────

@router.patch(
    "/me",
    response_model=ProfileResponse,
    summary="Update display name or photo",
)
async def update_details(
    payload: ProfileDetailsUpdate,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> ProfileResponse:
    """Only fields present in the request body are applied."""
    update_data = payload.model_dump(exclude_unset=True)
    profile = await services.profiles.update_details(user_id, **update_data)
    return profile_response(profile)


# ──────────────────────────────────────────────────────────────────────────────
# Block list
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/me/blocks",
    response_model=BlockListResponse,
    summary="List users the caller has blocked",
)
async def list_blocks(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> BlockListResponse:
    return BlockListResponse(blocked_users=await services.profiles.list_blocked(user_id))


@router.put(
    "/me/blocks/{target_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Block a user",
)
async def block_user(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Response:
    await services.profiles.block(user_id, target_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/me/blocks/{target_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unblock a user",
)
async def unblock_user(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Response:
    await services.profiles.unblock(user_id, target_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
