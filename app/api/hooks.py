"""
Tandem — Auth provider hooks

The auth provider calls ``/hooks/auth/user-created`` right after an account
is created.  It races with the client's own ``POST /profiles/me``; both go
through the same idempotent ``ensure_profile``.
"""

from __future__ import annotations

import hmac
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, Response, status

from app.api.deps import get_services
from app.api.profiles import profile_response
from app.config import get_settings
from app.errors import UnauthenticatedError
from app.records import Identity
from app.schemas.profile import AuthUserCreatedHook, EnsureProfileResponse
from app.services.container import Services

logger = structlog.get_logger("tandem.api.hooks")

router = APIRouter()


def _verify_hook_secret(provided: Optional[str]) -> None:
    expected = get_settings().AUTH_HOOK_SECRET
    if not expected:
        raise UnauthenticatedError("Auth hook is not configured.")
    if not provided or not hmac.compare_digest(provided, expected):
        logger.warning("auth_hook_bad_secret")
        raise UnauthenticatedError("Invalid hook secret.")


@router.post(
    "/auth/user-created",
    response_model=EnsureProfileResponse,
    summary="Auth provider hook: a user account was created",
)
async def auth_user_created(
    payload: AuthUserCreatedHook,
    response: Response,
    x_hook_secret: Optional[str] = Header(default=None, alias="X-Hook-Secret"),
    services: Services = Depends(get_services),
) -> EnsureProfileResponse:
    _verify_hook_secret(x_hook_secret)

    identity = Identity(
        uid=payload.uid,
        email=payload.email,
        display_name=payload.display_name,
        photo_url=payload.photo_url,
    )
    profile, created = await services.profiles.ensure_profile(identity)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return EnsureProfileResponse(created=created, profile=profile_response(profile))
