"""
Tandem — FastAPI dependencies.

The auth provider sits in front of this API and forwards the verified
identity in ``X-User-*`` headers; the core trusts them as given.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from app.errors import UnauthenticatedError
from app.records import Identity
from app.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_identity(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
    x_user_photo: Optional[str] = Header(default=None, alias="X-User-Photo"),
) -> Identity:
    """Resolve the caller identity or raise ``UnauthenticatedError``."""
    uid = (x_user_id or "").strip()
    if not uid:
        raise UnauthenticatedError("Missing caller identity.")
    return Identity(
        uid=uid,
        email=x_user_email or None,
        display_name=x_user_name or None,
        photo_url=x_user_photo or None,
    )


async def get_current_user_id(identity: Identity = Depends(get_identity)) -> str:
    return identity.uid
