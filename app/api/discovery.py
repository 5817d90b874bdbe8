"""
Tandem — Discovery API

Partner listing: every set-up profile whose language pair mirrors the
caller's, minus blocked users in either direction.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from app.api.deps import get_current_user_id, get_services
from app.schemas.profile import PublicProfileResponse
from app.services.container import Services

logger = structlog.get_logger("tandem.api.discovery")

router = APIRouter()


@router.get(
    "",
    response_model=list[PublicProfileResponse],
    summary="List compatible language partners",
)
async def list_partners(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> list[PublicProfileResponse]:
    """Empty until the caller has completed language setup."""
    partners = await services.matching.list_partners(user_id)
    return [PublicProfileResponse.model_validate(p) for p in partners]
