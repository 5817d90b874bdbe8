from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional


class LanguageSetupRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    native_language: str = Field(min_length=1, max_length=8)
    target_language: str = Field(min_length=1, max_length=8)


class ProfileDetailsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    display_name: Optional[str] = Field(None, max_length=80)
    photo_url: Optional[str] = Field(None, max_length=2048)


class AuthUserCreatedHook(BaseModel):
    """Payload posted by the auth provider when an account is created."""

    model_config = ConfigDict(extra="forbid")

    uid: str = Field(min_length=1, max_length=128)
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class PublicProfileResponse(BaseModel):
    id: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    native_language: Optional[str] = None
    target_language: Optional[str] = None

    model_config = {"from_attributes": True}


class ProfileResponse(PublicProfileResponse):
    email: Optional[str] = None
    profile_setup_complete: bool
    blocked_users: list[str] = []
    created_at: Optional[datetime] = None


class EnsureProfileResponse(BaseModel):
    created: bool
    profile: ProfileResponse


class BlockListResponse(BaseModel):
    blocked_users: list[str]


class LanguageOption(BaseModel):
    code: str
    name: str
