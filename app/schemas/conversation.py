from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

from app.schemas.profile import PublicProfileResponse


class ConversationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    other_user_id: str = Field(min_length=1, max_length=128)


class ConversationResponse(BaseModel):
    id: str
    participants: list[str]
    created_at: Optional[datetime] = None
    last_message_text: Optional[str] = None
    last_message_at: Optional[datetime] = None
    last_message_sender_id: Optional[str] = None

    model_config = {"from_attributes": True}


class ConversationOpenResponse(BaseModel):
    created: bool
    conversation: ConversationResponse


class ConversationListItem(ConversationResponse):
    other_user_id: str
    other_user: Optional[PublicProfileResponse] = None


class MessageCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Length is enforced after trimming by the message service.
    text: str


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    text: str
    created_at: datetime

    model_config = {"from_attributes": True}
