"""
Tandem — Conversations API

Opening a conversation with a partner, the caller's chat list, and the
message log of a single conversation.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_current_user_id, get_services
from app.records import ConversationSummary
from app.schemas.conversation import (
    ConversationCreate,
    ConversationListItem,
    ConversationOpenResponse,
    ConversationResponse,
    MessageCreate,
    MessageResponse,
)
from app.schemas.profile import PublicProfileResponse
from app.services.container import Services

logger = structlog.get_logger("tandem.api.conversations")

router = APIRouter()


def conversation_list_item(user_id: str, summary: ConversationSummary) -> ConversationListItem:
    conversation = summary.conversation
    base = ConversationResponse.model_validate(conversation)
    return ConversationListItem(
        **base.model_dump(),
        other_user_id=conversation.other_participant(user_id),
        other_user=(
            PublicProfileResponse.model_validate(summary.other_user)
            if summary.other_user is not None
            else None
        ),
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Get or create the conversation with another user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=ConversationOpenResponse,
    summary="Open (or reopen) a conversation with another user",
)
async def open_conversation(
    payload: ConversationCreate,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> ConversationOpenResponse:
    """Returns 201 for the call that created the conversation and 200 for
    every later (or concurrent, losing) call for the same pair."""
    conversation, created = await services.conversations.get_or_create_conversation(
        user_id, payload.other_user_id
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return ConversationOpenResponse(
        created=created,
        conversation=ConversationResponse.model_validate(conversation),
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET / — Caller's chat list
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=list[ConversationListItem],
    summary="List the caller's conversations",
)
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> list[ConversationListItem]:
    summaries = await services.conversations.list_conversations(user_id)
    return [conversation_list_item(user_id, s) for s in summaries]


# ──────────────────────────────────────────────────────────────────────────────
# GET /{conversation_id} — Single conversation
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{conversation_id}",
    response_model=ConversationResponse,
    summary="Get a conversation by id",
)
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> ConversationResponse:
    conversation = await services.conversations.get_conversation(user_id, conversation_id)
    return ConversationResponse.model_validate(conversation)


# ──────────────────────────────────────────────────────────────────────────────
# Messages
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    conversation_id: str,
    payload: MessageCreate,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> MessageResponse:
    message = await services.messages.append_message(user_id, conversation_id, payload.text)
    return MessageResponse.model_validate(message)


@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageResponse],
    summary="List messages, oldest first",
)
async def list_messages(
    conversation_id: str,
    limit: Optional[int] = Query(None, ge=1, description="Most recent N messages"),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> list[MessageResponse]:
    messages = await services.messages.list_messages(user_id, conversation_id, limit=limit)
    return [MessageResponse.model_validate(m) for m in messages]
