"""
Tandem — Live feed API (Server-Sent Events)

Each endpoint streams ``event: snapshot`` frames whose ``data`` is the full
JSON listing, first immediately and then after every relevant write.  A
comment frame is sent every ``FEED_KEEPALIVE_SECONDS`` while idle so proxies
keep the connection open.  When the client disconnects the subscription is
closed and detached from the change bus.
"""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Callable

import structlog
from fastapi import APIRouter, Depends
from starlette.responses import StreamingResponse

from app.api.conversations import conversation_list_item
from app.api.deps import get_current_user_id, get_services
from app.config import get_settings
from app.schemas.conversation import MessageResponse
from app.schemas.profile import PublicProfileResponse
from app.services.container import Services
from app.services.feed_service import Subscription

logger = structlog.get_logger("tandem.api.feeds")

router = APIRouter()

_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


async def _event_stream(
    subscription: Subscription,
    serialise: Callable[[object], list[dict]],
    keepalive_seconds: float,
) -> AsyncIterator[str]:
    pending: asyncio.Future | None = None
    logger.info("feed_opened", feed=subscription.name)
    try:
        async with subscription:
            while True:
                if pending is None:
                    pending = asyncio.ensure_future(subscription.__anext__())
                done, _ = await asyncio.wait({pending}, timeout=keepalive_seconds)
                if not done:
                    yield ": keepalive\n\n"
                    continue
                task, pending = pending, None
                try:
                    snapshot = task.result()
                except StopAsyncIteration:
                    break
                payload = json.dumps(serialise(snapshot))
                yield f"event: snapshot\ndata: {payload}\n\n"
    finally:
        if pending is not None:
            pending.cancel()
        logger.info("feed_released", feed=subscription.name)


def _stream_response(subscription: Subscription, serialise: Callable[[object], list[dict]]) -> StreamingResponse:
    return StreamingResponse(
        _event_stream(subscription, serialise, get_settings().FEED_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.get("/profiles", summary="Live feed of set-up profiles")
async def profiles_feed(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    def serialise(profiles) -> list[dict]:
        return [PublicProfileResponse.model_validate(p).model_dump(mode="json") for p in profiles]

    return _stream_response(services.feeds.subscribe_profiles(), serialise)


@router.get("/conversations", summary="Live feed of the caller's conversations")
async def conversations_feed(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    def serialise(summaries) -> list[dict]:
        return [conversation_list_item(user_id, s).model_dump(mode="json") for s in summaries]

    return _stream_response(services.feeds.subscribe_conversations(user_id), serialise)


@router.get(
    "/conversations/{conversation_id}/messages",
    summary="Live feed of a conversation's messages",
)
async def messages_feed(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    def serialise(messages) -> list[dict]:
        return [MessageResponse.model_validate(m).model_dump(mode="json") for m in messages]

    subscription = await services.feeds.subscribe_messages(user_id, conversation_id)
    return _stream_response(subscription, serialise)
