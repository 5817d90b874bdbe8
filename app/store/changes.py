"""
Tandem — Change notification channel.

Stores publish a ``ChangeEvent`` after every committed write.  Live feeds
listen on the bus and re-read their query when a relevant event arrives, so
events only need to say *what* changed, never the new data.

Two implementations:

* ``LocalChangeBus`` — in-process fan-out over ``asyncio.Queue``.
* ``RedisChangeBus`` — relays events through Redis pub/sub so that every API
  process sees writes made by the others.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, dataclass

import structlog

logger = structlog.get_logger("tandem.store.changes")

PROFILE = "profile"
CONVERSATION = "conversation"
MESSAGE = "message"

_LISTENER_QUEUE_SIZE = 64


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    kind: str
    key: str
    participants: tuple[str, ...] = ()

    def involves(self, uid: str) -> bool:
        return uid in self.participants

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ChangeEvent":
        data = json.loads(raw)
        return cls(
            kind=data["kind"],
            key=data["key"],
            participants=tuple(data.get("participants") or ()),
        )


class ChangeListener:
    """One consumer's view of the bus.  Release it with ``close()``."""

    def __init__(self, bus: "LocalChangeBus") -> None:
        self._bus = bus
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=_LISTENER_QUEUE_SIZE)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def deliver(self, event: ChangeEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            # Listener already has unread events pending, it will re-read anyway.
            pass

    async def get(self) -> ChangeEvent:
        return await self.queue.get()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def close(self) -> None:
        if not self.closed:
            self._closed.set()
            self._bus._detach(self)


class LocalChangeBus:
    """In-process publish/subscribe for change events."""

    def __init__(self) -> None:
        self._listeners: set[ChangeListener] = set()

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        for listener in list(self._listeners):
            listener.close()

    async def ping(self) -> None:
        return None

    def listen(self) -> ChangeListener:
        listener = ChangeListener(self)
        self._listeners.add(listener)
        return listener

    def _detach(self, listener: ChangeListener) -> None:
        self._listeners.discard(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _dispatch(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            listener.deliver(event)

    async def publish(self, event: ChangeEvent) -> None:
        self._dispatch(event)


class RedisChangeBus(LocalChangeBus):
    """Change bus backed by a Redis pub/sub channel.

    Local publishes are not dispatched directly: they come back through the
    subscription like everybody else's, so each listener sees an event once.
    """

    def __init__(self, redis_url: str, channel: str) -> None:
        super().__init__()
        self.redis_url = redis_url
        self.channel = channel
        self._client = None
        self._pubsub = None
        self._reader: asyncio.Task | None = None

    async def start(self) -> None:
        import redis.asyncio as aioredis

        self._client = aioredis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        await self._client.ping()
        self._pubsub = self._client.pubsub()
        await self._pubsub.subscribe(self.channel)
        self._reader = asyncio.create_task(self._read_loop())
        logger.info("redis_change_bus_started", channel=self.channel)

    async def stop(self) -> None:
        await super().stop()
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            self._pubsub = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("redis_change_bus_stopped")

    async def ping(self) -> None:
        if self._client is None:
            raise RuntimeError("Redis change bus not started")
        await self._client.ping()

    async def publish(self, event: ChangeEvent) -> None:
        if self._client is None:
            raise RuntimeError("Redis change bus not started")
        await self._client.publish(self.channel, event.to_json())

    async def _read_loop(self) -> None:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                event = ChangeEvent.from_json(message["data"])
            except (ValueError, KeyError, TypeError):
                logger.warning("redis_change_event_malformed", data=message.get("data"))
                continue
            self._dispatch(event)
