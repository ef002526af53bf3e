"""Message bus contract and an in-process implementation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)


@dataclass
class Message:
    topic: str
    key: str | None
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)
    offset: int = 0
    partition: int = 0


MessageHandler = Callable[[Message], Awaitable[None]]


class MessageBus(Protocol):
    """Producer/consumer operations the ingestion layer relies on."""

    async def publish(
        self,
        topic: str,
        key: str | None,
        payload: Any,
        headers: dict[str, str] | None = None,
    ) -> None: ...

    def subscribe(self, topic: str, handler: MessageHandler) -> None: ...

    async def start_consuming(self) -> None: ...

    async def stop(self) -> None: ...


class InMemoryMessageBus:
    """
    One queue and one consumer task per topic.

    Messages on a topic are handled one at a time, in publish order. A handler
    error is logged and the loop moves on to the next message.
    """

    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue[Message]] = {}
        self._handlers: dict[str, list[MessageHandler]] = {}
        self._offsets: dict[str, int] = {}
        self._consumers: dict[str, asyncio.Task[None]] = {}
        self._running = False

    def _queue(self, topic: str) -> asyncio.Queue[Message]:
        if topic not in self._queues:
            self._queues[topic] = asyncio.Queue()
        return self._queues[topic]

    async def publish(
        self,
        topic: str,
        key: str | None,
        payload: Any,
        headers: dict[str, str] | None = None,
    ) -> None:
        offset = self._offsets.get(topic, 0)
        self._offsets[topic] = offset + 1
        await self._queue(topic).put(
            Message(topic=topic, key=key, payload=payload, headers=dict(headers or {}), offset=offset)
        )

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        self._handlers.setdefault(topic, []).append(handler)
        self._queue(topic)
        if self._running and topic not in self._consumers:
            self._consumers[topic] = asyncio.create_task(self._consume(topic), name=f"consumer:{topic}")

    @property
    def topics(self) -> list[str]:
        return sorted(self._handlers)

    async def start_consuming(self) -> None:
        if self._running:
            return
        self._running = True
        for topic in self._handlers:
            if topic not in self._consumers:
                self._consumers[topic] = asyncio.create_task(self._consume(topic), name=f"consumer:{topic}")
        logger.info(f"Consuming {len(self._consumers)} topic(s)")

    async def join(self) -> None:
        """Wait until every published message has been handled."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def stop(self) -> None:
        self._running = False
        consumers = list(self._consumers.values())
        for task in consumers:
            task.cancel()
        await asyncio.gather(*consumers, return_exceptions=True)
        self._consumers.clear()

    async def _consume(self, topic: str) -> None:
        queue = self._queue(topic)
        while True:
            message = await queue.get()
            try:
                for handler in self._handlers.get(topic, []):
                    await handler(message)
            except Exception:
                logger.exception(f"Handler failed for {topic}@{message.offset}")
            finally:
                queue.task_done()
