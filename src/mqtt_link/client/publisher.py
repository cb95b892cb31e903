"""
Outgoing Application Messages.

Holds messages the application wants published until the client loop
takes them. On an explicit disconnect the queue is flushed: pending
messages are dropped, never sent over a connection that is going away.
"""
import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingMessage:
    topic: str
    payload: bytes
    qos: int = 0
    retain: bool = False


class Publisher:
    queue: asyncio.Queue

    def __init__(self, maxsize: int = 0):
        self.queue = asyncio.Queue(maxsize=maxsize)

    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False):
        """
        Accepts a message from the application and places it in the queue.
        Raises asyncio.QueueFull when a bounded queue is full.
        """
        logger.debug(f"Request to publish on '{topic}' ({len(payload)} bytes)")
        self.queue.put_nowait(OutgoingMessage(topic=topic, payload=payload, qos=qos, retain=retain))

    async def next_message(self) -> OutgoingMessage:
        message = await self.queue.get()
        self.queue.task_done()
        return message

    @property
    def pending(self) -> int:
        return self.queue.qsize()

    def flush(self) -> int:
        """Drops every pending message without sending it. Returns how many were dropped."""
        dropped = 0
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.queue.task_done()
            dropped += 1
        if dropped:
            logger.info(f"Flushed {dropped} pending message(s) from the publisher queue.")
        return dropped
