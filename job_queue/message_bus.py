"""
Message Bus — named-channel publish/subscribe with in-memory and Redis Streams backends.

Channel Topology:
  worker1      — work items for the first sentiment worker
  worker2      — work items for the second sentiment worker
  validation   — results from both workers, read by the validator

Every value on a channel is a pydantic model serialized to JSON, so callers
see identical behaviour whichever backend is configured.

Delivery:
  memory  — exactly-once within the process, FIFO per channel, unbounded.
  redis   — at-least-once. An entry is acked (XACK + XDEL) only after the
            subscriber asked for the next value; pending entries idle longer
            than the visibility timeout are reclaimed with XAUTOCLAIM.
"""
from __future__ import annotations

import asyncio
import uuid
import structlog
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional, TypeVar

from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError, ResponseError
from tenacity import (
    AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential,
)

from config.settings import RuntimeConfig
from models.schemas import AgentMessage

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)


class TransportError(Exception):
    """Raised when a message could not be handed to the transport."""
    pass


# ──────────────────────────────────────────────────────────────
#  Stop signal helpers
# ──────────────────────────────────────────────────────────────

def _stopped(stop: Optional[asyncio.Event]) -> bool:
    return stop is not None and stop.is_set()


async def _wait_or_stop(stop: Optional[asyncio.Event], seconds: float) -> bool:
    """Sleep for `seconds`; return True early if the stop signal fires."""
    if stop is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False


# ──────────────────────────────────────────────────────────────
#  Abstract Interface
# ──────────────────────────────────────────────────────────────

class MessageBus(ABC):
    """Abstract message bus interface."""

    @abstractmethod
    async def connect(self):
        """Establish connection to the transport backend."""
        ...

    @abstractmethod
    async def close(self):
        """Gracefully shut down."""
        ...

    @abstractmethod
    async def publish(self, channel: str, message: BaseModel):
        """Serialize a message and enqueue it on a channel."""
        ...

    @abstractmethod
    def subscribe(
        self,
        channel: str,
        model: type[M],
        stop: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[M]:
        """
        Yield messages from a channel, oldest first, forever.

        Suspends while the channel is empty. The sequence ends without error
        once `stop` is set; no further messages are read after that.
        """
        ...

    @abstractmethod
    async def queue_length(self, channel: str) -> int:
        """Return the number of messages waiting on a channel."""
        ...


async def publish_message(bus: MessageBus, message: AgentMessage):
    """Publish an envelope to the channel it is addressed to."""
    if not message.to or not message.to.strip():
        raise ValueError("message recipient channel must not be empty")
    await bus.publish(message.to, message)


# ──────────────────────────────────────────────────────────────
#  In-Memory Implementation
# ──────────────────────────────────────────────────────────────

class InMemoryMessageBus(MessageBus):
    """
    Development/test bus backed by asyncio queues.
    Single-process only — no persistence, no acknowledgement.
    """

    def __init__(self):
        self._queues: dict[str, asyncio.Queue] = {}

    def _get_queue(self, name: str) -> asyncio.Queue:
        if name not in self._queues:
            self._queues[name] = asyncio.Queue()
        return self._queues[name]

    async def connect(self):
        logger.info("inmemory_bus_connected")

    async def close(self):
        logger.info("inmemory_bus_closed", channels=len(self._queues))

    async def publish(self, channel: str, message: BaseModel):
        await self._get_queue(channel).put(message.model_dump_json())
        logger.debug("message_published", channel=channel)

    async def subscribe(
        self,
        channel: str,
        model: type[M],
        stop: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[M]:
        queue = self._get_queue(channel)
        logger.info("subscription_started", channel=channel, backend="memory")

        while not _stopped(stop):
            raw = await self._next_or_stop(queue, stop)
            if raw is None:
                break
            try:
                message = model.model_validate_json(raw)
            except ValidationError as e:
                logger.error("message_decode_failed", channel=channel, error=str(e))
                continue
            yield message

        logger.info("subscription_stopped", channel=channel, backend="memory")

    async def queue_length(self, channel: str) -> int:
        return self._get_queue(channel).qsize()

    @staticmethod
    async def _next_or_stop(queue: asyncio.Queue, stop: Optional[asyncio.Event]) -> Optional[str]:
        """Wait for the next raw message, or None once the stop signal fires."""
        if stop is None:
            return await queue.get()

        getter = asyncio.ensure_future(queue.get())
        stopper = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({getter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (getter, stopper):
                if not task.done():
                    task.cancel()

        # A message that arrived together with the stop signal is still delivered.
        if getter.done() and not getter.cancelled():
            return getter.result()
        return None


# ──────────────────────────────────────────────────────────────
#  Redis Streams Implementation
# ──────────────────────────────────────────────────────────────

class RedisMessageBus(MessageBus):
    """
    Durable bus backed by Redis Streams + consumer groups.

    - Each channel is a stream with one consumer group
    - Subscribers poll: reclaim idle pending entries, then read new ones
    - Entries are acked and deleted after the subscriber moved past them
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        consumer_group: str = "pulse-agents",
        batch_size: int = 16,
        visibility_timeout_s: float = 60,
        idle_backoff_s: float = 2,
        error_backoff_s: float = 5,
        publish_attempts: int = 3,
        publish_retry_wait_s: float = 0.5,
        client: Any = None,
    ):
        self._redis_url = redis_url
        self._redis = client
        self.consumer_group = consumer_group
        self.batch_size = batch_size
        self.visibility_timeout_s = visibility_timeout_s
        self.idle_backoff_s = idle_backoff_s
        self.error_backoff_s = error_backoff_s
        self.publish_attempts = publish_attempts
        self.publish_retry_wait_s = publish_retry_wait_s
        self._groups: set[str] = set()

    async def connect(self):
        if self._redis is None:
            import redis.asyncio as aioredis
            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                max_connections=20,
            )
        await self._redis.ping()
        logger.info("redis_bus_connected", url=self._redis_url)

    async def close(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._groups.clear()

    async def _ensure_group(self, channel: str):
        """Create the consumer group (and stream) if it doesn't exist."""
        if channel in self._groups:
            return
        try:
            await self._redis.xgroup_create(channel, self.consumer_group, id="0", mkstream=True)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        self._groups.add(channel)

    async def publish(self, channel: str, message: BaseModel):
        data = message.model_dump_json()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.publish_attempts),
                wait=wait_exponential(multiplier=self.publish_retry_wait_s, max=10),
                retry=retry_if_exception_type(RedisError),
                reraise=True,
            ):
                with attempt:
                    await self._redis.xadd(channel, {"data": data})
        except RedisError as e:
            logger.error("message_publish_failed", channel=channel, error=str(e))
            raise TransportError(f"publish to {channel} failed: {e}") from e
        logger.debug("message_published", channel=channel)

    async def subscribe(
        self,
        channel: str,
        model: type[M],
        stop: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[M]:
        consumer = f"consumer_{uuid.uuid4().hex[:8]}"
        logger.info("subscription_started",
                    channel=channel,
                    backend="redis",
                    group=self.consumer_group,
                    consumer=consumer)

        while not _stopped(stop):
            try:
                await self._ensure_group(channel)
                entries = await self._fetch(channel, consumer)
            except RedisError as e:
                logger.error("queue_fetch_failed", channel=channel, error=str(e))
                if await _wait_or_stop(stop, self.error_backoff_s):
                    break
                continue

            if not entries:
                if await _wait_or_stop(stop, self.idle_backoff_s):
                    break
                continue

            for entry_id, fields in entries:
                if _stopped(stop):
                    break  # unread entries stay pending and are reclaimed later
                message = self._decode(channel, entry_id, fields, model)
                if message is not None:
                    yield message
                await self._ack(channel, entry_id)

        logger.info("subscription_stopped", channel=channel, backend="redis", consumer=consumer)

    async def _fetch(self, channel: str, consumer: str) -> list[tuple[str, Optional[dict]]]:
        """Reclaim timed-out pending entries first, then read new ones."""
        entries: list[tuple[str, Optional[dict]]] = []

        claimed = await self._redis.xautoclaim(
            channel,
            self.consumer_group,
            consumer,
            min_idle_time=int(self.visibility_timeout_s * 1000),
            start_id="0-0",
            count=self.batch_size,
        )
        if claimed and len(claimed) > 1:
            entries.extend(claimed[1])
            if claimed[1]:
                logger.info("messages_redelivered", channel=channel, count=len(claimed[1]))

        remaining = self.batch_size - len(entries)
        if remaining > 0:
            response = await self._redis.xreadgroup(
                groupname=self.consumer_group,
                consumername=consumer,
                streams={channel: ">"},
                count=remaining,
            )
            for _stream_name, stream_entries in response or []:
                entries.extend(stream_entries)

        return entries

    def _decode(self, channel: str, entry_id: str, fields: Optional[dict], model: type[M]) -> Optional[M]:
        if not fields or "data" not in fields:
            logger.error("message_missing_payload", channel=channel, entry_id=entry_id)
            return None
        try:
            return model.model_validate_json(fields["data"])
        except ValidationError as e:
            logger.error("message_decode_failed",
                         channel=channel,
                         entry_id=entry_id,
                         error=str(e))
            return None

    async def _ack(self, channel: str, entry_id: str):
        try:
            await self._redis.xack(channel, self.consumer_group, entry_id)
            await self._redis.xdel(channel, entry_id)
            logger.debug("message_acked", channel=channel, entry_id=entry_id)
        except RedisError as e:
            # Left pending; it comes back after the visibility timeout.
            logger.error("message_ack_failed", channel=channel, entry_id=entry_id, error=str(e))

    async def queue_length(self, channel: str) -> int:
        return await self._redis.xlen(channel)


# ──────────────────────────────────────────────────────────────
#  Factory
# ──────────────────────────────────────────────────────────────

def create_message_bus(config: RuntimeConfig = None) -> MessageBus:
    """Factory: create the configured bus backend."""
    config = config or RuntimeConfig()

    if config.transport == "redis" and config.redis_url:
        logger.info("message_bus_selected", backend="redis")
        return RedisMessageBus(
            redis_url=config.redis_url,
            consumer_group=config.consumer_group,
            batch_size=config.batch_size,
            visibility_timeout_s=config.visibility_timeout_s,
            idle_backoff_s=config.idle_backoff_s,
            error_backoff_s=config.error_backoff_s,
        )

    if config.transport == "redis":
        logger.warning("redis_url_missing_using_memory")
    logger.info("message_bus_selected", backend="memory")
    return InMemoryMessageBus()
