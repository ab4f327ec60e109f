"""
Sentiment Worker Agent — scores work items from one channel.

State machine:
  IDLE ──(work item received)──▶ PROCESSING ──(result published / failure logged)──▶ IDLE
  any  ──(stop signal or task cancelled)──▶ SHUTTING_DOWN

One bad item never stops the worker: malformed payloads are skipped and
scoring/publish failures are logged before the loop moves on.
"""
from __future__ import annotations

import asyncio
import structlog
from contextlib import aclosing
from enum import Enum
from typing import Optional

from core.sentiment_analyzer import Scorer
from job_queue.message_bus import MessageBus, publish_message
from models.schemas import AgentMessage, SentimentWorkItem

logger = structlog.get_logger()


class WorkerState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SHUTTING_DOWN = "shutting_down"


class SentimentWorkerAgent:

    def __init__(
        self,
        name: str,
        queue_name: str,
        bus: MessageBus,
        scorer: Scorer,
        validation_queue: str = "validation",
    ):
        self.name = name
        self.queue_name = queue_name
        self.bus = bus
        self.scorer = scorer
        self.validation_queue = validation_queue
        self.state = WorkerState.IDLE
        self.processed_count = 0
        self.failed_count = 0

    async def run(self, stop: Optional[asyncio.Event] = None):
        """Consume work items until `stop` is set or the task is cancelled."""
        logger.info("worker_started", worker=self.name, queue=self.queue_name)
        self.state = WorkerState.IDLE
        try:
            async with aclosing(self.bus.subscribe(self.queue_name, AgentMessage, stop)) as messages:
                async for message in messages:
                    if stop is not None and stop.is_set():
                        break
                    self.state = WorkerState.PROCESSING
                    await self._handle(message)
                    self.state = WorkerState.IDLE
        except asyncio.CancelledError:
            self.state = WorkerState.SHUTTING_DOWN
            logger.info("worker_cancelled", worker=self.name)
            raise
        self.state = WorkerState.SHUTTING_DOWN
        logger.info("worker_stopped",
                    worker=self.name,
                    processed=self.processed_count,
                    failed=self.failed_count)

    async def _handle(self, message: AgentMessage):
        work_item = message.payload
        if not isinstance(work_item, SentimentWorkItem) or work_item.post is None:
            logger.warning("worker_empty_work_item",
                           worker=self.name,
                           correlation_id=message.correlation_id)
            return

        with structlog.contextvars.bound_contextvars(
            trace_id=message.trace_id,
            correlation_id=message.correlation_id,
        ):
            try:
                result = await self.scorer.score(work_item)
                if result.correlation_id != message.correlation_id:
                    logger.warning("worker_result_correlation_mismatch",
                                   worker=self.name,
                                   returned=result.correlation_id)
                    result = result.model_copy(update={"correlation_id": message.correlation_id})
                outbound = AgentMessage.create(
                    self.name,
                    self.validation_queue,
                    result,
                    trace_id=message.trace_id,
                    correlation_id=message.correlation_id,
                )
                await publish_message(self.bus, outbound)
                self.processed_count += 1
                logger.info("worker_sentiment_completed",
                            worker=self.name,
                            title=work_item.post.title,
                            score=result.score)
            except Exception as e:
                self.failed_count += 1
                logger.error("worker_item_failed",
                             worker=self.name,
                             correlation_id=message.correlation_id,
                             error=str(e),
                             exc_info=True)
