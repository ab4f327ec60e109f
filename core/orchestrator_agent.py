"""
Orchestrator Agent — fans each post out to both sentiment workers.

Every post becomes two work items (one per worker) wrapped in envelopes that
share the post's correlation id, so the validator can pair the results.
"""
from __future__ import annotations

import structlog
from datetime import datetime, timezone
from typing import Optional

from config.settings import RuntimeConfig
from job_queue.message_bus import MessageBus, TransportError, publish_message
from models.schemas import AgentMessage, CommunityPost, SentimentWorkItem

logger = structlog.get_logger()

SENDER = "orchestrator"


class DispatchError(Exception):
    """Raised when a work item could not be published; aborts the run."""
    pass


class OrchestratorAgent:

    def __init__(self, bus: MessageBus, options: RuntimeConfig, trace_id: Optional[str] = None):
        self.bus = bus
        self.options = options
        self.trace_id = trace_id

    def _routes(self) -> list[tuple[str, str]]:
        return [
            ("worker1", self.options.worker1_queue),
            ("worker2", self.options.worker2_queue),
        ]

    async def dispatch(self, posts: list[CommunityPost]):
        for post in posts:
            for worker_name, queue_name in self._routes():
                work_item = SentimentWorkItem(
                    post=post,
                    worker_name=worker_name,
                    requested_at=datetime.now(timezone.utc),
                )
                message = AgentMessage.create(
                    SENDER,
                    queue_name,
                    work_item,
                    trace_id=self.trace_id,
                    correlation_id=post.correlation_id,
                )
                try:
                    await publish_message(self.bus, message)
                except (TransportError, ValueError) as e:
                    logger.error("sentiment_job_dispatch_failed",
                                 title=post.title,
                                 correlation_id=post.correlation_id,
                                 worker=worker_name,
                                 error=str(e))
                    raise DispatchError(
                        f"Dispatch of {post.correlation_id} to {queue_name} failed: {e}"
                    ) from e

            logger.info("sentiment_job_dispatched",
                        title=post.title,
                        correlation_id=post.correlation_id)
