"""
Agent Coordinator — runs one fan-out/fan-in pass over this week's posts.

Flow:
  1. Fetch posts from the community source
  2. Start the validator and both workers (workers share one stop signal)
  3. Dispatch every post to both worker channels
  4. Wait for the validator, then signal the workers to stop
"""
from __future__ import annotations

import asyncio
import uuid
import structlog
from typing import Optional

from backend.community_client import TechCommunityClient
from config.settings import RuntimeConfig
from core.orchestrator_agent import OrchestratorAgent
from core.sentiment_analyzer import Scorer
from core.validator_agent import ValidatorAgent
from core.worker_agent import SentimentWorkerAgent
from job_queue.message_bus import MessageBus
from models.schemas import WeeklyReport
from reporting.report_writer import ReportWriter

logger = structlog.get_logger()


class AgentCoordinator:

    def __init__(
        self,
        bus: MessageBus,
        source: TechCommunityClient,
        scorer: Scorer,
        writer: ReportWriter,
        options: RuntimeConfig,
    ):
        self.bus = bus
        self.source = source
        self.scorer = scorer
        self.writer = writer
        self.options = options

    async def run(self) -> Optional[WeeklyReport]:
        trace_id = uuid.uuid4().hex
        await self.bus.connect()
        try:
            with structlog.contextvars.bound_contextvars(trace_id=trace_id):
                return await self._run(trace_id)
        finally:
            await self.bus.close()

    async def _run(self, trace_id: str) -> Optional[WeeklyReport]:
        posts = await self.source.fetch_current_batch()
        logger.info("coordinator_posts_fetched", count=len(posts))

        if not posts:
            logger.warning("coordinator_no_posts", detail="No posts detected for the current week")
            return None

        stop = asyncio.Event()
        validator = ValidatorAgent(self.bus, posts, self.writer, self.options.validation_queue)
        validator_task = asyncio.create_task(
            validator.run(
                len(posts) * self.options.result_budget_multiplier,
                idle_timeout=self.options.result_wait_timeout_s,
            ),
            name="validator",
        )

        workers = [
            SentimentWorkerAgent("worker1", self.options.worker1_queue, self.bus,
                                 self.scorer, self.options.validation_queue),
            SentimentWorkerAgent("worker2", self.options.worker2_queue, self.bus,
                                 self.scorer, self.options.validation_queue),
        ]
        worker_tasks = [asyncio.create_task(w.run(stop), name=w.name) for w in workers]

        try:
            orchestrator = OrchestratorAgent(self.bus, self.options, trace_id=trace_id)
            await orchestrator.dispatch(posts)
            report = await validator_task
        finally:
            stop.set()
            if not validator_task.done():
                validator_task.cancel()
            outcomes = await asyncio.gather(validator_task, *worker_tasks, return_exceptions=True)
            for task, outcome in zip([validator_task, *worker_tasks], outcomes):
                if isinstance(outcome, Exception):
                    logger.error("coordinator_task_failed", task=task.get_name(), error=str(outcome))

        logger.info("coordinator_run_completed",
                    validated=len(report.items),
                    expected=len(posts),
                    complete=report.complete,
                    week=report.analysis_week)
        return report
