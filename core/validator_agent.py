"""
Validator Agent — pairs worker results by correlation id and consolidates them.

Each post is expected to produce one result per worker. When a post's bucket
holds exactly two results they are ordered by completion time and reduced to
one ValidatedPost by the consensus rule:

  deviation = |a - b|
  average   = round((a + b) / 2)
  score     = average                   if deviation >= 3
              clamp(average, 1, 10)     otherwise

The run ends on whichever comes first:
  complete — every post has a ValidatedPost
  partial  — the result budget is spent, or no result arrived within the
             idle timeout, before every post was paired
"""
from __future__ import annotations

import asyncio
import structlog
from contextlib import aclosing
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from job_queue.message_bus import MessageBus
from models.schemas import (
    MAX_SCORE, MIN_SCORE, AgentMessage, CommunityPost, SentimentResult, ValidatedPost,
    WeeklyReport,
)
from reporting.report_writer import ReportWriter
from utils.week_window import current_week_label

logger = structlog.get_logger()

RESULTS_PER_POST = 2
HIGH_DEVIATION = 3


def normalize_scores(results: list[SentimentResult]) -> int:
    first, second = results[0].score, results[1].score
    average = round((first + second) / 2)
    if abs(first - second) >= HIGH_DEVIATION:
        return average
    return max(MIN_SCORE, min(average, MAX_SCORE))


def build_comments(results: list[SentimentResult], normalized_score: int) -> str:
    deviation = abs(results[0].score - results[1].score)
    if deviation == 0:
        return "Scores consistent across workers."
    return f"Normalized scores by averaging due to deviation of {deviation}; final={normalized_score}."


def consolidate(post: CommunityPost, results: list[SentimentResult]) -> ValidatedPost:
    # sorted() is stable, so equal timestamps keep arrival order
    ordered = sorted(results, key=lambda r: r.completed_at)
    normalized = normalize_scores(ordered)
    return ValidatedPost(
        title=post.title,
        url=post.url,
        published_date=post.published_date,
        author=post.author,
        first_score=ordered[0].score,
        second_score=ordered[1].score,
        validated_score=normalized,
        analysis_notes=" | ".join(f"{r.worker_name}:{r.analysis_notes}" for r in ordered),
        validator_comments=build_comments(ordered, normalized),
        correlation_id=post.correlation_id,
    )


class ValidatorAgent:

    def __init__(
        self,
        bus: MessageBus,
        posts: list[CommunityPost],
        writer: Optional[ReportWriter],
        validation_queue: str = "validation",
    ):
        self.bus = bus
        self.posts = list(posts)
        self.writer = writer
        self.validation_queue = validation_queue

    async def run(self, expected_result_count: int, idle_timeout: Optional[float] = None) -> WeeklyReport:
        cache = {p.correlation_id: p for p in self.posts}
        buckets: dict[str, list[SentimentResult]] = {}
        validated: list[ValidatedPost] = []
        received = 0
        complete = len(validated) == len(self.posts)

        if not complete:
            async with aclosing(self.bus.subscribe(self.validation_queue, AgentMessage)) as messages:
                while True:
                    message = await self._next(messages, idle_timeout)
                    if message is None:
                        logger.warning("validator_partial_completion",
                                       reason="idle_timeout",
                                       idle_timeout=idle_timeout,
                                       remaining=len(self.posts) - len(validated))
                        break

                    result = message.payload
                    if not isinstance(result, SentimentResult):
                        logger.warning("validator_unexpected_payload",
                                       correlation_id=message.correlation_id,
                                       kind=getattr(result, "kind", None))
                        continue
                    if result.correlation_id not in cache:
                        logger.warning("validator_unknown_correlation",
                                       correlation_id=result.correlation_id)
                        continue

                    bucket = buckets.setdefault(result.correlation_id, [])
                    if len(bucket) >= RESULTS_PER_POST:
                        logger.warning("validator_duplicate_result",
                                       correlation_id=result.correlation_id,
                                       worker=result.worker_name)
                        continue

                    bucket.append(result)
                    received += 1
                    logger.info("validator_result_observed",
                                index=len(bucket),
                                expected=RESULTS_PER_POST,
                                correlation_id=result.correlation_id)

                    if len(bucket) == RESULTS_PER_POST:
                        validated.append(consolidate(cache[result.correlation_id], bucket))

                    # Full completion is checked before the budget so the last
                    # pairing result never reads as partial.
                    if len(validated) == len(self.posts):
                        complete = True
                        break
                    if received >= expected_result_count:
                        logger.warning("validator_partial_completion",
                                       reason="result_budget",
                                       received=received,
                                       remaining=len(self.posts) - len(validated))
                        break

        report = WeeklyReport(
            analysis_week=current_week_label(datetime.now(timezone.utc)),
            items=validated,
            generated_at=datetime.now(timezone.utc),
            complete=complete,
            expected_count=len(self.posts),
        )
        logger.info("validator_finished",
                    validated=len(validated),
                    expected=len(self.posts),
                    complete=complete)
        await self._persist(report)
        return report

    @staticmethod
    async def _next(messages: AsyncIterator[AgentMessage], idle_timeout: Optional[float]) -> Optional[AgentMessage]:
        """Next message, or None when the idle timeout elapsed or the stream ended."""
        try:
            if idle_timeout is None:
                return await messages.__anext__()
            return await asyncio.wait_for(messages.__anext__(), timeout=idle_timeout)
        except (asyncio.TimeoutError, StopAsyncIteration):
            return None

    async def _persist(self, report: WeeklyReport):
        if self.writer is None:
            return
        try:
            await self.writer.write_report(report)
        except Exception as e:
            logger.error("weekly_report_persist_failed", error=str(e), exc_info=True)
