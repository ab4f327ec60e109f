"""
Sentiment Analyzer — lightweight keyword heuristic used by both workers.

Any object with an async `score(work_item) -> SentimentResult` method can
replace it (an LLM-backed scorer, for instance) without touching the worker
or validator contracts.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Protocol

from models.schemas import SentimentResult, SentimentWorkItem

POSITIVE_KEYWORDS = ["great", "thanks", "awesome", "excellent", "love", "helpful", "success", "resolved"]
NEGATIVE_KEYWORDS = ["issue", "problem", "fail", "error", "bug", "blocked", "concern", "confused"]


class Scorer(Protocol):
    async def score(self, work_item: SentimentWorkItem) -> SentimentResult:
        ...


def _count_hits(body: str, keywords: list[str]) -> int:
    return sum(len(re.findall(re.escape(k), body, re.IGNORECASE)) for k in keywords)


def describe_score(score: int) -> str:
    if score >= 8:
        return "Highly positive and solution oriented"
    if score >= 6:
        return "Optimistic with minor concerns"
    if score >= 4:
        return "Neutral or mixed sentiment"
    if score >= 2:
        return "Frustrated and seeking help"
    return "Negative experience reported"


class SentimentAnalyzer:
    """Scores a post body on a 1-10 scale from keyword hits."""

    async def score(self, work_item: SentimentWorkItem) -> SentimentResult:
        if work_item.post is None:
            raise ValueError("work item has no post to score")

        body = work_item.post.body or ""
        positive_hits = _count_hits(body, POSITIVE_KEYWORDS)
        negative_hits = _count_hits(body, NEGATIVE_KEYWORDS)

        score = 5 + min(positive_hits, 5) - min(negative_hits, 5)
        score = max(1, min(score, 10))

        return SentimentResult(
            correlation_id=work_item.post.correlation_id,
            worker_name=work_item.worker_name,
            score=score,
            analysis_notes=describe_score(score),
            confidence=min(1.0, 0.5 + 0.05 * abs(positive_hits - negative_hits)),
            completed_at=datetime.now(timezone.utc),
        )
