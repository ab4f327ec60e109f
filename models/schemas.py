"""
Core data models for the Community Pulse agents.
These are the universal types shared across all modules.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


MIN_SCORE = 1
MAX_SCORE = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


# ──────────────────────────────────────────────────────────────
#  Source records
# ──────────────────────────────────────────────────────────────

class CommunityPost(BaseModel):
    """A post read from the community site for the current week."""
    title: str
    url: str = ""
    published_date: datetime
    body: str = ""
    author: Optional[str] = None
    correlation_id: str = Field(default_factory=_new_id)   # identity across the whole run


# ──────────────────────────────────────────────────────────────
#  Payloads carried on the bus
# ──────────────────────────────────────────────────────────────

class SentimentWorkItem(BaseModel):
    """One post addressed to one sentiment worker."""
    kind: Literal["work_item"] = "work_item"
    post: Optional[CommunityPost] = None      # None → structurally incomplete
    worker_name: str
    requested_at: datetime = Field(default_factory=_utcnow)


class SentimentResult(BaseModel):
    """Score produced by a single worker for a single post."""
    model_config = ConfigDict(revalidate_instances="always")

    kind: Literal["result"] = "result"
    correlation_id: str
    worker_name: str
    score: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    analysis_notes: str = ""
    confidence: Optional[float] = None
    completed_at: datetime = Field(default_factory=_utcnow)


Payload = Annotated[
    Union[SentimentWorkItem, SentimentResult],
    Field(discriminator="kind"),
]


# ──────────────────────────────────────────────────────────────
#  Envelope
# ──────────────────────────────────────────────────────────────

class AgentMessage(BaseModel):
    """
    Envelope for agent-to-agent delivery.

    Created once per hop by the sender and never mutated. The trace id is
    copied unchanged from hop to hop; the correlation id ties every message
    of one post together.
    """
    model_config = ConfigDict(frozen=True)

    sender: str
    to: str
    payload: Payload
    trace_id: Optional[str] = None
    correlation_id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("to")
    @classmethod
    def _to_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("message recipient channel must not be empty")
        return value

    @classmethod
    def create(
        cls,
        sender: str,
        to: str,
        payload: SentimentWorkItem | SentimentResult,
        trace_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> AgentMessage:
        return cls(
            sender=sender,
            to=to,
            payload=payload,
            trace_id=trace_id,
            correlation_id=correlation_id or _new_id(),
        )


# ──────────────────────────────────────────────────────────────
#  Validator output
# ──────────────────────────────────────────────────────────────

class ValidatedPost(BaseModel):
    """Consolidated record for one post, built from both worker scores."""
    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    published_date: datetime
    author: Optional[str] = None
    first_score: int                          # earlier completion
    second_score: int
    validated_score: int
    analysis_notes: str
    validator_comments: str
    correlation_id: str


class WeeklyReport(BaseModel):
    analysis_week: str
    items: list[ValidatedPost] = []
    generated_at: datetime = Field(default_factory=_utcnow)
    complete: bool = True
    expected_count: int = 0
