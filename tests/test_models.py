"""Tests for the envelope and payload models."""
import pytest
from pydantic import ValidationError

from conftest import make_post, make_result, make_work
from models.schemas import (
    AgentMessage, SentimentResult, SentimentWorkItem, ValidatedPost, WeeklyReport,
)


class TestAgentMessage:
    def test_create_assigns_correlation_id(self):
        message = AgentMessage.create("orchestrator", "worker1",
                                      SentimentWorkItem(post=make_post(), worker_name="worker1"))
        assert len(message.correlation_id) == 32
        assert message.trace_id is None
        assert message.created_at.tzinfo is not None

    def test_create_keeps_given_ids(self):
        post = make_post()
        message = make_work(post, trace_id="trace-1")
        assert message.correlation_id == post.correlation_id
        assert message.trace_id == "trace-1"

    def test_blank_recipient_rejected(self):
        with pytest.raises(ValidationError):
            AgentMessage.create("orchestrator", "  ",
                                SentimentWorkItem(post=make_post(), worker_name="worker1"))

    def test_envelope_is_immutable(self):
        message = make_work(make_post())
        with pytest.raises(ValidationError):
            message.to = "elsewhere"

    def test_payload_kind_survives_serialization(self):
        post = make_post("tagged")
        work = AgentMessage.model_validate_json(make_work(post).model_dump_json())
        result = AgentMessage.model_validate_json(make_result(post, "worker2", 8).model_dump_json())

        assert isinstance(work.payload, SentimentWorkItem)
        assert work.payload.post.correlation_id == post.correlation_id
        assert isinstance(result.payload, SentimentResult)
        assert result.payload.score == 8

    def test_work_item_without_post_is_valid(self):
        message = AgentMessage.model_validate_json(make_work(None).model_dump_json())
        assert message.payload.post is None


class TestSentimentResult:
    @pytest.mark.parametrize("score", [0, 11, 20])
    def test_score_outside_one_to_ten_rejected(self, score):
        with pytest.raises(ValidationError):
            SentimentResult(correlation_id="c", worker_name="worker1", score=score)

    @pytest.mark.parametrize("score", [1, 10])
    def test_score_bounds_accepted(self, score):
        assert SentimentResult(correlation_id="c", worker_name="worker1", score=score).score == score

    def test_unvalidated_result_rejected_by_envelope(self):
        result = SentimentResult.model_construct(correlation_id="c", worker_name="worker1", score=20)
        with pytest.raises(ValidationError):
            AgentMessage.create("worker1", "validation", result)


class TestCommunityPost:
    def test_each_post_gets_its_own_identity(self):
        assert make_post("a").correlation_id != make_post("a").correlation_id


class TestWeeklyReport:
    def test_defaults(self):
        report = WeeklyReport(analysis_week="2026-10-19 to 2026-10-25")
        assert report.items == []
        assert report.complete is True

    def test_validated_post_is_frozen(self):
        post = make_post()
        item = ValidatedPost(
            title=post.title, url=post.url, published_date=post.published_date,
            first_score=5, second_score=6, validated_score=6,
            analysis_notes="", validator_comments="", correlation_id=post.correlation_id,
        )
        with pytest.raises(ValidationError):
            item.validated_score = 1
