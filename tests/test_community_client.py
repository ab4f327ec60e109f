"""Tests for the community source client and week window helpers."""
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from backend.community_client import (
    TechCommunityClient, _is_transient, extract_posts_from_html, fallback_sample,
)
from config.settings import SourceConfig
from utils.week_window import current_week_label, current_week_start


def _page(messages) -> str:
    data = {
        "props": {"pageProps": {"dehydratedState": {"queries": [
            {"state": {"data": {"other": []}}},
            {"state": {"data": {"messages": messages}}},
        ]}}}
    }
    return (
        "<html><head></head><body>"
        f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script>'
        "</body></html>"
    )


def _message(subject, published: datetime, body="", login="someone"):
    return {
        "subject": subject,
        "messageLink": f"https://community.example/{subject}",
        "author": {"login": login},
        "body": body,
        "createdDate": int(published.timestamp() * 1000),
    }


def _client(handler) -> TechCommunityClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TechCommunityClient(SourceConfig(base_url="https://community.example/feed"), client=http)


class TestExtractPosts:
    def test_parses_embedded_messages(self):
        published = datetime(2026, 10, 20, 9, 30, tzinfo=timezone.utc)
        posts = extract_posts_from_html(_page([
            _message("hello", published, "great stuff", "alice"),
            {"subject": "no date"},
        ]))

        assert len(posts) == 1
        assert posts[0].title == "hello"
        assert posts[0].author == "alice"
        assert posts[0].published_date == published

    def test_page_without_marker(self):
        assert extract_posts_from_html("<html>nothing here</html>") == []


class TestTechCommunityClient:
    @pytest.mark.asyncio
    async def test_keeps_only_current_week(self):
        now = datetime.now(timezone.utc)
        html = _page([
            _message("fresh", now),
            _message("stale", now - timedelta(days=14)),
        ])
        client = _client(lambda request: httpx.Response(200, text=html))

        posts = await client.fetch_current_batch()
        await client.close()

        assert [p.title for p in posts] == ["fresh"]

    @pytest.mark.asyncio
    async def test_http_error_falls_back_to_sample(self):
        client = _client(lambda request: httpx.Response(404, text="missing"))

        posts = await client.fetch_current_batch()

        assert [p.title for p in posts] == [p.title for p in fallback_sample()]

    @pytest.mark.asyncio
    async def test_page_without_posts_falls_back_to_sample(self):
        client = _client(lambda request: httpx.Response(200, text="<html></html>"))
        posts = await client.fetch_current_batch()
        assert len(posts) == 2

    def test_transient_classification(self):
        request = httpx.Request("GET", "https://community.example")
        assert _is_transient(httpx.ConnectError("refused", request=request))
        for status, expected in [(429, True), (503, True), (404, False)]:
            response = httpx.Response(status, request=request)
            error = httpx.HTTPStatusError("status", request=request, response=response)
            assert _is_transient(error) is expected
        assert _is_transient(ValueError("bad json")) is False


class TestWeekWindow:
    def test_week_starts_on_monday(self):
        sunday = datetime(2026, 10, 25, 23, 0, tzinfo=timezone.utc)
        assert current_week_start(sunday).isoformat() == "2026-10-19"

    def test_label(self):
        monday = datetime(2026, 10, 19, 0, 5, tzinfo=timezone.utc)
        assert current_week_label(monday) == "2026-10-19 to 2026-10-25"
