"""
Community Client — fetches this week's posts from the community site.

The site is a Next.js app; the post list is embedded as JSON in the
`__NEXT_DATA__` script tag. Anything that goes wrong while fetching or
parsing falls back to a small sample so a run always has input.
"""
from __future__ import annotations

import json
import structlog
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from config.settings import SourceConfig, get_settings
from models.schemas import CommunityPost
from utils.week_window import current_week_start

logger = structlog.get_logger()

NEXT_DATA_MARKER = "__NEXT_DATA__"


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def extract_posts_from_html(html: str) -> list[CommunityPost]:
    """Pull posts out of the embedded page data. Returns [] when absent."""
    marker_index = html.lower().find(NEXT_DATA_MARKER.lower())
    if marker_index < 0:
        return []
    json_start = html.find("{", marker_index)
    json_end = html.lower().find("</script>", json_start) if json_start >= 0 else -1
    if json_start < 0 or json_end <= json_start:
        return []

    data = json.loads(html[json_start:json_end])
    queries = (
        data.get("props", {})
        .get("pageProps", {})
        .get("dehydratedState", {})
        .get("queries", [])
    ) or []

    posts: list[CommunityPost] = []
    for entry in queries:
        messages = (((entry or {}).get("state") or {}).get("data") or {}).get("messages")
        if not messages:
            continue
        for item in messages:
            post = _post_from_item(item or {})
            if post is not None:
                posts.append(post)
    return posts


def _post_from_item(item: dict[str, Any]) -> Optional[CommunityPost]:
    published = item.get("createdDate")
    if published is None:
        return None
    return CommunityPost(
        title=item.get("subject") or "Untitled",
        url=item.get("messageLink") or "",
        published_date=datetime.fromtimestamp(int(published) / 1000, tz=timezone.utc),
        body=item.get("body") or "",
        author=(item.get("author") or {}).get("login"),
    )


def fallback_sample() -> list[CommunityPost]:
    now = datetime.now(timezone.utc)
    return [
        CommunityPost(
            title="Sample: Azure AI Foundry release",
            url="https://techcommunity.microsoft.com/sample1",
            published_date=now - timedelta(days=1),
            body="Great release week with new features",
            author="azure-team",
        ),
        CommunityPost(
            title="Sample: Troubleshooting prompt flow",
            url="https://techcommunity.microsoft.com/sample2",
            published_date=now - timedelta(days=2),
            body="Encountered an issue configuring prompt flow. Need help!",
            author="community-member",
        ),
    ]


class TechCommunityClient:
    """Source-record provider for the agents."""

    def __init__(self, config: SourceConfig = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or get_settings().source
        self.client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            self.client = httpx.AsyncClient(
                timeout=self.config.timeout_s,
                follow_redirects=True,
            )
        return self.client

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, max=10),
        reraise=True,
    )
    async def _fetch_page(self) -> str:
        client = await self._get_client()
        response = await client.get(self.config.base_url)
        response.raise_for_status()
        return response.text

    async def fetch_current_batch(self) -> list[CommunityPost]:
        """Posts published since Monday of the current week (UTC)."""
        try:
            html = await self._fetch_page()
            posts = extract_posts_from_html(html)
        except Exception as e:
            logger.error("community_fetch_failed", url=self.config.base_url, error=str(e))
            return fallback_sample()

        if not posts:
            logger.warning("community_page_without_posts", url=self.config.base_url)
            return fallback_sample()

        week_start = current_week_start(datetime.now(timezone.utc))
        current = [p for p in posts if p.published_date.astimezone(timezone.utc).date() >= week_start]
        current = current[: self.config.page_size]
        logger.info("community_posts_fetched", parsed=len(posts), current_week=len(current))
        return current

    async def close(self):
        if self.client is not None and not self.client.is_closed:
            await self.client.aclose()
