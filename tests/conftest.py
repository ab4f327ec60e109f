"""Shared test fixtures for Community Pulse."""
import time
from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from models.schemas import AgentMessage, CommunityPost, SentimentResult, SentimentWorkItem


def make_post(title: str = "Post", body: str = "", days_ago: int = 0) -> CommunityPost:
    return CommunityPost(
        title=title,
        url=f"https://community.example/{title.lower().replace(' ', '-')}",
        published_date=datetime.now(timezone.utc) - timedelta(days=days_ago),
        body=body,
        author="tester",
    )


def make_result(post: CommunityPost, worker: str, score: int, offset_s: float = 0) -> AgentMessage:
    """A result envelope as a worker would publish it to the validation channel."""
    result = SentimentResult(
        correlation_id=post.correlation_id,
        worker_name=worker,
        score=score,
        analysis_notes=f"notes from {worker}",
        confidence=0.5,
        completed_at=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc) + timedelta(seconds=offset_s),
    )
    return AgentMessage.create(worker, "validation", result, correlation_id=post.correlation_id)


def make_work(post, worker: str = "worker1", to: str = "worker1", trace_id: str = None) -> AgentMessage:
    item = SentimentWorkItem(post=post, worker_name=worker)
    correlation_id = post.correlation_id if post is not None else None
    return AgentMessage.create("orchestrator", to, item, trace_id=trace_id, correlation_id=correlation_id)


@pytest.fixture
def posts() -> list[CommunityPost]:
    return [
        make_post("Release notes", "Great release, thanks team. Awesome work!"),
        make_post("Prompt flow trouble", "Found a bug and an error, deployment blocked."),
        make_post("Quiet update", "Version bump with docs changes."),
    ]


# ──────────────────────────────────────────────────────────────
#  Redis Streams test double
# ──────────────────────────────────────────────────────────────

def _seq(entry_id: str) -> int:
    return int(entry_id.split("-")[0])


class FakeStreamRedis:
    """
    In-test stand-in for redis.asyncio.Redis covering the stream commands the
    bus uses: consumer groups, a pending list with delivery times, XAUTOCLAIM
    by idle time, XACK/XDEL.
    """

    def __init__(self):
        self.streams: dict[str, list[tuple[str, dict]]] = {}
        self.groups: dict[tuple[str, str], dict] = {}
        self.acked: list[str] = []
        self.fail_reads = 0
        self.fail_writes = 0
        self.closed = False
        self._next_id = 0

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True

    async def xgroup_create(self, name, groupname, id="$", mkstream=False):
        if (name, groupname) in self.groups:
            raise ResponseError("BUSYGROUP Consumer Group name already exists")
        self.streams.setdefault(name, [])
        self.groups[(name, groupname)] = {"last": 0, "pending": {}}
        return True

    async def xadd(self, name, fields):
        if self.fail_writes:
            self.fail_writes -= 1
            raise RedisConnectionError("connection refused")
        self._next_id += 1
        entry_id = f"{self._next_id}-0"
        self.streams.setdefault(name, []).append((entry_id, dict(fields)))
        return entry_id

    def _fields(self, name, entry_id):
        for eid, fields in self.streams.get(name, []):
            if eid == entry_id:
                return fields
        return None

    async def xautoclaim(self, name, groupname, consumername, min_idle_time,
                         start_id="0-0", count=None, justid=False):
        if self.fail_reads:
            self.fail_reads -= 1
            raise RedisConnectionError("connection reset")
        group = self.groups[(name, groupname)]
        now = time.monotonic()
        claimed = []
        for entry_id in sorted(group["pending"], key=_seq):
            _consumer, delivered_at = group["pending"][entry_id]
            if (now - delivered_at) * 1000 >= min_idle_time:
                group["pending"][entry_id] = (consumername, now)
                claimed.append((entry_id, self._fields(name, entry_id)))
                if count and len(claimed) >= count:
                    break
        return ["0-0", claimed, []]

    async def xreadgroup(self, groupname, consumername, streams, count=None, block=None, noack=False):
        now = time.monotonic()
        response = []
        for name in streams:
            group = self.groups[(name, groupname)]
            fresh = [(eid, f) for eid, f in self.streams.get(name, []) if _seq(eid) > group["last"]]
            if count:
                fresh = fresh[:count]
            for eid, _fields in fresh:
                group["pending"][eid] = (consumername, now)
                group["last"] = _seq(eid)
            if fresh:
                response.append([name, fresh])
        return response

    async def xack(self, name, groupname, *ids):
        pending = self.groups[(name, groupname)]["pending"]
        done = [i for i in ids if pending.pop(i, None) is not None]
        self.acked.extend(done)
        return len(done)

    async def xdel(self, name, *ids):
        before = len(self.streams.get(name, []))
        self.streams[name] = [(eid, f) for eid, f in self.streams.get(name, []) if eid not in ids]
        return before - len(self.streams[name])

    async def xlen(self, name):
        return len(self.streams.get(name, []))


@pytest.fixture
def fake_redis() -> FakeStreamRedis:
    return FakeStreamRedis()
