"""
Agent Runtime — plain entry point around the coordinator.

Builds every collaborator from settings, runs one pass and maps the outcome
to a process exit code. Cancellation is a normal stop, not a failure.
"""
from __future__ import annotations

import asyncio
import structlog
from datetime import datetime, timezone

from backend.community_client import TechCommunityClient
from config.settings import Settings, get_settings
from core.coordinator import AgentCoordinator
from core.sentiment_analyzer import SentimentAnalyzer
from job_queue.message_bus import create_message_bus
from reporting.report_writer import ReportWriter

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1


def build_coordinator(settings: Settings) -> AgentCoordinator:
    return AgentCoordinator(
        bus=create_message_bus(settings.runtime),
        source=TechCommunityClient(settings.source),
        scorer=SentimentAnalyzer(),
        writer=ReportWriter(settings.report),
        options=settings.runtime,
    )


class AgentRuntime:

    def __init__(self, coordinator: AgentCoordinator = None, settings: Settings = None):
        self.settings = settings or get_settings()
        self.coordinator = coordinator or build_coordinator(self.settings)

    async def run(self) -> int:
        logger.info("agent_runtime_starting", at=datetime.now(timezone.utc).isoformat())
        try:
            await self.coordinator.run()
        except asyncio.CancelledError:
            logger.info("agent_runtime_cancelled")
            return EXIT_OK
        except Exception as e:
            logger.error("agent_runtime_failed", error=str(e), exc_info=True)
            return EXIT_FAILURE
        finally:
            await self.coordinator.source.close()

        logger.info("agent_runtime_completed", at=datetime.now(timezone.utc).isoformat())
        return EXIT_OK
