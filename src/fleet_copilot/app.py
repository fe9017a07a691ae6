"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from typing import Callable, Optional

import httpx

from fleet_copilot.ai.agent import Agent, FleetAgent
from fleet_copilot.ai.client import AnthropicClient
from fleet_copilot.ai.orchestrator import StreamingOrchestrator
from fleet_copilot.ai.tools.base import Tool
from fleet_copilot.ai.tools.dashcam import GetDashcamMediaTool
from fleet_copilot.ai.tools.registry import ToolRegistry
from fleet_copilot.ai.tools.safety_events import GetSafetyEventsTool
from fleet_copilot.ai.tools.tags import GetTagsTool
from fleet_copilot.ai.tools.trips import GetTripsTool
from fleet_copilot.ai.tools.vehicle_stats import GetVehicleStatsTool
from fleet_copilot.ai.tools.vehicles import GetVehiclesTool
from fleet_copilot.config import AppConfig
from fleet_copilot.core.clock import Clock, SystemClock
from fleet_copilot.fleet.media_store import MediaPersistenceStore
from fleet_copilot.fleet.resolver import EntityResolver
from fleet_copilot.fleet.retry_window import RetryWindowFetcher
from fleet_copilot.fleet.tag_sync import TagSyncCache
from fleet_copilot.log import get_logger
from fleet_copilot.services.service_manager import ServiceManager
from fleet_copilot.storage.blob_store import LocalBlobStore
from fleet_copilot.storage.database import Database
from fleet_copilot.storage.kv_cache import KeyValueCache
from fleet_copilot.storage.tag_repo import TagRepository
from fleet_copilot.storage.thread_repo import ThreadRepository
from fleet_copilot.storage.vehicle_repo import VehicleRepository

logger = get_logger(__name__)

AgentFactory = Callable[["FleetCopilotApp"], Agent]


class FleetCopilotApp:
    """Top-level application orchestrator."""

    def __init__(
        self,
        config: AppConfig,
        clock: Optional[Clock] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        agent_factory: Optional[AgentFactory] = None,
    ):
        self.config = config
        self.clock = clock or SystemClock()
        self.db = Database(config.storage.db_path)
        self.threads = ThreadRepository(self.db)
        self.vehicles = VehicleRepository(self.db)
        self.tags = TagRepository(self.db)
        self.kv_cache = KeyValueCache(self.db)
        self.blobs = LocalBlobStore(config.media.base_path, url_prefix=config.media.url_prefix)
        self.service_manager = ServiceManager(config.telematics, config.media, transport=transport)

        telematics = self.service_manager.get_telematics()
        self.resolver = EntityResolver(self.vehicles)
        self.window_fetcher = RetryWindowFetcher(self.clock)
        self.media_store = MediaPersistenceStore(
            self.blobs,
            self.service_manager.get_http_fetch(),
            max_concurrent_downloads=config.media.max_concurrent_downloads,
        )
        self.tag_sync = TagSyncCache(
            telematics,
            self.tags,
            self.kv_cache,
            clock=self.clock,
            sync_interval_seconds=config.tags.sync_interval_seconds,
        )
        self.tool_registry = ToolRegistry(self._build_tools())

        self._agent_factory = agent_factory
        self.orchestrator: Optional[StreamingOrchestrator] = None

    def _build_tools(self) -> list[Tool]:
        telematics = self.service_manager.get_telematics()
        return [
            GetVehiclesTool(self.vehicles, self.tags),
            GetVehicleStatsTool(self.resolver, telematics),
            GetDashcamMediaTool(self.resolver, self.vehicles, telematics, self.window_fetcher, self.media_store),
            GetSafetyEventsTool(self.resolver, telematics, self.window_fetcher),
            GetTripsTool(self.resolver, self.vehicles, telematics, clock=self.clock),
            GetTagsTool(self.tag_sync),
        ]

    def _create_agent(self) -> Agent:
        if self._agent_factory is not None:
            return self._agent_factory(self)
        return FleetAgent(
            AnthropicClient(self.config.anthropic),
            self.tool_registry,
            self.threads,
            history_limit=self.config.storage.history_limit,
            clock=self.clock,
        )

    async def start(self) -> None:
        """Initialize and start all components."""
        await self.db.initialize()
        await self.service_manager.start_all()
        self.orchestrator = StreamingOrchestrator(self._create_agent(), self.threads)
        logger.info("fleet_copilot_started", tools=len(self.tool_registry))

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        await self.service_manager.stop_all()
        await self.db.close()
        logger.info("fleet_copilot_stopped")

    async def health(self) -> dict[str, bool]:
        checks = await self.service_manager.health_check_all()
        checks["storage"] = await self.db.ping()
        return checks
