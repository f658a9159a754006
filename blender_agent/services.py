# FILE: blender_agent/services.py
"""
Process-wide service wiring.

One Blender connection, one integration-status cache, one asset router, one
response cache and one job queue are shared by every request; each request
still gets its own orchestrator run (agent history + progress log).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from blender_agent import config
from blender_agent.agent.cache import ResponseCache
from blender_agent.agent.orchestrator import GenerationRequest, ReactOrchestrator
from blender_agent.integrations.circuit_breaker import breaker_snapshots
from blender_agent.integrations.router import AssetRouter
from blender_agent.integrations.status import IntegrationStatusCache
from blender_agent.jobs.queue import GenerationJobQueue
from blender_agent.knowledge.search import KnowledgeSearch, get_knowledge_search
from blender_agent.llm.driver import LlmDriver
from blender_agent.memory.service import ConversationStore
from blender_agent.transport.client import BlenderConnection

logger = logging.getLogger(__name__)


@dataclass
class Services:
    connection: BlenderConnection
    status_cache: IntegrationStatusCache
    router: AssetRouter
    knowledge: KnowledgeSearch
    driver: LlmDriver
    store: ConversationStore
    cache: ResponseCache
    orchestrator: ReactOrchestrator
    jobs: GenerationJobQueue

    async def run_job(self, payload: Dict[str, Any], user_id: str):
        return await self.orchestrator.run(GenerationRequest(**payload), user_id)

    async def health(self) -> Dict[str, Any]:
        status = self.status_cache.cached
        return {
            "status": "ok",
            "blender": self.connection.snapshot(),
            "integrations": status.to_dict() if status else None,
            "breakers": breaker_snapshots(),
            "jobs": {"running": self.jobs.running, "queued": self.jobs.depth},
            "knowledge_enabled": self.knowledge.enabled,
        }


def build_services(
    connection: Optional[BlenderConnection] = None,
    driver: Optional[LlmDriver] = None,
    knowledge: Optional[KnowledgeSearch] = None,
    store: Optional[ConversationStore] = None,
) -> Services:
    connection = connection or BlenderConnection(config.BLENDER_TCP_HOST, config.BLENDER_TCP_PORT)
    status_cache = IntegrationStatusCache(connection.send)
    router = AssetRouter(connection.send, status_cache)
    knowledge = knowledge or get_knowledge_search()
    driver = driver or LlmDriver()
    store = store or ConversationStore()
    cache = ResponseCache()
    orchestrator = ReactOrchestrator(
        host=connection,
        driver=driver,
        knowledge=knowledge,
        router=router,
        status_cache=status_cache,
        store=store,
        cache=cache,
    )
    services = Services(
        connection=connection,
        status_cache=status_cache,
        router=router,
        knowledge=knowledge,
        driver=driver,
        store=store,
        cache=cache,
        orchestrator=orchestrator,
        jobs=None,  # set below; the queue runner needs the instance
    )
    services.jobs = GenerationJobQueue(services.run_job)
    return services


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services


__all__ = ["Services", "build_services", "get_services", "set_services"]
