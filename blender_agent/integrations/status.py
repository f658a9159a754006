# FILE: blender_agent/integrations/status.py
"""Live integration availability, as reported by the Blender addon."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from blender_agent import config
from blender_agent.errors import AgentError
from blender_agent.integrations.intent import AssetProvider

logger = logging.getLogger(__name__)

SendFn = Callable[..., Awaitable[Any]]

STATUS_COMMANDS = {
    AssetProvider.POLYHAVEN: "get_polyhaven_status",
    AssetProvider.HYPER3D: "get_hyper3d_status",
    AssetProvider.SKETCHFAB: "get_sketchfab_status",
}


@dataclass
class IntegrationStatus:
    polyhaven: bool = False
    hyper3d: bool = False
    sketchfab: bool = False

    def is_enabled(self, provider: AssetProvider) -> bool:
        if provider == AssetProvider.NONE:
            return False
        return bool(getattr(self, provider.value, False))

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


class IntegrationStatusCache:
    """Caches the availability map for `ttl` seconds; failed checks are not cached."""

    def __init__(
        self,
        send: SendFn,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._send = send
        self.ttl = ttl if ttl is not None else config.INTEGRATION_STATUS_TTL
        self._clock = clock
        self._status: Optional[IntegrationStatus] = None
        self._fetched_at = 0.0

    @property
    def cached(self) -> Optional[IntegrationStatus]:
        return self._status

    def invalidate(self) -> None:
        self._status = None

    async def get(self, force: bool = False) -> IntegrationStatus:
        now = self._clock()
        if not force and self._status is not None and now - self._fetched_at < self.ttl:
            return self._status

        try:
            flags = {}
            for provider, command in STATUS_COMMANDS.items():
                reply = await self._send(command, {})
                flags[provider.value] = isinstance(reply, dict) and reply.get("enabled") is True
        except AgentError as exc:
            logger.warning("[integrations] status check failed: %s", exc)
            return IntegrationStatus()

        self._status = IntegrationStatus(**flags)
        self._fetched_at = now
        logger.info("[integrations] availability: %s", self._status.to_dict())
        return self._status


__all__ = ["IntegrationStatus", "IntegrationStatusCache", "STATUS_COMMANDS"]
