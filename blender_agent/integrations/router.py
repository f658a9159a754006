# FILE: blender_agent/integrations/router.py
"""
Asset-intent router.

classify -> check live availability -> run the provider flow inside that
provider's circuit breaker. A prompt with no asset intent, or whose provider
is switched off in the addon, comes back as NOT_AVAILABLE so the caller can
synthesize geometry with code instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from blender_agent.agent.progress import ProgressTracker
from blender_agent.errors import AgentError, BreakerOpenError, ProviderError
from blender_agent.integrations.circuit_breaker import CircuitBreaker, get_breaker
from blender_agent.integrations.flows import (
    AssetFlow,
    Hyper3DFlow,
    ImportedAsset,
    PolyHavenFlow,
    SketchfabFlow,
)
from blender_agent.integrations.intent import AssetIntent, AssetProvider, classify_asset_intent
from blender_agent.integrations.status import IntegrationStatusCache

logger = logging.getLogger(__name__)

SendFn = Callable[..., Awaitable[Any]]


class RouteOutcome(str, Enum):
    IMPORTED = "imported"
    NOT_AVAILABLE = "not_available"


@dataclass
class AssetRouteResult:
    outcome: RouteOutcome
    intent: AssetIntent
    asset: Optional[ImportedAsset] = None
    reason: str = ""

    @property
    def imported(self) -> bool:
        return self.outcome == RouteOutcome.IMPORTED


class AssetRouter:
    def __init__(
        self,
        send: SendFn,
        status_cache: IntegrationStatusCache,
        flows: Optional[Dict[AssetProvider, AssetFlow]] = None,
        breakers: Optional[Dict[AssetProvider, CircuitBreaker]] = None,
    ):
        self._status_cache = status_cache
        self.flows: Dict[AssetProvider, AssetFlow] = flows or {
            AssetProvider.HYPER3D: Hyper3DFlow(send),
            AssetProvider.SKETCHFAB: SketchfabFlow(send),
            AssetProvider.POLYHAVEN: PolyHavenFlow(send),
        }
        self.breakers: Dict[AssetProvider, CircuitBreaker] = breakers or {
            provider: get_breaker(provider.value) for provider in self.flows
        }

    def classify(self, prompt: str) -> AssetIntent:
        return classify_asset_intent(prompt)

    async def route(
        self,
        prompt: str,
        progress: Optional[ProgressTracker] = None,
        images: Optional[List[str]] = None,
    ) -> AssetRouteResult:
        """
        Import an asset for `prompt` if a suitable provider is available.

        Raises BreakerOpenError when the provider's breaker rejects the call
        and ProviderError (or a subclass) when the flow itself fails.
        """
        intent = self.classify(prompt)
        if intent.is_none:
            return AssetRouteResult(RouteOutcome.NOT_AVAILABLE, intent, reason="no asset intent detected")

        status = await self._status_cache.get()
        if not status.is_enabled(intent.provider):
            logger.info("[asset-router] %s not enabled in Blender; falling back", intent.provider.value)
            return AssetRouteResult(
                RouteOutcome.NOT_AVAILABLE, intent, reason=f"{intent.provider.value} is not enabled"
            )

        flow = self.flows[intent.provider]
        breaker = self.breakers[intent.provider]
        if progress:
            progress.add(
                "asset_route",
                f"Importing from {intent.provider.value}",
                {"query": intent.query, "asset_kind": intent.asset_kind.value},
            )

        async def _run() -> ImportedAsset:
            try:
                if images and isinstance(flow, Hyper3DFlow):
                    return await flow.run(intent, progress, images=images)
                return await flow.run(intent, progress)
            except ProviderError:
                raise
            except AgentError as exc:
                raise ProviderError(
                    intent.provider.value, f"{intent.provider.value} flow failed: {exc.message}",
                    details={"cause_kind": exc.kind.value},
                ) from exc

        try:
            asset = await breaker.execute(_run)
        except BreakerOpenError:
            if progress:
                progress.merge("asset_route", message=f"{intent.provider.value} breaker is open")
            raise

        logger.info("[asset-router] imported %s from %s", asset.name, asset.provider)
        if progress:
            progress.merge("asset_route", message=f"Imported '{asset.name}' from {asset.provider}")
        return AssetRouteResult(RouteOutcome.IMPORTED, intent, asset=asset)

    def breaker_snapshots(self) -> Dict[str, Dict[str, Any]]:
        return {p.value: b.snapshot() for p, b in self.breakers.items()}


__all__ = ["RouteOutcome", "AssetRouteResult", "AssetRouter"]
