# FILE: blender_agent/integrations/__init__.py
"""Asset integrations: intent routing, provider flows and circuit breakers."""

from blender_agent.integrations.circuit_breaker import (
    BreakerState,
    CircuitBreaker,
    breaker_snapshots,
    get_breaker,
    reset_breakers,
)
from blender_agent.integrations.intent import AssetIntent, AssetKind, AssetProvider, classify_asset_intent

__all__ = [
    "BreakerState",
    "CircuitBreaker",
    "breaker_snapshots",
    "get_breaker",
    "reset_breakers",
    "AssetIntent",
    "AssetKind",
    "AssetProvider",
    "classify_asset_intent",
]
