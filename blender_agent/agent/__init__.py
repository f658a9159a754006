# FILE: blender_agent/agent/__init__.py
"""
ReAct agent core.

Only leaf helpers are re-exported here; import the orchestrator from
blender_agent.agent.orchestrator (it depends on the integrations package,
which in turn uses the progress tracker from this package).
"""

from blender_agent.agent.cache import ResponseCache, make_cache_key
from blender_agent.agent.progress import ProgressStep, ProgressTracker
from blender_agent.agent.sanitizer import preflight_validate, sanitize_blender_code

__all__ = [
    "ResponseCache",
    "make_cache_key",
    "ProgressStep",
    "ProgressTracker",
    "preflight_validate",
    "sanitize_blender_code",
]
