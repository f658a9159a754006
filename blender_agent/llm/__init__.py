# FILE: blender_agent/llm/__init__.py
"""LLM access: per-vendor calls and the agent-facing driver."""

from blender_agent.llm.driver import AgentDecision, LlmDriver
from blender_agent.llm.providers import LlmCallResult, LlmCallStatus, resolve_model

__all__ = ["AgentDecision", "LlmDriver", "LlmCallResult", "LlmCallStatus", "resolve_model"]
