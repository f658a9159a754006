# FILE: blender_agent/llm/driver.py
"""
Provider-neutral LLM driver for the agent loop.

decide() asks for a {thought, action} JSON document and decodes it; complete()
returns plain text for auxiliary calls such as code synthesis. Every vendor
call runs inside that vendor's circuit breaker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from blender_agent import config
from blender_agent.agent.actions import ToolAction, parse_action
from blender_agent.errors import (
    InvalidAgentOutputError,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnconfiguredError,
)
from blender_agent.integrations.circuit_breaker import CircuitBreaker, get_breaker
from blender_agent.llm.providers import (
    LlmCallResult,
    LlmCallStatus,
    ProviderRegistry,
    get_provider_registry,
    resolve_model,
)
from blender_agent.transport.framing import extract_first_json_object

logger = logging.getLogger(__name__)


@dataclass
class AgentDecision:
    thought: str
    action: ToolAction
    raw: Dict[str, Any] = field(default_factory=dict)
    provider_id: str = ""


class LlmDriver:
    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout_seconds: Optional[int] = None,
        breakers: Optional[Dict[str, CircuitBreaker]] = None,
    ):
        self.registry = registry or get_provider_registry()
        self.temperature = config.LLM_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or config.LLM_MAX_TOKENS
        self.timeout_seconds = timeout_seconds or config.LLM_TIMEOUT_SECONDS
        self._breakers = breakers if breakers is not None else {}

    def breaker_for(self, provider_id: str) -> CircuitBreaker:
        breaker = self._breakers.get(provider_id)
        if breaker is None:
            breaker = get_breaker(f"llm:{provider_id}")
            self._breakers[provider_id] = breaker
        return breaker

    def ensure_configured(self, model_id: str) -> Tuple[str, str]:
        """Resolve `model_id`; raises ProviderUnconfiguredError when its credential is missing."""
        provider_id, model_name = resolve_model(model_id)
        if not self.registry.is_provider_available(provider_id):
            raise ProviderUnconfiguredError(provider_id)
        return provider_id, model_name

    async def _call(
        self,
        model_id: str,
        system_prompt: str,
        history: List[Dict[str, str]],
        json_mode: bool,
    ) -> LlmCallResult:
        provider_id, model_name = self.ensure_configured(model_id)

        async def _invoke() -> LlmCallResult:
            result = await self.registry.llm_call(
                provider_id,
                model_name,
                history,
                system_prompt=system_prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout_seconds=self.timeout_seconds,
                json_mode=json_mode,
            )
            if result.status == LlmCallStatus.PROVIDER_UNAVAILABLE:
                raise ProviderUnconfiguredError(provider_id, result.error_message)
            if result.status == LlmCallStatus.TIMEOUT:
                raise ProviderTimeoutError(provider_id, result.error_message or "LLM call timed out")
            if not result.is_success():
                raise ProviderError(provider_id, result.error_message or f"{provider_id} call failed")
            return result

        return await self.breaker_for(provider_id).execute(_invoke)

    async def decide(self, system_prompt: str, history: List[Dict[str, str]], model_id: str) -> AgentDecision:
        """
        One reasoning step. History turns are {"role": "user"|"assistant", "content": str}.

        Raises InvalidAgentOutputError when the reply holds no JSON object or no
        named action; provider failures propagate as their typed errors.
        """
        result = await self._call(model_id, system_prompt, history, json_mode=True)
        document = extract_first_json_object(result.content)
        if document is None:
            logger.warning("[llm] %s returned no JSON object: %r", result.provider_id, result.content[:200])
            raise InvalidAgentOutputError(
                "Agent returned malformed output (no JSON object found)",
                raw_output=result.content[:2000],
            )
        thought = document.get("thought")
        if not isinstance(thought, str) or not thought.strip():
            raise InvalidAgentOutputError("Agent decision is missing a thought", raw_output=result.content[:2000])
        action = parse_action(document.get("action"))
        return AgentDecision(
            thought=thought.strip(),
            action=action,
            raw=document,
            provider_id=result.provider_id,
        )

    async def complete(self, system_prompt: str, prompt: str, model_id: str) -> str:
        result = await self._call(model_id, system_prompt, [{"role": "user", "content": prompt}], json_mode=False)
        return result.content


__all__ = ["AgentDecision", "LlmDriver"]
