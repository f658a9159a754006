# FILE: blender_agent/llm/providers.py
"""
LLM provider registry.

- Single async entrypoint: llm_call(...)
- Each vendor is called through its own SDK and normalised into LlmCallResult;
  SDK exceptions never escape this module.
- json_mode asks the vendor for a JSON object where it supports one.

Supported (if keys + SDKs installed):
- Google Gemini (google.generativeai), system prompt via system_instruction
- Groq (OpenAI-compatible endpoint through AsyncOpenAI)
- OpenAI (AsyncOpenAI)
- Anthropic (AsyncAnthropic), system prompt via the dedicated system field
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from blender_agent.errors import InvalidInputError

logger = logging.getLogger(__name__)


class LlmCallStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    INVALID_REQUEST = "invalid_request"


@dataclass
class LlmUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class LlmCallResult:
    status: LlmCallStatus
    provider_id: str
    model_id: str
    content: str = ""
    usage: LlmUsage = field(default_factory=LlmUsage)
    error_message: Optional[str] = None

    def is_success(self) -> bool:
        return self.status == LlmCallStatus.SUCCESS


@dataclass
class ProviderConfig:
    provider_id: str
    display_name: str
    env_key_names: Tuple[str, ...]
    default_model: str
    base_url: Optional[str] = None

    def api_key(self) -> str:
        for name in self.env_key_names:
            value = os.getenv(name, "").strip()
            if value:
                return value
        return ""


PROVIDERS: Dict[str, ProviderConfig] = {
    "gemini": ProviderConfig("gemini", "Google (Gemini)", ("GOOGLE_API_KEY", "GEMINI_API_KEY"), "gemini-2.5-flash"),
    "groq": ProviderConfig(
        "groq", "Groq", ("GROQ_API_KEY",), "llama-3.3-70b-versatile",
        base_url="https://api.groq.com/openai/v1",
    ),
    "openai": ProviderConfig("openai", "OpenAI", ("OPENAI_API_KEY",), "gpt-4o-mini"),
    "anthropic": ProviderConfig("anthropic", "Anthropic", ("ANTHROPIC_API_KEY",), "claude-sonnet-4-20250514"),
}

# Bare model names routed by prefix
_MODEL_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("gemini", "gemini"),
    ("gpt-", "openai"),
    ("claude", "anthropic"),
    ("llama", "groq"),
    ("mixtral", "groq"),
)


def resolve_model(model: Optional[str]) -> Tuple[str, str]:
    """
    Map a request's model string to (provider_id, vendor model name).

    Accepts a provider alias ("gemini"), "provider:model-name", or a bare
    vendor model name recognised by prefix. Raises InvalidInputError otherwise.
    """
    raw = (model or "").strip()
    if not raw:
        raise InvalidInputError("Model is required")
    lowered = raw.lower()
    if lowered in PROVIDERS:
        return lowered, PROVIDERS[lowered].default_model
    if ":" in raw:
        provider_id, _, model_name = raw.partition(":")
        provider_id = provider_id.strip().lower()
        if provider_id in PROVIDERS:
            return provider_id, model_name.strip() or PROVIDERS[provider_id].default_model
    for prefix, provider_id in _MODEL_PREFIXES:
        if lowered.startswith(prefix):
            return provider_id, raw
    raise InvalidInputError(f"Unknown model: {raw}", details={"model": raw})


def available_models() -> List[Dict[str, Any]]:
    return [
        {
            "id": cfg.provider_id,
            "name": cfg.display_name,
            "model": cfg.default_model,
            "configured": bool(cfg.api_key()),
        }
        for cfg in PROVIDERS.values()
    ]


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, asyncio.TimeoutError) or "timeout" in type(exc).__name__.lower()


def _normalize_messages_for_openai(messages: List[dict], system_prompt: Optional[str]) -> List[dict]:
    out: List[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    for m in messages:
        role = m.get("role")
        content = str(m.get("content", ""))
        if role in ("system", "user", "assistant"):
            out.append({"role": role, "content": content})
        elif role == "model":
            out.append({"role": "assistant", "content": content})
        else:
            out.append({"role": "user", "content": content})
    return out


def _normalize_messages_for_anthropic(messages: List[dict], system_prompt: Optional[str]) -> Tuple[str, List[dict]]:
    sys_parts: List[str] = []
    if system_prompt:
        sys_parts.append(system_prompt)

    user_assistant: List[dict] = []
    for m in messages:
        role = m.get("role")
        content = str(m.get("content", ""))
        if role == "system":
            sys_parts.append(content)
            continue
        role = "assistant" if role in ("assistant", "model") else "user"
        # Anthropic rejects two consecutive turns with the same role
        if user_assistant and user_assistant[-1]["role"] == role:
            user_assistant[-1]["content"] += "\n\n" + content
        else:
            user_assistant.append({"role": role, "content": content})

    return ("\n\n".join([p for p in sys_parts if p]).strip(), user_assistant)


def _normalize_messages_for_google(messages: List[dict]) -> List[dict]:
    """Gemini only knows "user" and "model" turns."""
    contents: List[dict] = []
    for m in messages:
        role = "model" if m.get("role") in ("assistant", "model") else "user"
        contents.append({"role": role, "parts": [str(m.get("content", ""))]})
    return contents


class ProviderRegistry:
    def is_provider_available(self, provider_id: str) -> bool:
        cfg = PROVIDERS.get(provider_id)
        if not cfg or not cfg.api_key():
            return False

        try:
            if provider_id in ("openai", "groq"):
                from openai import AsyncOpenAI  # noqa: F401
            elif provider_id == "anthropic":
                import anthropic  # noqa: F401
            elif provider_id == "gemini":
                import google.generativeai  # noqa: F401
        except ImportError:
            return False

        return True

    async def llm_call(
        self,
        provider_id: str,
        model_id: str,
        messages: List[dict],
        system_prompt: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        timeout_seconds: int = 60,
        json_mode: bool = False,
    ) -> LlmCallResult:
        if not self.is_provider_available(provider_id):
            return LlmCallResult(
                status=LlmCallStatus.PROVIDER_UNAVAILABLE,
                provider_id=provider_id,
                model_id=model_id,
                error_message=f"Provider unavailable: {provider_id}",
            )

        cfg = PROVIDERS[provider_id]
        try:
            if provider_id in ("openai", "groq"):
                return await self._call_openai(
                    cfg=cfg,
                    model_id=model_id,
                    messages=messages,
                    system_prompt=system_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout_seconds=timeout_seconds,
                    json_mode=json_mode,
                )
            if provider_id == "anthropic":
                return await self._call_anthropic(
                    cfg=cfg,
                    model_id=model_id,
                    messages=messages,
                    system_prompt=system_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout_seconds=timeout_seconds,
                )
            if provider_id == "gemini":
                return await self._call_google(
                    cfg=cfg,
                    model_id=model_id,
                    messages=messages,
                    system_prompt=system_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout_seconds=timeout_seconds,
                    json_mode=json_mode,
                )
            return LlmCallResult(
                status=LlmCallStatus.INVALID_REQUEST,
                provider_id=provider_id,
                model_id=model_id,
                error_message=f"Unknown provider: {provider_id}",
            )
        except Exception as exc:
            if _is_timeout(exc):
                logger.warning("[llm] %s timed out after %ss", provider_id, timeout_seconds)
                return LlmCallResult(
                    status=LlmCallStatus.TIMEOUT,
                    provider_id=provider_id,
                    model_id=model_id,
                    error_message=f"{cfg.display_name} did not answer within {timeout_seconds}s",
                )
            logger.exception("[llm] %s call failed: %s", provider_id, exc)
            return LlmCallResult(
                status=LlmCallStatus.ERROR,
                provider_id=provider_id,
                model_id=model_id,
                error_message=str(exc),
            )

    async def _call_openai(
        self,
        cfg: ProviderConfig,
        model_id: str,
        messages: List[dict],
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: int,
        timeout_seconds: int,
        json_mode: bool,
    ) -> LlmCallResult:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=cfg.api_key(), base_url=cfg.base_url, timeout=timeout_seconds)
        create_kwargs: Dict[str, Any] = dict(
            model=model_id,
            messages=_normalize_messages_for_openai(messages, system_prompt),
            temperature=temperature,
            max_tokens=int(max_tokens),
        )
        if json_mode:
            create_kwargs["response_format"] = {"type": "json_object"}

        resp = await client.chat.completions.create(**create_kwargs)
        content = ""
        if resp.choices:
            content = resp.choices[0].message.content or ""
        usage = LlmUsage()
        if getattr(resp, "usage", None):
            usage = LlmUsage(
                prompt_tokens=resp.usage.prompt_tokens or 0,
                completion_tokens=resp.usage.completion_tokens or 0,
                total_tokens=resp.usage.total_tokens or 0,
            )
        return LlmCallResult(
            status=LlmCallStatus.SUCCESS,
            provider_id=cfg.provider_id,
            model_id=model_id,
            content=content.strip(),
            usage=usage,
        )

    async def _call_anthropic(
        self,
        cfg: ProviderConfig,
        model_id: str,
        messages: List[dict],
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: int,
        timeout_seconds: int,
    ) -> LlmCallResult:
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic(api_key=cfg.api_key(), timeout=timeout_seconds)
        final_system, user_assistant = _normalize_messages_for_anthropic(messages, system_prompt)
        create_kwargs: Dict[str, Any] = dict(
            model=model_id,
            messages=user_assistant,
            temperature=temperature,
            max_tokens=int(max_tokens),
        )
        if final_system:
            create_kwargs["system"] = final_system

        resp = await client.messages.create(**create_kwargs)
        text_parts = [getattr(b, "text", "") for b in (resp.content or []) if getattr(b, "type", None) == "text"]
        usage = LlmUsage(
            prompt_tokens=getattr(resp.usage, "input_tokens", 0) if getattr(resp, "usage", None) else 0,
            completion_tokens=getattr(resp.usage, "output_tokens", 0) if getattr(resp, "usage", None) else 0,
        )
        usage.total_tokens = usage.prompt_tokens + usage.completion_tokens
        return LlmCallResult(
            status=LlmCallStatus.SUCCESS,
            provider_id=cfg.provider_id,
            model_id=model_id,
            content="\n".join(t for t in text_parts if t).strip(),
            usage=usage,
        )

    async def _call_google(
        self,
        cfg: ProviderConfig,
        model_id: str,
        messages: List[dict],
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: int,
        timeout_seconds: int,
        json_mode: bool,
    ) -> LlmCallResult:
        import google.generativeai as genai

        genai.configure(api_key=cfg.api_key())
        generation_config: Dict[str, Any] = {"temperature": temperature, "max_output_tokens": int(max_tokens)}
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        model = genai.GenerativeModel(
            model_id,
            system_instruction=system_prompt or None,
            generation_config=generation_config,
        )
        contents = _normalize_messages_for_google(messages)
        resp = await asyncio.wait_for(model.generate_content_async(contents), timeout=timeout_seconds)

        usage = LlmUsage()
        meta = getattr(resp, "usage_metadata", None)
        if meta is not None:
            usage = LlmUsage(
                prompt_tokens=getattr(meta, "prompt_token_count", 0) or 0,
                completion_tokens=getattr(meta, "candidates_token_count", 0) or 0,
                total_tokens=getattr(meta, "total_token_count", 0) or 0,
            )
        return LlmCallResult(
            status=LlmCallStatus.SUCCESS,
            provider_id=cfg.provider_id,
            model_id=model_id,
            content=(getattr(resp, "text", "") or "").strip(),
            usage=usage,
        )


_registry: Optional[ProviderRegistry] = None


def get_provider_registry() -> ProviderRegistry:
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
    return _registry


__all__ = [
    "LlmCallStatus",
    "LlmUsage",
    "LlmCallResult",
    "ProviderConfig",
    "PROVIDERS",
    "ProviderRegistry",
    "available_models",
    "get_provider_registry",
    "resolve_model",
]
