# FILE: blender_agent/errors.py
"""
Error taxonomy for the agent core.

Every failure the core surfaces is an AgentError subclass tagged with an
ErrorKind. The REST layer renders them with to_dict() and maps the kind to an
HTTP status; the orchestrator attaches its progress log before re-raising.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    HOST_UNAVAILABLE = "HOST_UNAVAILABLE"
    HOST_BUSY = "HOST_BUSY"
    TIMEOUT = "TIMEOUT"
    HOST_EXEC_ERROR = "HOST_EXEC_ERROR"
    AGENT_REASON_FAILED = "AGENT_REASON_FAILED"
    PROVIDER_UNCONFIGURED = "PROVIDER_UNCONFIGURED"
    BREAKER_OPEN = "BREAKER_OPEN"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    LOOP_EXHAUSTED = "LOOP_EXHAUSTED"
    INTERNAL = "INTERNAL"


class AgentError(Exception):
    """Base class for all typed failures raised by the core."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        sub_kind: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        progress: Optional[List[dict]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.sub_kind = sub_kind
        self.details = details or {}
        self.progress = progress

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "kind": self.kind.value,
            "sub_kind": self.sub_kind,
            "details": self.details or None,
            "progress": self.progress or [],
        }


# ============================================================================
# INPUT
# ============================================================================

class InvalidInputError(AgentError):
    kind = ErrorKind.INVALID_INPUT


class ConversationNotFoundError(InvalidInputError):
    def __init__(self, conversation_id: str):
        super().__init__(
            "Conversation not found",
            sub_kind="unknown_conversation",
            details={"conversation_id": conversation_id},
        )


class RequestCancelledError(AgentError):
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str = "Request cancelled", **kwargs: Any):
        kwargs.setdefault("sub_kind", "cancelled")
        super().__init__(message, **kwargs)


# ============================================================================
# HOST TRANSPORT
# ============================================================================

class HostUnavailableError(AgentError):
    kind = ErrorKind.HOST_UNAVAILABLE


class HostBusyError(AgentError):
    kind = ErrorKind.HOST_BUSY


class TransportTimeoutError(AgentError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, command_type: str, timeout: float):
        super().__init__(
            f"Timeout: no response for {command_type} after {timeout:g}s",
            details={"command": command_type, "timeout": timeout},
        )
        self.command_type = command_type
        self.timeout = timeout


class HostExecError(AgentError):
    """Host answered with status "error"."""

    kind = ErrorKind.HOST_EXEC_ERROR

    def __init__(self, message: str, *, code: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = code
        if code is not None:
            self.details.setdefault("code", code)


class FramingError(AgentError):
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("sub_kind", "framing")
        super().__init__(message, **kwargs)


# ============================================================================
# LLM
# ============================================================================

class AgentReasonError(AgentError):
    kind = ErrorKind.AGENT_REASON_FAILED

    def __init__(self, message: str, *, cause: Optional[BaseException] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.cause = cause
        if isinstance(cause, AgentError):
            self.details.setdefault("cause_kind", cause.kind.value)
            if cause.sub_kind:
                self.details.setdefault("cause_sub_kind", cause.sub_kind)


class InvalidAgentOutputError(AgentReasonError):
    def __init__(self, message: str, *, raw_output: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("sub_kind", "invalid_agent_output")
        super().__init__(message, **kwargs)
        self.raw_output = raw_output


class ProviderUnconfiguredError(AgentError):
    kind = ErrorKind.PROVIDER_UNCONFIGURED

    def __init__(self, provider_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Provider not configured: {provider_id}",
            details={"provider": provider_id},
        )
        self.provider_id = provider_id


# ============================================================================
# UPSTREAM PROVIDERS
# ============================================================================

class BreakerOpenError(AgentError):
    kind = ErrorKind.BREAKER_OPEN

    def __init__(self, name: str, retry_after: float):
        super().__init__(
            f"Circuit breaker '{name}' is OPEN. Retry after {max(0, math.ceil(retry_after))}s",
            details={"breaker": name, "retry_after": retry_after},
        )
        self.name = name
        self.retry_after = retry_after


class ProviderError(AgentError):
    kind = ErrorKind.PROVIDER_ERROR

    def __init__(self, provider: str, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.provider = provider
        self.details.setdefault("provider", provider)


class ProviderTimeoutError(ProviderError):
    kind = ErrorKind.TIMEOUT


# ============================================================================
# LOOP / CONFIG
# ============================================================================

class LoopExhaustedError(AgentError):
    kind = ErrorKind.LOOP_EXHAUSTED


class ConfigurationError(AgentError):
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("sub_kind", "configuration")
        super().__init__(message, **kwargs)


class EmbeddingDimensionError(ConfigurationError):
    def __init__(self, expected: int, actual: int, source: str):
        super().__init__(
            f"Embedding dimension mismatch for {source}: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual, "source": source},
        )


__all__ = [
    "ErrorKind",
    "AgentError",
    "InvalidInputError",
    "ConversationNotFoundError",
    "RequestCancelledError",
    "HostUnavailableError",
    "HostBusyError",
    "TransportTimeoutError",
    "HostExecError",
    "FramingError",
    "AgentReasonError",
    "InvalidAgentOutputError",
    "ProviderUnconfiguredError",
    "BreakerOpenError",
    "ProviderError",
    "ProviderTimeoutError",
    "LoopExhaustedError",
    "ConfigurationError",
    "EmbeddingDimensionError",
]
