# FILE: blender_agent/config.py
"""
Runtime configuration.

All tunables in one place, read from the environment once at import time.
Call load_dotenv() before importing this module if a .env file should apply.
"""

import os
from typing import List


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


# ============================================================================
# BLENDER HOST TRANSPORT
# ============================================================================

BLENDER_TCP_HOST: str = _env_str("BLENDER_TCP_HOST", "127.0.0.1")
BLENDER_TCP_PORT: int = _env_int("BLENDER_TCP_PORT", 9876)

# Per-command deadlines (seconds)
BLENDER_COMMAND_TIMEOUT: float = _env_float("BLENDER_COMMAND_TIMEOUT", 5.0)
BLENDER_EXECUTE_TIMEOUT: float = _env_float("BLENDER_EXECUTE_TIMEOUT", 30.0)

# Reconnect policy: exponential backoff, capped, bounded attempts
BLENDER_RECONNECT_BASE_DELAY: float = _env_float("BLENDER_RECONNECT_BASE_DELAY", 5.0)
BLENDER_RECONNECT_MAX_DELAY: float = _env_float("BLENDER_RECONNECT_MAX_DELAY", 60.0)
BLENDER_RECONNECT_MAX_ATTEMPTS: int = _env_int("BLENDER_RECONNECT_MAX_ATTEMPTS", 10)

# Unconsumed bytes tolerated while no request is pending
BLENDER_MAX_IDLE_BUFFER: int = _env_int("BLENDER_MAX_IDLE_BUFFER", 2048)

# ============================================================================
# ASSET INTEGRATIONS
# ============================================================================

BREAKER_FAILURE_THRESHOLD: int = _env_int("BREAKER_FAILURE_THRESHOLD", 3)
BREAKER_OPEN_TIMEOUT: float = _env_float("BREAKER_OPEN_TIMEOUT", 30.0)
BREAKER_HALF_OPEN_SUCCESSES: int = _env_int("BREAKER_HALF_OPEN_SUCCESSES", 2)

INTEGRATION_STATUS_TTL: float = _env_float("INTEGRATION_STATUS_TTL", 30.0)

HYPER3D_POLL_INTERVAL: float = _env_float("HYPER3D_POLL_INTERVAL", 3.0)
HYPER3D_TIMEOUT: float = _env_float("HYPER3D_TIMEOUT", 120.0)

# ============================================================================
# KNOWLEDGE BASE (RAG)
# ============================================================================

EMBEDDING_MODEL_NAME: str = _env_str("EMBEDDING_MODEL_NAME", "sentence-transformers/all-MiniLM-L6-v2")
# Must match the vector(n) column of both knowledge tables
EMBEDDING_DIMENSIONS: int = _env_int("EMBEDDING_DIMENSIONS", 384)

# Unset disables retrieval (search returns an empty list)
KNOWLEDGE_DATABASE_URL: str = os.getenv("KNOWLEDGE_DATABASE_URL", "").strip()
KNOWLEDGE_TABLE: str = _env_str("KNOWLEDGE_TABLE", "blender_knowledge_new")
KNOWLEDGE_FALLBACK_TABLE: str = _env_str("KNOWLEDGE_FALLBACK_TABLE", "blender_knowledge")
KNOWLEDGE_MIN_SIMILARITY: float = _env_float("KNOWLEDGE_MIN_SIMILARITY", 0.2)
KNOWLEDGE_SEARCH_LIMIT: int = _env_int("KNOWLEDGE_SEARCH_LIMIT", 5)
KNOWLEDGE_CHUNK_MIN_LENGTH: int = _env_int("KNOWLEDGE_CHUNK_MIN_LENGTH", 50)

# ============================================================================
# LLM
# ============================================================================

LLM_DEFAULT_MODEL: str = _env_str("LLM_DEFAULT_MODEL", "gemini")
LLM_TEMPERATURE: float = _env_float("LLM_TEMPERATURE", 0.3)
LLM_TIMEOUT_SECONDS: int = _env_int("LLM_TIMEOUT_SECONDS", 60)
LLM_MAX_TOKENS: int = _env_int("LLM_MAX_TOKENS", 2048)

# ============================================================================
# AGENT
# ============================================================================

AGENT_MAX_ITERATIONS: int = _env_int("AGENT_MAX_ITERATIONS", 10)
AGENT_HISTORY_WINDOW: int = _env_int("AGENT_HISTORY_WINDOW", 10)
STRICT_CODE_VALIDATION: bool = _env_bool("STRICT_CODE_VALIDATION", False)

CODE_CACHE_MAX: int = _env_int("CODE_CACHE_MAX", 100)
CODE_CACHE_TTL_SECONDS: float = _env_float("CODE_CACHE_TTL_SECONDS", 300.0)

# ============================================================================
# STORAGE / HTTP / LOGGING
# ============================================================================

DATABASE_URL: str = _env_str("BLENDER_AGENT_DATABASE_URL", "sqlite:///./data/blender_agent.db")

CORS_ORIGINS: List[str] = _env_list(
    "CORS_ORIGINS",
    [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
)

LOG_LEVEL: str = _env_str("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
