# FILE: blender_agent/api/deps.py
"""FastAPI dependencies: caller identity and shared services."""
from typing import Optional

from fastapi import Header, HTTPException

from blender_agent.services import Services, get_services


def require_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Caller identity from the X-User-Id header.

    Authentication itself happens in front of this service; a request without
    an identity is rejected.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


def services_dep() -> Services:
    return get_services()
