# FILE: blender_agent/memory/schemas.py
"""Conversation store Pydantic schemas."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============== CONVERSATION ==============

class ConversationCreate(BaseModel):
    title: Optional[str] = None


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    last_scene_context: Optional[Any] = None
    created_at: datetime
    updated_at: datetime


# ============== MESSAGE ==============

class MessageCreate(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str
    provider: Optional[str] = None
    host_result: Optional[Any] = None
    scene_context: Optional[Any] = None
    metadata: Optional[Dict[str, Any]] = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    role: str
    content: str
    provider: Optional[str] = None
    host_result: Optional[Any] = None
    scene_context: Optional[Any] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="meta")
    created_at: datetime


class ConversationDetail(ConversationOut):
    messages: List[MessageOut] = []
