# FILE: blender_agent/api/schemas.py
"""REST request/response bodies."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from blender_agent import config


class GenerateRequest(BaseModel):
    prompt: str
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    model: str = config.LLM_DEFAULT_MODEL
    attachments: List[str] = []
    capture_screenshot: bool = Field(default=False, alias="captureScreenshot")
    debug: bool = False
    scene_context: Optional[Any] = Field(default=None, alias="sceneContext")

    model_config = {"populate_by_name": True, "protected_namespaces": ()}

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=False)


class GenerateResponse(BaseModel):
    response: str
    provider: str
    conversation_id: str
    conversation_title: str
    scene_context: Optional[Any] = None
    host_result: Optional[Any] = None
    loop_count: int
    finished: bool
    error_kind: Optional[str] = None
    progress: List[Dict[str, Any]] = []
    agent_history: List[Dict[str, Any]] = []
    screenshot: Optional[Any] = None
    debug_artifacts: Optional[Dict[str, Any]] = None


class JobSubmitResponse(BaseModel):
    id: str
    status: str


class JobOut(BaseModel):
    id: str
    status: str
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None
    created_at: str
    started_at: Optional[str] = None
    finished_at: Optional[str] = None


class SceneInfoRequest(BaseModel):
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")

    model_config = {"populate_by_name": True}


class ErrorOut(BaseModel):
    error: str
    kind: str
    sub_kind: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    progress: List[Dict[str, Any]] = []
