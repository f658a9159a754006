# FILE: blender_agent/api/router.py
"""
REST API (mounted under /api)

- POST /generate - Run the agent for one prompt
- GET /conversations - List the caller's conversations
- POST /conversations - Create an empty conversation
- GET /conversations/{id} - Conversation with its messages
- DELETE /conversations/{id} - Delete a conversation
- POST /jobs - Queue a generation
- GET /jobs/{id} - Job status and result
- POST /scene-info - Fetch the live Blender scene
- GET /models - LLM providers and whether they are configured
- GET /health - Transport, breakers, integrations, queue depth
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from blender_agent.agent.messages import humanize_error_message
from blender_agent.agent.orchestrator import GenerationRequest
from blender_agent.api.deps import require_user, services_dep
from blender_agent.api.schemas import (
    GenerateRequest,
    GenerateResponse,
    JobOut,
    JobSubmitResponse,
    SceneInfoRequest,
)
from blender_agent.db import get_db
from blender_agent.errors import AgentError, ConversationNotFoundError, ErrorKind
from blender_agent.llm.providers import available_models
from blender_agent.memory import schemas as memory_schemas
from blender_agent.memory import service as memory_service
from blender_agent.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.PROVIDER_UNCONFIGURED: 400,
    ErrorKind.HOST_BUSY: 409,
    ErrorKind.HOST_UNAVAILABLE: 503,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.AGENT_REASON_FAILED: 502,
    ErrorKind.PROVIDER_ERROR: 502,
    ErrorKind.BREAKER_OPEN: 502,
}


def status_for_error(exc: AgentError) -> int:
    if isinstance(exc, ConversationNotFoundError):
        return 404
    return _STATUS_BY_KIND.get(exc.kind, 500)


async def agent_error_handler(request: Request, exc: AgentError) -> JSONResponse:
    body = exc.to_dict()
    body["error"] = humanize_error_message(exc.message)
    return JSONResponse(status_code=status_for_error(exc), content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AgentError, agent_error_handler)


# =============================================================================
# GENERATION
# =============================================================================

@router.post("/generate", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    user_id: str = Depends(require_user),
    services: Services = Depends(services_dep),
):
    result = await services.orchestrator.run(GenerationRequest(**body.to_payload()), user_id)
    return result.to_dict()


# =============================================================================
# CONVERSATIONS
# =============================================================================

@router.get("/conversations", response_model=List[memory_schemas.ConversationOut])
def list_conversations(user_id: str = Depends(require_user), db: Session = Depends(get_db)):
    return memory_service.list_conversations_for_user(db, user_id)


@router.post("/conversations", response_model=memory_schemas.ConversationOut, status_code=201)
def create_conversation(
    data: memory_schemas.ConversationCreate,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    return memory_service.create_conversation(db, user_id, data.title)


@router.get("/conversations/{conversation_id}", response_model=memory_schemas.ConversationDetail)
def get_conversation(conversation_id: str, user_id: str = Depends(require_user), db: Session = Depends(get_db)):
    conversation = memory_service.get_conversation_for_user(db, user_id, conversation_id)
    if not conversation:
        raise ConversationNotFoundError(conversation_id)
    return memory_schemas.ConversationDetail.model_validate(conversation)


@router.delete("/conversations/{conversation_id}")
def delete_conversation(conversation_id: str, user_id: str = Depends(require_user), db: Session = Depends(get_db)):
    if not memory_service.delete_conversation_for_user(db, user_id, conversation_id):
        raise ConversationNotFoundError(conversation_id)
    return {"ok": True, "id": conversation_id}


# =============================================================================
# JOBS
# =============================================================================

@router.post("/jobs", response_model=JobSubmitResponse, status_code=202)
async def submit_job(
    body: GenerateRequest,
    user_id: str = Depends(require_user),
    services: Services = Depends(services_dep),
):
    if not body.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt required")
    job = services.jobs.submit(body.to_payload(), user_id)
    return JobSubmitResponse(id=job.id, status=job.status.value)


@router.get("/jobs/{job_id}", response_model=JobOut)
def get_job(job_id: str, user_id: str = Depends(require_user), services: Services = Depends(services_dep)):
    job = services.jobs.get(job_id, user_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


# =============================================================================
# BLENDER / STATUS
# =============================================================================

@router.post("/scene-info")
async def scene_info(
    body: SceneInfoRequest,
    user_id: str = Depends(require_user),
    services: Services = Depends(services_dep),
):
    if body.conversation_id and services.store.get(user_id, body.conversation_id) is None:
        raise ConversationNotFoundError(body.conversation_id)
    scene = await services.connection.send("get_scene_info", {})
    if body.conversation_id:
        services.store.touch(body.conversation_id, scene_context=scene)
    return {"scene_context": scene}


@router.get("/models")
def list_models():
    return {"models": available_models()}


@router.get("/health")
async def health(services: Services = Depends(services_dep)):
    return await services.health()
