# FILE: blender_agent/agent/orchestrator.py
"""
ReAct orchestrator: reason -> act -> observe until finish_task or the
iteration bound.

Each request gets its own agent history and progress log. Host calls are made
one at a time; the transport's single-flight rule serialises them across
requests. The system prompt is rebuilt every iteration from the current scene
context and retrieval context.

Terminal conditions:
- finish_task: its thought is the reply; no further host calls.
- iteration bound: fixed fallback reply, error_kind LOOP_EXHAUSTED.
- reasoning failure, execute_code timeout, host busy, cancellation: raised
  to the caller after the humanised error is persisted on the conversation.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from blender_agent import config
from blender_agent.agent.actions import (
    AssetSearchAndImport,
    ExecuteBlenderCode,
    GetSceneInfo,
    SearchKnowledgeBase,
    ToolAction,
)
from blender_agent.agent.cache import ResponseCache, make_cache_key
from blender_agent.agent.messages import (
    humanize_error_message,
    loop_exhausted_message,
    summarize_text,
)
from blender_agent.agent.progress import ProgressTracker
from blender_agent.agent.prompts import (
    CODE_SYNTHESIS_SYSTEM_PROMPT,
    build_agent_system_prompt,
    build_code_synthesis_prompt,
)
from blender_agent.agent.sanitizer import extract_code_from_text, preflight_validate, sanitize_blender_code
from blender_agent.errors import (
    AgentError,
    AgentReasonError,
    BreakerOpenError,
    ConversationNotFoundError,
    ErrorKind,
    HostBusyError,
    HostExecError,
    InvalidInputError,
    LoopExhaustedError,
    ProviderError,
    RequestCancelledError,
    TransportTimeoutError,
)
from blender_agent.integrations.router import AssetRouter
from blender_agent.integrations.status import IntegrationStatusCache
from blender_agent.knowledge.search import KnowledgeSearch
from blender_agent.llm.driver import LlmDriver
from blender_agent.memory.schemas import ConversationOut, MessageCreate
from blender_agent.memory.service import ConversationStore

logger = logging.getLogger(__name__)


# ============================================================================
# REQUEST / RESULT
# ============================================================================

@dataclass
class GenerationRequest:
    prompt: str
    conversation_id: Optional[str] = None
    model: str = config.LLM_DEFAULT_MODEL
    attachments: List[str] = field(default_factory=list)
    capture_screenshot: bool = False
    debug: bool = False
    scene_context: Optional[Any] = None


@dataclass
class GenerationResult:
    response: str
    provider: str
    conversation_id: str
    conversation_title: str
    scene_context: Optional[Any]
    host_result: Optional[Any]
    loop_count: int
    finished: bool
    progress: List[Dict[str, Any]]
    agent_history: List[Dict[str, str]] = field(default_factory=list)
    error_kind: Optional[str] = None
    screenshot: Optional[Any] = None
    debug_artifacts: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "provider": self.provider,
            "conversation_id": self.conversation_id,
            "conversation_title": self.conversation_title,
            "scene_context": self.scene_context,
            "host_result": self.host_result,
            "loop_count": self.loop_count,
            "finished": self.finished,
            "error_kind": self.error_kind,
            "progress": self.progress,
            "agent_history": self.agent_history,
            "screenshot": self.screenshot,
            "debug_artifacts": self.debug_artifacts,
        }


class CancellationToken:
    """Cooperative cancellation, checked between iterations."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError()


@dataclass
class _RunState:
    request: GenerationRequest
    user_id: str
    conversation: ConversationOut
    progress: ProgressTracker
    scene_context: Optional[Any] = None
    rag_context: List[str] = field(default_factory=list)
    last_host_result: Optional[Any] = None
    system_prompt: str = ""


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class ReactOrchestrator:
    def __init__(
        self,
        host,
        driver: LlmDriver,
        knowledge: KnowledgeSearch,
        router: AssetRouter,
        status_cache: IntegrationStatusCache,
        store: ConversationStore,
        cache: Optional[ResponseCache] = None,
        max_iterations: Optional[int] = None,
        strict_validation: Optional[bool] = None,
    ):
        self.host = host
        self.driver = driver
        self.knowledge = knowledge
        self.router = router
        self.status_cache = status_cache
        self.store = store
        self.cache = cache if cache is not None else ResponseCache()
        self.max_iterations = max_iterations or config.AGENT_MAX_ITERATIONS
        self.strict_validation = (
            config.STRICT_CODE_VALIDATION if strict_validation is None else strict_validation
        )

    async def run(
        self,
        request: GenerationRequest,
        user_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> GenerationResult:
        progress = ProgressTracker()
        progress.add("init", "Starting ReAct agent workflow")
        conversation: Optional[ConversationOut] = None
        try:
            prompt = (request.prompt or "").strip()
            if not prompt:
                raise InvalidInputError("Prompt required")
            self.driver.ensure_configured(request.model)
            conversation = self._open_conversation(request, user_id, prompt, progress)
            state = _RunState(
                request=request,
                user_id=user_id,
                conversation=conversation,
                progress=progress,
                scene_context=request.scene_context or conversation.last_scene_context,
            )
            return await self._run(state, prompt, cancel_token)
        except AgentError as exc:
            exc.progress = progress.to_list()
            if conversation is not None:
                self._persist_error(conversation.id, exc, request.model)
            raise
        except Exception as exc:
            logger.exception("[agent] FATAL ERROR in generation: %s", exc)
            error = AgentError(f"FATAL ERROR: {exc}", progress=progress.to_list())
            if conversation is not None:
                self._persist_error(conversation.id, error, request.model)
            raise error from exc

    # ===== SETUP =====

    def _open_conversation(
        self, request: GenerationRequest, user_id: str, prompt: str, progress: ProgressTracker
    ) -> ConversationOut:
        if request.conversation_id:
            progress.add("conversation_lookup", "Loading existing conversation")
            conversation = self.store.get(user_id, request.conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(request.conversation_id)
            progress.merge("conversation_lookup", message="Conversation loaded")
            return conversation
        progress.add("conversation_create", "Creating new conversation")
        conversation = self.store.create(user_id, prompt)
        progress.merge(
            "conversation_create", message="Conversation created", data={"conversation_id": conversation.id}
        )
        return conversation

    async def _prefetch_context(self, state: _RunState) -> None:
        progress = state.progress
        if not self.host.is_connected:
            progress.add("context_skipped", "Blender not connected, using cached context")
            return
        progress.add("context_fetch", "Fetching context from Blender...")
        try:
            state.scene_context = await self.host.send("get_scene_info", {})
        except AgentError as exc:
            progress.add_error("scene_context", "Failed to fetch scene context", exc.message)
        status = await self.status_cache.get()
        progress.merge("context_fetch", message="Blender context updated", data={"integrations": status.to_dict()})

    # ===== LOOP =====

    async def _run(
        self, state: _RunState, prompt: str, cancel_token: Optional[CancellationToken]
    ) -> GenerationResult:
        request, progress = state.request, state.progress
        conversation_id = state.conversation.id

        db_history = self.store.history(conversation_id)
        await self._prefetch_context(state)
        self.store.save_message(conversation_id, MessageCreate(role="user", content=prompt))

        progress.add("rag_prefetch", "Searching documentation")
        state.rag_context = await self.knowledge.search(prompt, limit=config.KNOWLEDGE_SEARCH_LIMIT)
        progress.merge("rag_prefetch", message=f"Found {len(state.rag_context)} documentation chunk(s)")

        agent_history: List[Dict[str, str]] = [{"role": "user", "content": prompt}]
        finished = False
        final_answer = ""
        provider = request.model
        loop_count = 0

        while not finished and loop_count < self.max_iterations:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            loop_count += 1
            progress.add(f"agent_loop_{loop_count}", f"Agent reasoning loop {loop_count} / {self.max_iterations}")

            state.system_prompt = build_agent_system_prompt(state.scene_context, state.rag_context)
            logger.info("[agent] loop %d: thinking", loop_count)
            try:
                decision = await self.driver.decide(state.system_prompt, db_history + agent_history, request.model)
            except AgentReasonError as exc:
                progress.add_error(f"agent_reason_{loop_count}", "Agent returned malformed output", exc.message)
                raise
            except AgentError as exc:
                progress.add_error(f"agent_reason_{loop_count}", "Agent reasoning failed (LLM call)", exc.message)
                raise AgentReasonError(f"Agent reasoning failed: {exc.message}", cause=exc) from exc

            provider = decision.provider_id or provider
            progress.merge(f"agent_reason_{loop_count}", message=f"Thought: {summarize_text(decision.thought, 100)}")
            logger.info("[agent] loop %d: action %s", loop_count, decision.action.name)
            agent_history.append({"role": "assistant", "content": json.dumps(decision.raw, ensure_ascii=False)})

            step = f"agent_act_{loop_count}"
            progress.add(step, f"Executing tool: {decision.action.name}")
            if decision.action.is_terminal:
                finished = True
                final_answer = decision.thought
                progress.merge(step, message="Task finished")
                progress.merge(f"agent_loop_{loop_count}", message=f"Loop {loop_count} completed")
                break

            observation = await self._dispatch(decision.action, state, step)
            logger.info("[agent] observation: %s", summarize_text(observation, 200))
            agent_history.append({"role": "user", "content": "Observation: " + observation})
            progress.merge(f"agent_loop_{loop_count}", message=f"Loop {loop_count} completed")

        exhausted: Optional[LoopExhaustedError] = None
        if not finished:
            exhausted = LoopExhaustedError(
                loop_exhausted_message(self.max_iterations),
                details={"max_iterations": self.max_iterations},
            )
            progress.add_error("agent_max_loops", "Agent reached maximum loops without finishing", exhausted.details)
            final_answer = exhausted.message
        error_kind = exhausted.kind.value if exhausted else None

        screenshot = None
        if request.capture_screenshot and self.host.is_connected:
            screenshot = await self._capture_viewport(progress)

        metadata: Dict[str, Any] = {
            "agent_history": agent_history,
            "loop_count": loop_count,
            "progress": progress.to_list(),
        }
        if exhausted:
            metadata["error_kind"] = error_kind
            metadata["error"] = exhausted.to_dict()
        self.store.save_message(
            conversation_id,
            MessageCreate(
                role="assistant",
                content=final_answer,
                provider=provider,
                host_result=state.last_host_result,
                scene_context=state.scene_context,
                metadata=metadata,
            ),
        )
        updated = self.store.touch(conversation_id, scene_context=state.scene_context, prompt_for_title=prompt)

        return GenerationResult(
            response=final_answer,
            provider=provider,
            conversation_id=conversation_id,
            conversation_title=(updated or state.conversation).title,
            scene_context=state.scene_context,
            host_result=state.last_host_result,
            loop_count=loop_count,
            finished=finished,
            progress=progress.to_list(),
            agent_history=agent_history,
            error_kind=error_kind,
            screenshot=screenshot,
            debug_artifacts={
                "agent_history": agent_history,
                "scene_context": state.scene_context,
                "rag_context": state.rag_context,
                "system_prompt": state.system_prompt,
            } if request.debug else None,
        )

    # ===== ACT =====

    async def _dispatch(self, action: ToolAction, state: _RunState, step: str) -> str:
        progress = state.progress
        try:
            if isinstance(action, GetSceneInfo):
                return await self._tool_scene_info(state, step)
            if isinstance(action, SearchKnowledgeBase):
                return await self._tool_search(action, state, step)
            if isinstance(action, AssetSearchAndImport):
                return await self._tool_asset(action, state, step)
            if isinstance(action, ExecuteBlenderCode):
                return await self._tool_execute(action, state, step)
            progress.add_error(step, "Unknown action", action.name)
            return f"Error: Unknown action '{action.name}'. I must choose from the provided tool list."
        except TransportTimeoutError as exc:
            if exc.command_type == "execute_code":
                progress.add_error(step, "Code execution timed out", exc.message)
                raise
            progress.add_error(step, "Tool execution error", exc.message)
            return f"Tool execution error: {exc.message}. I will try to recover."
        except (HostBusyError, RequestCancelledError):
            raise
        except AgentError as exc:
            if exc.kind == ErrorKind.INTERNAL and exc.sub_kind == "configuration":
                raise
            progress.add_error(step, "Tool execution error", exc.message)
            return f"Tool execution error: {exc.message}. I will try to recover."

    async def _tool_scene_info(self, state: _RunState, step: str) -> str:
        if not self.host.is_connected:
            return "Error: Blender is not connected. I cannot see the scene."
        state.scene_context = await self.host.send("get_scene_info", {})
        state.progress.merge(step, message="Scene info retrieved")
        return f"Scene info updated. Current objects: {_object_names(state.scene_context)}"

    async def _tool_search(self, action: SearchKnowledgeBase, state: _RunState, step: str) -> str:
        if not action.query:
            return "Error: No query provided for knowledge base search."
        state.rag_context = await self.knowledge.search(action.query, limit=config.KNOWLEDGE_SEARCH_LIMIT)
        state.progress.merge(step, message="Knowledge base searched", data={"documents": len(state.rag_context)})
        return (
            f'Knowledge base search for "{action.query}" returned {len(state.rag_context)} documents. '
            "I will use this to write my code."
        )

    async def _tool_asset(self, action: AssetSearchAndImport, state: _RunState, step: str) -> str:
        if not self.host.is_connected:
            return "Error: Blender is not connected. Cannot import assets."
        progress = state.progress
        asset_prompt = action.prompt or state.request.prompt.strip()

        await self.status_cache.get()
        try:
            route = await self.router.route(asset_prompt, progress, images=state.request.attachments or None)
            reason = route.reason
        except (BreakerOpenError, ProviderError) as exc:
            progress.add_error(step, "Asset import failed", exc.message, {"kind": exc.kind.value, "sub_kind": exc.sub_kind})
            route, reason = None, exc.message

        if route is not None and route.imported:
            await self._refresh_scene(state)
            progress.merge(step, message="Asset imported", data=route.asset.to_dict())
            return (
                f"Successfully imported asset: A new asset named '{route.asset.name}' was imported. "
                "I should now write code to select, scale, and move it."
            )

        logger.info("[agent] asset import unavailable (%s); synthesizing code", reason)
        code = await self._synthesize_code(asset_prompt, state)
        observation = await self._execute_code(code, state, step)
        return f"Asset import was not available ({reason}), so I generated the asset with code instead. {observation}"

    async def _tool_execute(self, action: ExecuteBlenderCode, state: _RunState, step: str) -> str:
        if not action.code.strip():
            return "Error: No code provided for execution."
        if not self.host.is_connected:
            return "Error: Blender is not connected. Cannot execute code."
        return await self._execute_code(action.code, state, step)

    async def _synthesize_code(self, asset_prompt: str, state: _RunState) -> str:
        """One auxiliary LLM turn for bpy code that builds the asset; memoised per user and conversation."""
        synthesis_prompt = build_code_synthesis_prompt(asset_prompt)
        key = make_cache_key(synthesis_prompt, state.user_id, state.conversation.id)
        cached = self.cache.get(key)
        if cached is not None:
            state.progress.add("code_synthesis", "Reusing generated code for this asset")
            return cached

        state.progress.add("code_synthesis", f"Generating code for '{summarize_text(asset_prompt, 60)}'")
        text = await self.driver.complete(CODE_SYNTHESIS_SYSTEM_PROMPT, synthesis_prompt, state.request.model)
        code = sanitize_blender_code(extract_code_from_text(text))
        self.cache.set(key, code)
        state.progress.merge("code_synthesis", message="Code generated")
        return code

    async def _execute_code(self, code: str, state: _RunState, step: str) -> str:
        progress = state.progress
        sanitized = sanitize_blender_code(code)
        issues = preflight_validate(sanitized)
        if issues:
            logger.warning("[agent] pre-flight issues: %s", "; ".join(issues))
            progress.merge(step, data={"validation_issues": issues})
            if self.strict_validation:
                progress.add_error(step, "Code failed validation", "; ".join(issues))
                return f"Code validation FAILED: {'; '.join(issues)}. I must fix these issues and try again."

        try:
            result = await self.host.execute_code(sanitized)
        except HostExecError as exc:
            state.last_host_result = {"status": "error", "error": exc.message, "code": sanitized}
            progress.add_error(step, "Code execution failed", exc.message)
            return f"Code execution FAILED: {exc.message}. I must analyze this error and try again."

        state.last_host_result = result
        if isinstance(result, dict) and (result.get("status") == "error" or result.get("executed") is False):
            message = result.get("error") or result.get("result") or "Unknown execution error"
            progress.add_error(step, "Code execution failed", message)
            return f"Code execution FAILED: {message}. I must analyze this error and try again."

        await self._refresh_scene(state)
        output = result.get("result") if isinstance(result, dict) else result
        object_count = "unknown"
        if isinstance(state.scene_context, dict) and state.scene_context.get("object_count") is not None:
            object_count = state.scene_context["object_count"]
        progress.merge(step, message="Code executed successfully")
        return f"Code executed successfully. Output: {output or 'No output'}. Scene now has {object_count} objects."

    async def _refresh_scene(self, state: _RunState) -> None:
        try:
            state.scene_context = await self.host.send("get_scene_info", {})
        except AgentError as exc:
            state.progress.add_error("scene_refresh", "Failed to refresh scene context", exc.message)

    async def _capture_viewport(self, progress: ProgressTracker) -> Optional[Any]:
        progress.add("screenshot", "Capturing viewport")
        try:
            screenshot = await self.host.send("capture_viewport", {})
        except AgentError as exc:
            progress.add_error("screenshot", "Viewport capture failed", exc.message)
            return None
        progress.merge("screenshot", message="Viewport captured")
        return screenshot

    # ===== ERRORS =====

    def _persist_error(self, conversation_id: str, exc: AgentError, model: str) -> None:
        metadata = {"error_kind": exc.kind.value, "progress": exc.progress or []}
        if exc.sub_kind:
            metadata["sub_kind"] = exc.sub_kind
        try:
            self.store.save_message(
                conversation_id,
                MessageCreate(
                    role="assistant",
                    content=humanize_error_message(exc.message),
                    provider=model,
                    metadata=metadata,
                ),
            )
        except SQLAlchemyError as db_exc:
            logger.exception("[agent] could not persist error message: %s", db_exc)


def _object_names(scene: Any) -> str:
    objects = scene.get("objects") if isinstance(scene, dict) else None
    if not isinstance(objects, list):
        return "unknown"
    names = [o.get("name", "?") if isinstance(o, dict) else str(o) for o in objects]
    return ", ".join(names) if names else "none"


__all__ = ["GenerationRequest", "GenerationResult", "CancellationToken", "ReactOrchestrator"]
