# FILE: tests/test_orchestrator.py
"""
Tests for blender_agent/agent/orchestrator.py
End-to-end ReAct runs against a scripted host, a scripted LLM and an
in-memory conversation store.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest

from fakes import FakeKnowledge, ScriptedHost, ScriptedRegistry, decision

SCENE = {"name": "Scene", "object_count": 1, "objects": [{"name": "Cube", "type": "MESH"}]}
SKETCHFAB_ON = {
    "get_polyhaven_status": {"enabled": False},
    "get_hyper3d_status": {"enabled": False},
    "get_sketchfab_status": {"enabled": True},
}


def _host(**replies):
    base = {"get_scene_info": SCENE, "execute_code": {"executed": True, "result": "ok"}}
    base.update(replies)
    return ScriptedHost(base)


def _build(session_factory, host, registry, knowledge=None, **kwargs):
    from blender_agent.agent.cache import ResponseCache
    from blender_agent.agent.orchestrator import ReactOrchestrator
    from blender_agent.integrations.router import AssetRouter
    from blender_agent.integrations.status import IntegrationStatusCache
    from blender_agent.llm.driver import LlmDriver
    from blender_agent.memory.service import ConversationStore

    status_cache = IntegrationStatusCache(host.send)
    store = ConversationStore(session_factory)
    orchestrator = ReactOrchestrator(
        host=host,
        driver=LlmDriver(registry=registry),
        knowledge=knowledge or FakeKnowledge(["primitive_cube_add(size=2) adds a cube"]),
        router=AssetRouter(host.send, status_cache),
        status_cache=status_cache,
        store=store,
        cache=ResponseCache(),
        **kwargs,
    )
    return orchestrator, store


def _request(prompt, **kwargs):
    from blender_agent.agent.orchestrator import GenerationRequest

    return GenerationRequest(prompt=prompt, model="gemini", **kwargs)


class TestHappyPath:
    """Test complete runs that end with finish_task."""

    @pytest.mark.asyncio
    async def test_search_execute_finish(self, session_factory):
        """search -> execute -> finish produces the final thought and persists both turns."""
        host = _host()
        registry = ScriptedRegistry([
            decision("Look up cube creation", "search_knowledge_base", query="add cube"),
            decision("Add the cube", "execute_blender_code", code="bpy.ops.mesh.primitive_cube_add(size=2)"),
            decision("I added a red cube.", "finish_task"),
        ])
        orchestrator, store = _build(session_factory, host, registry)

        result = await orchestrator.run(_request("make a red cube"), "alice")

        assert result.finished is True
        assert result.response == "I added a red cube."
        assert result.loop_count == 3
        assert result.error_kind is None
        assert result.conversation_title == "make a red cube"
        assert host.commands().count("execute_code") == 1
        code = next(params["code"] for cmd, params in host.calls if cmd == "execute_code")
        assert code.startswith("import bpy\n")

        observations = [t["content"] for t in result.agent_history if t["content"].startswith("Observation: ")]
        assert observations[0] == (
            'Observation: Knowledge base search for "add cube" returned 1 documents. I will use this to write my code.'
        )
        assert observations[1] == "Observation: Code executed successfully. Output: ok. Scene now has 1 objects."
        assert len(result.agent_history) == 6

        messages = store.messages(result.conversation_id)
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].content == "I added a red cube."
        assert messages[1].metadata["loop_count"] == 3
        assert messages[1].host_result == {"executed": True, "result": "ok"}

    @pytest.mark.asyncio
    async def test_progress_steps(self, session_factory):
        """Each iteration records loop, reason and act steps."""
        registry = ScriptedRegistry([decision("Done.", "finish_task")])
        orchestrator, _ = _build(session_factory, _host(), registry)

        result = await orchestrator.run(_request("hello"), "alice")
        steps = [p["step"] for p in result.progress]
        assert steps[0] == "init"
        for name in ("conversation_create", "context_fetch", "rag_prefetch", "agent_loop_1", "agent_reason_1", "agent_act_1"):
            assert name in steps

    @pytest.mark.asyncio
    async def test_scene_info_tool(self, session_factory):
        """get_scene_info lists current object names."""
        registry = ScriptedRegistry([decision("Check scene", "get_scene_info"), decision("Done.", "finish_task")])
        orchestrator, _ = _build(session_factory, _host(), registry)

        result = await orchestrator.run(_request("what is in my scene?"), "alice")
        assert result.agent_history[2]["content"] == "Observation: Scene info updated. Current objects: Cube"

    @pytest.mark.asyncio
    async def test_history_reaches_the_model(self, session_factory):
        """A follow-up prompt carries earlier turns of the conversation."""
        registry = ScriptedRegistry([decision("Cube added.", "finish_task"), decision("Made it red.", "finish_task")])
        orchestrator, _ = _build(session_factory, _host(), registry)

        first = await orchestrator.run(_request("make a cube"), "alice")
        await orchestrator.run(_request("now make it red", conversation_id=first.conversation_id), "alice")

        contents = [m["content"] for m in registry.calls[-1]["messages"]]
        assert contents == ["make a cube", "Cube added.", "now make it red"]

    @pytest.mark.asyncio
    async def test_screenshot_and_debug(self, session_factory):
        """capture_screenshot and debug add their artefacts."""
        host = _host(capture_viewport={"image": "aGVsbG8="})
        registry = ScriptedRegistry([decision("Done.", "finish_task")])
        orchestrator, _ = _build(session_factory, host, registry)

        result = await orchestrator.run(_request("hello", capture_screenshot=True, debug=True), "alice")
        assert result.screenshot == {"image": "aGVsbG8="}
        assert "AVAILABLE TOOLS" in result.debug_artifacts["system_prompt"]
        assert result.debug_artifacts["rag_context"] == ["primitive_cube_add(size=2) adds a cube"]


class TestToolObservations:
    """Test recoverable tool failures."""

    @pytest.mark.asyncio
    async def test_execution_error_is_observed(self, session_factory):
        """A host exec error becomes an observation and the loop continues."""
        from blender_agent.errors import HostExecError

        host = _host(execute_code=HostExecError("NameError: name 'foo' is not defined"))
        registry = ScriptedRegistry([
            decision("Try it", "execute_blender_code", code="foo()"),
            decision("It failed, sorry.", "finish_task"),
        ])
        orchestrator, _ = _build(session_factory, host, registry)

        result = await orchestrator.run(_request("do foo"), "alice")
        assert result.finished
        assert result.agent_history[2]["content"] == (
            "Observation: Code execution FAILED: NameError: name 'foo' is not defined. "
            "I must analyze this error and try again."
        )
        assert result.host_result["status"] == "error"

    @pytest.mark.asyncio
    async def test_strict_validation_blocks_dispatch(self, session_factory):
        """With strict validation, invalid code never reaches Blender."""
        host = _host()
        registry = ScriptedRegistry([
            decision("Add cube", "execute_blender_code", code="bpy.ops.mesh.primitive_cube_add(size=2"),
            decision("Could not do it.", "finish_task"),
        ])
        orchestrator, _ = _build(session_factory, host, registry, strict_validation=True)

        result = await orchestrator.run(_request("add a cube"), "alice")
        assert "execute_code" not in host.commands()
        assert result.agent_history[2]["content"].startswith("Observation: Code validation FAILED: Unbalanced ( )")

    @pytest.mark.asyncio
    async def test_unknown_action(self, session_factory):
        """An unknown tool name is reported back to the model."""
        registry = ScriptedRegistry([decision("Hmm", "teleport"), decision("Done.", "finish_task")])
        orchestrator, _ = _build(session_factory, _host(), registry)

        result = await orchestrator.run(_request("teleport the cube"), "alice")
        assert result.agent_history[2]["content"] == (
            "Observation: Error: Unknown action 'teleport'. I must choose from the provided tool list."
        )

    @pytest.mark.asyncio
    async def test_disconnected_host(self, session_factory):
        """Without Blender the tools report it instead of failing."""
        host = _host()
        host.is_connected = False
        registry = ScriptedRegistry([
            decision("Add cube", "execute_blender_code", code="import bpy"),
            decision("Blender is offline.", "finish_task"),
        ])
        orchestrator, _ = _build(session_factory, host, registry)

        result = await orchestrator.run(_request("add a cube"), "alice")
        assert result.agent_history[2]["content"] == "Observation: Error: Blender is not connected. Cannot execute code."
        assert host.calls == []
        assert "context_skipped" in [p["step"] for p in result.progress]


class TestAssetImport:
    """Test asset_search_and_import and its code-synthesis fallback."""

    @pytest.mark.asyncio
    async def test_imports_from_sketchfab(self, session_factory):
        """An enabled provider imports the asset and refreshes the scene."""
        host = _host(
            **SKETCHFAB_ON,
            search_sketchfab_models={"results": [{"uid": "abc", "name": "Wooden Chair"}]},
            download_sketchfab_model={"success": True, "imported_objects": ["WoodenChair"]},
        )
        registry = ScriptedRegistry([
            decision("Import a chair", "asset_search_and_import", prompt="import a wooden chair"),
            decision("Imported a wooden chair.", "finish_task"),
        ])
        orchestrator, _ = _build(session_factory, host, registry)

        result = await orchestrator.run(_request("import a wooden chair"), "alice")
        assert result.agent_history[2]["content"] == (
            "Observation: Successfully imported asset: A new asset named 'WoodenChair' was imported. "
            "I should now write code to select, scale, and move it."
        )
        assert "execute_code" not in host.commands()

    @pytest.mark.asyncio
    async def test_disabled_provider_synthesizes_code(self, session_factory):
        """When the provider is off, code is generated, sanitized, executed and cached."""
        host = _host(get_sketchfab_status={"enabled": False})
        registry = ScriptedRegistry([
            decision("Import a chair", "asset_search_and_import", prompt="import a wooden chair"),
            "```python\nbpy.ops.mesh.primitive_cube_add(size=1, use_undo=True)\n```",
            decision("Built a chair from primitives.", "finish_task"),
        ])
        orchestrator, _ = _build(session_factory, host, registry)

        result = await orchestrator.run(_request("import a wooden chair"), "alice")
        observation = result.agent_history[2]["content"]
        assert observation.startswith(
            "Observation: Asset import was not available (sketchfab is not enabled), "
            "so I generated the asset with code instead."
        )
        code = next(params["code"] for cmd, params in host.calls if cmd == "execute_code")
        assert code == "import bpy\nbpy.ops.mesh.primitive_cube_add(size=1)"
        assert registry.calls[1]["json_mode"] is False
        assert len(orchestrator.cache) == 1

    @pytest.mark.asyncio
    async def test_open_breaker_falls_back(self, session_factory):
        """An open provider breaker skips the flow and synthesizes code."""
        from blender_agent import config
        from blender_agent.integrations.intent import AssetProvider

        host = _host(**SKETCHFAB_ON)
        registry = ScriptedRegistry([
            decision("Import a chair", "asset_search_and_import", prompt="import a wooden chair"),
            "```python\nimport bpy\nbpy.ops.mesh.primitive_cube_add()\n```",
            decision("Built it.", "finish_task"),
        ])
        orchestrator, _ = _build(session_factory, host, registry)
        breaker = orchestrator.router.breakers[AssetProvider.SKETCHFAB]
        for _ in range(config.BREAKER_FAILURE_THRESHOLD):
            breaker.record_failure()

        result = await orchestrator.run(_request("import a wooden chair"), "alice")
        assert "search_sketchfab_models" not in host.commands()
        assert "Circuit breaker 'sketchfab' is OPEN" in result.agent_history[2]["content"]
        assert host.commands().count("execute_code") == 1

    @pytest.mark.asyncio
    async def test_hyper3d_trial_limit_falls_back(self, session_factory):
        """A Hyper3D trial limit is observed and code is synthesized in the same loop."""
        host = _host(
            get_polyhaven_status={"enabled": False},
            get_hyper3d_status={"enabled": True},
            get_sketchfab_status={"enabled": False},
            create_rodin_job={"request_id": "req-1"},
            poll_rodin_job_status={"status": "TRIAL_LIMIT"},
        )
        registry = ScriptedRegistry([
            decision("Generate the rabbit", "asset_search_and_import", prompt="generate a photorealistic rabbit"),
            "```python\nimport bpy\nbpy.ops.mesh.primitive_uv_sphere_add(radius=1)\n```",
            decision("Built a rabbit from primitives.", "finish_task"),
        ])
        orchestrator, _ = _build(session_factory, host, registry)

        result = await orchestrator.run(_request("generate a photorealistic rabbit"), "alice")
        assert result.finished is True
        assert result.loop_count == 2
        assert host.commands().count("poll_rodin_job_status") == 1
        assert "import_generated_asset" not in host.commands()

        observation = result.agent_history[2]["content"]
        assert observation.startswith("Observation: Asset import was not available (Hyper3D trial limit reached")
        assert "so I generated the asset with code instead." in observation
        code = next(params["code"] for cmd, params in host.calls if cmd == "execute_code")
        assert code == "import bpy\nbpy.ops.mesh.primitive_uv_sphere_add(radius=1)"

        failed = [p for p in result.progress if p["step"] == "agent_act_1" and p.get("error")]
        assert failed and failed[0]["data"]["sub_kind"] == "trial_limit"


class TestTerminalFailures:
    """Test failures that end the request."""

    @pytest.mark.asyncio
    async def test_loop_exhausted(self, session_factory):
        """Hitting the iteration bound returns the fixed reply."""
        from blender_agent.agent.messages import loop_exhausted_message

        registry = ScriptedRegistry([decision("Look again", "get_scene_info")] * 3)
        orchestrator, store = _build(session_factory, _host(), registry, max_iterations=3)

        result = await orchestrator.run(_request("keep looking"), "alice")
        assert result.finished is False
        assert result.loop_count == 3
        assert result.error_kind == "LOOP_EXHAUSTED"
        assert result.response == loop_exhausted_message(3)
        assert "agent_max_loops" in [p["step"] for p in result.progress]
        metadata = store.messages(result.conversation_id)[-1].metadata
        assert metadata["error_kind"] == "LOOP_EXHAUSTED"
        assert metadata["error"]["kind"] == "LOOP_EXHAUSTED"
        assert metadata["error"]["details"] == {"max_iterations": 3}

    @pytest.mark.asyncio
    async def test_default_bound_exhausts_after_ten_loops(self, session_factory):
        """With the default bound, non-terminal actions stop after exactly AGENT_MAX_ITERATIONS loops."""
        from blender_agent import config
        from blender_agent.agent.messages import loop_exhausted_message

        bound = config.AGENT_MAX_ITERATIONS
        registry = ScriptedRegistry([decision("Look again", "get_scene_info")] * bound)
        orchestrator, _ = _build(session_factory, _host(), registry)

        result = await orchestrator.run(_request("keep looking"), "alice")
        assert orchestrator.max_iterations == bound
        assert result.finished is False
        assert result.error_kind == "LOOP_EXHAUSTED"
        assert result.loop_count == bound
        assert result.response == loop_exhausted_message(bound)
        loops = [p["step"] for p in result.progress if p["step"].startswith("agent_loop_")]
        assert loops == [f"agent_loop_{n}" for n in range(1, bound + 1)]
        assert len(registry.calls) == bound

    @pytest.mark.asyncio
    async def test_finish_on_ninth_loop_succeeds(self, session_factory):
        """finish_task one loop before the default bound is a normal success."""
        from blender_agent import config

        finish_at = config.AGENT_MAX_ITERATIONS - 1
        registry = ScriptedRegistry(
            [decision("Look again", "get_scene_info")] * (finish_at - 1) + [decision("All done.", "finish_task")]
        )
        orchestrator, _ = _build(session_factory, _host(), registry)

        result = await orchestrator.run(_request("keep looking"), "alice")
        assert result.finished is True
        assert result.error_kind is None
        assert result.loop_count == finish_at
        assert result.response == "All done."
        assert "agent_max_loops" not in [p["step"] for p in result.progress]

    @pytest.mark.asyncio
    async def test_malformed_output_persists_error(self, session_factory):
        """Unparseable reasoning ends the run and is stored on the conversation."""
        from blender_agent.errors import AgentReasonError

        registry = ScriptedRegistry(["I will now add a cube for you."])
        orchestrator, _ = _build(session_factory, _host(), registry)

        with pytest.raises(AgentReasonError) as excinfo:
            await orchestrator.run(_request("add a cube"), "alice")
        assert excinfo.value.sub_kind == "invalid_agent_output"
        assert any(p.get("error") for p in excinfo.value.progress)

    @pytest.mark.asyncio
    async def test_error_message_saved(self, session_factory):
        """The failed run's conversation receives a humanized assistant message."""
        from blender_agent.errors import AgentReasonError
        from blender_agent.memory.service import ConversationStore

        registry = ScriptedRegistry(["no json here"])
        orchestrator, store = _build(session_factory, _host(), registry)
        conversation = store.create("alice", "existing")

        with pytest.raises(AgentReasonError):
            await orchestrator.run(_request("add a cube", conversation_id=conversation.id), "alice")

        messages = ConversationStore(session_factory).messages(conversation.id)
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].metadata["error_kind"] == "AGENT_REASON_FAILED"
        assert messages[1].metadata["sub_kind"] == "invalid_agent_output"
        assert messages[1].metadata["progress"]

    @pytest.mark.asyncio
    async def test_provider_failure_wrapped(self, session_factory):
        """LLM call failures surface as AGENT_REASON_FAILED with the cause kind."""
        from blender_agent.errors import AgentReasonError
        from blender_agent.llm.providers import LlmCallResult, LlmCallStatus

        registry = ScriptedRegistry([
            LlmCallResult(status=LlmCallStatus.ERROR, provider_id="gemini", model_id="m", error_message="500"),
        ])
        orchestrator, _ = _build(session_factory, _host(), registry)

        with pytest.raises(AgentReasonError) as excinfo:
            await orchestrator.run(_request("add a cube"), "alice")
        assert excinfo.value.details["cause_kind"] == "PROVIDER_ERROR"

    @pytest.mark.asyncio
    async def test_execute_timeout_ends_request(self, session_factory):
        """A timed-out execute_code is fatal to the request."""
        from blender_agent.errors import ErrorKind, TransportTimeoutError

        host = _host(execute_code=TransportTimeoutError("execute_code", 30.0))
        registry = ScriptedRegistry([decision("Run it", "execute_blender_code", code="import bpy")])
        orchestrator, _ = _build(session_factory, host, registry)

        with pytest.raises(TransportTimeoutError) as excinfo:
            await orchestrator.run(_request("add a cube"), "alice")
        assert excinfo.value.kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_other_timeouts_are_observed(self, session_factory):
        """A timed-out scene query is recoverable."""
        from blender_agent.errors import TransportTimeoutError

        host = _host(get_scene_info=[SCENE, TransportTimeoutError("get_scene_info", 5.0), SCENE])
        registry = ScriptedRegistry([decision("Look", "get_scene_info"), decision("Done.", "finish_task")])
        orchestrator, _ = _build(session_factory, host, registry)

        result = await orchestrator.run(_request("look"), "alice")
        assert result.agent_history[2]["content"].startswith("Observation: Tool execution error: Timeout")

    @pytest.mark.asyncio
    async def test_cancellation(self, session_factory):
        """A cancelled token stops the loop before the next iteration."""
        from blender_agent.agent.orchestrator import CancellationToken
        from blender_agent.errors import RequestCancelledError

        token = CancellationToken()
        token.cancel()
        registry = ScriptedRegistry()
        orchestrator, _ = _build(session_factory, _host(), registry)

        with pytest.raises(RequestCancelledError):
            await orchestrator.run(_request("add a cube"), "alice", cancel_token=token)
        assert registry.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_fatal(self, session_factory):
        """Untyped exceptions become a generic error for the user."""
        from blender_agent.errors import AgentError
        from blender_agent.memory.service import ConversationStore

        host = _host(get_scene_info=KeyError("objects"))
        orchestrator, store = _build(session_factory, host, ScriptedRegistry())
        conversation = store.create("alice", "existing")

        with pytest.raises(AgentError) as excinfo:
            await orchestrator.run(_request("add a cube", conversation_id=conversation.id), "alice")
        assert excinfo.value.message.startswith("FATAL ERROR")
        saved = ConversationStore(session_factory).messages(conversation.id)[-1]
        assert saved.content == "Something went wrong while generating your scene. Please try again."


class TestRequestValidation:
    """Test rejections before the loop starts."""

    @pytest.mark.asyncio
    async def test_empty_prompt(self, session_factory):
        """An empty prompt is invalid input."""
        from blender_agent.errors import InvalidInputError

        orchestrator, _ = _build(session_factory, _host(), ScriptedRegistry())
        with pytest.raises(InvalidInputError):
            await orchestrator.run(_request("   "), "alice")

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, session_factory):
        """Another user's conversation is not found."""
        from blender_agent.errors import ConversationNotFoundError

        orchestrator, store = _build(session_factory, _host(), ScriptedRegistry())
        conversation = store.create("bob", "bob's scene")
        with pytest.raises(ConversationNotFoundError):
            await orchestrator.run(_request("hi", conversation_id=conversation.id), "alice")
        assert store.messages(conversation.id) == []

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, session_factory):
        """A missing credential is rejected before a conversation is created."""
        from blender_agent.errors import ErrorKind, ProviderUnconfiguredError
        from blender_agent.memory.service import list_conversations_for_user

        orchestrator, _ = _build(session_factory, _host(), ScriptedRegistry(available=False))
        with pytest.raises(ProviderUnconfiguredError) as excinfo:
            await orchestrator.run(_request("hi"), "alice")
        assert excinfo.value.kind == ErrorKind.PROVIDER_UNCONFIGURED
        with session_factory() as db:
            assert list_conversations_for_user(db, "alice") == []
