# FILE: blender_agent/agent/actions.py
"""
Tool actions the reasoning loop may emit.

The model answers with {"thought": ..., "action": {"name": ..., <fields>}}.
Fields are read from the action object itself, falling back to a nested
"args"/"parameters" object; anything else is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from blender_agent.errors import InvalidAgentOutputError


class ToolName(str, Enum):
    SEARCH_KNOWLEDGE_BASE = "search_knowledge_base"
    EXECUTE_BLENDER_CODE = "execute_blender_code"
    GET_SCENE_INFO = "get_scene_info"
    ASSET_SEARCH_AND_IMPORT = "asset_search_and_import"
    FINISH_TASK = "finish_task"


TOOL_DESCRIPTIONS: Dict[ToolName, str] = {
    ToolName.SEARCH_KNOWLEDGE_BASE: (
        "Searches the Blender 4.x API documentation for a specific query. "
        "Use this before execute_blender_code."
    ),
    ToolName.EXECUTE_BLENDER_CODE: (
        "Executes a block of Blender Python (`bpy`) code in the 3D scene. Use this ONLY after "
        "you have searched the knowledge base and are confident the code is correct."
    ),
    ToolName.GET_SCENE_INFO: "Gets the current scene state.",
    ToolName.ASSET_SEARCH_AND_IMPORT: "Searches for and imports a 3D asset from an online library.",
    ToolName.FINISH_TASK: (
        "Signals that you have fully completed the user's request and have a final answer for them."
    ),
}


@dataclass(frozen=True)
class ToolAction:
    name: str

    @property
    def tool(self) -> Optional[ToolName]:
        try:
            return ToolName(self.name)
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        return self.tool == ToolName.FINISH_TASK

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class SearchKnowledgeBase(ToolAction):
    query: str = ""


@dataclass(frozen=True)
class ExecuteBlenderCode(ToolAction):
    code: str = ""


@dataclass(frozen=True)
class GetSceneInfo(ToolAction):
    pass


@dataclass(frozen=True)
class AssetSearchAndImport(ToolAction):
    prompt: str = ""


@dataclass(frozen=True)
class FinishTask(ToolAction):
    pass


@dataclass(frozen=True)
class UnknownAction(ToolAction):
    pass


def _field(action: Dict[str, Any], key: str) -> str:
    value = action.get(key)
    if value is None:
        for nested_key in ("args", "parameters", "params"):
            nested = action.get(nested_key)
            if isinstance(nested, dict) and nested.get(key) is not None:
                value = nested[key]
                break
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def parse_action(action: Any) -> ToolAction:
    """
    Decode the "action" member of an agent decision.

    A bare string is accepted as the tool name. A missing or nameless action
    raises InvalidAgentOutputError; an unrecognised name yields UnknownAction
    so the loop can report it and continue.
    """
    if isinstance(action, str):
        action = {"name": action}
    if not isinstance(action, dict):
        raise InvalidAgentOutputError("Agent decision has no action object")
    name = action.get("name") or action.get("tool")
    if not isinstance(name, str) or not name.strip():
        raise InvalidAgentOutputError("Agent action is missing a name")
    name = name.strip()

    try:
        tool = ToolName(name)
    except ValueError:
        return UnknownAction(name=name)

    if tool == ToolName.SEARCH_KNOWLEDGE_BASE:
        return SearchKnowledgeBase(name=name, query=_field(action, "query").strip())
    if tool == ToolName.EXECUTE_BLENDER_CODE:
        return ExecuteBlenderCode(name=name, code=_field(action, "code"))
    if tool == ToolName.ASSET_SEARCH_AND_IMPORT:
        return AssetSearchAndImport(name=name, prompt=_field(action, "prompt").strip())
    if tool == ToolName.GET_SCENE_INFO:
        return GetSceneInfo(name=name)
    return FinishTask(name=name)


__all__ = [
    "ToolName",
    "TOOL_DESCRIPTIONS",
    "ToolAction",
    "SearchKnowledgeBase",
    "ExecuteBlenderCode",
    "GetSceneInfo",
    "AssetSearchAndImport",
    "FinishTask",
    "UnknownAction",
    "parse_action",
]
