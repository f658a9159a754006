# FILE: blender_agent/agent/prompts.py
"""
Prompt builders for the agent loop.

The system prompt is rebuilt on every iteration from the latest scene context
and retrieval context; neither is carried inside the agent history.
"""

import json
from typing import Any, List, Optional

from blender_agent.agent.actions import TOOL_DESCRIPTIONS

AGENT_PREAMBLE = """You are an expert Blender Python assistant. Your goal is to help the user by taking a series of steps.
You operate on a "Reason-Act-Observe" loop.

At each step, you must:
1. Reason (Thought): Analyze the user's request, the conversation history, and the previous observation. Formulate a plan.
2. Act (Action): Choose one tool to execute. Output a JSON object with "thought" and "action" keys only.

Response must be a single, valid JSON object, no other text.
Example:
{
  "thought": "I should search the API for creating a red cube",
  "action": { "name": "search_knowledge_base", "query": "how to make a red cube with Principled BSDF" }
}
"""

AGENT_RULES = """## CRITICAL RULES:
1. Always search_knowledge_base first before writing bpy code.
2. Check the scene with get_scene_info if unsure what exists.
3. One step at a time.
4. Final step must be {"name":"finish_task"} and thought will be final user-visible answer.
"""

AGENT_CLOSING = "Now: output only the JSON object with thought and action."


def build_agent_system_prompt(scene_context: Optional[Any], rag_context: Optional[List[str]]) -> str:
    parts = [AGENT_PREAMBLE, "## AVAILABLE TOOLS:"]
    parts.extend(f"- {tool.value}: {description}" for tool, description in TOOL_DESCRIPTIONS.items())
    parts.append("")
    parts.append(AGENT_RULES)
    if scene_context:
        parts.append("## CURRENT SCENE STATE:\n" + json.dumps(scene_context, indent=2, default=str) + "\n")
    if rag_context:
        parts.append("## RELEVANT DOCUMENTATION (from RAG):\n" + "\n".join(f"- {doc}" for doc in rag_context) + "\n")
    parts.append(AGENT_CLOSING)
    return "\n".join(parts)


CODE_SYNTHESIS_SYSTEM_PROMPT = """You write Blender 4.x Python scripts.
Answer with a single ```python fenced block and nothing else.
The script must start with `import bpy`, build the requested object from primitives,
modifiers and materials only, name the main object after the asset, and leave it selected.
Never download files, enable addons or use deprecated operator arguments
(use_undo, use_global, constraint_axis)."""


def build_code_synthesis_prompt(asset_prompt: str) -> str:
    return f"Build this asset procedurally in the current scene: {asset_prompt.strip()}"


__all__ = [
    "AGENT_PREAMBLE",
    "AGENT_RULES",
    "AGENT_CLOSING",
    "CODE_SYNTHESIS_SYSTEM_PROMPT",
    "build_agent_system_prompt",
    "build_code_synthesis_prompt",
]
