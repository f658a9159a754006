# FILE: blender_agent/agent/sanitizer.py
"""
Rewrites model-authored bpy code before it reaches Blender, and reports the
structural defects that remain.

sanitize_blender_code() is idempotent: running it on its own output changes
nothing.
"""

import re
from typing import List

HOST_IMPORT = "import bpy"

# Keyword arguments rejected by Blender 4.x operators
DEPRECATED_KWARGS = ("use_undo", "use_global", "constraint_axis")

EDIT_MODE_PREAMBLE = (
    "if bpy.context.object and bpy.context.object.mode != 'EDIT':\n"
    "    bpy.ops.object.mode_set(mode='EDIT')\n"
)

DELETE_ALL_REPLACEMENT = (
    "if bpy.data.objects:\n"
    "    bpy.ops.object.select_all(action='SELECT')\n"
    "    bpy.ops.object.delete()"
)
# Same effect as a single expression, for calls that share a line with other code
DELETE_ALL_INLINE = (
    "(bpy.ops.object.select_all(action='SELECT'), bpy.ops.object.delete()) if bpy.data.objects else None"
)

_FENCE_RE = re.compile(r"```[ \t]*(?:python|py)?[ \t]*\n?|```", re.IGNORECASE)
_LANG_TAG_RE = re.compile(r"^(?:[ \t]*(?:python|py)[ \t]*\n)+", re.IGNORECASE)

_CONSTRAINT_AXIS_RE = (
    re.compile(r",\s*constraint_axis\s*=\s*[\[(][^\])]*[\])]", re.IGNORECASE),
    re.compile(r"\bconstraint_axis\s*=\s*[\[(][^\])]*[\])]\s*,?\s*", re.IGNORECASE),
)
# Any remaining value: a literal, a name, or a call with one level of nesting
_KWARG_VALUE = r"(?:[^,()\n]|\([^()\n]*\))+"
_KWARG_RE = {
    name: (
        re.compile(rf",\s*{name}\s*=\s*{_KWARG_VALUE}", re.IGNORECASE),
        re.compile(rf"\b{name}\s*=\s*{_KWARG_VALUE},?[ \t]*", re.IGNORECASE),
    )
    for name in DEPRECATED_KWARGS
}
_DUP_COMMA_RE = re.compile(r",(?:\s*,)+")
_DELETE_ALL_LINE_RE = re.compile(
    r"^([ \t]*)bpy\.ops\.wm\.obj_delete_all\s*\(\s*\)[ \t]*$", re.IGNORECASE | re.MULTILINE
)
_DELETE_ALL_RE = re.compile(r"bpy\.ops\.wm\.obj_delete_all\s*\(\s*\)", re.IGNORECASE)
_ADDON_ENABLE_LINE_RE = re.compile(r"^[ \t]*bpy\.ops\.preferences\.addon_enable\([^)]*\)[ \t]*\n?", re.IGNORECASE | re.MULTILINE)
_LOOPCUT_SLIDE_RE = re.compile(r"bpy\.ops\.mesh\.loopcut_and_slide\s*\(([^)]*)\)", re.IGNORECASE)
_NUMBER_CUTS_RE = re.compile(r"number_cuts[\"']?\s*[:=]\s*(\d+)", re.IGNORECASE)
_BMESH_RE = re.compile(r"\bbmesh\b")
_EDIT_MODE_RE = re.compile(r"mode_set\s*\(\s*mode\s*=\s*['\"]EDIT['\"]\s*\)")
_HEADER_RE = re.compile(r"\s*import bpy[ \t]*(?:\n|$)")
_IMPORT_BPY_RE = re.compile(r"^\s*import\s+bpy\b", re.MULTILINE)


def _strip_markup(code: str) -> str:
    code = code.replace("\r\n", "\n").replace("\r", "\n")
    while "```" in code:
        code = _FENCE_RE.sub("", code)
    return _LANG_TAG_RE.sub("", code.lstrip("\n"))


def _delete_all_block(match: "re.Match") -> str:
    indent = match.group(1)
    return "\n".join(indent + line for line in DELETE_ALL_REPLACEMENT.split("\n"))


def _loopcut(match: "re.Match") -> str:
    cuts = _NUMBER_CUTS_RE.search(match.group(1))
    return f"bpy.ops.mesh.loopcut(number_cuts={cuts.group(1) if cuts else '1'})"


def sanitize_blender_code(code: str) -> str:
    if not isinstance(code, str):
        return HOST_IMPORT + "\n"

    code = _strip_markup(code)

    code = _CONSTRAINT_AXIS_RE[0].sub("", code)
    code = _CONSTRAINT_AXIS_RE[1].sub("", code)
    for trailing, leading in _KWARG_RE.values():
        code = trailing.sub("", code)
        code = leading.sub("", code)
    code = _DUP_COMMA_RE.sub(",", code)

    code = _DELETE_ALL_LINE_RE.sub(_delete_all_block, code)
    code = _DELETE_ALL_RE.sub(DELETE_ALL_INLINE, code)
    code = _ADDON_ENABLE_LINE_RE.sub("", code)
    code = _LOOPCUT_SLIDE_RE.sub(_loopcut, code)

    header = _HEADER_RE.match(code)
    body = code[header.end():] if header else code
    if _BMESH_RE.search(body) and not _EDIT_MODE_RE.search(body):
        body = EDIT_MODE_PREAMBLE + body
    return HOST_IMPORT + "\n" + body


def preflight_validate(code: str) -> List[str]:
    """Human-readable issues; an empty list means the code looks dispatchable."""
    code = code or ""
    issues: List[str] = []
    if not _IMPORT_BPY_RE.search(code):
        issues.append("Missing 'import bpy' at top of file")
    if re.search(r"bpy\.ops\.preferences\.addon_enable\(", code):
        issues.append("Avoid enabling addons at runtime; remove bpy.ops.preferences.addon_enable(..)")
    if re.search(r"bpy\.ops\.wm\.obj_delete_all\(", code):
        issues.append("Operator bpy.ops.wm.obj_delete_all() does not exist; use select_all + object.delete()")
    for name in DEPRECATED_KWARGS:
        if re.search(rf"\b{name}\s*=", code):
            issues.append(f"Deprecated keyword {name} detected; remove it for Blender 4.x")
    for opening, closing in (("(", ")"), ("[", "]"), ("{", "}")):
        if code.count(opening) != code.count(closing):
            issues.append(f"Unbalanced {opening} {closing}")
    return issues


def extract_code_from_text(text: str) -> str:
    """First fenced python block of an LLM reply, else the reply with fences removed."""
    if not text:
        return ""
    match = re.search(r"```(?:python|py)?[ \t]*\n([\s\S]*?)```", text, re.IGNORECASE)
    return (match.group(1) if match else text.replace("```", "")).strip()


__all__ = [
    "HOST_IMPORT",
    "DEPRECATED_KWARGS",
    "sanitize_blender_code",
    "preflight_validate",
    "extract_code_from_text",
]
