# FILE: blender_agent/agent/messages.py
"""User-visible wording for assistant replies and errors."""

import re
from typing import Any

LOOP_EXHAUSTED_MESSAGE = (
    "I reached my maximum reasoning steps ({limit}) without completing the task. "
    "Please try breaking down your request into smaller steps."
)

DEFAULT_CONVERSATION_TITLE = "New Scene"
TITLE_MAX_LENGTH = 80

# Internal phrases that must not reach the user verbatim, checked in order
_ERROR_TRANSLATIONS = (
    ("Branch condition returned", "The agent could not decide on a next step for this request."),
    ("null destination", "The agent lost track of where to continue; please try again."),
    ("FATAL ERROR", "Something went wrong while generating your scene. Please try again."),
)


def loop_exhausted_message(limit: int) -> str:
    return LOOP_EXHAUSTED_MESSAGE.format(limit=limit)


def humanize_error_message(message: Any) -> str:
    text = str(message or "").strip()
    if not text:
        return "Something went wrong while generating your scene. Please try again."
    for needle, replacement in _ERROR_TRANSLATIONS:
        if needle in text:
            return replacement
    return text


def derive_title(prompt: str) -> str:
    """Conversation title from the first prompt: whitespace collapsed, at most 80 characters."""
    title = re.sub(r"\s+", " ", prompt or "").strip()
    if not title:
        return DEFAULT_CONVERSATION_TITLE
    if len(title) > TITLE_MAX_LENGTH:
        return title[: TITLE_MAX_LENGTH - 3] + "..."
    return title


def summarize_text(text: str, limit: int = 100) -> str:
    text = re.sub(r"\s+", " ", text or "").strip()
    return text if len(text) <= limit else text[: limit - 3] + "..."


__all__ = [
    "DEFAULT_CONVERSATION_TITLE",
    "LOOP_EXHAUSTED_MESSAGE",
    "derive_title",
    "humanize_error_message",
    "loop_exhausted_message",
    "summarize_text",
]
