# FILE: blender_agent/transport/framing.py
"""
Brace-balanced JSON framing.

The Blender addon writes bare JSON objects back to back with no length prefix
and no delimiter. Frames are recovered by counting braces outside string
literals; quotes toggle string state and backslashes escape the next char.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, List, Optional, Tuple

from blender_agent.errors import FramingError

logger = logging.getLogger(__name__)


def find_object_span(text: str, start: int = 0) -> Optional[Tuple[int, int]]:
    """
    Locate the first balanced top-level {...} at or after `start`.

    Returns (begin, end) with `end` exclusive, or None if the object is not
    complete yet (or there is no opening brace at all).
    """
    depth = 0
    begin = -1
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        ch = text[i]
        if begin == -1:
            if ch == "{":
                begin = i
                depth = 1
            continue
        if escape_next:
            escape_next = False
            continue
        if ch == "\\":
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return begin, i + 1
    return None


def extract_first_json_object(text: str) -> Optional[dict]:
    """
    Parse the first balanced {...} in free-form text (e.g. an LLM reply).

    Returns None when no complete object exists or it is not valid JSON.
    """
    if not text:
        return None
    span = find_object_span(text)
    if span is None:
        return None
    try:
        parsed = json.loads(text[span[0]:span[1]])
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


class JsonFrameScanner:
    """
    Incremental frame extractor for the host socket.

    feed() accepts raw bytes (chunk boundaries are arbitrary, including in the
    middle of a multi-byte UTF-8 sequence) and returns every complete object
    now available, in order. Incomplete trailing data stays buffered.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def buffer(self) -> str:
        return self._buffer

    def __len__(self) -> int:
        return len(self._buffer.encode("utf-8"))

    def clear(self) -> None:
        self._buffer = ""
        self._decoder.reset()

    def feed(self, chunk: bytes) -> List[Any]:
        if chunk:
            self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def _drain(self) -> List[Any]:
        frames: List[Any] = []
        while self._buffer:
            span = find_object_span(self._buffer)
            if span is None:
                break
            begin, end = span
            raw = self._buffer[begin:end]
            try:
                frames.append(json.loads(raw))
            except (json.JSONDecodeError, ValueError) as exc:
                logger.warning("[framing] discarding malformed frame (%d chars): %s", len(raw), exc)
                self.clear()
                error = FramingError(f"Malformed JSON from host: {exc}")
                # Frames decoded before the bad one are still valid
                error.frames = frames
                raise error from exc
            self._buffer = self._buffer[end:].lstrip()
        return frames


def encode_command(command_type: str, params: Optional[dict] = None) -> bytes:
    return json.dumps({"type": command_type, "params": params or {}}).encode("utf-8")


__all__ = [
    "find_object_span",
    "extract_first_json_object",
    "JsonFrameScanner",
    "encode_command",
]
