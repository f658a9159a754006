# FILE: blender_agent/transport/__init__.py
"""Framed JSON TCP transport to the Blender addon."""

from blender_agent.transport.client import BlenderConnection, ConnectionState, command_timeout
from blender_agent.transport.framing import (
    JsonFrameScanner,
    encode_command,
    extract_first_json_object,
    find_object_span,
)

__all__ = [
    "BlenderConnection",
    "ConnectionState",
    "command_timeout",
    "JsonFrameScanner",
    "encode_command",
    "extract_first_json_object",
    "find_object_span",
]
