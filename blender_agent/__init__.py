# FILE: blender_agent/__init__.py
"""
Blender ReAct agent backend.

Plans tool invocations against a running Blender instance with an LLM in a
Reason-Act-Observe loop and reports back what was executed.
"""

__version__ = "0.4.0"
