# FILE: blender_agent/api/__init__.py
"""REST surface around the orchestrator."""
