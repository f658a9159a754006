# FILE: blender_agent/memory/__init__.py
"""Conversation and message persistence (SQLAlchemy)."""
