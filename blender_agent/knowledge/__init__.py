# FILE: blender_agent/knowledge/__init__.py
"""Blender API documentation retrieval (local embeddings + pgvector)."""

from blender_agent.knowledge.search import KnowledgeSearch, dedupe_chunks, get_knowledge_search

__all__ = ["KnowledgeSearch", "dedupe_chunks", "get_knowledge_search"]
