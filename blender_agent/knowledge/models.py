# FILE: blender_agent/knowledge/models.py
"""
Knowledge tables (Blender API documentation chunks).

These live in the Postgres/pgvector knowledge database, not in the
conversation store, so they get their own declarative base.
"""

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

from blender_agent import config

KnowledgeBase = declarative_base()


class KnowledgeChunkMixin:
    id = Column(Integer, primary_key=True)
    content = Column(Text, nullable=False)
    source = Column(String(512), nullable=True)
    embedding = Column(Vector(config.EMBEDDING_DIMENSIONS), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class KnowledgeChunk(KnowledgeChunkMixin, KnowledgeBase):
    """Primary table; ingestion writes here."""
    __tablename__ = config.KNOWLEDGE_TABLE


class LegacyKnowledgeChunk(KnowledgeChunkMixin, KnowledgeBase):
    """Older table consulted when the primary one has no match."""
    __tablename__ = config.KNOWLEDGE_FALLBACK_TABLE


KNOWLEDGE_MODELS = {
    KnowledgeChunk.__tablename__: KnowledgeChunk,
    LegacyKnowledgeChunk.__tablename__: LegacyKnowledgeChunk,
}


def model_for_table(table_name: str):
    return KNOWLEDGE_MODELS[table_name]


__all__ = ["KnowledgeBase", "KnowledgeChunk", "LegacyKnowledgeChunk", "KNOWLEDGE_MODELS", "model_for_table"]
