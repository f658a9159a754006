# FILE: blender_agent/knowledge/search.py
"""
Retrieval-augmented context for the agent.

search() is best-effort: an encoder or store failure is logged and yields an
empty list so reasoning carries on without documentation. The only failure
that propagates is an embedding-dimension mismatch, which is a deployment
error rather than a transient one.
"""

import asyncio
import logging
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Sequence

from blender_agent import config
from blender_agent.errors import EmbeddingDimensionError
from blender_agent.knowledge.encoder import TextEncoder, get_encoder
from blender_agent.knowledge.store import KnowledgeStore

logger = logging.getLogger(__name__)

DUPLICATE_RATIO = 0.95


def dedupe_chunks(chunks: Sequence[str], threshold: float = DUPLICATE_RATIO) -> List[str]:
    """Drop chunks more than `threshold` similar to an earlier one."""
    kept: List[str] = []
    for chunk in chunks:
        if any(SequenceMatcher(None, chunk, prior).ratio() > threshold for prior in kept):
            continue
        kept.append(chunk)
    return kept


class KnowledgeSearch:
    def __init__(
        self,
        store: Optional[KnowledgeStore] = None,
        encoder: Optional[TextEncoder] = None,
        tables: Optional[List[str]] = None,
        min_similarity: Optional[float] = None,
        dimensions: Optional[int] = None,
    ):
        self._store = store
        self._encoder = encoder
        self.tables = tables or [config.KNOWLEDGE_TABLE, config.KNOWLEDGE_FALLBACK_TABLE]
        self.min_similarity = config.KNOWLEDGE_MIN_SIMILARITY if min_similarity is None else min_similarity
        self.dimensions = dimensions or config.EMBEDDING_DIMENSIONS

    @property
    def enabled(self) -> bool:
        return self._store is not None or bool(config.KNOWLEDGE_DATABASE_URL)

    @property
    def store(self) -> Optional[KnowledgeStore]:
        if self._store is None and config.KNOWLEDGE_DATABASE_URL:
            self._store = KnowledgeStore(config.KNOWLEDGE_DATABASE_URL)
        return self._store

    @property
    def encoder(self) -> TextEncoder:
        if self._encoder is None:
            self._encoder = get_encoder()
        return self._encoder

    async def search(self, query: str, limit: int = 5) -> List[str]:
        """Documentation chunks for `query`, most similar first."""
        if not query or not query.strip() or not self.enabled:
            return []
        try:
            vector = await self.encoder.encode(query)
            if len(vector) != self.dimensions:
                raise EmbeddingDimensionError(self.dimensions, len(vector), "encoder")
            return await asyncio.to_thread(self._query_tables, vector, limit)
        except EmbeddingDimensionError:
            raise
        except Exception as exc:
            logger.warning("[knowledge] search failed for %r: %s", query[:80], exc)
            return []

    def _query_tables(self, vector: List[float], limit: int) -> List[str]:
        store = self.store
        for table in self.tables:
            if not store.has_table(table):
                logger.debug("[knowledge] table %s missing, skipping", table)
                continue
            rows = store.query(table, vector, limit=limit, min_similarity=self.min_similarity)
            if rows:
                logger.info("[knowledge] %d chunk(s) from %s", len(rows), table)
                return dedupe_chunks([content for content, _ in rows])
        return []

    def verify_dimensions(self) -> Dict[str, int]:
        """
        Startup check: the encoder and every existing knowledge table must
        agree with EMBEDDING_DIMENSIONS. Raises EmbeddingDimensionError.
        """
        checked: Dict[str, int] = {}
        actual = self.encoder.dimension
        if actual != self.dimensions:
            raise EmbeddingDimensionError(self.dimensions, actual, "encoder")
        checked["encoder"] = actual

        store = self.store
        if store is None:
            return checked
        for table in self.tables:
            if not store.has_table(table):
                continue
            declared = store.column_dimension(table)
            if declared is not None and declared != self.dimensions:
                raise EmbeddingDimensionError(self.dimensions, declared, table)
            if declared is not None:
                checked[table] = declared
        return checked


_search: Optional[KnowledgeSearch] = None


def get_knowledge_search() -> KnowledgeSearch:
    global _search
    if _search is None:
        _search = KnowledgeSearch()
    return _search


__all__ = ["KnowledgeSearch", "dedupe_chunks", "get_knowledge_search", "DUPLICATE_RATIO"]
