# FILE: blender_agent/knowledge/store.py
"""
pgvector-backed knowledge store.

Similarity is 1 - cosine_distance, computed in the database. Rows at or
below the similarity floor are dropped before they leave the store.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import inspect, text

from blender_agent import config
from blender_agent.db import make_engine, make_session_factory
from blender_agent.knowledge.models import KnowledgeBase, model_for_table

logger = logging.getLogger(__name__)

_VECTOR_TYPE_RE = re.compile(r"vector\((\d+)\)")


class KnowledgeStore:
    def __init__(self, database_url: Optional[str] = None, engine=None):
        self.database_url = database_url or config.KNOWLEDGE_DATABASE_URL
        self.engine = engine or make_engine(self.database_url)
        self.SessionLocal = make_session_factory(self.engine)

    def has_table(self, table_name: str) -> bool:
        return inspect(self.engine).has_table(table_name)

    def create_tables(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        KnowledgeBase.metadata.create_all(bind=self.engine)

    def query(
        self,
        table_name: str,
        vector: Sequence[float],
        limit: int = 5,
        min_similarity: float = 0.2,
    ) -> List[Tuple[str, float]]:
        """(content, similarity) pairs, most similar first."""
        model = model_for_table(table_name)
        distance = model.embedding.cosine_distance(list(vector))
        with self.SessionLocal() as db:
            rows = (
                db.query(model.content, (1 - distance).label("similarity"))
                .filter((1 - distance) > min_similarity)
                .order_by(distance)
                .limit(limit)
                .all()
            )
        return [(row.content, float(row.similarity)) for row in rows]

    def column_dimension(self, table_name: str) -> Optional[int]:
        """Declared n of the table's vector(n) embedding column, if any."""
        sql = text(
            "SELECT format_type(a.atttypid, a.atttypmod) FROM pg_attribute a "
            "WHERE a.attrelid = CAST(:table AS regclass) AND a.attname = 'embedding' "
            "AND NOT a.attisdropped"
        )
        with self.engine.connect() as conn:
            declared = conn.execute(sql, {"table": table_name}).scalar()
        match = _VECTOR_TYPE_RE.search(declared or "")
        return int(match.group(1)) if match else None

    def insert_chunks(self, table_name: str, rows: List[Tuple[str, str, List[float]]]) -> int:
        """Insert (content, source, embedding) rows; returns the count."""
        model = model_for_table(table_name)
        with self.SessionLocal() as db:
            db.add_all([model(content=c, source=s, embedding=e) for c, s, e in rows])
            db.commit()
        return len(rows)

    def truncate(self, table_name: str) -> None:
        model = model_for_table(table_name)
        with self.SessionLocal() as db:
            db.query(model).delete()
            db.commit()
        logger.info("[knowledge] truncated %s", table_name)


__all__ = ["KnowledgeStore"]
