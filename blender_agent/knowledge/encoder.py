# FILE: blender_agent/knowledge/encoder.py
"""
Local text encoder for knowledge retrieval.

The sentence-transformers model is loaded lazily on first use and then shared
by every request. encode() runs the model in a worker thread so the event loop
stays responsive during the first-call warm-up.
"""

import asyncio
import logging
import threading
from typing import List, Optional

import numpy as np

from blender_agent import config

logger = logging.getLogger(__name__)


class TextEncoder:
    """Mean-pooled, L2-normalised sentence embeddings."""

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or config.EMBEDDING_MODEL_NAME
        self._model = None
        self._lock = threading.Lock()

    def _load(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    from sentence_transformers import SentenceTransformer

                    logger.info("[encoder] loading %s", self.model_name)
                    self._model = SentenceTransformer(self.model_name)
        return self._model

    @property
    def dimension(self) -> int:
        return int(self._load().get_sentence_embedding_dimension())

    def encode_sync(self, text: str) -> List[float]:
        vector = self._load().encode([text or ""], normalize_embeddings=True)[0]
        return np.asarray(vector, dtype=np.float32).tolist()

    def encode_many(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        if not texts:
            return []
        vectors = self._load().encode(list(texts), batch_size=batch_size, normalize_embeddings=True)
        return [np.asarray(v, dtype=np.float32).tolist() for v in vectors]

    async def encode(self, text: str) -> List[float]:
        return await asyncio.to_thread(self.encode_sync, text)


_encoder: Optional[TextEncoder] = None


def get_encoder() -> TextEncoder:
    global _encoder
    if _encoder is None:
        _encoder = TextEncoder()
    return _encoder


__all__ = ["TextEncoder", "get_encoder"]
