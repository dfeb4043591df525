"""
Embedding Service

On-device embedding generation with fastembed, used by routing as an
optional replacement for token cosine similarity. The model is loaded
lazily on first use so that constructing the service is cheap.
"""

import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional

import numpy as np

logger = logging.getLogger("suggestion_engine.common.embedding_service")

MAX_CACHE_ENTRIES = 2048


class EmbeddingService:
    """
    fastembed-backed embedding provider.

    Vectors are L2 normalized, so the dot product is the cosine similarity.
    Embedded texts are kept in an LRU cache of at most max_cache_entries.
    """

    def __init__(
        self,
        mode: str = "femb",
        model: str = "BAAI/bge-small-en-v1.5",
        max_cache_entries: int = MAX_CACHE_ENTRIES,
    ):
        self._mode = mode
        self._model_name = model
        self._model = None
        self._load_failed = False
        self._max_cache_entries = max(1, max_cache_entries)
        self._cache: "OrderedDict[str, np.ndarray]" = OrderedDict()
        self._lock = threading.Lock()

    def _ensure_model(self) -> None:
        if self._model is not None or self._load_failed:
            return
        if self._mode != "femb":
            logger.warning("Unsupported embedding mode: %s", self._mode)
            self._load_failed = True
            return
        try:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Embedding model loaded: %s", self._model_name)
        except ImportError:
            logger.warning("fastembed package not installed, embeddings unavailable")
            self._load_failed = True
        except Exception as e:
            logger.warning("Failed to load embedding model %s: %s", self._model_name, e)
            self._load_failed = True

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        self._ensure_model()
        return self._model is not None

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors (L2 normalized)
        """
        if not self.is_available:
            raise RuntimeError("Embedding model not initialized")

        if not texts:
            return []

        found: Dict[str, np.ndarray] = {}
        with self._lock:
            for text in dict.fromkeys(texts):
                if text in self._cache:
                    self._cache.move_to_end(text)
                    found[text] = self._cache[text]

        missing = [t for t in dict.fromkeys(texts) if t not in found]
        if missing:
            for text, vector in zip(missing, self._model.embed(missing)):
                found[text] = _normalize(np.asarray(vector, dtype=np.float32))
            with self._lock:
                for text in missing:
                    self._cache[text] = found[text]
                    self._cache.move_to_end(text)
                while len(self._cache) > self._max_cache_entries:
                    self._cache.popitem(last=False)

        return [found[t].tolist() for t in texts]

    def cosine_similarity(self, vec1: List[float], vec2: List[float]) -> float:
        """
        Cosine similarity between two normalized vectors, clamped to [0, 1].
        """
        v1 = np.array(vec1)
        v2 = np.array(vec2)

        if v1.shape != v2.shape:
            raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

        return max(0.0, min(1.0, float(np.dot(v1, v2))))

    def similarity(self, text_a: str, text_b: str) -> float:
        """Embedding similarity between two texts."""
        if not text_a.strip() or not text_b.strip():
            return 0.0
        vec_a, vec_b = self.embed([text_a, text_b])
        return self.cosine_similarity(vec_a, vec_b)


def _normalize(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm


def create_embedding_service(mode: str = "femb", model: str = "BAAI/bge-small-en-v1.5") -> Optional[EmbeddingService]:
    """Return a ready EmbeddingService, or None when the model cannot load."""
    service = EmbeddingService(mode=mode, model=model)
    if not service.is_available:
        return None
    return service
